"""Unit tests for API key authentication module."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi import HTTPException

from ratelimit_guard.core.auth import (
    identify_api_key,
    parse_api_keys,
    subject_for_api_key,
    validate_api_key,
    verify_api_key,
)
from ratelimit_guard.core.errors import AuthenticationAppError


def _request() -> SimpleNamespace:
    """Minimal stand-in exposing ``request.state`` like Starlette does."""
    return SimpleNamespace(state=SimpleNamespace())


class TestParseAPIKeys:
    """Test API key parsing utility function."""

    def test_parse_multiple_keys(self) -> None:
        assert parse_api_keys("key1,key2,key3") == {"key1", "key2", "key3"}

    def test_parse_keys_with_whitespace(self) -> None:
        assert parse_api_keys("key1 , key2  ,  key3") == {"key1", "key2", "key3"}

    @pytest.mark.parametrize("raw", [None, "", "   ,  ,  "])
    def test_parse_empty_returns_empty_set(self, raw: str | None) -> None:
        assert parse_api_keys(raw) == set()

    def test_parse_removes_duplicate_keys(self) -> None:
        assert parse_api_keys("key1,key2,key1,key3,key2") == {"key1", "key2", "key3"}


class TestSubjectForAPIKey:
    def test_subject_is_stable_and_hides_key(self) -> None:
        subject = subject_for_api_key("my-secret-key")

        assert subject == subject_for_api_key("my-secret-key")
        assert subject.startswith("key_")
        assert "my-secret-key" not in subject

    def test_distinct_keys_distinct_subjects(self) -> None:
        assert subject_for_api_key("a") != subject_for_api_key("b")


class TestValidateAPIKey:
    """Test core API key validation logic."""

    @patch("ratelimit_guard.core.auth.settings")
    def test_validate_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.api_key_required = False

        validate_api_key("any-random-key")
        validate_api_key("")

    @pytest.mark.parametrize("configured", [None, ""])
    @patch("ratelimit_guard.core.auth.settings")
    def test_validate_raises_when_no_keys_configured(self, mock_settings, configured) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = configured

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("some-key")

        assert exc_info.value.code == "api_keys_not_configured"

    @patch("ratelimit_guard.core.auth.settings")
    def test_validate_accepts_valid_key(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "valid-key-1,valid-key-2"

        validate_api_key("valid-key-1")
        validate_api_key("valid-key-2")

    @patch("ratelimit_guard.core.auth.settings")
    def test_validate_rejects_invalid_key(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = " valid-key-1 , valid-key-2 "

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key(" valid-key-1 ")

        assert exc_info.value.code == "invalid_api_key"


class TestIdentifyAPIKeyDependency:
    """Optional authentication used in front of subject-based limits."""

    @pytest.mark.asyncio
    async def test_missing_header_leaves_caller_anonymous(self) -> None:
        request = _request()

        await identify_api_key(request, x_api_key=None)

        assert not hasattr(request.state, "subject")

    @pytest.mark.asyncio
    @patch("ratelimit_guard.core.auth.settings")
    async def test_valid_key_sets_subject(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "valid-key"
        request = _request()

        await identify_api_key(request, x_api_key="valid-key")

        assert request.state.subject == subject_for_api_key("valid-key")

    @pytest.mark.asyncio
    @patch("ratelimit_guard.core.auth.settings")
    async def test_invalid_key_raises_403(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "valid-key"
        request = _request()

        with pytest.raises(HTTPException) as exc_info:
            await identify_api_key(request, x_api_key="wrong-key")

        assert exc_info.value.status_code == 403
        assert not hasattr(request.state, "subject")


class TestVerifyAPIKeyDependency:
    """Test FastAPI dependency for mandatory API key verification."""

    @pytest.mark.asyncio
    @patch("ratelimit_guard.core.auth.settings")
    async def test_verify_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.api_key_required = False

        await verify_api_key(_request(), x_api_key=None)

    @pytest.mark.asyncio
    @patch("ratelimit_guard.core.auth.settings")
    async def test_verify_raises_403_when_header_missing(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "valid-key"

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(_request(), x_api_key=None)

        assert exc_info.value.status_code == 403
        assert "Missing API key" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("ratelimit_guard.core.auth.settings")
    async def test_verify_accepts_valid_key_and_sets_subject(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "my-valid-key,another-key"
        request = _request()

        await verify_api_key(request, x_api_key="another-key")

        assert request.state.subject == subject_for_api_key("another-key")

    @pytest.mark.asyncio
    @patch("ratelimit_guard.core.auth.settings")
    async def test_verify_raises_403_when_keys_not_configured(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = None

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(_request(), x_api_key="some-key")

        assert exc_info.value.status_code == 403
        assert "no valid keys are configured" in exc_info.value.detail
