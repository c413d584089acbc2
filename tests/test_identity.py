"""Unit tests for caller identity resolution."""

import pytest

from ratelimit_guard.core.errors import IdentityUnavailableError
from ratelimit_guard.services.identity import (
    Identity,
    IdentityMode,
    OriginIdentityResolver,
    RequestContext,
    SubjectIdentityResolver,
    default_resolvers,
    normalize_address,
)


class TestNormalizeAddress:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("10.0.0.1", "10.0.0.1"),
            (" 10.0.0.1 ", "10.0.0.1"),
            ("::ffff:10.0.0.1", "10.0.0.1"),
            ("2001:DB8::1", "2001:db8::1"),
            ("testclient", "testclient"),
        ],
    )
    def test_normalize(self, raw: str, expected: str) -> None:
        assert normalize_address(raw) == expected


class TestOriginIdentityResolver:
    def test_uses_peer_address(self) -> None:
        identity = OriginIdentityResolver().resolve(
            RequestContext(operation="op", client_host="::ffff:192.168.1.7")
        )
        assert identity == Identity("ip", "192.168.1.7")

    def test_ignores_forwarded_for_by_default(self) -> None:
        context = RequestContext(
            operation="op",
            client_host="10.0.0.1",
            headers={"x-forwarded-for": "203.0.113.9"},
        )
        assert OriginIdentityResolver().resolve(context).value == "10.0.0.1"

    def test_trusted_forwarded_for_uses_first_hop(self) -> None:
        context = RequestContext(
            operation="op",
            client_host="10.0.0.1",
            headers={"x-forwarded-for": "203.0.113.9, 10.0.0.1"},
        )
        resolver = OriginIdentityResolver(trust_forwarded_for=True)
        assert resolver.resolve(context).value == "203.0.113.9"

    def test_trusted_forwarded_for_falls_back_to_peer(self) -> None:
        context = RequestContext(operation="op", client_host="10.0.0.1")
        resolver = OriginIdentityResolver(trust_forwarded_for=True)
        assert resolver.resolve(context).value == "10.0.0.1"

    @pytest.mark.parametrize("client_host", [None, "", "   "])
    def test_missing_origin_raises(self, client_host: str | None) -> None:
        with pytest.raises(IdentityUnavailableError) as exc_info:
            OriginIdentityResolver().resolve(
                RequestContext(operation="op", client_host=client_host)
            )

        assert exc_info.value.code == "origin_unavailable"
        assert exc_info.value.message == "Unable to read request origin information"
        assert exc_info.value.details["http_status"] == 400


class TestSubjectIdentityResolver:
    def test_uses_subject(self) -> None:
        identity = SubjectIdentityResolver().resolve(
            RequestContext(operation="op", client_host="10.0.0.1", subject="alice")
        )
        assert identity == Identity("user", "alice")

    @pytest.mark.parametrize("subject", [None, ""])
    def test_anonymous_caller_raises(self, subject: str | None) -> None:
        with pytest.raises(IdentityUnavailableError) as exc_info:
            SubjectIdentityResolver().resolve(
                RequestContext(operation="op", client_host="10.0.0.1", subject=subject)
            )

        assert exc_info.value.code == "not_authenticated"
        assert exc_info.value.details["http_status"] == 401


def test_default_resolvers_cover_every_mode() -> None:
    resolvers = default_resolvers(trust_forwarded_for=True)

    assert set(resolvers) == set(IdentityMode)
    assert isinstance(resolvers[IdentityMode.BY_ORIGIN], OriginIdentityResolver)
    assert isinstance(resolvers[IdentityMode.BY_SUBJECT], SubjectIdentityResolver)
