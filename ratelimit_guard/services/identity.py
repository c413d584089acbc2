"""Caller identity resolution.

Identity extraction is a capability selected by :class:`IdentityMode`: the
origin resolver reads the network address, the subject resolver reads the
authenticated principal. Both work on :class:`RequestContext`, a plain
snapshot of the request, so nothing here depends on the web framework.
"""

from __future__ import annotations

import ipaddress
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from ratelimit_guard.core.errors import IdentityUnavailableError

logger = logging.getLogger(__name__)


class IdentityMode(str, Enum):
    """How callers are told apart."""

    BY_ORIGIN = "by_origin"
    BY_SUBJECT = "by_subject"


@dataclass(frozen=True)
class Identity:
    """A resolved caller identity.

    Attributes:
        tag: Identity class, ``"ip"`` or ``"user"``.
        value: Address or subject identifier.
    """

    tag: str
    value: str


@dataclass(frozen=True)
class RequestContext:
    """Framework-neutral view of the request being guarded.

    Attributes:
        operation: Stable name of the protected operation.
        client_host: Peer address reported by the server, if any.
        subject: Authenticated principal, if any.
        headers: Request headers (lower-case names).
    """

    operation: str
    client_host: str | None = None
    subject: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)


class IdentityResolver(ABC):
    """Interface for identity extraction."""

    @abstractmethod
    def resolve(self, context: RequestContext) -> Identity:
        """Return the caller identity.

        Raises:
            IdentityUnavailableError: If the identity cannot be determined.
        """
        raise NotImplementedError


def normalize_address(raw: str) -> str:
    """Normalize a peer address so equivalent spellings share a counter.

    IPv4-mapped IPv6 addresses (``::ffff:10.0.0.1``) collapse to plain IPv4.
    Values that are not IP literals (e.g. a unix socket name) are returned
    stripped but otherwise unchanged.
    """
    candidate = raw.strip()
    try:
        address = ipaddress.ip_address(candidate)
    except ValueError:
        return candidate
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return str(address.ipv4_mapped)
    return str(address)


class OriginIdentityResolver(IdentityResolver):
    """Identify callers by network origin.

    When ``trust_forwarded_for`` is set, the first hop of ``X-Forwarded-For``
    wins over the peer address. Enable it only behind a proxy that overwrites
    the header.
    """

    tag = "ip"

    def __init__(self, *, trust_forwarded_for: bool = False) -> None:
        self._trust_forwarded_for = trust_forwarded_for

    def resolve(self, context: RequestContext) -> Identity:
        host: str | None = None
        if self._trust_forwarded_for:
            forwarded = context.headers.get("x-forwarded-for", "")
            host = forwarded.split(",")[0].strip() or None
        if host is None and context.client_host:
            host = context.client_host

        address = normalize_address(host) if host else ""
        if not address:
            raise IdentityUnavailableError(
                code="origin_unavailable",
                message="Unable to read request origin information",
                details={"http_status": 400, "identity_mode": IdentityMode.BY_ORIGIN.value},
            )
        return Identity(tag=self.tag, value=address)


class SubjectIdentityResolver(IdentityResolver):
    """Identify callers by authenticated subject."""

    tag = "user"

    def resolve(self, context: RequestContext) -> Identity:
        subject = (context.subject or "").strip()
        if not subject:
            raise IdentityUnavailableError(
                code="not_authenticated",
                message="You are not authenticated",
                details={"http_status": 401, "identity_mode": IdentityMode.BY_SUBJECT.value},
            )
        return Identity(tag=self.tag, value=subject)


def default_resolvers(*, trust_forwarded_for: bool = False) -> dict[IdentityMode, IdentityResolver]:
    """Build the resolver for every identity mode."""
    return {
        IdentityMode.BY_ORIGIN: OriginIdentityResolver(trust_forwarded_for=trust_forwarded_for),
        IdentityMode.BY_SUBJECT: SubjectIdentityResolver(),
    }
