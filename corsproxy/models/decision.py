"""Guard decision and request/outcome data contracts.

Every guard stage produces either a continuation value or a terminal
``GuardDecision``. The pipeline short-circuits on the first rejection, and the
response writer turns that rejection into the JSON error envelope.

  - RejectReason   : the error taxonomy; each member carries its HTTP status
  - GuardDecision  : tagged Allow | Reject(reason)
  - TargetRequest  : parsed and resolved proxy target (immutable)
  - UpstreamOutcome: bounded upstream response ready to be written
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class RejectReason(str, Enum):
    """Error taxonomy for guard rejections.

    Malformed targets and blocked addresses share ACCESS_DENIED so that a
    probing client cannot tell which check failed.
    """

    MISSING_TARGET = "MISSING_URL_PARAM"
    ACCESS_DENIED = "ACCESS_DENIED"
    TYPE_NOT_ALLOWED = "TYPE_NOT_ALLOWED"
    TOO_LARGE = "TOO_LARGE"
    RATE_LIMITED = "RATE_LIMIT_EXCEEDED"
    FETCH_FAILED = "FETCH_FAILED"

    @property
    def status_code(self) -> int:
        return _STATUS_BY_REASON[self]


_STATUS_BY_REASON: dict[RejectReason, int] = {
    RejectReason.MISSING_TARGET: 400,
    RejectReason.ACCESS_DENIED: 403,
    RejectReason.TYPE_NOT_ALLOWED: 400,
    RejectReason.TOO_LARGE: 413,
    RejectReason.RATE_LIMITED: 429,
    RejectReason.FETCH_FAILED: 500,
}


@dataclass(frozen=True)
class GuardDecision:
    """Outcome of a single guard stage.

    Use ``GuardDecision.allow()`` / ``GuardDecision.reject(reason)`` rather than
    the constructor. ``retry_after`` is only set on rate-limit rejections.
    """

    allowed: bool
    reason: Optional[RejectReason] = None
    retry_after: Optional[int] = None

    @classmethod
    def allow(cls) -> "GuardDecision":
        return _ALLOW

    @classmethod
    def reject(
        cls, reason: RejectReason, retry_after: Optional[int] = None
    ) -> "GuardDecision":
        return cls(allowed=False, reason=reason, retry_after=retry_after)

    @property
    def status_code(self) -> int:
        if self.reason is None:
            return 200
        return self.reason.status_code


_ALLOW = GuardDecision(allowed=True)


@dataclass(frozen=True)
class TargetRequest:
    """A proxy target that passed parsing and address screening.

    ``url`` is the caller-supplied string, fetched as-is (no IP pinning).
    """

    url: str
    scheme: str
    hostname: str
    port: Optional[int]
    path: str
    addresses: frozenset[IPAddress] = field(default_factory=frozenset)


@dataclass
class UpstreamOutcome:
    """A fully-read, size-bounded upstream response.

    ``body`` never exceeds MAX_SIZE bytes. ``headers`` holds only the headers
    that are safe to return to the caller.
    """

    status_code: int
    content_type: Optional[str]
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)
    declared_length: Optional[int] = None
