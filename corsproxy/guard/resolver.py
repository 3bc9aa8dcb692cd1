"""Target parsing and DNS screening.

``TargetResolver.resolve()`` turns the path tail of an inbound request into a
``TargetRequest`` or a terminal ``GuardDecision``:

  1. empty target                          → 400 MISSING_TARGET
  2. not an absolute http(s) URL with host → 403 ACCESS_DENIED
  3. hostname is ``localhost``             → 403, no DNS lookup
  4. A and AAAA resolved concurrently; a failure or timeout of either
     family is an empty answer, both empty   → 403 (fail-closed)
  5. any resolved address blocked          → 403

Malformed and blocked targets share the same 403 so a probing client cannot
learn which check failed.

The allowed target is fetched by its original URL string, so the HTTP client
resolves the hostname a second time. A DNS rebinding attacker can answer
differently on that second lookup; pinning the validated address would close
this gap and is not done here.
"""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from typing import Awaitable, Callable, Optional, Union
from urllib.parse import urlsplit

import httpx

from corsproxy.constants import DNS_TIMEOUT_S
from corsproxy.guard.address import AddressGuard, default_guard
from corsproxy.models.decision import GuardDecision, RejectReason, TargetRequest
from corsproxy.utils.logger import get_logger

logger = get_logger(__name__)

ALLOWED_SCHEMES: frozenset[str] = frozenset({"http", "https"})

# (hostname, address family) -> list of address strings
Lookup = Callable[[str, int], Awaitable[list[str]]]


async def getaddrinfo_lookup(hostname: str, family: int) -> list[str]:
    """Resolve ``hostname`` for one address family without blocking the loop."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(
        hostname, None, family=family, type=socket.SOCK_STREAM
    )
    return [sockaddr[0] for _family, _type, _proto, _canon, sockaddr in infos]


class TargetResolver:
    """Parse, resolve and screen a caller-supplied proxy target.

    Args:
        guard:  AddressGuard holding the blocked ranges.
        lookup: async (hostname, family) -> addresses. Injected in tests.
        dns_timeout_s: per-family bound on the lookup; a stalled resolver
            counts as an empty answer.
    """

    def __init__(
        self,
        guard: AddressGuard = default_guard,
        lookup: Lookup = getaddrinfo_lookup,
        dns_timeout_s: float = DNS_TIMEOUT_S,
    ) -> None:
        self.guard = guard
        self._lookup = lookup
        self.dns_timeout_s = dns_timeout_s

    async def resolve(self, raw_target: str) -> Union[TargetRequest, GuardDecision]:
        if not raw_target:
            return GuardDecision.reject(RejectReason.MISSING_TARGET)

        parsed = _parse_target(raw_target)
        if parsed is None:
            logger.info("target_malformed", target=raw_target[:200])
            return GuardDecision.reject(RejectReason.ACCESS_DENIED)

        scheme, hostname, port, path = parsed

        if self.guard.is_loopback_name(hostname):
            logger.info("target_blocked_hostname", hostname=hostname)
            return GuardDecision.reject(RejectReason.ACCESS_DENIED)

        addresses = await self._resolve_addresses(hostname)
        if not addresses:
            logger.info("target_unresolvable", hostname=hostname)
            return GuardDecision.reject(RejectReason.ACCESS_DENIED)

        if self.guard.any_blocked(addresses):
            logger.info(
                "target_blocked_address",
                hostname=hostname,
                addresses=sorted(addresses),
            )
            return GuardDecision.reject(RejectReason.ACCESS_DENIED)

        return TargetRequest(
            url=raw_target,
            scheme=scheme,
            hostname=hostname,
            port=port,
            path=path,
            addresses=frozenset(ipaddress.ip_address(a.split("%", 1)[0]) for a in addresses),
        )

    async def _resolve_addresses(self, hostname: str) -> set[str]:
        literal = _ip_literal(hostname)
        if literal is not None:
            return {literal}

        v4, v6 = await asyncio.gather(
            self._lookup_family(hostname, socket.AF_INET),
            self._lookup_family(hostname, socket.AF_INET6),
        )
        return set(v4) | set(v6)

    async def _lookup_family(self, hostname: str, family: int) -> list[str]:
        try:
            return await asyncio.wait_for(
                self._lookup(hostname, family), timeout=self.dns_timeout_s
            )
        except asyncio.TimeoutError:
            logger.warning(
                "dns_lookup_timed_out",
                hostname=hostname,
                timeout_s=self.dns_timeout_s,
            )
            return []
        except (OSError, UnicodeError) as exc:
            # socket.gaierror is an OSError; either family may legitimately fail
            logger.debug(
                "dns_lookup_failed",
                hostname=hostname,
                family=family.name if isinstance(family, socket.AddressFamily) else family,
                error=str(exc),
            )
            return []


def _ip_literal(hostname: str) -> Optional[str]:
    try:
        return str(ipaddress.ip_address(hostname))
    except ValueError:
        return None


def _parse_target(raw_target: str) -> Optional[tuple[str, str, Optional[int], str]]:
    """Return (scheme, hostname, port, path) or None when not acceptable."""
    if any(ch.isspace() for ch in raw_target):
        return None
    try:
        parts = urlsplit(raw_target)
        port = parts.port  # raises ValueError on a non-numeric or out-of-range port
        httpx.URL(raw_target)
    except (ValueError, httpx.InvalidURL):
        return None

    if parts.scheme not in ALLOWED_SCHEMES:
        return None
    hostname = parts.hostname
    if not hostname:
        return None
    return parts.scheme, hostname, port, parts.path or "/"
