"""Destination address screening.

``AddressGuard`` holds the static set of disallowed networks (loaded once at
import time from ``BLOCKED_RANGES``) and classifies resolved addresses against
it. The policy is fail-closed: a hostname is acceptable only when EVERY one of
its addresses is outside every blocked range. DNS answers are attacker
influenceable, so a single private address poisons the whole hostname.
"""

from __future__ import annotations

import ipaddress
from typing import Iterable, Union

from corsproxy.constants import BLOCKED_RANGES, LOOPBACK_HOSTNAME

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def _parse_address(value: Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]):
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value
    # getaddrinfo may return scoped IPv6 literals such as "fe80::1%eth0"
    return ipaddress.ip_address(str(value).split("%", 1)[0])


class AddressGuard:
    """Classify addresses and hostnames against the blocked network ranges."""

    def __init__(self, ranges: Iterable[str] = BLOCKED_RANGES) -> None:
        self.networks: tuple[IPNetwork, ...] = tuple(
            ipaddress.ip_network(cidr) for cidr in ranges
        )

    def is_blocked(self, address) -> bool:
        """True if ``address`` falls in any blocked range.

        Unparseable input counts as blocked. IPv4-mapped IPv6 addresses
        (``::ffff:10.0.0.1``) are judged by their embedded IPv4 address.
        """
        try:
            ip = _parse_address(address)
        except ValueError:
            return True

        candidates = [ip]
        if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
            candidates.append(ip.ipv4_mapped)

        for candidate in candidates:
            for network in self.networks:
                if candidate.version == network.version and candidate in network:
                    return True
        return False

    def any_blocked(self, addresses: Iterable) -> bool:
        """True if at least one address is blocked (union, not intersection)."""
        return any(self.is_blocked(address) for address in addresses)

    @staticmethod
    def is_loopback_name(hostname: str) -> bool:
        return hostname.lower().rstrip(".") == LOOPBACK_HOSTNAME


default_guard = AddressGuard()
