"""Pre-fetch guard stages: rate limiting, target parsing and address screening."""

from corsproxy.guard.address import AddressGuard
from corsproxy.guard.limiter import RateLimiter, RateWindow, client_identity
from corsproxy.guard.resolver import TargetResolver

__all__ = [
    "AddressGuard",
    "RateLimiter",
    "RateWindow",
    "TargetResolver",
    "client_identity",
]
