"""Per-client rate limiter: two fixed windows, both must pass.

Built on the ``limits`` library (the engine underneath slowapi):

  - ``FixedWindowRateLimiter.hit()`` is the check-and-increment: the counter is
    incremented under the storage lock and the post-increment value is compared
    to the window maximum, so two concurrent requests from the same address
    can never both observe "under limit" for the last slot.
  - ``MemoryStorage`` expires each counter when its window elapses and runs a
    periodic sweep that drops expired keys, so memory stays bounded by the
    number of identities active within the long window.

Client identity is the caller's network address, derived with slowapi's
``get_remote_address`` (see ``client_identity``).

Fixed-window semantics: a burst straddling a window boundary can briefly
reach twice the maximum. This is an accepted approximation.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from corsproxy.config import LimitsConfig
from corsproxy.models.decision import GuardDecision, RejectReason
from corsproxy.utils.logger import get_logger

logger = get_logger(__name__)

_NAMESPACE = "corsproxy"


@dataclass(frozen=True)
class RateWindow:
    """A fixed window: at most ``max_requests`` per ``window_seconds``."""

    name: str
    window_seconds: int
    max_requests: int

    def item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(
            self.max_requests, self.window_seconds, namespace=_NAMESPACE
        )


def client_identity(request: Request) -> str:
    """Rate-limit bucket key for ``request`` (the caller's address)."""
    return get_remote_address(request)


class RateLimiter:
    """Two independent fixed windows per client identity.

    The short window is consulted first; if it rejects, the long window is not
    charged. Rejected requests still count against the window that rejected them.
    """

    def __init__(
        self,
        short_window: RateWindow,
        long_window: RateWindow,
        storage: Optional[MemoryStorage] = None,
    ) -> None:
        self._storage = storage if storage is not None else MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self._storage)
        self.windows: tuple[RateWindow, RateWindow] = (short_window, long_window)
        self._items: tuple[RateLimitItem, RateLimitItem] = (
            short_window.item(),
            long_window.item(),
        )

    @classmethod
    def from_config(cls, limits_config: LimitsConfig) -> "RateLimiter":
        return cls(
            RateWindow(
                "short",
                limits_config.short_window_seconds,
                limits_config.short_window_max,
            ),
            RateWindow(
                "long",
                limits_config.long_window_seconds,
                limits_config.long_window_max,
            ),
        )

    def check(self, identity: str) -> GuardDecision:
        """Charge one request to ``identity``; Allow while both windows have room."""
        for window, item in zip(self.windows, self._items):
            if not self._strategy.hit(item, identity):
                retry_after = self._seconds_until_reset(item, identity)
                logger.info(
                    "rate_limit_exceeded",
                    identity=identity,
                    window=window.name,
                    max_requests=window.max_requests,
                    window_seconds=window.window_seconds,
                    retry_after=retry_after,
                )
                return GuardDecision.reject(
                    RejectReason.RATE_LIMITED, retry_after=retry_after
                )
        return GuardDecision.allow()

    def retry_after(self, identity: str) -> Optional[int]:
        """Seconds until every exhausted window for ``identity`` has reset.

        None while both windows still have room.
        """
        waits = [
            self._seconds_until_reset(item, identity)
            for item in self._items
            if self._strategy.get_window_stats(item, identity)[1] == 0
        ]
        return max(waits) if waits else None

    def remaining(self, identity: str) -> tuple[int, int]:
        """Requests left in (short, long) windows, without charging."""
        return tuple(  # type: ignore[return-value]
            self._strategy.get_window_stats(item, identity)[1] for item in self._items
        )

    def reset(self) -> None:
        """Drop every counter for every identity."""
        self._storage.reset()

    def _seconds_until_reset(self, item: RateLimitItem, identity: str) -> int:
        reset_time = self._strategy.get_window_stats(item, identity)[0]
        return max(1, int(reset_time - time.time()) + 1)
