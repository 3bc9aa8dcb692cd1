"""Unit tests for RequestGuardPipeline: stage order, short-circuiting and
exception mapping at stage boundaries.

Stages other than the rate limiter are AsyncMocks so each test controls
exactly what a stage returns or raises.
"""

from __future__ import annotations

import ipaddress
from unittest.mock import AsyncMock

import pytest

from corsproxy.config import LimitsConfig
from corsproxy.guard.limiter import RateLimiter, RateWindow
from corsproxy.models.decision import (
    GuardDecision,
    RejectReason,
    TargetRequest,
    UpstreamOutcome,
)
from corsproxy.proxy.pipeline import RequestGuardPipeline

pytestmark = pytest.mark.asyncio

TARGET_URL = "https://api.example.com/users/1"
IDENTITY = "203.0.113.9"


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _target() -> TargetRequest:
    return TargetRequest(
        url=TARGET_URL,
        scheme="https",
        hostname="api.example.com",
        port=None,
        path="/users/1",
        addresses=frozenset({ipaddress.ip_address("93.184.216.34")}),
    )


def _outcome() -> UpstreamOutcome:
    return UpstreamOutcome(status_code=200, content_type="application/json", body=b"{}")


def _stages(
    resolve_result: object = None,
    probe_result: object = None,
    fetch_result: object = None,
) -> tuple[AsyncMock, AsyncMock, AsyncMock]:
    resolver = AsyncMock()
    resolver.resolve.return_value = resolve_result if resolve_result is not None else _target()
    prober = AsyncMock()
    prober.probe.return_value = probe_result
    fetcher = AsyncMock()
    fetcher.fetch.return_value = fetch_result if fetch_result is not None else _outcome()
    return resolver, prober, fetcher


def _pipeline(
    resolver: AsyncMock,
    prober: AsyncMock | None,
    fetcher: AsyncMock,
    limiter: RateLimiter | None = None,
) -> RequestGuardPipeline:
    return RequestGuardPipeline(
        limiter=limiter or RateLimiter.from_config(LimitsConfig()),
        resolver=resolver,
        fetcher=fetcher,
        prober=prober,
    )


# ─── Happy path ───────────────────────────────────────────────────────────────


class TestHappyPath:
    async def test_all_stages_run_in_order(self) -> None:
        resolver, prober, fetcher = _stages()
        result = await _pipeline(resolver, prober, fetcher).run(IDENTITY, TARGET_URL)

        assert isinstance(result, UpstreamOutcome)
        resolver.resolve.assert_awaited_once_with(TARGET_URL)
        prober.probe.assert_awaited_once_with(TARGET_URL, None)
        fetcher.fetch.assert_awaited_once_with(TARGET_URL, None)

    async def test_request_id_forwarded_to_upstream_stages(self) -> None:
        resolver, prober, fetcher = _stages()
        await _pipeline(resolver, prober, fetcher).run(
            IDENTITY, TARGET_URL, request_id="01KJ0JRVHYA7KX32VPN5ZSCTMV"
        )
        prober.probe.assert_awaited_once_with(TARGET_URL, "01KJ0JRVHYA7KX32VPN5ZSCTMV")
        fetcher.fetch.assert_awaited_once_with(TARGET_URL, "01KJ0JRVHYA7KX32VPN5ZSCTMV")

    async def test_probe_disabled_goes_straight_to_fetch(self) -> None:
        resolver, _prober, fetcher = _stages()
        result = await _pipeline(resolver, None, fetcher).run(IDENTITY, TARGET_URL)

        assert isinstance(result, UpstreamOutcome)
        fetcher.fetch.assert_awaited_once()

    async def test_fetch_rejection_is_the_result(self) -> None:
        resolver, prober, fetcher = _stages(
            fetch_result=GuardDecision.reject(RejectReason.TOO_LARGE)
        )
        result = await _pipeline(resolver, prober, fetcher).run(IDENTITY, TARGET_URL)
        assert isinstance(result, GuardDecision)
        assert result.reason is RejectReason.TOO_LARGE


# ─── Short-circuiting ─────────────────────────────────────────────────────────


class TestShortCircuit:
    """The first rejection wins; later stages never run."""

    async def test_rate_limit_precedes_dns(self) -> None:
        limiter = RateLimiter(RateWindow("short", 60, 2), RateWindow("long", 3600, 100))
        resolver, prober, fetcher = _stages()
        pipeline = _pipeline(resolver, prober, fetcher, limiter=limiter)

        for _ in range(2):
            await pipeline.run(IDENTITY, TARGET_URL)
        result = await pipeline.run(IDENTITY, TARGET_URL)

        assert isinstance(result, GuardDecision)
        assert result.reason is RejectReason.RATE_LIMITED
        assert resolver.resolve.await_count == 2
        assert fetcher.fetch.await_count == 2

    async def test_resolver_rejection_stops_pipeline(self) -> None:
        resolver, prober, fetcher = _stages(
            resolve_result=GuardDecision.reject(RejectReason.ACCESS_DENIED)
        )
        result = await _pipeline(resolver, prober, fetcher).run(IDENTITY, "http://localhost/")

        assert isinstance(result, GuardDecision)
        assert result.status_code == 403
        prober.probe.assert_not_awaited()
        fetcher.fetch.assert_not_awaited()

    async def test_probe_objection_stops_pipeline(self) -> None:
        resolver, prober, fetcher = _stages(
            probe_result=GuardDecision.reject(RejectReason.TYPE_NOT_ALLOWED)
        )
        result = await _pipeline(resolver, prober, fetcher).run(IDENTITY, TARGET_URL)

        assert isinstance(result, GuardDecision)
        assert result.reason is RejectReason.TYPE_NOT_ALLOWED
        fetcher.fetch.assert_not_awaited()

    async def test_rejected_requests_still_count(self) -> None:
        """A denied target still counts against the rate limit."""
        limiter = RateLimiter(RateWindow("short", 60, 1), RateWindow("long", 3600, 100))
        resolver, prober, fetcher = _stages(
            resolve_result=GuardDecision.reject(RejectReason.ACCESS_DENIED)
        )
        pipeline = _pipeline(resolver, prober, fetcher, limiter=limiter)

        first = await pipeline.run(IDENTITY, "https://10.0.0.5/")
        second = await pipeline.run(IDENTITY, "https://10.0.0.5/")

        assert isinstance(first, GuardDecision) and first.reason is RejectReason.ACCESS_DENIED
        assert isinstance(second, GuardDecision) and second.reason is RejectReason.RATE_LIMITED


# ─── Exception mapping ────────────────────────────────────────────────────────


class TestExceptionMapping:
    """Unexpected stage exceptions never escape; they map fail-closed."""

    async def test_resolver_exception_is_access_denied(self) -> None:
        resolver, prober, fetcher = _stages()
        resolver.resolve.side_effect = RuntimeError("resolver bug")
        result = await _pipeline(resolver, prober, fetcher).run(IDENTITY, TARGET_URL)

        assert isinstance(result, GuardDecision)
        assert result.reason is RejectReason.ACCESS_DENIED
        fetcher.fetch.assert_not_awaited()

    async def test_probe_exception_is_ignored(self) -> None:
        resolver, prober, fetcher = _stages()
        prober.probe.side_effect = RuntimeError("probe bug")
        result = await _pipeline(resolver, prober, fetcher).run(IDENTITY, TARGET_URL)

        assert isinstance(result, UpstreamOutcome)
        fetcher.fetch.assert_awaited_once()

    async def test_fetch_exception_is_fetch_failed(self) -> None:
        resolver, prober, fetcher = _stages()
        fetcher.fetch.side_effect = RuntimeError("fetch bug")
        result = await _pipeline(resolver, prober, fetcher).run(IDENTITY, TARGET_URL)

        assert isinstance(result, GuardDecision)
        assert result.reason is RejectReason.FETCH_FAILED
        assert result.status_code == 500
