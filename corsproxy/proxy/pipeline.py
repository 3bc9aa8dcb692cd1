"""Request-guard pipeline.

Runs the guard stages strictly in order for every proxied request:

    RateLimiter → TargetResolver (+ AddressGuard) → UpstreamProber → ProxyFetcher

Each stage returns either a continuation value or a terminal
``GuardDecision``; the first rejection is the pipeline's result and later
stages never run. Nothing is cached between requests: the only state that
outlives a request is the rate limiter's counters.

An unexpected exception inside a stage never escapes the pipeline. It is
logged and mapped fail-closed to the nearest taxonomy entry:

    resolution → 403 ACCESS_DENIED
    probe      → ignored (the probe is advisory)
    fetch      → 500 FETCH_FAILED
"""

from __future__ import annotations

from typing import Optional, Union

from corsproxy.guard.limiter import RateLimiter
from corsproxy.guard.resolver import TargetResolver
from corsproxy.models.decision import GuardDecision, RejectReason, UpstreamOutcome
from corsproxy.proxy.fetcher import ProxyFetcher
from corsproxy.proxy.prober import UpstreamProber
from corsproxy.utils.logger import get_logger

logger = get_logger(__name__)

PipelineResult = Union[UpstreamOutcome, GuardDecision]


class RequestGuardPipeline:
    """Orchestrates the guard stages for one inbound proxy request at a time.

    Instances are shared across concurrent requests; they hold no per-request
    state. ``prober=None`` disables the HEAD pre-check.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        resolver: TargetResolver,
        fetcher: ProxyFetcher,
        prober: Optional[UpstreamProber] = None,
    ) -> None:
        self.limiter = limiter
        self.resolver = resolver
        self.prober = prober
        self.fetcher = fetcher

    async def run(
        self,
        identity: str,
        raw_target: str,
        request_id: Optional[str] = None,
    ) -> PipelineResult:
        # ── Stage 1: rate limit ───────────────────────────────────────────────
        decision = self.limiter.check(identity)
        if not decision.allowed:
            return decision

        # ── Stage 2: parse + resolve + address screening ──────────────────────
        try:
            target = await self.resolver.resolve(raw_target)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "resolver_error",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return GuardDecision.reject(RejectReason.ACCESS_DENIED)
        if isinstance(target, GuardDecision):
            return target

        # ── Stage 3: best-effort probe ────────────────────────────────────────
        if self.prober is not None:
            try:
                objection = await self.prober.probe(target.url, request_id)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "probe_error",
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                objection = None
            if objection is not None:
                return objection

        # ── Stage 4: full fetch ───────────────────────────────────────────────
        try:
            outcome = await self.fetcher.fetch(target.url, request_id)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "fetch_error",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return GuardDecision.reject(RejectReason.FETCH_FAILED)

        if isinstance(outcome, UpstreamOutcome):
            logger.info(
                "request_proxied",
                hostname=target.hostname,
                status_code=outcome.status_code,
                body_bytes=len(outcome.body),
            )
        return outcome
