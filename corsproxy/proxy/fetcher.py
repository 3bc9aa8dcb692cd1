"""Upstream GET with a streaming byte ceiling.

Key properties:
  - Shared httpx.AsyncClient (created once in the lifespan, never per request)
  - Redirects are never followed: a 3xx is handed back to the caller with its
    Location header, so a redirect cannot carry the fetch past the address
    screening done on the original hostname
  - Content-type is checked from the response headers before any body byte
    is read; only application/json is forwarded
  - The body is counted chunk by chunk; the moment the running total passes
    the ceiling the upstream stream is closed and the request becomes a 413.
    Memory held per request is bounded by the ceiling, whatever the upstream
    declares
  - Network failures (connect, DNS, timeout, protocol, mid-body read) → 500.
    No retries
  - The whole fetch (send + body read) is bounded by timeout_s. httpx's own
    timeout only bounds each connect/read step, so a trickling upstream would
    otherwise hold a pool slot until the ceiling is reached
"""

from __future__ import annotations

import asyncio
from typing import Optional, Union

import httpx

from corsproxy.constants import FETCH_TIMEOUT_S, MAX_SIZE
from corsproxy.models.decision import GuardDecision, RejectReason, UpstreamOutcome
from corsproxy.proxy.headers import (
    build_client_response_headers,
    build_upstream_headers,
    declared_length,
    is_allowed_content_type,
)
from corsproxy.utils.logger import get_logger

logger = get_logger(__name__)

POOL_MAX_CONNECTIONS: int = 100
POOL_MAX_KEEPALIVE: int = 20
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds


def create_http_client(timeout_s: float = FETCH_TIMEOUT_S) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient.

    Created once at lifespan startup and stored in ``app.state.http_client``.
    ``trust_env=False`` keeps HTTP(S)_PROXY variables from silently routing
    guarded traffic through another hop.
    """
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=POOL_MAX_CONNECTIONS,
            max_keepalive_connections=POOL_MAX_KEEPALIVE,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=httpx.Timeout(timeout_s),
        follow_redirects=False,
        trust_env=False,
    )


class ProxyFetcher:
    """Perform the real GET and classify the upstream response."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout_s: float = FETCH_TIMEOUT_S,
        max_size: int = MAX_SIZE,
    ) -> None:
        self._client = http_client
        self._timeout = httpx.Timeout(timeout_s)
        self.timeout_s = timeout_s
        self.max_size = max_size

    async def fetch(
        self, url: str, request_id: Optional[str] = None
    ) -> Union[UpstreamOutcome, GuardDecision]:
        try:
            return await asyncio.wait_for(
                self._fetch(url, request_id), timeout=self.timeout_s
            )
        except asyncio.TimeoutError:
            logger.warning(
                "upstream_fetch_timed_out",
                upstream_url=url,
                timeout_s=self.timeout_s,
            )
            return GuardDecision.reject(RejectReason.FETCH_FAILED)

    async def _fetch(
        self, url: str, request_id: Optional[str]
    ) -> Union[UpstreamOutcome, GuardDecision]:
        request = self._client.build_request(
            "GET",
            url,
            headers=build_upstream_headers(request_id),
            timeout=self._timeout,
        )
        try:
            response = await self._client.send(request, stream=True, follow_redirects=False)
        except httpx.HTTPError as exc:
            logger.warning(
                "upstream_fetch_failed",
                upstream_url=url,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return GuardDecision.reject(RejectReason.FETCH_FAILED)

        try:
            return await self._read_response(response)
        except httpx.HTTPError as exc:
            logger.warning(
                "upstream_read_failed",
                upstream_url=url,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return GuardDecision.reject(RejectReason.FETCH_FAILED)
        finally:
            await response.aclose()

    async def _read_response(
        self, response: httpx.Response
    ) -> Union[UpstreamOutcome, GuardDecision]:
        if response.is_redirect:
            location = response.headers.get("location")
            logger.info(
                "upstream_redirect_passthrough",
                status_code=response.status_code,
                location=location,
            )
            redirect_headers = {"Location": location} if location else {}
            return UpstreamOutcome(
                status_code=response.status_code,
                content_type=None,
                body=b"",
                headers=redirect_headers,
            )

        headers = build_client_response_headers(response.headers.multi_items())
        content_type = response.headers.get("content-type")
        if not is_allowed_content_type(content_type):
            logger.info("upstream_rejected_type", content_type=content_type)
            return GuardDecision.reject(RejectReason.TYPE_NOT_ALLOWED)

        length = declared_length(response.headers.get("content-length"))
        if length is not None and length > self.max_size:
            logger.info("upstream_rejected_size", content_length=length, limit=self.max_size)
            return GuardDecision.reject(RejectReason.TOO_LARGE)

        body = bytearray()
        async for chunk in response.aiter_bytes():
            if len(body) + len(chunk) > self.max_size:
                logger.info(
                    "upstream_body_exceeded_limit",
                    received=len(body) + len(chunk),
                    limit=self.max_size,
                    declared_length=length,
                )
                return GuardDecision.reject(RejectReason.TOO_LARGE)
            body.extend(chunk)

        return UpstreamOutcome(
            status_code=response.status_code,
            content_type=content_type,
            body=bytes(body),
            headers=headers,
            declared_length=length,
        )
