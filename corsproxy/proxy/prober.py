"""Best-effort HEAD pre-check of the upstream target.

The probe exists to avoid paying for a full GET of content that is already
known to be unacceptable. It is an optimisation, not a security boundary: the
full fetch re-validates content-type and enforces the byte ceiling regardless.
Hence the ``Optional`` return: ``None`` means "no objection", and every
failure of the probe itself maps to ``None``.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from corsproxy.constants import MAX_SIZE
from corsproxy.models.decision import GuardDecision, RejectReason
from corsproxy.proxy.headers import (
    build_upstream_headers,
    declared_length,
    is_allowed_content_type,
)
from corsproxy.utils.logger import get_logger

logger = get_logger(__name__)


class UpstreamProber:
    """Issue a HEAD request and reject on declared type or size.

    Only 2xx probe responses are judged. Redirects and error statuses say
    nothing about the body the GET will return, so they are ignored. A missing
    Content-Type or Content-Length header is likewise no objection.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout_s: float,
        max_size: int = MAX_SIZE,
    ) -> None:
        self._client = http_client
        self._timeout = httpx.Timeout(timeout_s)
        self.timeout_s = timeout_s
        self.max_size = max_size

    async def probe(self, url: str, request_id: Optional[str] = None) -> Optional[GuardDecision]:
        try:
            response = await asyncio.wait_for(
                self._client.head(
                    url,
                    headers=build_upstream_headers(request_id),
                    timeout=self._timeout,
                    follow_redirects=False,
                ),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            logger.debug("probe_timed_out", timeout_s=self.timeout_s)
            return None
        except httpx.HTTPError as exc:
            logger.debug("probe_failed", error_type=type(exc).__name__, error=str(exc))
            return None

        if not response.is_success:
            logger.debug("probe_inconclusive", status_code=response.status_code)
            return None

        content_type = response.headers.get("content-type")
        if content_type is not None and not is_allowed_content_type(content_type):
            logger.info("probe_rejected_type", content_type=content_type)
            return GuardDecision.reject(RejectReason.TYPE_NOT_ALLOWED)

        length = declared_length(response.headers.get("content-length"))
        if length is not None and length > self.max_size:
            logger.info("probe_rejected_size", content_length=length, limit=self.max_size)
            return GuardDecision.reject(RejectReason.TOO_LARGE)

        return None
