"""Proxy route: ``GET /{target}`` → guard pipeline → response.

The path tail after the leading ``/`` (already percent-decoded by the HTTP
layer) is the literal target URL. The query string of the inbound request is
not part of the target.

Exactly one response is written per request: either the bounded upstream body
with the upstream status, or the JSON error envelope for the first guard
rejection. Every response carries ``X-Request-ID``.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from corsproxy.guard.limiter import client_identity
from corsproxy.models.decision import GuardDecision, UpstreamOutcome
from corsproxy.models.responses import build_error_response
from corsproxy.proxy.pipeline import RequestGuardPipeline
from corsproxy.utils.logger import clear_request_id, get_logger, set_request_id
from corsproxy.utils.ulid import generate_ulid

logger = get_logger(__name__)

router = APIRouter(tags=["proxy"])

REQUEST_ID_HEADER = "X-Request-ID"


@router.get("/{target:path}")
async def proxy_handler(request: Request, target: str) -> Response:
    """Run the guard pipeline for ``target`` and write its single outcome."""
    request_id = generate_ulid()
    set_request_id(request_id)
    try:
        pipeline: RequestGuardPipeline = request.app.state.pipeline
        identity = client_identity(request)

        result = await pipeline.run(identity, target, request_id=request_id)

        if isinstance(result, GuardDecision):
            logger.info(
                "request_rejected",
                reason=result.reason.value if result.reason else None,
                status_code=result.status_code,
                identity=identity,
            )
            response: Response = build_error_response(result)
        else:
            response = _build_outcome_response(result)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        clear_request_id()


def _build_outcome_response(outcome: UpstreamOutcome) -> Response:
    return Response(
        content=outcome.body,
        status_code=outcome.status_code,
        headers=outcome.headers,
        media_type=outcome.content_type,
    )
