"""HTTP response builders for guard rejections and the informational root.

Every non-success outcome is written with the same envelope::

    {"code": <http status>, "message": "<short>", "details": "<explanation>"}

``code`` always mirrors the HTTP status. The ``details`` wording is kept stable
for existing integrations that match on it.
"""

from __future__ import annotations

from fastapi.responses import JSONResponse

from corsproxy.models.decision import GuardDecision, RejectReason

_SELF_DEPLOY_HINT = (
    "If you are a developer and want unrestricted access, you can consider "
    "self-deployment. The source code is available at "
    "https://github.com/alikia2x/cors-proxy, feel free to hack it and deploy yours."
)

# ─── Envelopes (defined once, never mutated) ─────────────────────────────────

ERROR_PAYLOADS: dict[RejectReason, dict] = {
    RejectReason.MISSING_TARGET: {
        "code": 400,
        "message": "Bad request",
        "details": "URL parameter is required",
    },
    RejectReason.ACCESS_DENIED: {
        "code": 403,
        "message": "Forbidden",
        "details": "Access to the requested URL is blocked",
    },
    RejectReason.TYPE_NOT_ALLOWED: {
        "code": 400,
        "message": "Bad request",
        "details": (
            "The response data is not in JSON format, which is not allowed in "
            "order to prevent abuse. We only accept API request proxy."
        ),
    },
    RejectReason.TOO_LARGE: {
        "code": 413,
        "message": "Response data is too large",
        "details": (
            "We are sorry, but the response you request in this proxy is too large. "
            "To prevent abuse, we blocked the request. Please try again later. "
            "We apologize for the inconvenience. " + _SELF_DEPLOY_HINT
        ),
    },
    RejectReason.RATE_LIMITED: {
        "code": 429,
        "message": "Too many requests, please try again later.",
        "details": (
            "We are sorry, but your IP sent more than the allowed number of requests. "
            "To prevent abuse, we blocked the request. Please try again later. "
            "We apologize for the inconvenience. " + _SELF_DEPLOY_HINT
        ),
    },
    RejectReason.FETCH_FAILED: {
        "code": 500,
        "message": "Internal server error",
        "details": "Error fetching the URL",
    },
}

HELLO_MSG: dict = {
    "code": 200,
    "message": "Hi! This is a free CORS proxy for anyone to use.",
    "usage": "Put your URL after ours, and it'll give you a CORS-free response.",
    "url": "https://cors.a2x.pub/",
    "example": "https://cors.a2x.pub/https://api.github.com/users/alikia2x",
    "source": "https://github.com/alikia2x/cors-proxy",
}


def build_error_response(decision: GuardDecision) -> JSONResponse:
    """Build the JSON error response for a rejecting ``GuardDecision``.

    The HTTP status is always forced from the reject reason, never from
    whatever the upstream returned. Rate-limit rejections carry ``Retry-After``
    when the limiter could compute it.

    Raises:
        ValueError: if ``decision`` is an Allow.
    """
    if decision.allowed or decision.reason is None:
        raise ValueError("build_error_response() requires a rejecting decision")

    response = JSONResponse(
        status_code=decision.reason.status_code,
        content=ERROR_PAYLOADS[decision.reason],
    )
    if decision.retry_after is not None:
        response.headers["Retry-After"] = str(decision.retry_after)
    return response


def build_status_response(status_code: int, message: str, details: str) -> JSONResponse:
    """Envelope for errors raised outside the guard pipeline (404, 405, 500).

    Carries ``Access-Control-Allow-Origin`` itself: the unhandled-exception
    path is rendered outside the middleware stack.
    """
    return JSONResponse(
        status_code=status_code,
        content={"code": status_code, "message": message, "details": details},
        headers={"Access-Control-Allow-Origin": "*"},
    )
