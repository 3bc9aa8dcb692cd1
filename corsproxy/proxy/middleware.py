"""Unconditional ``Access-Control-Allow-Origin: *`` on every response.

Starlette's CORSMiddleware only decorates requests that carry an ``Origin``
header. A public CORS proxy answers every caller the same way, including
non-browser clients and same-origin fetches, so this middleware fills the
header in whenever CORSMiddleware did not.

Registration (in create_app() in corsproxy/main.py)::

    application.add_middleware(CORSMiddleware, ...)
    application.add_middleware(AllowAnyOriginMiddleware)

Responses produced by the ``Exception`` handler are built by Starlette's
ServerErrorMiddleware, which sits outside every user middleware;
``build_status_response`` sets the header itself for that path.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ALLOW_ORIGIN_HEADER: str = "Access-Control-Allow-Origin"
ALLOW_ANY_ORIGIN: str = "*"


class AllowAnyOriginMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        response = await call_next(request)
        if ALLOW_ORIGIN_HEADER not in response.headers:
            response.headers[ALLOW_ORIGIN_HEADER] = ALLOW_ANY_ORIGIN
        return response
