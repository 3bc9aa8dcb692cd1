"""HTTP header processing for proxied requests.

  - build_upstream_headers(): the fixed header set sent to the target. Caller
    headers (cookies, authorization, origin) are never forwarded upstream.

  - build_client_response_headers(): filters upstream response headers before
    they are returned to the caller.

RFC 7230 §6.1: hop-by-hop headers MUST NOT be forwarded by intermediaries.
"""

from __future__ import annotations

from typing import Iterable

from corsproxy import __version__
from corsproxy.constants import ALLOWED_CONTENT_TYPE

# ─── Constants ────────────────────────────────────────────────────────────────

HOP_BY_HOP_HEADERS: frozenset[str] = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",  # recomputed from the bounded body
    }
)

# Upstream headers that must not reach the caller through the proxy:
#   content-encoding: the body is decoded while it is counted
#   set-cookie      : would plant cookies on the proxy's own origin
#   access-control-*: CORS policy is the proxy's, not the upstream's
_STRIPPED_RESPONSE_HEADERS: frozenset[str] = frozenset(
    {"content-encoding", "set-cookie", "set-cookie2"}
)
_CORS_HEADER_PREFIX = "access-control-"

USER_AGENT: str = f"corsproxy/{__version__}"

# ─── Public API ───────────────────────────────────────────────────────────────


def build_upstream_headers(request_id: str | None = None) -> dict[str, str]:
    """Headers for the probe and the full fetch.

    ``X-Request-ID`` is attached when given so upstream logs can be correlated.
    """
    headers = {
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }
    if request_id:
        headers["X-Request-ID"] = request_id
    return headers


def build_client_response_headers(
    upstream_headers: Iterable[tuple[str, str]],
) -> dict[str, str]:
    """Filter upstream response headers for the caller.

    Drops hop-by-hop headers, content-encoding, cookies and upstream CORS
    headers; everything else (etag, cache-control, location, rate-limit
    headers) passes through. Header name case is preserved.
    """
    result: dict[str, str] = {}
    for name, value in upstream_headers:
        lower = name.lower()
        if lower in HOP_BY_HOP_HEADERS or lower in _STRIPPED_RESPONSE_HEADERS:
            continue
        if lower.startswith(_CORS_HEADER_PREFIX):
            continue
        if lower == "content-type":
            # Set from UpstreamOutcome.content_type by the response writer
            continue
        result[name] = value
    return result


def is_allowed_content_type(content_type: str | None) -> bool:
    """True for ``application/json`` with or without parameters (charset etc.)."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == ALLOWED_CONTENT_TYPE


def declared_length(content_length: str | None) -> int | None:
    """Parse a Content-Length header value; None when absent or malformed."""
    if content_length is None:
        return None
    try:
        value = int(content_length.strip())
    except ValueError:
        return None
    return value if value >= 0 else None
