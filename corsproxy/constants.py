"""Shared constants for the CORS proxy.

All size limits, rate-limit windows and blocked network ranges used across
modules are defined here. No magic numbers in other modules; import from here.
"""

# ─── Response Size Limit ─────────────────────────────────────────────────────

# Hard ceiling on the body forwarded to the caller.
# Enforced while streaming the upstream body; exceeding it yields HTTP 413.
MAX_SIZE: int = 1_000_000  # 1,000,000 bytes (decimal megabyte)

# ─── Rate Limit Windows ──────────────────────────────────────────────────────

# Short window: 20 requests per 60 seconds per client address.
MINUTE_WINDOW_SECONDS: int = 60
MINUTE_MAX_REQUESTS: int = 20

# Long window: 500 requests per 6 hours per client address.
SIX_HOURS_WINDOW_SECONDS: int = 6 * 60 * 60
SIX_HOURS_MAX_REQUESTS: int = 500

# ─── Upstream Timeouts ───────────────────────────────────────────────────────

# Full GET toward the upstream (connect + read + write + pool).
FETCH_TIMEOUT_S: float = 30.0

# HEAD pre-check. Kept short: a slow probe only delays the real fetch.
PROBE_TIMEOUT_S: float = 5.0

# Per address family. A lookup that does not answer in time is an empty answer.
DNS_TIMEOUT_S: float = 5.0

# ─── Server ──────────────────────────────────────────────────────────────────

DEFAULT_PORT: int = 12712
DEFAULT_HOST: str = "0.0.0.0"

# ─── Blocked Destinations ────────────────────────────────────────────────────

# Destinations the proxy must never reach. A hostname is rejected when ANY of
# its resolved addresses falls in one of these ranges.
BLOCKED_RANGES: tuple[str, ...] = (
    "127.0.0.0/8",     # loopback
    "::1/128",         # IPv6 loopback
    "169.254.0.0/16",  # link-local (cloud metadata lives here)
    "fe80::/10",       # IPv6 link-local
    "10.0.0.0/8",      # private
    "172.16.0.0/12",   # private
    "192.168.0.0/16",  # private
    "fc00::/7",        # IPv6 unique-local
    "fd00::/8",        # IPv6 unique-local (subset of fc00::/7, listed explicitly)
    "100.64.0.0/10",   # carrier-grade NAT
    "0.0.0.0/8",       # unspecified / "this network"
    "::/128",          # IPv6 unspecified
)

# Hostname rejected before any DNS lookup.
LOOPBACK_HOSTNAME: str = "localhost"

# Only this media type is forwarded.
ALLOWED_CONTENT_TYPE: str = "application/json"
