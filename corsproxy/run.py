"""Programmatic uvicorn entry point for the CORS proxy.

Reads host and port from the loaded config (0.0.0.0:12712 by default, PORT
overrides) and starts uvicorn with hardened defaults:

  --limit-concurrency 100         Max 100 concurrent connections; HTTP 503 when exceeded
  --backlog 50                    OS connection queue depth
  --timeout-keep-alive 5          Short idle keep-alive window
  --timeout-graceful-shutdown 35  In-flight requests get this long to finish on SIGTERM

Usage:
    python -m corsproxy.run    # reads .corsproxy/config.yaml if present
    corsproxy                  # via pyproject.toml [project.scripts]
"""

from __future__ import annotations

import uvicorn

from corsproxy.config import load_config

# ─── Uvicorn hardened defaults ───────────────────────────────────────────────

# Must match the httpx pool size (POOL_MAX_CONNECTIONS in proxy/fetcher.py).
UVICORN_LIMIT_CONCURRENCY: int = 100

UVICORN_BACKLOG: int = 50

UVICORN_TIMEOUT_KEEP_ALIVE: int = 5

# Seconds uvicorn waits for in-flight requests after SIGINT/SIGTERM before
# cancelling them. Longer than the upstream fetch timeout.
UVICORN_TIMEOUT_GRACEFUL_SHUTDOWN: int = 35


def main() -> None:
    """Start the proxy server.

    Raises:
        SystemExit: Propagated from load_config() on config parse errors.
    """
    config = load_config()

    uvicorn.run(
        "corsproxy.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
        timeout_graceful_shutdown=UVICORN_TIMEOUT_GRACEFUL_SHUTDOWN,
    )


if __name__ == "__main__":
    main()
