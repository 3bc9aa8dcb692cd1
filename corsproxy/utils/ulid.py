"""Request correlation IDs.

Every proxied request gets a ULID that is returned to the caller in the
``X-Request-ID`` header and bound into the structured log context, so a
caller's report can be matched to the guard decision that produced it.

Uses the ``python-ulid`` library; do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Return a new 26-character Crockford Base32 ULID string.

    Example::

        request_id = generate_ulid()
        # "01KJ0JRVHYA7KX32VPN5ZSCTMV"
    """
    return str(ULID())
