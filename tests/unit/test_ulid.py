"""Unit tests for request ID generation (corsproxy/utils/ulid.py)."""

from __future__ import annotations

import re
import threading

from corsproxy.utils.ulid import generate_ulid

# Crockford Base32 charset: 0-9 and A-Z, excluding I, L, O, U
ULID_CHARSET = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")


def test_generate_ulid_returns_string() -> None:
    assert isinstance(generate_ulid(), str)


def test_generate_ulid_format() -> None:
    """26 Crockford Base32 characters; safe in a header value unescaped."""
    result = generate_ulid()
    assert ULID_CHARSET.match(result), f"ULID {result!r} has an invalid format"


def test_generate_ulid_unique() -> None:
    ids = [generate_ulid() for _ in range(1000)]
    assert len(set(ids)) == 1000


def test_generate_ulid_sortable_over_time() -> None:
    """The timestamp prefix makes later IDs sort after earlier ones."""
    first = generate_ulid()
    later = generate_ulid()
    assert first[:10] <= later[:10]


def test_generate_ulid_thread_safe() -> None:
    results: list[str] = []
    lock = threading.Lock()

    def worker() -> None:
        local = [generate_ulid() for _ in range(100)]
        with lock:
            results.extend(local)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 1000
    assert len(set(results)) == 1000
