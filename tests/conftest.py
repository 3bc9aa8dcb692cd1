"""Root test configuration for the CORS proxy.

Keeps every test independent of the machine it runs on: no PORT or
CORSPROXY_CONFIG from the environment, and no config file picked up from the
working directory or the home directory.

Also provides ``make_lookup``: a fake DNS resolver for TargetResolver so no
test ever performs a real lookup.
"""

from __future__ import annotations

import ipaddress
import socket
from typing import Callable, Optional

import pytest


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Strip config-affecting environment variables and default search paths."""
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.delenv("CORSPROXY_CONFIG", raising=False)
    monkeypatch.setattr("corsproxy.config.DEFAULT_CONFIG_PATHS", [])


class StaticLookup:
    """Fake DNS answering from a fixed table.

    ``answers`` maps hostname -> addresses of either family; each query
    returns only the addresses of the requested family. Unknown hostnames
    raise ``socket.gaierror`` like a real NXDOMAIN. Every query is recorded.
    """

    def __init__(self, answers: Optional[dict[str, list[str]]] = None) -> None:
        self.answers = answers or {}
        self.calls: list[tuple[str, int]] = []

    async def __call__(self, hostname: str, family: int) -> list[str]:
        self.calls.append((hostname, family))
        addresses = self.answers.get(hostname)
        if addresses is None:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        version = 4 if family == socket.AF_INET else 6
        return [a for a in addresses if ipaddress.ip_address(a).version == version]

    @property
    def queried_hostnames(self) -> set[str]:
        return {hostname for hostname, _family in self.calls}


@pytest.fixture
def make_lookup() -> Callable[..., StaticLookup]:
    """Factory fixture: ``make_lookup({"api.example.com": ["93.184.216.34"]})``."""
    return StaticLookup
