"""Config loading for the CORS proxy.

The proxy runs with no config file at all; every field has a safe default.
An optional YAML file can tune limits and timeouts for self-hosted deployments.

Config search order:
  1. ``config_path`` argument (if provided; for testing or explicit override)
  2. CORSPROXY_CONFIG environment variable (if set)
  3. ``.corsproxy/config.yaml`` (working directory)
  4. ``~/.corsproxy/config.yaml`` (home directory)

Environment variable overrides:
  PORT: overrides server.port (takes precedence over the config file value)
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Optional

import yaml

from corsproxy.constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    FETCH_TIMEOUT_S,
    MAX_SIZE,
    MINUTE_MAX_REQUESTS,
    MINUTE_WINDOW_SECONDS,
    PROBE_TIMEOUT_S,
    SIX_HOURS_MAX_REQUESTS,
    SIX_HOURS_WINDOW_SECONDS,
)
from corsproxy.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_CONFIG_VERSION = 1
SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".corsproxy/config.yaml",
    os.path.expanduser("~/.corsproxy/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class LimitsConfig:
    """Rate-limit windows and the response size ceiling."""

    short_window_seconds: int = MINUTE_WINDOW_SECONDS
    short_window_max: int = MINUTE_MAX_REQUESTS
    long_window_seconds: int = SIX_HOURS_WINDOW_SECONDS
    long_window_max: int = SIX_HOURS_MAX_REQUESTS
    max_response_bytes: int = MAX_SIZE


@dataclass
class UpstreamConfig:
    """Outbound request behaviour.

    probe_enabled: issue the HEAD pre-check before the full fetch.
    """

    fetch_timeout_s: float = FETCH_TIMEOUT_S
    probe_timeout_s: float = PROBE_TIMEOUT_S
    probe_enabled: bool = True


@dataclass
class Config:
    """Root configuration object. All fields have safe defaults."""

    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    path: Optional[str] = None

    @classmethod
    def defaults(cls) -> "Config":
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Merge a parsed YAML mapping onto the defaults.

        Unknown keys are ignored.

        Raises:
            SystemExit(1): a numeric limit or timeout is not a positive number,
                or server.host / server.port is invalid.
        """
        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", DEFAULT_HOST),
            port=server_raw.get("port", DEFAULT_PORT),
        )
        _require_port("server.port", server.port)
        _require_host("server.host", server.host)

        limits_raw = raw.get("limits") or {}
        limits = LimitsConfig(
            short_window_seconds=limits_raw.get("short_window_seconds", MINUTE_WINDOW_SECONDS),
            short_window_max=limits_raw.get("short_window_max", MINUTE_MAX_REQUESTS),
            long_window_seconds=limits_raw.get("long_window_seconds", SIX_HOURS_WINDOW_SECONDS),
            long_window_max=limits_raw.get("long_window_max", SIX_HOURS_MAX_REQUESTS),
            max_response_bytes=limits_raw.get("max_response_bytes", MAX_SIZE),
        )

        upstream_raw = raw.get("upstream") or {}
        upstream = UpstreamConfig(
            fetch_timeout_s=upstream_raw.get("fetch_timeout_s", FETCH_TIMEOUT_S),
            probe_timeout_s=upstream_raw.get("probe_timeout_s", PROBE_TIMEOUT_S),
            probe_enabled=bool(upstream_raw.get("probe_enabled", True)),
        )

        for name, value in (
            ("limits.short_window_seconds", limits.short_window_seconds),
            ("limits.short_window_max", limits.short_window_max),
            ("limits.long_window_seconds", limits.long_window_seconds),
            ("limits.long_window_max", limits.long_window_max),
            ("limits.max_response_bytes", limits.max_response_bytes),
            ("upstream.fetch_timeout_s", upstream.fetch_timeout_s),
            ("upstream.probe_timeout_s", upstream.probe_timeout_s),
        ):
            _require_positive(name, value)

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=server,
            limits=limits,
            upstream=upstream,
            path=path,
        )


def _require_positive(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        print(
            f"CONFIG ERROR: {name} must be a positive number, got {value!r}",
            file=sys.stderr,
        )
        raise SystemExit(1)


def _require_port(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 65535:
        print(
            f"CONFIG ERROR: {name} must be an integer between 1 and 65535, got {value!r}",
            file=sys.stderr,
        )
        raise SystemExit(1)


def _require_host(name: str, value: object) -> None:
    if not isinstance(value, str) or not value.strip():
        print(f"CONFIG ERROR: {name} must be a non-empty string, got {value!r}", file=sys.stderr)
        raise SystemExit(1)


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate configuration.

    A missing file is not an error: defaults are returned. A file that exists
    but is invalid writes a message to stderr and raises ``SystemExit(1)``.
    ``PORT`` is applied last, whether or not a file was found.

    Raises:
        SystemExit(1): YAML parse error, missing or unsupported ``version``,
                       invalid limit values, or a non-integer ``PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("CORSPROXY_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found, using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        print(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "The proxy refuses to start with an invalid config.",
            file=sys.stderr,
        )
        raise SystemExit(1)
    except OSError as exc:
        print(f"CONFIG ERROR: Could not read {found_path}: {exc}", file=sys.stderr)
        raise SystemExit(1)

    if not isinstance(raw, dict):
        if raw is None:
            msg = (
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        else:
            msg = (
                f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
                "The config file must be a YAML dictionary at the top level."
            )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    version = raw.get("version")
    if version is None:
        print(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file.",
            file=sys.stderr,
        )
        raise SystemExit(1)

    if version not in SUPPORTED_VERSIONS:
        print(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}.",
            file=sys.stderr,
        )
        raise SystemExit(1)

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        port=config.server.port,
        max_response_bytes=config.limits.max_response_bytes,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply ``PORT`` to ``config.server.port`` in place.

    Raises:
        SystemExit(1): If PORT is set but not an integer in 1-65535.
    """
    env_port = os.environ.get("PORT")
    if env_port is not None and env_port != "":
        try:
            config.server.port = int(env_port)
        except ValueError:
            print(
                f"CONFIG ERROR: PORT environment variable is not a valid integer: '{env_port}'",
                file=sys.stderr,
            )
            raise SystemExit(1)
        _require_port("PORT environment variable", config.server.port)
