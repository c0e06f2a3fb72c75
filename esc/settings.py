from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlparse


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _docker_host_address() -> str:
    """Address where published container ports are reachable.

    A remote daemon (DOCKER_HOST=tcp://10.0.0.5:2375) publishes ports on its own
    interfaces, so addresses must point there instead of the loopback.
    """
    explicit = os.getenv("ESC_HOST")
    if explicit:
        return explicit
    docker_host = os.getenv("DOCKER_HOST", "")
    if docker_host.startswith("tcp://"):
        parsed = urlparse(docker_host)
        if parsed.hostname:
            return parsed.hostname
    return "127.0.0.1"


@dataclass(frozen=True)
class Settings:
    # Engine defaults
    healthcheck_interval_s: float = _env_float("ESC_HEALTHCHECK_INTERVAL_S", 0.25)
    timeout_s: float = _env_float("ESC_TIMEOUT_S", 300.0)
    stop_timeout_s: int = _env_int("ESC_STOP_TIMEOUT_S", 10)
    log_drain_timeout_s: float = _env_float("ESC_LOG_DRAIN_TIMEOUT_S", 5.0)
    port_resolve_attempts: int = _env_int("ESC_PORT_RESOLVE_ATTEMPTS", 20)
    port_resolve_delay_s: float = _env_float("ESC_PORT_RESOLVE_DELAY_S", 0.1)
    host: str = _docker_host_address()

    # Image policy
    # Off by default: a failed pull must not silently run a stale local image.
    pull_fallback_to_local: bool = _env_bool("ESC_PULL_FALLBACK_TO_LOCAL", False)

    # Docker client
    docker_timeout_s: int = _env_int("ESC_DOCKER_TIMEOUT_S", 120)

    # HTTP service
    db_path: str = os.getenv("ESC_DB_PATH", "esc.db")
    port: int = _env_int("ESC_PORT", 23042)


settings = Settings()
