"""Ephemeral Service Containers (ESC).

Starts throwaway service containers for integration tests:
 - pulls (or reuses) the image and starts the container
 - resolves every requested port to a reachable host address
 - waits until a health check passes, then runs an optional init hook
 - removes the container on any failure, and on ``stop``

    container = esc.start("redis:7", esc.default_tcp(6379), esc.with_timeout(30))
    try:
        ...  # talk to container.default_address()
    finally:
        esc.stop(container)
"""
from __future__ import annotations

from .container import Container
from .engine import Orchestrator, start, start_custom, stop
from .errors import (
    CancellationError,
    ConfigurationError,
    ContainerStartError,
    EscError,
    HealthCheckTimeoutError,
    ImageAcquisitionError,
    InitHookError,
    PortNotFoundError,
    TeardownError,
    caused_by,
    status_code_for,
)
from .health import http_check, tcp_check
from .options import (
    with_command,
    with_container_name,
    with_env,
    with_extra_host,
    with_health_check,
    with_health_check_interval,
    with_host_mount,
    with_init,
    with_log_writer,
    with_privileged,
    with_registry_auth,
    with_timeout,
    with_token,
    with_use_local_images_first,
)
from .ports import DEFAULT_PORT, NamedPorts, Port, PortBinding, ResolvedPorts, default_tcp, default_udp, tcp, udp
from .token import CancelToken

__version__ = "0.1.0"
