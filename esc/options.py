"""Start options and their resolution into a container specification.

Options are plain functions that take an ``Options`` value and return a new
one. ``resolve`` folds them, in the order given, over an empty ``Options``.

Scalar options (token, timeout, health check, interval, init, log writer,
registry auth, local image preference, container name, privileged) are
last-write-wins. List options (env, command, host mounts, extra hosts)
accumulate in the order they were supplied.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Callable

from .errors import ConfigurationError
from .health import tcp_check
from .ports import PROTOCOLS, NamedPorts, Port
from .settings import settings
from .token import CancelToken, background


MANAGED_LABEL = "esc.managed"
CONTAINER_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.\-]{0,127}$")

# (token, container) -> None; raise (or return False) to signal "not ready yet".
HealthCheckFunc = Callable[[CancelToken, Any], Any]
InitFunc = Callable[[CancelToken, Any], Any]


@dataclass(frozen=True)
class ContainerSpec:
    image: str
    ports: Mapping[str, Port]
    env: tuple[str, ...] = ()
    cmd: tuple[str, ...] | None = None
    auth: str = ""
    use_local_images_first: bool = False
    name: str | None = None
    host_mounts: tuple[tuple[str, str], ...] = ()
    extra_hosts: tuple[str, ...] = ()
    privileged: bool = False
    labels: tuple[tuple[str, str], ...] = ((MANAGED_LABEL, "true"),)


@dataclass(frozen=True)
class Options:
    token: CancelToken | None = None
    timeout_s: float | None = None
    health_check: HealthCheckFunc | None = None
    health_check_interval_s: float | None = None
    init: InitFunc | None = None
    env: tuple[str, ...] = ()
    cmd: tuple[str, ...] | None = None
    auth: str = ""
    use_local_images_first: bool = False
    log_writer: Any = None
    container_name: str | None = None
    host_mounts: tuple[tuple[str, str], ...] = ()
    extra_hosts: tuple[str, ...] = ()
    privileged: bool = False


Option = Callable[[Options], Options]


def with_token(token: CancelToken) -> Option:
    """Cancelling ``token`` aborts the readiness wait and tears the container down."""
    return lambda o: replace(o, token=token)


def with_timeout(seconds: float) -> Option:
    """Deadline for the whole start, layered under the token from ``with_token``."""
    return lambda o: replace(o, timeout_s=seconds)


def with_health_check(fn: HealthCheckFunc) -> Option:
    return lambda o: replace(o, health_check=fn)


def with_health_check_interval(seconds: float) -> Option:
    return lambda o: replace(o, health_check_interval_s=seconds)


def with_init(fn: InitFunc) -> Option:
    """Run ``fn`` once, after the health check passes."""
    return lambda o: replace(o, init=fn)


def with_env(assignment: str) -> Option:
    """Add a ``KEY=VALUE`` environment entry. Repeatable."""
    return lambda o: replace(o, env=o.env + (assignment,))


def with_command(*args: str) -> Option:
    """Override the image command. Repeated calls append arguments."""
    return lambda o: replace(o, cmd=(o.cmd or ()) + tuple(args))


def with_registry_auth(auth: str) -> Option:
    """Credential forwarded to the image pull. Empty means anonymous."""
    return lambda o: replace(o, auth=auth)


def with_use_local_images_first(enabled: bool = True) -> Option:
    """Skip the registry pull when the image is already present locally."""
    return lambda o: replace(o, use_local_images_first=enabled)


def with_log_writer(sink: Any) -> Option:
    """Copy the container's combined output to ``sink`` (anything with ``write(bytes)``)."""
    return lambda o: replace(o, log_writer=sink)


def with_container_name(name: str) -> Option:
    return lambda o: replace(o, container_name=name)


def with_host_mount(src: str, dst: str) -> Option:
    return lambda o: replace(o, host_mounts=o.host_mounts + ((src, dst),))


def with_extra_host(entry: str) -> Option:
    """Add a ``hostname:ip`` entry to the container's /etc/hosts."""
    return lambda o: replace(o, extra_hosts=o.extra_hosts + (entry,))


def with_privileged(enabled: bool = True) -> Option:
    return lambda o: replace(o, privileged=enabled)


def _validate_ports(ports: Any) -> dict[str, Port]:
    if not isinstance(ports, Mapping):
        raise ConfigurationError("ports must be a mapping of name to Port")
    out: dict[str, Port] = {}
    for name, port in ports.items():
        if not isinstance(name, str) or not name:
            raise ConfigurationError("port names must be non-empty strings")
        if not isinstance(port, Port):
            raise ConfigurationError(f"port {name!r} must be a Port, got {type(port).__name__}")
        if port.protocol not in PROTOCOLS:
            raise ConfigurationError(f"port {name!r}: unsupported protocol {port.protocol!r}")
        if not isinstance(port.port, int) or not 1 <= port.port <= 65535:
            raise ConfigurationError(f"port {name!r}: {port.port!r} is out of range 1..65535")
        out[name] = port
    return out


def _validate_env(env: tuple[str, ...]) -> None:
    for entry in env:
        key, sep, _ = entry.partition("=")
        if not sep or not key:
            raise ConfigurationError(f"environment entry {entry!r} is not KEY=VALUE")


def resolve(image: str, ports: NamedPorts, options: tuple[Option, ...] | list[Option] = ()) -> tuple[ContainerSpec, Options]:
    """Fold ``options`` and validate the result.

    Returns the container specification and the run options with defaults
    filled in. The returned token already carries the start deadline, so the
    deadline counts from this call.
    """
    if not isinstance(image, str) or not image.strip():
        raise ConfigurationError("image reference must not be empty")

    named = _validate_ports(ports)

    opts = Options()
    for opt in options:
        opts = opt(opts)

    _validate_env(opts.env)
    if opts.cmd is not None and not opts.cmd:
        raise ConfigurationError("command override must have at least one argument")
    if opts.timeout_s is not None and opts.timeout_s <= 0:
        raise ConfigurationError("timeout must be positive")
    if opts.health_check_interval_s is not None and opts.health_check_interval_s <= 0:
        raise ConfigurationError("health check interval must be positive")
    if opts.health_check is not None and not callable(opts.health_check):
        raise ConfigurationError("health check must be callable")
    if opts.init is not None and not callable(opts.init):
        raise ConfigurationError("init must be callable")
    if opts.log_writer is not None and not callable(getattr(opts.log_writer, "write", None)):
        raise ConfigurationError("log writer must have a write() method")
    if opts.container_name is not None and not CONTAINER_NAME_RE.match(opts.container_name):
        raise ConfigurationError(f"invalid container name {opts.container_name!r}")
    for src, dst in opts.host_mounts:
        if not src or not dst:
            raise ConfigurationError("host mounts need both a source and a destination")
    for entry in opts.extra_hosts:
        if ":" not in entry:
            raise ConfigurationError(f"extra host {entry!r} is not hostname:ip")

    timeout_s = opts.timeout_s if opts.timeout_s is not None else settings.timeout_s
    parent = opts.token if opts.token is not None else background()

    spec = ContainerSpec(
        image=image.strip(),
        ports=MappingProxyType(named),
        env=opts.env,
        cmd=opts.cmd,
        auth=opts.auth,
        use_local_images_first=opts.use_local_images_first,
        name=opts.container_name,
        host_mounts=opts.host_mounts,
        extra_hosts=opts.extra_hosts,
        privileged=opts.privileged,
    )
    run = replace(
        opts,
        token=parent.with_timeout(timeout_s),
        timeout_s=timeout_s,
        health_check=opts.health_check or tcp_check,
        health_check_interval_s=opts.health_check_interval_s or settings.healthcheck_interval_s,
    )
    return spec, run
