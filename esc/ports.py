from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator

from .errors import ContainerStartError, PortNotFoundError
from .settings import settings

if TYPE_CHECKING:
    from .lifecycle import LifecycleManager


DEFAULT_PORT = "default"
PROTOCOLS = ("tcp", "udp")
_WILDCARD_HOSTS = {"", "0.0.0.0", "::"}


@dataclass(frozen=True)
class Port:
    protocol: str
    port: int

    @property
    def key(self) -> str:
        """Runtime notation, e.g. ``80/tcp``."""
        return f"{self.port}/{self.protocol}"


NamedPorts = dict[str, Port]


def tcp(port: int) -> Port:
    return Port("tcp", port)


def udp(port: int) -> Port:
    return Port("udp", port)


def default_tcp(port: int) -> NamedPorts:
    """Single-port convenience form; also populates the container's default address."""
    return {DEFAULT_PORT: tcp(port)}


def default_udp(port: int) -> NamedPorts:
    return {DEFAULT_PORT: udp(port)}


@dataclass(frozen=True)
class PortBinding:
    name: str
    protocol: str
    container_port: int
    host: str
    host_port: int

    @property
    def address(self) -> str:
        return f"{self.host}:{self.host_port}"


class ResolvedPorts:
    """Immutable set of port bindings, one per requested named port."""

    def __init__(self, bindings: list[PortBinding] | tuple[PortBinding, ...] = ()) -> None:
        self._bindings = tuple(bindings)

    def __iter__(self) -> Iterator[PortBinding]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, name: object) -> bool:
        return any(b.name == name for b in self._bindings)

    def __repr__(self) -> str:
        return f"ResolvedPorts({list(self._bindings)!r})"

    def names(self) -> list[str]:
        return [b.name for b in self._bindings]

    def get(self, name: str) -> PortBinding:
        for b in self._bindings:
            if b.name == name:
                return b
        raise PortNotFoundError(f"port {name!r} not found")

    def find(self, protocol: str, port: int) -> PortBinding:
        """Look a binding up by its container-side port, not the host one."""
        for b in self._bindings:
            if b.protocol == protocol and b.container_port == port:
                return b
        raise PortNotFoundError(f"port {port}/{protocol} not found")


def _pick_binding(entries: list[dict] | None) -> dict | None:
    if not entries:
        return None
    # Docker reports one entry per address family; prefer IPv4.
    for e in entries:
        if ":" not in (e.get("HostIp") or ""):
            return e
    return entries[0]


class PortResolver:
    def __init__(self, lifecycle: LifecycleManager, host: str | None = None) -> None:
        self.lifecycle = lifecycle
        self.host = host or settings.host

    def resolve(self, handle: str, named_ports: NamedPorts) -> ResolvedPorts:
        """Map every named port to the host address the runtime bound it to.

        Docker may publish bindings a moment after the container starts, so
        inspection is repeated a bounded number of times.
        """
        attempts = max(1, settings.port_resolve_attempts)
        missing: list[str] = []
        for attempt in range(attempts):
            raw = self.lifecycle.inspect(handle)
            bindings: list[PortBinding] = []
            missing = []
            for name, port in named_ports.items():
                entry = _pick_binding(raw.get(port.key))
                if entry is None or not entry.get("HostPort"):
                    missing.append(name)
                    continue
                host_ip = entry.get("HostIp") or ""
                host = self.host if host_ip in _WILDCARD_HOSTS else host_ip
                bindings.append(
                    PortBinding(
                        name=name,
                        protocol=port.protocol,
                        container_port=port.port,
                        host=host,
                        host_port=int(entry["HostPort"]),
                    )
                )
            if not missing:
                return ResolvedPorts(bindings)
            if attempt < attempts - 1:
                time.sleep(settings.port_resolve_delay_s)

        raise ContainerStartError(f"runtime did not publish ports: {', '.join(sorted(missing))}")
