from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import TYPE_CHECKING, Any, Iterator, Protocol

if TYPE_CHECKING:
    from .container import Container
    from .options import ContainerSpec


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class LogStream(Protocol):
    def __iter__(self) -> Iterator[bytes]: ...

    def close(self) -> None: ...


class ContainerRuntime(Protocol):
    """Capabilities the engine needs from a container runtime.

    Every call is a single blocking round trip. Implementations raise their own
    exceptions; the engine components translate them into ``esc.errors``.
    """

    def image_exists_locally(self, image: str) -> bool: ...

    def pull(self, image: str, auth: str = "") -> None: ...

    def create(self, spec: ContainerSpec) -> str:
        """Create (but do not start) a container and return its id."""
        ...

    def start(self, container_id: str) -> None: ...

    def inspect(self, container_id: str) -> dict[str, list[dict[str, Any]] | None]:
        """Return published ports keyed by ``"<port>/<proto>"``.

        Values follow Docker's shape: a list of ``{"HostIp", "HostPort"}`` or None.
        """
        ...

    def open_logs(self, container_id: str) -> LogStream:
        """Follow combined stdout/stderr. The iterator ends when the container stops."""
        ...

    def stop(self, container_id: str, timeout: int) -> None:
        """Stop the container. Must not raise if it is already gone."""
        ...

    def remove(self, container_id: str) -> None:
        """Remove the container. Must not raise if it is already gone."""
        ...


class RuntimeState:
    """In-memory registry of containers started through the HTTP service."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.containers: dict[str, Container] = {}  # container id -> container

    def add(self, container: Container) -> None:
        with self.lock:
            self.containers[container.id] = container

    def pop(self, container_id: str) -> Container | None:
        with self.lock:
            return self.containers.pop(container_id, None)

    def drain(self) -> list[Container]:
        with self.lock:
            out = list(self.containers.values())
            self.containers.clear()
            return out
