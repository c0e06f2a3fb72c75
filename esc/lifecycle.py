from __future__ import annotations

from typing import Any, Callable

from .errors import ContainerStartError, TeardownError
from .options import ContainerSpec
from .runtime import ContainerRuntime
from .settings import settings


class LifecycleManager:
    """Create, start, stop and remove containers through the runtime.

    Runtime exceptions are translated into ``ContainerStartError`` (create,
    start, inspect) or ``TeardownError`` (stop, remove).
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        log_event: Callable[..., None] | None = None,
        stop_timeout_s: int | None = None,
    ) -> None:
        self.runtime = runtime
        self._log_event = log_event
        self.stop_timeout_s = settings.stop_timeout_s if stop_timeout_s is None else stop_timeout_s

    def _log(self, level: str, message: str, container_id: str | None = None) -> None:
        if self._log_event:
            self._log_event(level, message, container_id=container_id)

    def create(self, spec: ContainerSpec) -> str:
        try:
            container_id = self.runtime.create(spec)
        except Exception as e:
            raise ContainerStartError(f"cannot create container from {spec.image}: {type(e).__name__}: {e}") from e
        self._log("INFO", f"Created container from image {spec.image}", container_id=container_id)
        return container_id

    def start(self, container_id: str) -> None:
        try:
            self.runtime.start(container_id)
        except Exception as e:
            raise ContainerStartError(f"cannot start container {container_id[:12]}: {type(e).__name__}: {e}") from e
        self._log("INFO", "Started container", container_id=container_id)

    def create_and_start(self, spec: ContainerSpec) -> str:
        """Create and start; a container that fails to start is removed before raising."""
        container_id = self.create(spec)
        try:
            self.start(container_id)
        except ContainerStartError as e:
            try:
                self.remove(container_id)
            except TeardownError as te:
                e.teardown_error = te  # type: ignore[attr-defined]
                self._log("ERROR", f"Cleanup after failed start failed: {te}", container_id=container_id)
            raise
        return container_id

    def inspect(self, container_id: str) -> dict[str, Any]:
        try:
            return self.runtime.inspect(container_id) or {}
        except Exception as e:
            raise ContainerStartError(f"cannot inspect container {container_id[:12]}: {type(e).__name__}: {e}") from e

    def stop(self, container_id: str) -> None:
        try:
            self.runtime.stop(container_id, timeout=self.stop_timeout_s)
        except Exception as e:
            raise TeardownError(f"cannot stop container {container_id[:12]}: {type(e).__name__}: {e}") from e
        self._log("INFO", "Stopped container", container_id=container_id)

    def remove(self, container_id: str) -> None:
        try:
            self.runtime.remove(container_id)
        except Exception as e:
            raise TeardownError(f"cannot remove container {container_id[:12]}: {type(e).__name__}: {e}") from e
        self._log("INFO", "Removed container", container_id=container_id)
