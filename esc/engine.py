from __future__ import annotations

from dataclasses import replace
from threading import Lock
from typing import Callable

from .container import Container
from .errors import EscError, TeardownError
from .health import HealthCheckCoordinator
from .hooks import InitHookRunner
from .images import ImageAcquisition
from .lifecycle import LifecycleManager
from .logs import LogRelay
from .options import Option, resolve
from .ports import NamedPorts, PortResolver, ResolvedPorts
from .runtime import ContainerRuntime
from .settings import settings


class Orchestrator:
    """Starts ready-to-use containers and tears them down.

    ``start`` either returns a container whose health check (and init, when
    configured) passed, or raises. Any failure after the container was created
    removes it before the error propagates.
    """

    def __init__(self, runtime: ContainerRuntime | None = None, log_event: Callable[..., None] | None = None) -> None:
        if runtime is None:
            from .docker_ops import DockerRuntime

            runtime = DockerRuntime()
        self.runtime = runtime
        self._log_event = log_event
        self.images = ImageAcquisition(runtime, log_event=log_event)
        self.lifecycle = LifecycleManager(runtime, log_event=log_event)
        self.port_resolver = PortResolver(self.lifecycle)
        self.health = HealthCheckCoordinator()
        self.hooks = InitHookRunner()

    def _log(self, level: str, message: str, container_id: str | None = None) -> None:
        if self._log_event:
            self._log_event(level, message, container_id=container_id)

    def start(self, image: str, ports: NamedPorts, *options: Option) -> Container:
        spec, run = resolve(image, ports, options)

        self.images.ensure(spec.image, spec.auth, prefer_local=spec.use_local_images_first)

        container_id = self.lifecycle.create_and_start(spec)
        relay = LogRelay(log_event=self._log_event)
        container = Container(
            id=container_id,
            image=spec.image,
            host=self.port_resolver.host,
            ports=ResolvedPorts(),
            name=spec.name,
            _relay=relay,
        )

        try:
            container = replace(container, ports=self.port_resolver.resolve(container_id, spec.ports))
            relay.attach(self.runtime, container_id, run.log_writer)
            attempts = self.health.wait_until_ready(
                container, run.health_check, run.health_check_interval_s, run.token
            )
            self._log("INFO", f"Container ready after {attempts} health checks", container_id=container_id)
            self.hooks.run(run.token, container, run.init)
        except BaseException as e:
            self._cleanup_after_failure(container, e)
            raise

        return container

    def _cleanup_after_failure(self, container: Container, err: BaseException) -> None:
        self._log("ERROR", f"Start failed ({type(err).__name__}: {err}); removing container", container_id=container.id)
        try:
            self.stop(container)
        except TeardownError as te:
            # The start failure propagates; teardown errors ride along.
            err.teardown_error = te  # type: ignore[attr-defined]
            self._log("ERROR", f"Cleanup failed: {te}", container_id=container.id)

    def stop(self, container: Container | None) -> None:
        """Stop and remove ``container``. ``None`` and repeated calls are no-ops."""
        if container is None or container.stopped:
            return

        relay = container._relay
        errors: list[EscError] = []
        try:
            self.lifecycle.stop(container.id)
        except TeardownError as e:
            errors.append(e)
        # The log stream only ends once the container process exits.
        if relay is not None:
            relay.drain(settings.log_drain_timeout_s)
        try:
            self.lifecycle.remove(container.id)
        except TeardownError as e:
            errors.append(e)

        if errors:
            raise errors[0]
        object.__setattr__(container, "stopped", True)


_default: Orchestrator | None = None
_default_lock = Lock()


def default_orchestrator() -> Orchestrator:
    global _default
    with _default_lock:
        if _default is None:
            _default = Orchestrator()
        return _default


def start(image: str, ports: NamedPorts, *options: Option) -> Container:
    """Start ``image`` with the given ports on the local Docker daemon."""
    return default_orchestrator().start(image, ports, *options)


start_custom = start


def stop(container: Container | None) -> None:
    if container is None:
        return
    default_orchestrator().stop(container)
