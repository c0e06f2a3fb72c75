from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from threading import Lock
from typing import Any

import docker
from docker.errors import DockerException, ImageNotFound, NotFound
from docker.utils import parse_repository_tag

from .options import MANAGED_LABEL, ContainerSpec
from .settings import settings


@dataclass(frozen=True)
class ContainerRef:
    id: str
    name: str


def decode_registry_auth(auth: str) -> dict[str, Any] | None:
    """Turn the opaque credential string into a docker ``auth_config``.

    Accepts the registry's base64-encoded JSON form as well as plain JSON.
    An empty string means an anonymous pull.
    """
    auth = (auth or "").strip()
    if not auth:
        return None
    raw = auth
    if not auth.startswith("{"):
        padded = auth + "=" * (-len(auth) % 4)
        try:
            raw = base64.urlsafe_b64decode(padded).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ValueError("registry auth is neither JSON nor base64-encoded JSON") from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError("registry auth does not decode to a JSON object") from e
    if not isinstance(data, dict):
        raise ValueError("registry auth does not decode to a JSON object")
    return data


def _split_extra_hosts(entries: tuple[str, ...]) -> dict[str, str] | None:
    if not entries:
        return None
    out: dict[str, str] = {}
    for entry in entries:
        name, _, ip = entry.partition(":")
        out[name] = ip
    return out


class DockerRuntime:
    """Container runtime backed by the local (or ``DOCKER_HOST``) Docker daemon."""

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        self._client = client
        self._lock = Lock()

    @property
    def client(self) -> docker.DockerClient:
        # One client per runtime; docker-py clients are safe to share between threads.
        with self._lock:
            if self._client is None:
                self._client = docker.from_env(timeout=settings.docker_timeout_s)
            return self._client

    def available(self) -> bool:
        try:
            self.client.ping()
            return True
        except DockerException:
            return False

    def image_exists_locally(self, image: str) -> bool:
        try:
            self.client.images.get(image)
            return True
        except ImageNotFound:
            return False

    def pull(self, image: str, auth: str = "") -> None:
        repository, tag = parse_repository_tag(image)
        # Without a tag docker-py pulls every tag of the repository.
        self.client.images.pull(repository, tag=tag or "latest", auth_config=decode_registry_auth(auth))

    def create(self, spec: ContainerSpec) -> str:
        volumes = {src: {"bind": dst, "mode": "rw"} for src, dst in spec.host_mounts}
        container = self.client.containers.create(
            spec.image,
            command=list(spec.cmd) if spec.cmd else None,
            detach=True,
            name=spec.name,
            environment=list(spec.env),
            # None lets the daemon pick a free host port for each binding.
            ports={p.key: None for p in spec.ports.values()},
            volumes=volumes or None,
            extra_hosts=_split_extra_hosts(spec.extra_hosts),
            privileged=spec.privileged,
            labels=dict(spec.labels),
            # Lifecycle is owned by the engine; keep Docker's restart policy off.
            restart_policy={"Name": "no"},
        )
        return container.id

    def start(self, container_id: str) -> None:
        self.client.containers.get(container_id).start()

    def inspect(self, container_id: str) -> dict[str, Any]:
        cont = self.client.containers.get(container_id)
        return cont.attrs.get("NetworkSettings", {}).get("Ports") or {}

    def open_logs(self, container_id: str) -> Any:
        cont = self.client.containers.get(container_id)
        return cont.logs(stream=True, follow=True, stdout=True, stderr=True)

    def stop(self, container_id: str, timeout: int) -> None:
        try:
            self.client.containers.get(container_id).stop(timeout=timeout)
        except NotFound:
            return

    def remove(self, container_id: str) -> None:
        try:
            self.client.containers.get(container_id).remove(force=True, v=True)
        except NotFound:
            return

    def list_managed(self) -> list[ContainerRef]:
        """Containers created by this engine, running or not."""
        containers = self.client.containers.list(all=True, filters={"label": [f"{MANAGED_LABEL}=true"]})
        return [ContainerRef(id=x.id, name=x.name) for x in containers]
