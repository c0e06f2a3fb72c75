from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .errors import PortNotFoundError
from .ports import DEFAULT_PORT, ResolvedPorts

if TYPE_CHECKING:
    from .logs import LogRelay


@dataclass(frozen=True)
class Container:
    """A started, ready container.

    ``ports`` has exactly one binding per requested named port. The object is
    stale once ``esc.stop`` was called on it. Fields are read-only; only the
    engine flips ``stopped``.
    """

    id: str
    image: str
    host: str
    ports: ResolvedPorts
    name: str | None = None
    stopped: bool = field(default=False, compare=False)
    _relay: LogRelay | None = field(default=None, repr=False, compare=False)

    def address(self, name: str) -> str:
        """``host:port`` for the named port, or an empty string if it was not requested."""
        try:
            return self.ports.get(name).address
        except PortNotFoundError:
            return ""

    def port(self, name: str) -> int:
        """Host-side port for the named port, or 0 if it was not requested."""
        try:
            return self.ports.get(name).host_port
        except PortNotFoundError:
            return 0

    def default_address(self) -> str:
        """Address of the port declared with ``default_tcp``/``default_udp``, else empty."""
        return self.address(DEFAULT_PORT)

    def default_port(self) -> int:
        return self.port(DEFAULT_PORT)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "host": self.host,
            "ports": {
                b.name: {
                    "protocol": b.protocol,
                    "port": b.container_port,
                    "host": b.host,
                    "host_port": b.host_port,
                    "address": b.address,
                }
                for b in self.ports
            },
        }
