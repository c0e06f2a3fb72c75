from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class PortModel(BaseModel):
    protocol: Literal["tcp", "udp"] = "tcp"
    port: int = Field(..., ge=1, le=65535, description="Container-side port")


class StartRequest(BaseModel):
    image: str = Field(..., min_length=1, description="Image reference (name:tag)")
    ports: dict[str, PortModel] = Field(default_factory=dict, description="Named ports to publish")
    env: list[str] = Field(default_factory=list, description="KEY=VALUE entries, in order")
    cmd: list[str] | None = Field(None, description="Command override")
    timeout_s: float | None = Field(None, gt=0, le=3600)
    interval_s: float | None = Field(None, gt=0, le=60, description="Health check poll interval")
    auth: str = Field("", description="Registry credential, empty for anonymous pulls")
    use_local_images_first: bool = False
    http_health_path: str | None = Field(
        None, description="If set, readiness is an HTTP GET of this path on the first port"
    )
    container_name: str | None = None


class StopRequest(BaseModel):
    id: str = Field(..., min_length=1)


class BindingModel(BaseModel):
    protocol: str
    port: int
    host: str
    host_port: int
    address: str


class ContainerResponse(BaseModel):
    id: str
    name: str | None = None
    image: str
    host: str
    ports: dict[str, BindingModel]


class StopResponse(BaseModel):
    id: str
    stopped: bool = True


class ErrorResponse(BaseModel):
    error: str
    kind: str
