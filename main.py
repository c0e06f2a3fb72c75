from __future__ import annotations

from dataclasses import asdict
from threading import Lock

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from esc import db
from esc.api_models import ContainerResponse, ErrorResponse, StartRequest, StopRequest, StopResponse
from esc.container import Container
from esc.engine import Orchestrator
from esc.errors import ConfigurationError, EscError, TeardownError
from esc.health import http_check
from esc.options import (
    Option,
    with_command,
    with_container_name,
    with_env,
    with_health_check,
    with_health_check_interval,
    with_registry_auth,
    with_timeout,
    with_use_local_images_first,
)
from esc.ports import Port, ResolvedPorts
from esc.runtime import RuntimeState

app = FastAPI(title="Ephemeral Service Containers")

STATE = RuntimeState()
_orchestrator: Orchestrator | None = None
_orchestrator_lock = Lock()


def get_orchestrator() -> Orchestrator:
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            _orchestrator = Orchestrator(log_event=db.log_event)
        return _orchestrator


@app.on_event("startup")
def startup() -> None:
    db.init_db()
    db.log_event("INFO", "Service started")


@app.on_event("shutdown")
def shutdown() -> None:
    # Containers nobody stopped must not outlive the service.
    leftovers = STATE.drain()
    if not leftovers:
        return
    orch = get_orchestrator()
    for c in leftovers:
        try:
            orch.stop(c)
            db.mark_stopped(c.id)
        except TeardownError as e:
            db.log_event("ERROR", f"Shutdown cleanup failed: {e}", container_id=c.id)


@app.exception_handler(EscError)
def esc_error_handler(request: Request, exc: EscError) -> JSONResponse:
    body = ErrorResponse(error=str(exc), kind=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def _options(req: StartRequest) -> list[Option]:
    opts: list[Option] = [with_env(e) for e in req.env]
    if req.cmd:
        opts.append(with_command(*req.cmd))
    if req.timeout_s is not None:
        opts.append(with_timeout(req.timeout_s))
    if req.interval_s is not None:
        opts.append(with_health_check_interval(req.interval_s))
    if req.auth:
        opts.append(with_registry_auth(req.auth))
    if req.use_local_images_first:
        opts.append(with_use_local_images_first())
    if req.container_name:
        opts.append(with_container_name(req.container_name))
    if req.http_health_path:
        if not req.ports:
            raise ConfigurationError("http_health_path needs at least one port")
        first = next(iter(req.ports))
        try:
            opts.append(with_health_check(http_check(first, req.http_health_path)))
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
    return opts


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.post("/start/{name}", response_model=ContainerResponse)
def start_container(name: str, req: StartRequest) -> dict:
    ports = {k: Port(v.protocol, v.port) for k, v in req.ports.items()}
    container = get_orchestrator().start(req.image, ports, *_options(req))
    STATE.add(container)
    db.insert_container(container.id, name, container.image)
    db.log_event("INFO", f"Started '{name}' from {container.image}", container_id=container.id)
    return container.to_dict()


@app.post("/stop", response_model=StopResponse)
def stop_container(req: StopRequest) -> dict:
    container = STATE.pop(req.id)
    if container is None:
        # Not tracked here (already stopped, or started elsewhere): stop by id.
        container = Container(id=req.id, image="", host="", ports=ResolvedPorts())
    try:
        get_orchestrator().stop(container)
    except TeardownError:
        if container.image:
            STATE.add(container)
        raise
    db.mark_stopped(req.id)
    return {"id": req.id, "stopped": True}


@app.get("/containers")
def list_containers(status: str | None = Query(None, pattern="^(running|stopped)$")) -> list[dict]:
    return [asdict(row) for row in db.list_containers(status)]


@app.get("/events")
def events(limit: int = Query(100, ge=1, le=1000)) -> list[dict]:
    return db.latest_events(limit)
