from __future__ import annotations

import argparse
import json
import sys

import requests

from esc import __version__
from esc.settings import settings


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _parse_port(raw: str) -> tuple[str, dict]:
    """``web=8080/tcp`` -> ("web", {"protocol": "tcp", "port": 8080})."""
    name, sep, rest = raw.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"port {raw!r} must look like name=PORT[/tcp|/udp]")
    port, _, proto = rest.partition("/")
    try:
        number = int(port)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"port {raw!r}: {port!r} is not a number") from e
    return name, {"protocol": proto or "tcp", "port": number}


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        log_level="debug" if args.verbose else "info",
    )
    return 0


def _prune() -> int:
    from esc.docker_ops import DockerRuntime

    runtime = DockerRuntime()
    if not runtime.available():
        print("Docker is not available.", file=sys.stderr)
        return 1
    removed = []
    for ref in runtime.list_managed():
        runtime.remove(ref.id)
        removed.append(ref.name)
    _print({"removed": removed})
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Ephemeral Service Containers")
    p.add_argument("--api", default=f"http://127.0.0.1:{settings.port}", help="API base URL")
    sub = p.add_subparsers(dest="action", required=True)

    s_serve = sub.add_parser("serve", help="Run the HTTP service")
    s_serve.add_argument("--host", default="127.0.0.1")
    s_serve.add_argument("--port", type=int, default=settings.port, help="Port to bind (env: ESC_PORT)")
    s_serve.add_argument("--verbose", action="store_true", help="Verbose logging")

    sub.add_parser("version", help="Print the version")

    s_start = sub.add_parser("start", help="Start a container through a running service")
    s_start.add_argument("name", help="Free-form label recorded with the container")
    s_start.add_argument("--image", required=True)
    s_start.add_argument("--port", dest="ports", action="append", type=_parse_port, default=[], help="name=PORT[/proto]")
    s_start.add_argument("--env", action="append", default=[], help="KEY=VALUE, repeatable")
    s_start.add_argument("--cmd", nargs="+", default=None)
    s_start.add_argument("--timeout-s", type=float, default=None)
    s_start.add_argument("--interval-s", type=float, default=None)
    s_start.add_argument("--auth", default="")
    s_start.add_argument("--use-local-images-first", action="store_true")
    s_start.add_argument("--http-health-path", default=None)

    s_stop = sub.add_parser("stop", help="Stop a container")
    s_stop.add_argument("id")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)

    sub.add_parser("prune", help="Remove every container this tool created (talks to Docker directly)")

    args = p.parse_args(argv)

    if args.action == "serve":
        return _serve(args)

    if args.action == "version":
        print(__version__)
        return 0

    if args.action == "prune":
        return _prune()

    base = args.api.rstrip("/")

    if args.action == "start":
        payload = {
            "image": args.image,
            "ports": dict(args.ports),
            "env": args.env,
            "cmd": args.cmd,
            "timeout_s": args.timeout_s,
            "interval_s": args.interval_s,
            "auth": args.auth,
            "use_local_images_first": args.use_local_images_first,
            "http_health_path": args.http_health_path,
        }
        timeout = (args.timeout_s or settings.timeout_s) + 60
        r = requests.post(f"{base}/start/{args.name}", json=payload, timeout=timeout)
        _print(r.json())
        return 0 if r.ok else 1

    if args.action == "stop":
        r = requests.post(f"{base}/stop", json={"id": args.id}, timeout=60)
        _print(r.json())
        return 0 if r.ok else 1

    if args.action == "events":
        _print(requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10).json())
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
