import itertools
import queue
import threading

import pytest

from esc.engine import Orchestrator


class FakeLogStream:
    """Blocking byte stream that ends when the fake container stops."""

    def __init__(self, chunks=()):
        self._q = queue.Queue()
        self.closed = False
        for c in chunks:
            self._q.put(c)

    def feed(self, chunk):
        self._q.put(chunk)

    def end(self):
        self._q.put(None)

    def close(self):
        self.closed = True
        self._q.put(None)

    def __iter__(self):
        while True:
            item = self._q.get()
            if item is None:
                return
            yield item


class FakeRuntime:
    """In-memory ContainerRuntime recording every call.

    Set ``fail[method] = exc`` to make a method raise.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.calls = []
        self.fail = {}
        self.local_images = set()
        self.containers = {}
        self.streams = {}
        self.log_chunks = [b"booting\n", b"ready\n"]
        self.unpublished = set()  # port keys the fake never binds
        self._ids = itertools.count(1)
        self._host_ports = itertools.count(40000)

    def _record(self, method, *args):
        with self.lock:
            self.calls.append((method,) + args)
        exc = self.fail.get(method)
        if exc is not None:
            raise exc

    def count(self, method):
        return sum(1 for c in self.calls if c[0] == method)

    def running(self):
        return [cid for cid, c in self.containers.items() if c["state"] == "running"]

    def image_exists_locally(self, image):
        self._record("image_exists_locally", image)
        return image in self.local_images

    def pull(self, image, auth=""):
        self._record("pull", image, auth)
        self.local_images.add(image)

    def create(self, spec):
        self._record("create", spec.image)
        cid = f"{next(self._ids):064x}"
        bindings = {}
        for p in spec.ports.values():
            if p.key in self.unpublished:
                bindings[p.key] = None
            else:
                bindings[p.key] = [
                    {"HostIp": "0.0.0.0", "HostPort": str(next(self._host_ports))},
                    {"HostIp": "::", "HostPort": "1"},
                ]
        self.containers[cid] = {"spec": spec, "state": "created", "ports": bindings}
        return cid

    def start(self, container_id):
        self._record("start", container_id)
        self.containers[container_id]["state"] = "running"
        self.streams[container_id] = FakeLogStream(self.log_chunks)

    def inspect(self, container_id):
        self._record("inspect", container_id)
        return dict(self.containers[container_id]["ports"])

    def open_logs(self, container_id):
        self._record("open_logs", container_id)
        return self.streams[container_id]

    def stop(self, container_id, timeout):
        self._record("stop", container_id, timeout)
        c = self.containers.get(container_id)
        if c is None:
            return
        c["state"] = "exited"
        stream = self.streams.get(container_id)
        if stream is not None:
            stream.end()

    def remove(self, container_id):
        self._record("remove", container_id)
        self.containers.pop(container_id, None)


class EventSink:
    def __init__(self):
        self.events = []

    def __call__(self, level, message, container_id=None):
        self.events.append((level, message, container_id))

    def messages(self, level=None):
        return [m for lvl, m, _ in self.events if level is None or lvl == level]


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def events():
    return EventSink()


@pytest.fixture
def orchestrator(runtime, events):
    return Orchestrator(runtime=runtime, log_event=events)

