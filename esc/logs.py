from __future__ import annotations

from threading import Thread
from typing import Any, Callable

from .errors import ContainerStartError
from .runtime import ContainerRuntime, LogStream


class LogRelay:
    """Copies a container's combined output to a sink on a background thread.

    The copy loop ends by itself when the runtime closes the stream (the
    container stopped). ``drain`` waits for that, so everything the container
    printed before it stopped reaches the sink.
    """

    def __init__(self, log_event: Callable[..., None] | None = None) -> None:
        self._log_event = log_event
        self._stream: LogStream | None = None
        self._thread: Thread | None = None
        self._closing = False
        self.bytes_copied = 0
        self.error: BaseException | None = None

    @property
    def attached(self) -> bool:
        return self._thread is not None

    def attach(self, runtime: ContainerRuntime, container_id: str, sink: Any) -> None:
        if sink is None:
            return
        try:
            self._stream = runtime.open_logs(container_id)
        except Exception as e:
            raise ContainerStartError(f"cannot open log stream: {type(e).__name__}: {e}") from e

        self._thread = Thread(
            target=self._copy,
            args=(self._stream, sink, container_id),
            name=f"esc-logs-{container_id[:12]}",
            daemon=True,
        )
        self._thread.start()

    def _copy(self, stream: LogStream, sink: Any, container_id: str) -> None:
        try:
            for chunk in stream:
                if not chunk:
                    continue
                sink.write(chunk)
                self.bytes_copied += len(chunk)
        except Exception as e:
            if self._closing:
                return
            self.error = e
            if self._log_event:
                self._log_event("WARN", f"Log relay stopped: {type(e).__name__}: {e}", container_id=container_id)

    def drain(self, timeout: float | None = None) -> None:
        """Wait for the copy loop to see end-of-stream.

        If it does not finish within ``timeout`` the stream is closed and the
        loop is joined again. Safe to call more than once.
        """
        thread = self._thread
        if thread is None:
            return
        thread.join(timeout)
        if thread.is_alive() and self._stream is not None:
            self._closing = True
            self._stream.close()
            thread.join(timeout)
        self._thread = None
