from __future__ import annotations

import time
import weakref
from threading import Event, Lock

from .errors import CancellationError, EscError, HealthCheckTimeoutError


class CancelToken:
    """Cancellation signal with an optional deadline.

    A token fires either when ``cancel()`` is called (on it or on any parent) or
    when its deadline passes. Whichever is observed first is latched, so the
    error a token reports never changes once it fired.
    """

    def __init__(self, deadline: float | None = None, parent: CancelToken | None = None) -> None:
        self._deadline = deadline  # time.monotonic() based
        self._parent = parent
        self._event = Event()
        self._lock = Lock()
        self._error: EscError | None = None
        self._children: weakref.WeakSet[CancelToken] = weakref.WeakSet()
        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: CancelToken) -> None:
        with self._lock:
            self._children.add(child)
            err = self._error
        if err is not None:
            child._fire(err)

    def with_timeout(self, seconds: float) -> CancelToken:
        return CancelToken(deadline=time.monotonic() + seconds, parent=self)

    @property
    def deadline(self) -> float | None:
        own = self._deadline
        inherited = self._parent.deadline if self._parent is not None else None
        if own is None:
            return inherited
        if inherited is None:
            return own
        return min(own, inherited)

    def remaining(self) -> float | None:
        d = self.deadline
        if d is None:
            return None
        return max(0.0, d - time.monotonic())

    def cancel(self) -> None:
        self._fire(CancellationError("cancelled"))

    def _expired(self) -> bool:
        d = self.deadline
        return d is not None and time.monotonic() >= d

    def _fire(self, err: EscError | None) -> None:
        # A deadline that already passed fired first, even if nobody polled it.
        if not isinstance(err, HealthCheckTimeoutError) and self._expired():
            err = HealthCheckTimeoutError("deadline exceeded")
        with self._lock:
            if self._error is None:
                self._error = err
            children = list(self._children)
        self._event.set()
        for child in children:
            child._fire(err)

    def error(self) -> EscError | None:
        """Return the latched error, or None if the token has not fired."""
        if self._error is None and self._expired():
            self._fire(HealthCheckTimeoutError("deadline exceeded"))
        return self._error

    @property
    def fired(self) -> bool:
        return self.error() is not None

    def sleep(self, seconds: float) -> bool:
        """Block for ``seconds`` or until the token fires. Returns True if it fired."""
        end = time.monotonic() + max(0.0, seconds)
        while True:
            if self.fired:
                return True
            now = time.monotonic()
            if now >= end:
                return False
            wait = end - now
            remaining = self.remaining()
            if remaining is not None:
                wait = min(wait, remaining)
            self._event.wait(wait)


def background() -> CancelToken:
    """A token that never fires on its own."""
    return CancelToken()
