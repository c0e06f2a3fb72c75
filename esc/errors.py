from __future__ import annotations


class EscError(Exception):
    """Base class for every error raised by the engine.

    Each subclass carries the HTTP status code the service layer responds with.
    """

    status_code: int = 500


class ConfigurationError(EscError, ValueError):
    status_code = 400


class ImageAcquisitionError(EscError):
    status_code = 502


class ContainerStartError(EscError):
    status_code = 500


class CancellationError(EscError):
    """The caller cancelled the token before the container became ready."""

    status_code = 499


class HealthCheckTimeoutError(EscError, TimeoutError):
    """The deadline elapsed before the health check passed."""

    status_code = 504


class InitHookError(EscError):
    status_code = 500

    def __init__(self, message: str, cause: BaseException) -> None:
        super().__init__(message)
        self.cause = cause


class PortNotFoundError(EscError, LookupError):
    status_code = 404


class TeardownError(EscError):
    status_code = 500


def status_code_for(exc: BaseException) -> int:
    if isinstance(exc, EscError):
        return exc.status_code
    return 500


def caused_by(exc: BaseException | None, cls: type[BaseException]) -> bool:
    """Return True if ``exc`` or any exception it was raised from is a ``cls``."""
    seen: set[int] = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, cls):
            return True
        seen.add(id(exc))
        exc = exc.__cause__ or exc.__context__
    return False
