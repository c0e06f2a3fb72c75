from __future__ import annotations

from typing import Callable

from .errors import ImageAcquisitionError
from .runtime import ContainerRuntime
from .settings import settings


class ImageAcquisition:
    """Decides between reusing a local image and pulling from the registry."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        log_event: Callable[..., None] | None = None,
        fallback_to_local: bool | None = None,
    ) -> None:
        self.runtime = runtime
        self._log_event = log_event
        self.fallback_to_local = settings.pull_fallback_to_local if fallback_to_local is None else fallback_to_local

    def _log(self, level: str, message: str) -> None:
        if self._log_event:
            self._log_event(level, message)

    def _exists_locally(self, image: str) -> bool:
        try:
            return bool(self.runtime.image_exists_locally(image))
        except Exception as e:
            raise ImageAcquisitionError(f"cannot look up local image {image}: {type(e).__name__}: {e}") from e

    def ensure(self, image: str, auth: str = "", prefer_local: bool = False) -> bool:
        """Make ``image`` available to the runtime.

        Returns True if a pull happened, False if a local copy was reused.
        """
        if prefer_local and self._exists_locally(image):
            self._log("INFO", f"Using local image {image}")
            return False

        try:
            self.runtime.pull(image, auth)
        except Exception as e:
            # Only an explicit opt-in may run a possibly stale local copy.
            if self.fallback_to_local and self._exists_locally(image):
                self._log("WARN", f"Pull of {image} failed ({type(e).__name__}: {e}); using local copy")
                return False
            raise ImageAcquisitionError(f"cannot pull image {image}: {type(e).__name__}: {e}") from e

        self._log("INFO", f"Pulled image {image}")
        return True
