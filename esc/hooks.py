from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from .errors import InitHookError
from .token import CancelToken

if TYPE_CHECKING:
    from .container import Container


class InitHookRunner:
    def run(self, token: CancelToken, container: Container, init: Callable[[CancelToken, Any], Any] | None) -> None:
        """Run ``init`` once. Its exception is wrapped, never replaced."""
        if init is None:
            return
        try:
            init(token, container)
        except Exception as e:
            raise InitHookError(f"init failed for container {container.id[:12]}: {e}", e) from e
