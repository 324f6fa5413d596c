"""Process-wide application state.

The app runs in safe mode when a collaborator it depends on (persistent
key-value storage, the document store) has failed in a way the user should
know about. Pages keep working with reduced features; ``/api/health``
reports the flag and its reason.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

__all__ = ["AppState", "Listener"]

logger = logging.getLogger(__name__)

# Called with (safe_mode, reason) on every transition
Listener = Callable[[bool, Optional[str]], None]


class AppState:
    """Owner of the safe-mode flag."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._safe_mode = False
        self._reason: Optional[str] = None
        self._listeners: List[Listener] = []

    @property
    def safe_mode(self) -> bool:
        return self._safe_mode

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a transition listener; returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def enter_safe_mode(self, reason: str) -> None:
        """Enter safe mode. Repeated calls keep the first reason."""
        with self._lock:
            if self._safe_mode:
                return
            self._safe_mode = True
            self._reason = reason
            listeners = list(self._listeners)
        logger.warning(f"Entering safe mode: {reason}")
        self._notify(listeners)

    def exit_safe_mode(self) -> None:
        with self._lock:
            if not self._safe_mode:
                return
            self._safe_mode = False
            self._reason = None
            listeners = list(self._listeners)
        logger.info("Leaving safe mode")
        self._notify(listeners)

    def _notify(self, listeners: List[Listener]) -> None:
        for listener in listeners:
            try:
                listener(self._safe_mode, self._reason)
            except Exception:
                logger.exception("Safe-mode listener failed")

    def as_dict(self) -> Dict[str, Any]:
        return {"safe_mode": self._safe_mode, "reason": self._reason}
