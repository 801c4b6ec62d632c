from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from time import time
from typing import Any, Callable, Dict, List, Optional

RECENT_LIMIT = 50


@dataclass
class RunStatus:
    state: str = "idle"
    detail: Optional[str] = None
    cycles: int = 0
    consecutive_failures: int = 0
    sleep_interval: Optional[float] = None
    summary: Optional[Dict[str, Any]] = None
    recent_actions: List[Dict[str, Any]] = field(default_factory=list)
    recent_errors: List[Dict[str, Any]] = field(default_factory=list)
    updated_at: float = field(default_factory=time)


class RunStatusStore:
    """Thread-safe view of the server loop for the status API."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._status = RunStatus()
        self._trigger: Optional[Callable[[], None]] = None

    def update(self, **fields: Any) -> None:
        with self._lock:
            for key, value in fields.items():
                if hasattr(self._status, key):
                    setattr(self._status, key, value)
            self._status.updated_at = time()

    def record_action(self, action: Dict[str, Any]) -> None:
        with self._lock:
            # Newest first.
            self._status.recent_actions = ([action] + self._status.recent_actions)[:RECENT_LIMIT]
            self._status.updated_at = time()

    def record_error(self, error: Dict[str, Any]) -> None:
        with self._lock:
            self._status.recent_errors = ([error] + self._status.recent_errors)[:RECENT_LIMIT]
            self._status.updated_at = time()

    def bind_trigger(self, trigger: Optional[Callable[[], None]]) -> None:
        with self._lock:
            self._trigger = trigger

    def request_run(self) -> bool:
        """Wake the server loop. False when no loop is bound."""
        with self._lock:
            trigger = self._trigger
        if trigger is None:
            return False
        trigger()
        return True

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self._status.state,
                "detail": self._status.detail,
                "cycles": self._status.cycles,
                "consecutive_failures": self._status.consecutive_failures,
                "sleep_interval": self._status.sleep_interval,
                "summary": self._status.summary,
                "recent_actions": list(self._status.recent_actions),
                "recent_errors": list(self._status.recent_errors),
                "updated_at": self._status.updated_at,
            }


run_status_store = RunStatusStore()
