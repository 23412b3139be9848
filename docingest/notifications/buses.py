import threading
from typing import Any

from docingest.logging.logger import Log
from docingest.notifications.base import EventBus


class LoggingEventBus(EventBus):
    """Default bus: writes every event to the application log."""

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        Log.info(f"Event {event}: {payload}")


class InMemoryEventBus(EventBus):
    """Collects events in order of publication."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: list[tuple[str, dict[str, Any]]] = []

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self.events.append((event, dict(payload)))

    def names(self) -> list[str]:
        with self._lock:
            return [name for name, _ in self.events]
