from abc import ABC, abstractmethod
from typing import Any

from docingest.logging.logger import Log

UPLOAD_STARTED = "document:upload:started"
CHUNK_UPLOADED = "document:chunk:uploaded"
CONSOLIDATED = "document:consolidated"
PROCESSING_STARTED = "document:processing:started"
TEXT_EXTRACTED = "document:text:extracted"


class EventBus(ABC):
    """Contract for the outbound notification channel."""

    @abstractmethod
    def publish(self, event: str, payload: dict[str, Any]) -> None:
        """Deliver one event. Implementations may raise; callers use `notify`."""


def notify(bus: EventBus, event: str, payload: dict[str, Any]) -> None:
    """Publish best-effort: a failing bus is logged, never propagated."""
    try:
        bus.publish(event, payload)
    except Exception as exc:
        Log.warning(f"Notification {event} could not be published: {exc}")
