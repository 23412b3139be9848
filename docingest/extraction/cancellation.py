import threading
import time
from collections.abc import Callable

from docingest.extraction.exceptions import ExtractionCancelledError
from docingest.logging.logger import Log


class CancellationToken:
    """Cooperative cancellation flag shared between a job and its extraction calls.

    A token may carry a heartbeat, called from `checkpoint` at most once per
    `heartbeat_interval` seconds while work is still progressing.
    """

    def __init__(
        self,
        heartbeat: Callable[[], None] | None = None,
        heartbeat_interval: float = 30.0,
    ) -> None:
        self._event = threading.Event()
        self._heartbeat = heartbeat
        self._heartbeat_interval = heartbeat_interval
        self._last_beat = time.monotonic()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds. Returns True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExtractionCancelledError("Extraction was cancelled")

    def beat(self) -> None:
        if self._heartbeat is None:
            return
        now = time.monotonic()
        if now - self._last_beat < self._heartbeat_interval:
            return
        self._last_beat = now
        try:
            self._heartbeat()
        except Exception as exc:
            Log.warning(f"Heartbeat failed, lock may expire: {exc}")

    def checkpoint(self) -> None:
        """Raise if cancelled, otherwise report liveness."""
        self.raise_if_cancelled()
        self.beat()
