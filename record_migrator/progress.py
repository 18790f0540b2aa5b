"""Progress reporting and cancellation for a single run."""

import logging
import threading
from typing import Callable, Dict, List, Optional

from .models.migration import ProgressEvent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class CancellationToken:
    """Cooperative cancellation flag checked between batches and records."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ProgressChannel:
    """
    Ordered progress stream with exactly one subscriber.

    For each step, emitted ``completed`` counts never decrease and the last
    event of a finished step carries ``completed == total``. Progress is
    advisory: a failing subscriber is logged and otherwise ignored.
    """

    def __init__(self, subscriber: Optional[ProgressCallback] = None):
        self._subscriber = subscriber
        self._last: Dict[str, ProgressEvent] = {}
        self.history: List[ProgressEvent] = []

    def subscribe(self, subscriber: ProgressCallback) -> None:
        if self._subscriber is not None:
            raise RuntimeError("Progress channel already has a subscriber")
        self._subscriber = subscriber

    def emit(self, step: str, completed: int, total: int, message: str = "") -> ProgressEvent:
        """Emit an event, clamping counts so ordering holds."""
        total = max(total, 0)
        completed = max(0, min(completed, total))

        previous = self._last.get(step)
        if previous is not None and completed < previous.completed:
            completed = previous.completed
            total = max(total, previous.total)

        event = ProgressEvent(step=step, completed=completed, total=total, message=message)
        self._last[step] = event
        self.history.append(event)
        self._deliver(event)
        return event

    def finish(self, step: str, message: str = "", stopped_early: bool = False) -> ProgressEvent:
        """
        Emit the closing event of a step (completed == total).

        A step stopped early (cancellation) closes at the count it reached.
        """
        previous = self._last.get(step)
        if previous is None:
            return self.emit(step, 0, 0, message)
        if previous.completed == previous.total and not message:
            return previous

        total = previous.completed if stopped_early else previous.total
        event = ProgressEvent(step=step, completed=total, total=total, message=message or previous.message)
        self._last[step] = event
        self.history.append(event)
        self._deliver(event)
        return event

    def _deliver(self, event: ProgressEvent) -> None:
        if self._subscriber is None:
            return
        try:
            self._subscriber(event)
        except Exception as e:
            logger.warning(f"Progress subscriber failed on {event.step}: {e}")
