"""Sequential write queue shared by the write executors."""

import logging
from collections import deque
from typing import Callable, Deque, Generic, List, Optional, Sequence, TypeVar

from ..progress import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SequentialWriteQueue(Generic[T]):
    """
    Runs write units strictly one after another.

    Items are grouped into units of ``unit_size`` (a batch in insert mode,
    a single record in upsert mode) and handed to ``worker``. There is
    never more than one unit in flight. The cancellation token is checked
    before each unit; a unit that has started always completes.
    """

    def __init__(
        self,
        worker: Callable[[List[T]], None],
        unit_size: int = 1,
        cancel_token: Optional[CancellationToken] = None,
    ):
        if unit_size < 1:
            raise ValueError("unit_size must be at least 1")
        self.worker = worker
        self.unit_size = unit_size
        self.cancel_token = cancel_token
        self._units: Deque[List[T]] = deque()
        self.cancelled = False
        self.processed_units = 0
        self.processed_items = 0

    def __len__(self) -> int:
        return len(self._units)

    def put_all(self, items: Sequence[T]) -> None:
        """Split items into units and enqueue them in order."""
        for i in range(0, len(items), self.unit_size):
            self._units.append(list(items[i:i + self.unit_size]))

    def drain(self) -> bool:
        """
        Process every queued unit.

        Returns:
            False if the run was cancelled before the queue emptied
        """
        while self._units:
            if self.cancel_token is not None and self.cancel_token.cancelled:
                self.cancelled = True
                logger.info(f"Cancelled with {len(self._units)} write units pending")
                self._units.clear()
                return False

            unit = self._units.popleft()
            self.worker(unit)
            self.processed_units += 1
            self.processed_items += len(unit)

        return True
