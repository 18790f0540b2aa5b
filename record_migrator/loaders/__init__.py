"""Target-side writers."""

from .queue import SequentialWriteQueue
from .upsert_executor import UpsertExecutor
from .rollback_executor import RollbackExecutor

__all__ = [
    "SequentialWriteQueue",
    "UpsertExecutor",
    "RollbackExecutor",
]
