"""Rollback executor: deletes records a run created in the target."""

import logging
from typing import List, Optional, Sequence

from .queue import SequentialWriteQueue
from ..clients.base import InstanceClient
from ..clients.exceptions import AuthenticationError, InstanceError
from ..models.migration import MAX_BATCH_SIZE
from ..models.record import RollbackResult
from ..progress import CancellationToken, ProgressChannel

logger = logging.getLogger(__name__)

ROLLBACK_STEP = "rollback"


class RollbackExecutor:
    """
    Deletes exactly the IDs it is given, in batches.

    IDs are expected in creation order and are deleted newest first, so
    children go before the parents they reference. A failed delete is
    reported and the remaining batches still run.
    """

    def __init__(
        self,
        client: InstanceClient,
        batch_size: int = MAX_BATCH_SIZE,
        progress: Optional[ProgressChannel] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.client = client
        self.batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self.progress = progress
        self.cancel_token = cancel_token

    def rollback(self, record_ids: Sequence[str]) -> RollbackResult:
        """
        Delete records from the target.

        Args:
            record_ids: Target IDs in creation order

        Returns:
            RollbackResult with deleted IDs and per-ID errors
        """
        ordered = []
        seen = set()
        for record_id in reversed(list(record_ids)):
            if record_id and record_id not in seen:
                seen.add(record_id)
                ordered.append(record_id)

        result = RollbackResult(requested=len(ordered))
        if not ordered:
            if self.progress is not None:
                self.progress.finish(ROLLBACK_STEP, "Nothing to roll back")
            return result

        logger.info(f"Rolling back {len(ordered)} records on {self.client.name}")
        state = {"auth_error": None}

        def worker(batch: List[str]) -> None:
            if state["auth_error"] is not None:
                self._fail_all(batch, state["auth_error"], result)
            else:
                try:
                    self._delete_batch(batch, result)
                except AuthenticationError as e:
                    logger.error(f"Rollback stopped, target credential rejected: {e}")
                    state["auth_error"] = e
                    self._fail_all(batch, e, result)

            if self.progress is not None:
                done = result.success + result.failed
                self.progress.emit(
                    ROLLBACK_STEP,
                    done,
                    len(ordered),
                    f"Deleted {result.success} of {len(ordered)} records",
                )

        if self.progress is not None:
            self.progress.emit(ROLLBACK_STEP, 0, len(ordered), f"Deleting {len(ordered)} records")

        queue = SequentialWriteQueue(worker, unit_size=self.batch_size, cancel_token=self.cancel_token)
        queue.put_all(ordered)
        result.cancelled = not queue.drain()

        if self.progress is not None:
            self.progress.finish(
                ROLLBACK_STEP,
                f"Rollback complete: {result.success} deleted, {result.failed} failed",
                stopped_early=result.cancelled,
            )

        logger.info(f"Rollback complete: {result.success} deleted, {result.failed} failed")
        return result

    def _delete_batch(self, batch: List[str], result: RollbackResult) -> None:
        try:
            delete_results = self.client.delete_records(batch)
        except AuthenticationError:
            raise
        except InstanceError as e:
            logger.error(f"Delete batch of {len(batch)} failed: {e}")
            self._fail_all(batch, e, result)
            return

        for record_id, delete_result in zip(batch, delete_results):
            if delete_result.success:
                result.deleted_ids.append(record_id)
            else:
                result.errors.append({
                    "id": record_id,
                    "message": delete_result.message or "Delete failed",
                    "codes": [e.status_code for e in delete_result.errors],
                })
                logger.warning(f"Could not delete {record_id}: {delete_result.message}")

    @staticmethod
    def _fail_all(batch: List[str], error: InstanceError, result: RollbackResult) -> None:
        for record_id in batch:
            result.errors.append({
                "id": record_id,
                "message": str(error),
                "codes": error.error_codes,
            })
