"""Upsert executor: writes records to the target instance."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .queue import SequentialWriteQueue
from ..clients.base import InstanceClient
from ..clients.exceptions import AuthenticationError, InstanceError
from ..models.migration import MAX_BATCH_SIZE
from ..models.record import (
    ErrorCode,
    MigrationRecord,
    RecordError,
    UpsertResult,
    WriteResult,
)
from ..progress import CancellationToken, ProgressChannel
from ..services import error_categorizer

logger = logging.getLogger(__name__)


class UpsertExecutor:
    """
    Writes records to the target in one of two modes.

    Insert-batched (no external id field): records are sent in composite
    batches with partial success. Every run creates new records.

    Upsert-by-external-id: each record's external id is set to its source
    ID and records are sent one at a time, so repeated runs update rather
    than duplicate.

    A single record's failure never stops the call. Only an authentication
    failure propagates.
    """

    def __init__(
        self,
        client: InstanceClient,
        batch_size: int = MAX_BATCH_SIZE,
        progress: Optional[ProgressChannel] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        """
        Initialize the executor.

        Args:
            client: Target instance client
            batch_size: Records per composite request in insert mode (max 200)
            progress: Progress channel for per-batch / per-record events
            cancel_token: Checked before every batch or record
        """
        self.client = client
        self.batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self.progress = progress
        self.cancel_token = cancel_token

    def upsert_records(
        self,
        object_type: str,
        records: Sequence[MigrationRecord],
        external_id_field: Optional[str] = None,
        phase: str = "parent",
        step: Optional[str] = None,
        result: Optional[UpsertResult] = None,
    ) -> UpsertResult:
        """
        Write records to the target.

        Args:
            object_type: Target object API name
            records: Transformed records
            external_id_field: Upsert mode when set, insert-batched otherwise
            phase: "parent" or "child", recorded on every failure
            step: Progress step name (defaults to "upsert <object>")
            result: Accumulator to fill; pass one in to keep partial
                results readable if an AuthenticationError propagates

        Returns:
            UpsertResult with created/updated IDs, failures and the ID map
        """
        result = result if result is not None else UpsertResult(object_type=object_type)
        result.started_at = result.started_at or datetime.utcnow()
        step = step or f"upsert {object_type}"
        total = len(records)

        if external_id_field:
            logger.info(f"Upserting {total} {object_type} records by {external_id_field}")

            def worker(unit: List[MigrationRecord]) -> None:
                self._upsert_one(object_type, unit[0], external_id_field, phase, result)
                self._report(step, result, total)

            queue = SequentialWriteQueue(worker, unit_size=1, cancel_token=self.cancel_token)
        else:
            logger.info(f"Inserting {total} {object_type} records in batches of {self.batch_size}")

            def worker(unit: List[MigrationRecord]) -> None:
                self._insert_batch(object_type, unit, phase, result)
                self._report(step, result, total)

            queue = SequentialWriteQueue(worker, unit_size=self.batch_size, cancel_token=self.cancel_token)

        if self.progress is not None:
            self.progress.emit(step, 0, total, f"Writing {total} {object_type} records")

        queue.put_all(list(records))
        completed = queue.drain()

        result.cancelled = not completed
        result.completed_at = datetime.utcnow()

        if self.progress is not None:
            self.progress.finish(
                step,
                f"{result.total_succeeded} succeeded, {result.total_failed} failed",
                stopped_early=result.cancelled,
            )

        logger.info(
            f"{object_type}: {len(result.created_ids)} created, {len(result.updated_ids)} updated, "
            f"{result.total_failed} failed"
        )
        return result

    def _report(self, step: str, result: UpsertResult, total: int) -> None:
        if self.progress is not None:
            self.progress.emit(
                step,
                result.total_attempted,
                total,
                f"{result.total_attempted}/{total} records processed",
            )

    @staticmethod
    def _payload(record: MigrationRecord) -> Dict[str, Any]:
        return dict(record.fields)

    def _insert_batch(
        self,
        object_type: str,
        batch: List[MigrationRecord],
        phase: str,
        result: UpsertResult,
    ) -> None:
        try:
            write_results = self.client.insert_records(object_type, [self._payload(r) for r in batch])
        except AuthenticationError:
            raise
        except InstanceError as e:
            logger.error(f"{object_type} batch of {len(batch)} failed: {e}")
            self._fail_batch(object_type, batch, e, phase, result)
            return

        for record, write_result in zip(batch, write_results):
            self._collect(object_type, record, write_result, phase, result)

    def _upsert_one(
        self,
        object_type: str,
        record: MigrationRecord,
        external_id_field: str,
        phase: str,
        result: UpsertResult,
    ) -> None:
        payload = self._payload(record)
        payload[external_id_field] = record.source_id

        try:
            write_result = self.client.upsert_record(object_type, external_id_field, record.source_id, payload)
        except AuthenticationError:
            raise
        except InstanceError as e:
            logger.error(f"{object_type} {record.source_id} upsert failed: {e}")
            self._fail_batch(object_type, [record], e, phase, result)
            return

        self._collect(object_type, record, write_result, phase, result)

    def _collect(
        self,
        object_type: str,
        record: MigrationRecord,
        write_result: WriteResult,
        phase: str,
        result: UpsertResult,
    ) -> None:
        if write_result.success and write_result.id:
            result.record_success(record.source_id, write_result.id, write_result.created)
            return

        code, message, raw = error_categorizer.categorize_result(write_result)
        logger.debug(f"{object_type} {record.source_id} failed with {code.value}: {message}")
        result.record_failure(RecordError(
            code=code,
            message=message,
            object_type=object_type,
            record_id=record.source_id,
            fields=error_categorizer.error_fields(write_result),
            phase=phase,
            raw_code=raw,
        ))

    @staticmethod
    def _fail_batch(
        object_type: str,
        batch: List[MigrationRecord],
        error: InstanceError,
        phase: str,
        result: UpsertResult,
    ) -> None:
        """Record a request-level failure against every record it carried."""
        code, message, raw = error_categorizer.categorize_exception(error)
        if phase == "child":
            code = ErrorCode.RELATIONSHIP_MIGRATION_FAILED
        for record in batch:
            result.record_failure(RecordError(
                code=code,
                message=message,
                object_type=object_type,
                record_id=record.source_id,
                phase=phase,
                raw_code=raw,
            ))
