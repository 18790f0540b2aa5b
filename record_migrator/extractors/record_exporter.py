"""Record exporter: reads parent and child records from the source."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from .schema_fetcher import SchemaFetcher
from ..clients.base import InstanceClient
from ..models.record import MigrationRecord
from ..models.schema import ChildRelationship

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Records read from the source for one object type."""
    object_type: str
    records: List[MigrationRecord] = field(default_factory=list)
    fields: List[str] = field(default_factory=list)
    total_size: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def truncated(self) -> bool:
        """More rows matched than the result cap allowed."""
        return self.total_size > len(self.records)

    @property
    def source_ids(self) -> List[str]:
        return [r.source_id for r in self.records]


class RecordExporter:
    """Exports records from the source instance as MigrationRecords."""

    def __init__(self, client: InstanceClient, schema_fetcher: Optional[SchemaFetcher] = None):
        self.client = client
        self.schema_fetcher = schema_fetcher or SchemaFetcher(client)

    def export_parents(
        self,
        object_type: str,
        record_ids: Optional[Sequence[str]] = None,
        where: Optional[str] = None,
        limit: int = 200,
    ) -> ExportResult:
        """
        Export parent records.

        Args:
            object_type: Object API name
            record_ids: Explicit selection (optional)
            where: Caller filter predicate (optional)
            limit: Explicit result cap

        Returns:
            ExportResult with one MigrationRecord per row
        """
        result = ExportResult(object_type=object_type, started_at=datetime.utcnow())
        result.fields = self.schema_fetcher.exportable_fields(object_type)

        in_filters = {"Id": list(record_ids)} if record_ids else None
        rows = self.client.query(object_type, result.fields, in_filters=in_filters, where=where, limit=limit)

        result.records = [MigrationRecord.from_row(object_type, row) for row in rows.records]
        result.total_size = max(rows.total_size, len(result.records))
        result.completed_at = datetime.utcnow()

        if result.truncated:
            logger.warning(
                f"{object_type}: {result.total_size} records matched, exporting the first {len(result.records)}"
            )
        logger.info(f"Exported {len(result.records)} {object_type} records from {self.client.name}")
        return result

    def export_children(
        self,
        relationship: ChildRelationship,
        parent_ids: Sequence[str],
    ) -> ExportResult:
        """Export child records whose foreign key points at one of ``parent_ids``."""
        child_type = relationship.child_object
        result = ExportResult(object_type=child_type, started_at=datetime.utcnow())

        if not parent_ids:
            result.completed_at = datetime.utcnow()
            return result

        result.fields = self.schema_fetcher.exportable_fields(child_type)
        if relationship.foreign_key_field not in result.fields:
            result.fields.append(relationship.foreign_key_field)

        rows = self.client.query(
            child_type,
            result.fields,
            in_filters={relationship.foreign_key_field: list(parent_ids)},
        )
        result.records = [MigrationRecord.from_row(child_type, row) for row in rows.records]
        result.total_size = max(rows.total_size, len(result.records))
        result.completed_at = datetime.utcnow()

        logger.info(
            f"Exported {len(result.records)} {child_type} records via {relationship.foreign_key_field}"
        )
        return result
