"""Migration configuration, state and result models."""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from .record import ErrorCode, RecordError, RecordOutcome
from .schema import ChildRelationship

MAX_BATCH_SIZE = 200


class MigrationState(str, Enum):
    """States of a migration run."""
    IDLE = "idle"
    EXPORTING_PARENTS = "exporting_parents"
    REMAPPING_LOOKUPS = "remapping_lookups"
    UPSERTING_PARENTS = "upserting_parents"
    EXPORTING_CHILDREN = "exporting_children"
    UPSERTING_CHILDREN = "upserting_children"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"


TRANSITIONS: Dict[MigrationState, FrozenSet[MigrationState]] = {
    MigrationState.IDLE: frozenset({MigrationState.EXPORTING_PARENTS}),
    MigrationState.EXPORTING_PARENTS: frozenset({
        MigrationState.REMAPPING_LOOKUPS,
        MigrationState.REPORTING,
    }),
    MigrationState.REMAPPING_LOOKUPS: frozenset({
        MigrationState.UPSERTING_PARENTS,
        MigrationState.REPORTING,
    }),
    MigrationState.UPSERTING_PARENTS: frozenset({
        MigrationState.EXPORTING_CHILDREN,
        MigrationState.REPORTING,
    }),
    MigrationState.EXPORTING_CHILDREN: frozenset({
        MigrationState.UPSERTING_CHILDREN,
        MigrationState.EXPORTING_CHILDREN,
        MigrationState.REPORTING,
    }),
    MigrationState.UPSERTING_CHILDREN: frozenset({
        MigrationState.EXPORTING_CHILDREN,
        MigrationState.REPORTING,
    }),
    MigrationState.REPORTING: frozenset({MigrationState.DONE}),
    MigrationState.DONE: frozenset(),
    MigrationState.FAILED: frozenset(),
}


@dataclass
class LookupConfig:
    """The single reference field remapped by display name."""
    field: str
    object: str
    name_field: str = "Name"

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "object": self.object, "name_field": self.name_field}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LookupConfig":
        return cls(
            field=data["field"],
            object=data.get("object") or data["field"],
            name_field=data.get("name_field", "Name"),
        )


@dataclass
class MigrationConfig:
    """Configuration for a migration run."""
    object_name: str
    record_ids: List[str] = field(default_factory=list)
    where: Optional[str] = None
    record_limit: int = 200

    relationships: List[ChildRelationship] = field(default_factory=list)

    # Upsert mode
    external_id_field: Optional[str] = None
    child_external_id_fields: Dict[str, str] = field(default_factory=dict)

    # Mapping adjustments
    lookup: Optional[LookupConfig] = None
    picklist_overrides: Dict[str, Dict[str, str]] = field(default_factory=dict)
    excluded_fields: List[str] = field(default_factory=list)

    # Execution options
    batch_size: int = MAX_BATCH_SIZE
    max_error_examples: int = 5

    def __post_init__(self):
        if not self.object_name:
            raise ValueError("object_name is required")
        if self.record_limit <= 0:
            raise ValueError("record_limit must be positive")
        self.batch_size = max(1, min(self.batch_size, MAX_BATCH_SIZE))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "object_name": self.object_name,
            "record_ids": self.record_ids,
            "where": self.where,
            "record_limit": self.record_limit,
            "relationships": [r.to_dict() for r in self.relationships],
            "external_id_field": self.external_id_field,
            "child_external_id_fields": self.child_external_id_fields,
            "lookup": self.lookup.to_dict() if self.lookup else None,
            "picklist_overrides": self.picklist_overrides,
            "excluded_fields": self.excluded_fields,
            "batch_size": self.batch_size,
            "max_error_examples": self.max_error_examples,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation."""
        lookup = data.get("lookup")
        return cls(
            object_name=data.get("object_name", ""),
            record_ids=list(data.get("record_ids") or []),
            where=data.get("where") or None,
            record_limit=data.get("record_limit", 200),
            relationships=[ChildRelationship.from_dict(r) for r in data.get("relationships") or []],
            external_id_field=data.get("external_id_field") or None,
            child_external_id_fields=dict(data.get("child_external_id_fields") or {}),
            lookup=LookupConfig.from_dict(lookup) if lookup else None,
            picklist_overrides=dict(data.get("picklist_overrides") or {}),
            excluded_fields=list(data.get("excluded_fields") or []),
            batch_size=data.get("batch_size", MAX_BATCH_SIZE),
            max_error_examples=data.get("max_error_examples", 5),
        )

    @classmethod
    def from_json_file(cls, file_path: str) -> "MigrationConfig":
        """Load configuration from a JSON file."""
        with open(file_path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data.get("migration", data))


@dataclass(frozen=True)
class ProgressEvent:
    """Advisory progress notification."""
    step: str
    completed: int
    total: int
    message: str = ""

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 100
        return round(self.completed * 100 / self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "completed": self.completed,
            "total": self.total,
            "message": self.message,
        }


@dataclass
class RelationshipSummary:
    """Per-relationship counters."""
    relationship: ChildRelationship
    exported: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "relationship": self.relationship.to_dict(),
            "exported": self.exported,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass
class MigrationResult:
    """Outcome of a complete migration run."""
    object_name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: MigrationState = MigrationState.IDLE
    state_history: List[MigrationState] = field(default_factory=list)

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    parent_success: int = 0
    parent_failed: int = 0
    child_success: int = 0
    child_failed: int = 0

    # Created by this run, in creation order. Rollback deletes exactly these.
    created_record_ids: List[str] = field(default_factory=list)
    updated_record_ids: List[str] = field(default_factory=list)
    id_map: Dict[str, str] = field(default_factory=dict)
    lookup_id_map: Dict[str, str] = field(default_factory=dict)
    outcomes: List[RecordOutcome] = field(default_factory=list)

    detailed_errors: List[RecordError] = field(default_factory=list)
    errors_by_category: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    relationships: List[RelationshipSummary] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    cancelled: bool = False
    fatal_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == MigrationState.DONE

    @property
    def total_failed(self) -> int:
        return self.parent_failed + self.child_failed

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def error_counts(self) -> Dict[ErrorCode, int]:
        counts: Dict[ErrorCode, int] = {}
        for error in self.detailed_errors:
            counts[error.code] = counts.get(error.code, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "object_name": self.object_name,
            "state": self.state.value,
            "state_history": [s.value for s in self.state_history],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "parent_success": self.parent_success,
            "parent_failed": self.parent_failed,
            "child_success": self.child_success,
            "child_failed": self.child_failed,
            "created_record_ids": self.created_record_ids,
            "updated_record_ids": self.updated_record_ids,
            "id_map": self.id_map,
            "lookup_id_map": self.lookup_id_map,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "detailed_errors": [e.to_dict() for e in self.detailed_errors],
            "errors_by_category": self.errors_by_category,
            "relationships": [r.to_dict() for r in self.relationships],
            "warnings": self.warnings,
            "cancelled": self.cancelled,
            "fatal_error": self.fatal_error,
        }
