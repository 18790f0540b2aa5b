"""Record models for migration data and results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Category assigned to every failed record."""
    REQUIRED_FIELD_MISSING = "REQUIRED_FIELD_MISSING"
    FIELD_TYPE_MISMATCH = "FIELD_TYPE_MISMATCH"
    VALIDATION_RULE_FAILED = "VALIDATION_RULE_FAILED"
    LOOKUP_NOT_FOUND = "LOOKUP_NOT_FOUND"
    API_LIMIT_EXCEEDED = "API_LIMIT_EXCEEDED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    DUPLICATE_VALUE = "DUPLICATE_VALUE"
    RELATIONSHIP_MIGRATION_FAILED = "RELATIONSHIP_MIGRATION_FAILED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    @property
    def label(self) -> str:
        return ERROR_LABELS[self]


ERROR_LABELS = {
    ErrorCode.REQUIRED_FIELD_MISSING: "Required Field Missing",
    ErrorCode.FIELD_TYPE_MISMATCH: "Field Type Mismatch",
    ErrorCode.VALIDATION_RULE_FAILED: "Validation Rule Failed",
    ErrorCode.LOOKUP_NOT_FOUND: "Lookup Record Not Found",
    ErrorCode.API_LIMIT_EXCEEDED: "API Limit Exceeded",
    ErrorCode.PERMISSION_DENIED: "Permission Denied",
    ErrorCode.DUPLICATE_VALUE: "Duplicate Value",
    ErrorCode.RELATIONSHIP_MIGRATION_FAILED: "Child Relationship Migration Failed",
    ErrorCode.UNKNOWN_ERROR: "Unknown Error",
}


class RecordStatus(str, Enum):
    """Outcome of writing one record."""
    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class ApiError:
    """One error entry as reported by the platform."""
    status_code: str
    message: str
    fields: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status_code": self.status_code,
            "message": self.message,
            "fields": self.fields,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApiError":
        return cls(
            status_code=data.get("statusCode") or data.get("errorCode") or "",
            message=data.get("message", ""),
            fields=list(data.get("fields") or []),
        )


@dataclass
class WriteResult:
    """Result of a single record write or delete as returned by a client."""
    success: bool
    id: Optional[str] = None
    created: bool = True
    errors: List[ApiError] = field(default_factory=list)
    http_status: Optional[int] = None

    @property
    def message(self) -> str:
        return ", ".join(e.message for e in self.errors if e.message)


@dataclass
class MigrationRecord:
    """
    A record moving from source to target.

    Created at export time, mutated in place by the mapping steps and
    consumed by the upsert executor. ``fields`` is the outgoing payload;
    ``extras`` keeps source values that have no place in the target so
    they are preserved rather than coerced.
    """
    source_id: str
    object_type: str
    fields: Dict[str, Any] = field(default_factory=dict)
    extras: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, object_type: str, row: Dict[str, Any]) -> "MigrationRecord":
        """Create from a query result row."""
        data = {k: v for k, v in row.items() if k != "attributes"}
        source_id = data.pop("Id", None)
        if not source_id:
            raise ValueError(f"{object_type} row without Id")
        return cls(source_id=source_id, object_type=object_type, fields=data)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "object_type": self.object_type,
            "fields": self.fields,
            "extras": self.extras,
            "warnings": self.warnings,
        }


@dataclass
class RecordError:
    """A categorized failure of one record (or one relationship)."""
    code: ErrorCode
    message: str
    object_type: str
    record_id: Optional[str] = None  # source-side ID
    fields: List[str] = field(default_factory=list)
    phase: str = "parent"
    raw_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "object_type": self.object_type,
            "record_id": self.record_id,
            "fields": self.fields,
            "phase": self.phase,
            "raw_code": self.raw_code,
        }


@dataclass
class RecordOutcome:
    """Final state of one source record in the target."""
    source_id: str
    object_type: str
    status: RecordStatus
    target_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "object_type": self.object_type,
            "status": self.status.value,
            "target_id": self.target_id,
        }


@dataclass
class UpsertResult:
    """Result of one upsert executor call."""
    object_type: str
    created_ids: List[str] = field(default_factory=list)
    updated_ids: List[str] = field(default_factory=list)
    failures: List[RecordError] = field(default_factory=list)
    outcomes: List[RecordOutcome] = field(default_factory=list)
    id_map: Dict[str, str] = field(default_factory=dict)
    cancelled: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total_succeeded(self) -> int:
        return len(self.created_ids) + len(self.updated_ids)

    @property
    def total_failed(self) -> int:
        return len(self.failures)

    @property
    def total_attempted(self) -> int:
        return len(self.outcomes)

    def record_success(self, source_id: str, target_id: str, created: bool) -> None:
        status = RecordStatus.CREATED if created else RecordStatus.UPDATED
        (self.created_ids if created else self.updated_ids).append(target_id)
        self.id_map[source_id] = target_id
        self.outcomes.append(RecordOutcome(source_id, self.object_type, status, target_id))

    def record_failure(self, error: RecordError) -> None:
        self.failures.append(error)
        self.outcomes.append(RecordOutcome(error.record_id or "", self.object_type, RecordStatus.FAILED))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "object_type": self.object_type,
            "created_ids": self.created_ids,
            "updated_ids": self.updated_ids,
            "failures": [f.to_dict() for f in self.failures],
            "id_map": self.id_map,
            "cancelled": self.cancelled,
        }


@dataclass
class RollbackResult:
    """Result of deleting records created by a run."""
    requested: int = 0
    deleted_ids: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> int:
        return len(self.deleted_ids)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requested": self.requested,
            "success": self.success,
            "failed": self.failed,
            "deleted_ids": self.deleted_ids,
            "errors": self.errors,
            "cancelled": self.cancelled,
        }
