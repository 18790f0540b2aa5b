"""Data models for the record migrator."""

from .instance import InstanceHandle
from .schema import (
    FieldType,
    FieldDescriptor,
    PicklistValue,
    ObjectSchema,
    ChildRelationship,
    FieldClassification,
    FieldMappingEntry,
    FieldMappingResult,
    Recommendation,
    PicklistField,
    PicklistMapping,
)
from .migration import (
    MigrationConfig,
    MigrationState,
    MigrationResult,
    LookupConfig,
    ProgressEvent,
    RelationshipSummary,
)
from .record import (
    ApiError,
    ErrorCode,
    MigrationRecord,
    RecordError,
    RecordOutcome,
    RecordStatus,
    RollbackResult,
    UpsertResult,
    WriteResult,
)

__all__ = [
    "InstanceHandle",
    "FieldType",
    "FieldDescriptor",
    "PicklistValue",
    "ObjectSchema",
    "ChildRelationship",
    "FieldClassification",
    "FieldMappingEntry",
    "FieldMappingResult",
    "Recommendation",
    "PicklistField",
    "PicklistMapping",
    "MigrationConfig",
    "MigrationState",
    "MigrationResult",
    "LookupConfig",
    "ProgressEvent",
    "RelationshipSummary",
    "ApiError",
    "ErrorCode",
    "MigrationRecord",
    "RecordError",
    "RecordOutcome",
    "RecordStatus",
    "RollbackResult",
    "UpsertResult",
    "WriteResult",
]
