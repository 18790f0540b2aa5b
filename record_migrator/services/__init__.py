"""Service layer for the record migrator."""

from .field_mapper import FieldMapper, FieldConversionError, build_field_mapping
from .picklist_mapper import PicklistMapper
from .lookup_remapper import LookupRemapper
from .relationship_detector import RelationshipDetector, detect_child_relationships
from .transformer import RecordTransformer, TransformPlan
from . import error_categorizer

__all__ = [
    "FieldMapper",
    "FieldConversionError",
    "build_field_mapping",
    "PicklistMapper",
    "LookupRemapper",
    "RelationshipDetector",
    "detect_child_relationships",
    "RecordTransformer",
    "TransformPlan",
    "error_categorizer",
]
