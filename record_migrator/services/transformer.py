"""Record transformer: turns exported records into target payloads."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .field_mapper import FieldMapper
from .lookup_remapper import LookupRemapper
from .picklist_mapper import PicklistMapper
from ..models.record import MigrationRecord
from ..models.schema import FieldMappingResult, ObjectSchema, PicklistMapping

logger = logging.getLogger(__name__)


@dataclass
class TransformPlan:
    """Everything needed to transform records of one object type, computed once per run."""
    object_type: str
    target_schema: ObjectSchema
    field_mapping: FieldMappingResult
    picklist_mappings: Dict[str, PicklistMapping] = field(default_factory=dict)
    excluded_fields: List[str] = field(default_factory=list)
    # Reference fields pointing at the parent object being migrated
    parent_reference_fields: List[str] = field(default_factory=list)


class RecordTransformer:
    """
    Applies field, picklist and lookup mapping to records in place.

    The order is fixed: field mapping (payload reduction and conversion),
    picklist values, the designated lookup field, then parent references.
    """

    def __init__(
        self,
        field_mapper: Optional[FieldMapper] = None,
        picklist_mapper: Optional[PicklistMapper] = None,
        lookup_remapper: Optional[LookupRemapper] = None,
    ):
        self.field_mapper = field_mapper or FieldMapper()
        self.picklist_mapper = picklist_mapper or PicklistMapper()
        self.lookup_remapper = lookup_remapper

    def build_plan(
        self,
        source_schema: ObjectSchema,
        target_schema: ObjectSchema,
        picklist_overrides: Optional[Mapping[str, Mapping[str, str]]] = None,
        excluded_fields: Iterable[str] = (),
        parent_object: Optional[str] = None,
    ) -> TransformPlan:
        """
        Compute the field and picklist mappings for one object type.

        Args:
            source_schema: Source object description
            target_schema: Target object description
            picklist_overrides: Caller value adjustments per field
            excluded_fields: Fields never sent to the target
            parent_object: For child objects, the parent type being migrated

        Returns:
            A TransformPlan that is reused for every record of the type
        """
        source_fields = source_schema.field_list
        target_fields = target_schema.field_list

        field_mapping = self.field_mapper.build_field_mapping(source_fields, target_fields)
        picklist_fields = self.picklist_mapper.detect_picklist_fields(source_fields, target_fields)
        picklist_mappings = self.picklist_mapper.build_mappings(picklist_fields, picklist_overrides)

        parent_reference_fields = []
        if parent_object:
            parent_reference_fields = [f.name for f in source_schema.reference_fields_to(parent_object)]

        return TransformPlan(
            object_type=source_schema.name,
            target_schema=target_schema,
            field_mapping=field_mapping,
            picklist_mappings=picklist_mappings,
            excluded_fields=list(excluded_fields),
            parent_reference_fields=parent_reference_fields,
        )

    def transform(
        self,
        record: MigrationRecord,
        plan: TransformPlan,
        lookup_table: Optional[Mapping[str, str]] = None,
        parent_id_map: Optional[Mapping[str, str]] = None,
    ) -> MigrationRecord:
        """Transform one record in place and return it."""
        self.field_mapper.map_record_fields(
            record, plan.field_mapping, plan.target_schema, plan.excluded_fields
        )
        self.picklist_mapper.apply_to_record(record, plan.picklist_mappings)

        if self.lookup_remapper is not None:
            self.lookup_remapper.apply(record, lookup_table or {})

        if parent_id_map is not None:
            self.rewrite_parent_references(record, plan.parent_reference_fields, parent_id_map)

        return record

    def transform_all(
        self,
        records: Sequence[MigrationRecord],
        plan: TransformPlan,
        lookup_table: Optional[Mapping[str, str]] = None,
        parent_id_map: Optional[Mapping[str, str]] = None,
    ) -> List[MigrationRecord]:
        return [self.transform(r, plan, lookup_table, parent_id_map) for r in records]

    @staticmethod
    def rewrite_parent_references(
        record: MigrationRecord,
        reference_fields: Iterable[str],
        parent_id_map: Mapping[str, str],
    ) -> MigrationRecord:
        """Point parent references at target-side IDs; clear unmapped ones."""
        for field_name in reference_fields:
            value = record.fields.get(field_name)
            if not value:
                continue
            target_id = parent_id_map.get(value)
            if target_id:
                record.fields[field_name] = target_id
            else:
                record.fields[field_name] = None
                record.extras.setdefault(field_name, value)
                message = f"{field_name}: parent {value} was not migrated, reference cleared"
                record.warnings.append(message)
                logger.warning(f"{record.object_type} {record.source_id}: {message}")
        return record
