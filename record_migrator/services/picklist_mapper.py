"""Picklist mapper: maps enumerated values between instances."""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..models.record import MigrationRecord
from ..models.schema import (
    FieldDescriptor,
    PicklistField,
    PicklistMapping,
    PicklistValue,
)

logger = logging.getLogger(__name__)

MULTI_VALUE_SEPARATOR = ";"


class PicklistMapper:
    """
    Maps picklist values by canonical value name.

    Matching is exact and case-sensitive on ``value``, never on ``label``.
    Mappings are built once before any write and are immutable afterwards.
    """

    def detect_picklist_fields(
        self,
        source_fields: Iterable[FieldDescriptor],
        target_fields: Iterable[FieldDescriptor],
    ) -> List[PicklistField]:
        """
        Find picklist fields that exist in both instances.

        Args:
            source_fields: Source field descriptors
            target_fields: Target field descriptors

        Returns:
            One PicklistField per shared picklist, with active values only
        """
        targets = {f.name: f for f in target_fields}
        picklist_fields = []

        for source_field in source_fields:
            if not source_field.is_picklist:
                continue
            target_field = targets.get(source_field.name)
            if target_field is None or not target_field.is_picklist:
                continue

            picklist_fields.append(PicklistField(
                name=source_field.name,
                label=source_field.label,
                type=source_field.type,
                source_values=source_field.active_picklist_values,
                target_values=target_field.active_picklist_values,
                inactive_source_values=source_field.inactive_picklist_values,
            ))

        return picklist_fields

    def build_picklist_mapping(
        self,
        source_values: Iterable[PicklistValue],
        target_values: Iterable[PicklistValue],
        field_name: str = "",
        multi_valued: bool = False,
        overrides: Optional[Mapping[str, str]] = None,
        inactive_values: Iterable[PicklistValue] = (),
    ) -> PicklistMapping:
        """
        Build the frozen value map for one field.

        ``inactive_values`` are deactivated source values. They map when
        the target has the same value, and are never reported missing.

        ``overrides`` are caller adjustments (source value -> target value).
        An override is only accepted when its target value exists in the
        target instance.
        """
        remaining = {v.value: v for v in target_values}
        target_names = set(remaining)
        value_map: Dict[str, str] = {}
        exact_matches = []
        missing = []

        for source_value in source_values:
            if source_value.value in value_map:
                continue
            if source_value.value in remaining:
                value_map[source_value.value] = source_value.value
                exact_matches.append(source_value.value)
                del remaining[source_value.value]
            else:
                missing.append(source_value)

        for source_value in inactive_values:
            if source_value.value in target_names and source_value.value not in value_map:
                value_map[source_value.value] = source_value.value
                remaining.pop(source_value.value, None)

        for source_name, target_name in (overrides or {}).items():
            if target_name not in target_names:
                logger.warning(
                    f"Ignoring picklist override {field_name}: {source_name!r} -> {target_name!r} "
                    f"(not a target value)"
                )
                continue
            value_map[source_name] = target_name
            missing = [v for v in missing if v.value != source_name]
            remaining.pop(target_name, None)

        return PicklistMapping(
            field_name=field_name,
            value_map=value_map,
            multi_valued=multi_valued,
            exact_matches=tuple(exact_matches),
            missing_in_target=tuple(missing),
            additional_in_target=tuple(remaining.values()),
        )

    def build_mappings(
        self,
        picklist_fields: Iterable[PicklistField],
        overrides: Optional[Mapping[str, Mapping[str, str]]] = None,
    ) -> Dict[str, PicklistMapping]:
        """Build mappings for every detected picklist field."""
        overrides = overrides or {}
        return {
            pf.name: self.build_picklist_mapping(
                pf.source_values,
                pf.target_values,
                field_name=pf.name,
                multi_valued=pf.multi_valued,
                overrides=overrides.get(pf.name),
                inactive_values=pf.inactive_source_values,
            )
            for pf in picklist_fields
        }

    def map_record_value(self, raw_value: Any, mapping: PicklistMapping) -> Optional[str]:
        """
        Map one raw field value.

        Returns None when nothing maps, meaning the field must be left out
        of the outgoing payload.
        """
        if raw_value is None or raw_value == "":
            return None

        raw_value = str(raw_value)
        if not mapping.multi_valued:
            return mapping.value_map.get(raw_value)

        mapped = []
        for token in raw_value.split(MULTI_VALUE_SEPARATOR):
            token = token.strip()
            if not token:
                continue
            target = mapping.value_map.get(token)
            if target is None:
                logger.debug(f"Dropping unmapped {mapping.field_name} token {token!r}")
                continue
            if target not in mapped:
                mapped.append(target)

        if not mapped:
            return None
        return MULTI_VALUE_SEPARATOR.join(mapped)

    def apply_to_record(
        self,
        record: MigrationRecord,
        mappings: Mapping[str, PicklistMapping],
    ) -> MigrationRecord:
        """Rewrite every mapped picklist field of a record in place."""
        for field_name, mapping in mappings.items():
            if field_name not in record.fields:
                continue

            raw_value = record.fields[field_name]
            mapped = self.map_record_value(raw_value, mapping)

            if mapped is None:
                del record.fields[field_name]
                if raw_value not in (None, ""):
                    record.extras[field_name] = raw_value
                    message = f"{field_name}: value {raw_value!r} has no target counterpart, field omitted"
                    record.warnings.append(message)
                    logger.warning(f"{record.object_type} {record.source_id}: {message}")
            else:
                if mapping.multi_valued and mapped != raw_value:
                    record.extras.setdefault(field_name, raw_value)
                record.fields[field_name] = mapped

        return record

    def validate_picklist_mapping(self, mapping: PicklistMapping) -> Dict[str, Any]:
        """A missing default value is an error; other missing values are warnings."""
        validation = {"valid": True, "errors": [], "warnings": []}

        for value in mapping.missing_in_target:
            if value.default:
                validation["valid"] = False
                validation["errors"].append(
                    f'Default picklist value "{value.label}" ({value.value}) is missing in target '
                    f"for field {mapping.field_name}"
                )
            else:
                validation["warnings"].append(
                    f'Picklist value "{value.label}" ({value.value}) is missing in target '
                    f"for field {mapping.field_name}"
                )

        return validation

    def generate_mapping_report(
        self,
        picklist_fields: Iterable[PicklistField],
        mappings: Optional[Mapping[str, PicklistMapping]] = None,
    ) -> Dict[str, Any]:
        """Summarize value mismatches across all picklist fields."""
        report = {
            "total_fields": 0,
            "fields_with_mismatches": 0,
            "total_missing_values": 0,
            "fields": [],
        }

        for pf in picklist_fields:
            mapping = (mappings or {}).get(pf.name) or self.build_picklist_mapping(
                pf.source_values, pf.target_values, field_name=pf.name, multi_valued=pf.multi_valued
            )
            report["total_fields"] += 1

            field_report = {
                "name": pf.name,
                "label": pf.label,
                "type": pf.type.value,
                "source_value_count": len(pf.source_values),
                "target_value_count": len(pf.target_values),
                "missing_values": [v.to_dict() for v in mapping.missing_in_target],
            }
            if mapping.missing_in_target:
                report["fields_with_mismatches"] += 1
                report["total_missing_values"] += len(mapping.missing_in_target)

            report["fields"].append(field_report)

        return report
