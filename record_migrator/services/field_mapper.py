"""Field mapper: reconciles source and target field descriptions."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from dateutil import parser as date_parser

from ..models.record import MigrationRecord
from ..models.schema import (
    FieldClassification,
    FieldDescriptor,
    FieldMappingEntry,
    FieldMappingResult,
    FieldType,
    ObjectSchema,
    Recommendation,
    SYSTEM_FIELDS,
    TEXT_TYPES,
    NUMBER_TYPES,
    are_types_convertible,
)

logger = logging.getLogger(__name__)


class FieldConversionError(ValueError):
    """A value could not be converted to the target field's kind."""


class FieldMapper:
    """
    Compares source and target field descriptions.

    Every source field lands in exactly one of ``exact``,
    ``compatible`` or ``missing_in_target``. Building the mapping is a
    pure function of its inputs.
    """

    def build_field_mapping(
        self,
        source_fields: Iterable[FieldDescriptor],
        target_fields: Iterable[FieldDescriptor],
    ) -> FieldMappingResult:
        """
        Classify every source field against the target fields.

        Args:
            source_fields: Field descriptors from the source instance
            target_fields: Field descriptors from the target instance

        Returns:
            FieldMappingResult with classifications and recommendations
        """
        mapping = FieldMappingResult()
        remaining_targets: Dict[str, FieldDescriptor] = {f.name: f for f in target_fields}
        seen = set()

        for source_field in source_fields:
            if source_field.name in seen:
                continue
            seen.add(source_field.name)

            target_field = remaining_targets.pop(source_field.name, None)

            if target_field is None:
                mapping.missing_in_target.append(FieldMappingEntry(
                    source_field=source_field.name,
                    target_field=None,
                    classification=FieldClassification.MISSING,
                    label=source_field.label,
                    source_type=source_field.type,
                    required=source_field.required,
                    createable=source_field.createable,
                    convertible=False,
                    conversion_note="Field does not exist in target; value will be skipped",
                ))
            elif source_field.type == target_field.type:
                mapping.exact.append(FieldMappingEntry(
                    source_field=source_field.name,
                    target_field=target_field.name,
                    classification=FieldClassification.EXACT,
                    label=source_field.label,
                    source_type=source_field.type,
                    target_type=target_field.type,
                    required=target_field.required,
                    createable=target_field.createable,
                    conversion_note=self._reference_note(source_field, target_field),
                ))
            else:
                convertible = are_types_convertible(source_field.type, target_field.type)
                note = f"Type mismatch: {source_field.type.value} -> {target_field.type.value}"
                if not convertible:
                    note += " (values are likely to be rejected)"
                mapping.compatible.append(FieldMappingEntry(
                    source_field=source_field.name,
                    target_field=target_field.name,
                    classification=FieldClassification.COMPATIBLE,
                    label=source_field.label,
                    source_type=source_field.type,
                    target_type=target_field.type,
                    required=target_field.required,
                    createable=target_field.createable,
                    convertible=convertible,
                    conversion_note=note,
                ))

        for target_field in remaining_targets.values():
            if target_field.writable:
                mapping.additional_in_target.append(target_field)

        mapping.recommendations = self.generate_recommendations(mapping)
        return mapping

    @staticmethod
    def _reference_note(source_field: FieldDescriptor, target_field: FieldDescriptor) -> str:
        if source_field.type != FieldType.REFERENCE:
            return ""
        if sorted(source_field.reference_to) != sorted(target_field.reference_to):
            return (
                f"Reference targets differ: {', '.join(sorted(source_field.reference_to))} -> "
                f"{', '.join(sorted(target_field.reference_to))}"
            )
        return ""

    def generate_recommendations(self, mapping: FieldMappingResult) -> List[Recommendation]:
        """Turn a mapping analysis into caller-facing findings."""
        recommendations = []

        for entry in mapping.missing_in_target:
            if entry.required:
                recommendations.append(Recommendation(
                    severity="error",
                    field=entry.source_field,
                    message=f'Required field "{entry.label}" ({entry.source_field}) is missing in target',
                    action="This field must exist in the target or migration will fail",
                ))
            else:
                recommendations.append(Recommendation(
                    severity="warning",
                    field=entry.source_field,
                    message=f'Field "{entry.label}" ({entry.source_field}) is missing in target',
                    action="Data in this field will be skipped during migration",
                ))

        for entry in mapping.compatible:
            recommendations.append(Recommendation(
                severity="warning",
                field=entry.source_field,
                message=f'{entry.conversion_note} for "{entry.label}"',
                action="Data may be lost or transformed during migration",
            ))

        for entry in mapping.exact:
            if entry.conversion_note:
                recommendations.append(Recommendation(
                    severity="warning",
                    field=entry.source_field,
                    message=f'{entry.conversion_note} for "{entry.label}"',
                    action="Referenced IDs may not resolve in the target",
                ))

        for target_field in mapping.additional_in_target:
            if target_field.required:
                recommendations.append(Recommendation(
                    severity="error",
                    field=target_field.name,
                    message=f'Target requires "{target_field.label}" ({target_field.name}) which has no source field',
                    action="Records will fail with REQUIRED_FIELD_MISSING unless the target field gets a default",
                ))

        return recommendations

    def validate_field_mapping(self, mapping: FieldMappingResult) -> Dict[str, Any]:
        """
        Pre-flight validation.

        Advisory only: the caller decides whether errors block the run.
        """
        validation = {"valid": True, "errors": [], "warnings": []}

        for entry in mapping.missing_in_target:
            if entry.required:
                validation["valid"] = False
                validation["errors"].append(
                    f"Required field missing in target: {entry.label} ({entry.source_field})"
                )
            else:
                validation["warnings"].append(
                    f"Optional field missing in target: {entry.label} ({entry.source_field})"
                )

        for target_field in mapping.additional_in_target:
            if target_field.required:
                validation["valid"] = False
                validation["errors"].append(
                    f"Target-required field has no source value: {target_field.label} ({target_field.name})"
                )

        for entry in mapping.compatible:
            validation["warnings"].append(
                f"Type mismatch: {entry.label} ({entry.source_type.value} -> {entry.target_type.value})"
            )

        return validation

    def map_record_fields(
        self,
        record: MigrationRecord,
        mapping: FieldMappingResult,
        target_schema: ObjectSchema,
        excluded_fields: Iterable[str] = (),
    ) -> MigrationRecord:
        """
        Reduce a record's payload to fields the target accepts.

        Values for fields the target lacks, or cannot create, move to
        ``record.extras``. Mapped values are converted to the target kind.
        """
        excluded = set(excluded_fields)
        mapped = mapping.mapped_fields
        payload: Dict[str, Any] = {}

        for field_name, value in record.fields.items():
            if field_name in SYSTEM_FIELDS:
                continue

            target_name = mapped.get(field_name)
            target_field = target_schema.get_field(target_name) if target_name else None

            if field_name in excluded or target_field is None or not target_field.writable:
                record.extras[field_name] = value
                continue

            try:
                payload[target_name] = self.convert_field_value(value, target_field)
            except FieldConversionError as e:
                record.warnings.append(str(e))
                logger.warning(f"{record.object_type} {record.source_id}: {e}")
                payload[target_name] = value

        record.fields = payload
        return record

    def convert_field_value(self, value: Any, target_field: FieldDescriptor) -> Any:
        """Convert a value to the target field's kind."""
        if value is None:
            return None

        target_type = target_field.type
        try:
            if target_type in TEXT_TYPES:
                if isinstance(value, bool):
                    return "true" if value else "false"
                return str(value)

            if target_type == FieldType.BOOLEAN:
                if isinstance(value, str):
                    return value.strip().lower() in ("true", "1", "yes", "y")
                return bool(value)

            if target_type in (FieldType.INT, FieldType.LONG):
                if isinstance(value, bool):
                    return int(value)
                return int(float(value))

            if target_type in NUMBER_TYPES:
                if isinstance(value, bool):
                    return float(value)
                return float(value)

            if target_type == FieldType.DATE:
                return date_parser.parse(str(value)).date().isoformat()

            if target_type == FieldType.DATETIME:
                return date_parser.parse(str(value)).isoformat()

        except (TypeError, ValueError, OverflowError) as e:
            raise FieldConversionError(
                f"Cannot convert {target_field.name} value {value!r} to {target_type.value}: {e}"
            ) from e

        # Picklist and reference values are handled by their own mappers
        return value


_default_mapper = FieldMapper()


def build_field_mapping(
    source_fields: Iterable[FieldDescriptor],
    target_fields: Iterable[FieldDescriptor],
) -> FieldMappingResult:
    """Module-level shortcut for FieldMapper().build_field_mapping."""
    return _default_mapper.build_field_mapping(source_fields, target_fields)
