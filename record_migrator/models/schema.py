"""Schema models for object descriptions and mapping results."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional


class FieldType(str, Enum):
    """Data kinds reported by the platform's describe call."""
    STRING = "string"
    TEXTAREA = "textarea"
    EMAIL = "email"
    URL = "url"
    PHONE = "phone"
    COMBOBOX = "combobox"
    ENCRYPTED_STRING = "encryptedstring"
    PICKLIST = "picklist"
    MULTIPICKLIST = "multipicklist"
    BOOLEAN = "boolean"
    INT = "int"
    LONG = "long"
    DOUBLE = "double"
    CURRENCY = "currency"
    PERCENT = "percent"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    REFERENCE = "reference"
    ID = "id"
    ADDRESS = "address"
    LOCATION = "location"
    BASE64 = "base64"
    ANY = "anyType"

    @classmethod
    def parse(cls, value: Optional[str]) -> "FieldType":
        try:
            return cls(value)
        except ValueError:
            return cls.ANY


TEXT_TYPES = frozenset({
    FieldType.STRING, FieldType.TEXTAREA, FieldType.EMAIL, FieldType.URL,
    FieldType.PHONE, FieldType.COMBOBOX, FieldType.ENCRYPTED_STRING,
})
NUMBER_TYPES = frozenset({
    FieldType.INT, FieldType.LONG, FieldType.DOUBLE, FieldType.CURRENCY, FieldType.PERCENT,
})
DATE_TYPES = frozenset({FieldType.DATE, FieldType.DATETIME})
PICKLIST_TYPES = frozenset({FieldType.PICKLIST, FieldType.MULTIPICKLIST})

# Kinds that hold a single scalar that can always be rendered as text
_TEXT_RENDERABLE = TEXT_TYPES | NUMBER_TYPES | DATE_TYPES | PICKLIST_TYPES | {FieldType.BOOLEAN}

# Fields the platform maintains itself; never part of an outgoing payload
SYSTEM_FIELDS = frozenset({
    "Id",
    "attributes",
    "CreatedDate",
    "CreatedById",
    "LastModifiedDate",
    "LastModifiedById",
    "SystemModstamp",
    "LastActivityDate",
    "LastViewedDate",
    "LastReferencedDate",
    "IsDeleted",
})


def are_types_convertible(source_type: FieldType, target_type: FieldType) -> bool:
    """Check whether a value of one kind can be written to another kind."""
    if source_type == target_type:
        return True
    for group in (TEXT_TYPES, NUMBER_TYPES, DATE_TYPES, PICKLIST_TYPES):
        if source_type in group and target_type in group:
            return True
    if target_type in TEXT_TYPES and source_type in _TEXT_RENDERABLE:
        return True
    if target_type in PICKLIST_TYPES and source_type in TEXT_TYPES:
        return True
    return False


@dataclass(frozen=True)
class PicklistValue:
    """One enumerated value of a picklist field."""
    value: str
    label: str = ""
    active: bool = True
    default: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "label": self.label,
            "active": self.active,
            "default": self.default,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PicklistValue":
        return cls(
            value=data.get("value", ""),
            label=data.get("label") or data.get("value", ""),
            active=data.get("active", True),
            default=data.get("defaultValue", data.get("default", False)) or False,
        )


@dataclass
class FieldDescriptor:
    """Description of a single field on an object in one instance."""
    name: str
    type: FieldType
    label: str = ""
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    nillable: bool = True
    createable: bool = True
    updateable: bool = True
    calculated: bool = False
    defaulted_on_create: bool = False
    external_id: bool = False
    picklist_values: List[PicklistValue] = field(default_factory=list)
    reference_to: List[str] = field(default_factory=list)

    @property
    def required(self) -> bool:
        """A value must be supplied on create."""
        return not self.nillable and self.createable and not self.defaulted_on_create

    @property
    def writable(self) -> bool:
        return self.createable and not self.calculated

    @property
    def is_picklist(self) -> bool:
        return self.type in PICKLIST_TYPES

    @property
    def active_picklist_values(self) -> List[PicklistValue]:
        return [pv for pv in self.picklist_values if pv.active]

    @property
    def inactive_picklist_values(self) -> List[PicklistValue]:
        return [pv for pv in self.picklist_values if not pv.active]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result = {
            "name": self.name,
            "label": self.label,
            "type": self.type.value,
            "required": self.required,
            "nillable": self.nillable,
            "createable": self.createable,
            "updateable": self.updateable,
            "calculated": self.calculated,
            "externalId": self.external_id,
        }
        if self.length:
            result["length"] = self.length
        if self.precision:
            result["precision"] = self.precision
            result["scale"] = self.scale
        if self.picklist_values:
            result["picklistValues"] = [pv.to_dict() for pv in self.picklist_values]
        if self.reference_to:
            result["referenceTo"] = list(self.reference_to)
        return result

    @classmethod
    def from_describe(cls, data: Dict[str, Any]) -> "FieldDescriptor":
        """Create from one entry of a describe call's ``fields`` list."""
        return cls(
            name=data["name"],
            type=FieldType.parse(data.get("type")),
            label=data.get("label") or data["name"],
            length=data.get("length") or None,
            precision=data.get("precision") or None,
            scale=data.get("scale"),
            nillable=data.get("nillable", True),
            createable=data.get("createable", True),
            updateable=data.get("updateable", True),
            calculated=data.get("calculated", False),
            defaulted_on_create=data.get("defaultedOnCreate", False),
            external_id=data.get("externalId", False),
            picklist_values=[PicklistValue.from_dict(pv) for pv in data.get("picklistValues") or []],
            reference_to=list(data.get("referenceTo") or []),
        )


@dataclass
class ChildRelationship:
    """A child object whose foreign key targets a parent object."""
    relationship_name: Optional[str]
    child_object: str
    foreign_key_field: str
    cascade_delete: bool = False
    estimated_count: Optional[int] = None

    @property
    def key(self) -> str:
        return f"{self.child_object}.{self.foreign_key_field}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "relationship_name": self.relationship_name,
            "child_object": self.child_object,
            "foreign_key_field": self.foreign_key_field,
            "cascade_delete": self.cascade_delete,
            "estimated_count": self.estimated_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChildRelationship":
        """Accepts both this model's keys and the describe call's keys."""
        return cls(
            relationship_name=data.get("relationship_name", data.get("relationshipName")),
            child_object=data.get("child_object") or data.get("childSObject") or "",
            foreign_key_field=data.get("foreign_key_field") or data.get("field") or "",
            cascade_delete=data.get("cascade_delete", data.get("cascadeDelete", False)) or False,
            estimated_count=data.get("estimated_count"),
        )


@dataclass
class ObjectSchema:
    """Description of one object type in one instance."""
    name: str
    label: str = ""
    key_prefix: Optional[str] = None
    fields: Dict[str, FieldDescriptor] = field(default_factory=dict)
    child_relationships: List[ChildRelationship] = field(default_factory=list)

    @property
    def field_list(self) -> List[FieldDescriptor]:
        return list(self.fields.values())

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        return self.fields.get(name)

    def exportable_fields(self) -> List[str]:
        """Fields worth reading from the source: writable, plus the record Id."""
        names = [f.name for f in self.fields.values() if f.writable]
        if "Id" not in names:
            names.insert(0, "Id")
        return names

    def reference_fields_to(self, object_name: str) -> List[FieldDescriptor]:
        """Reference fields whose targets include ``object_name``."""
        return [
            f for f in self.fields.values()
            if f.type == FieldType.REFERENCE and object_name in f.reference_to
        ]

    @classmethod
    def from_describe(cls, data: Dict[str, Any]) -> "ObjectSchema":
        """Create from a describe call's response body."""
        fields = {}
        for field_data in data.get("fields") or []:
            descriptor = FieldDescriptor.from_describe(field_data)
            fields[descriptor.name] = descriptor

        relationships = [
            ChildRelationship.from_dict(rel)
            for rel in data.get("childRelationships") or []
        ]

        return cls(
            name=data.get("name", ""),
            label=data.get("label", ""),
            key_prefix=data.get("keyPrefix"),
            fields=fields,
            child_relationships=relationships,
        )


class FieldClassification(str, Enum):
    """How a source field relates to the target schema."""
    EXACT = "exact"
    COMPATIBLE = "compatible"
    MISSING = "missing"


@dataclass
class FieldMappingEntry:
    """Classification of one source field against the target schema."""
    source_field: str
    target_field: Optional[str]
    classification: FieldClassification
    label: str = ""
    source_type: Optional[FieldType] = None
    target_type: Optional[FieldType] = None
    required: bool = False
    createable: bool = True
    convertible: bool = True
    conversion_note: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_field": self.source_field,
            "target_field": self.target_field,
            "classification": self.classification.value,
            "label": self.label,
            "source_type": self.source_type.value if self.source_type else None,
            "target_type": self.target_type.value if self.target_type else None,
            "required": self.required,
            "createable": self.createable,
            "convertible": self.convertible,
            "conversion_note": self.conversion_note,
        }


@dataclass
class Recommendation:
    """A pre-flight finding for the caller to act on."""
    severity: str  # error, warning
    field: str
    message: str
    action: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity,
            "field": self.field,
            "message": self.message,
            "action": self.action,
        }


@dataclass
class FieldMappingResult:
    """Field-by-field comparison of a source and target object."""
    exact: List[FieldMappingEntry] = field(default_factory=list)
    compatible: List[FieldMappingEntry] = field(default_factory=list)
    missing_in_target: List[FieldMappingEntry] = field(default_factory=list)
    additional_in_target: List[FieldDescriptor] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)

    @property
    def entries(self) -> List[FieldMappingEntry]:
        return self.exact + self.compatible + self.missing_in_target

    @property
    def mapped_fields(self) -> Dict[str, str]:
        """Source field -> target field for every field that can be sent."""
        return {
            e.source_field: e.target_field
            for e in self.exact + self.compatible
            if e.target_field
        }

    def classification_of(self, source_field: str) -> Optional[FieldClassification]:
        for entry in self.entries:
            if entry.source_field == source_field:
                return entry.classification
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exact": [e.to_dict() for e in self.exact],
            "compatible": [e.to_dict() for e in self.compatible],
            "missing_in_target": [e.to_dict() for e in self.missing_in_target],
            "additional_in_target": [f.to_dict() for f in self.additional_in_target],
            "recommendations": [r.to_dict() for r in self.recommendations],
        }


@dataclass
class PicklistField:
    """
    A picklist field present in both instances.

    ``source_values`` and ``target_values`` hold active values only.
    Deactivated source values are kept apart so existing records that
    still carry them can be mapped.
    """
    name: str
    label: str
    type: FieldType
    source_values: List[PicklistValue] = field(default_factory=list)
    target_values: List[PicklistValue] = field(default_factory=list)
    inactive_source_values: List[PicklistValue] = field(default_factory=list)

    @property
    def multi_valued(self) -> bool:
        return self.type == FieldType.MULTIPICKLIST

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "type": self.type.value,
            "source_values": [v.to_dict() for v in self.source_values],
            "target_values": [v.to_dict() for v in self.target_values],
        }


@dataclass(frozen=True)
class PicklistMapping:
    """
    Value mapping for one picklist field.

    Instances are frozen: once built for a run, the mapping cannot change.
    """
    field_name: str
    value_map: Mapping[str, str]
    multi_valued: bool = False
    exact_matches: tuple = ()
    missing_in_target: tuple = ()
    additional_in_target: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "value_map", MappingProxyType(dict(self.value_map)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field_name": self.field_name,
            "multi_valued": self.multi_valued,
            "value_map": dict(self.value_map),
            "exact_matches": list(self.exact_matches),
            "missing_in_target": [v.to_dict() for v in self.missing_in_target],
            "additional_in_target": [v.to_dict() for v in self.additional_in_target],
        }
