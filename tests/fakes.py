"""In-memory platform instance used by the tests."""

import copy
from typing import Any, Callable, Dict, List, Optional, Sequence

from record_migrator.clients.base import InstanceClient, QueryResult
from record_migrator.clients.exceptions import (
    AuthenticationError,
    InstanceError,
    ObjectNotFoundError,
)
from record_migrator.models.instance import InstanceHandle
from record_migrator.models.record import ApiError, WriteResult


def make_field(name: str, type: str = "string", **overrides) -> Dict[str, Any]:
    """Describe entry for one field."""
    data = {
        "name": name,
        "label": overrides.pop("label", name.replace("__c", "").replace("_", " ")),
        "type": type,
        "nillable": True,
        "createable": True,
        "updateable": True,
        "calculated": False,
        "defaultedOnCreate": False,
        "externalId": False,
        "picklistValues": [],
        "referenceTo": [],
    }
    data.update(overrides)
    return data


def picklist_values(*values: str, default: Optional[str] = None) -> List[Dict[str, Any]]:
    return [
        {"value": v, "label": v, "active": True, "defaultValue": v == default}
        for v in values
    ]


ID_FIELD = make_field("Id", "id", nillable=False, createable=False, updateable=False)

AUDIT_FIELDS = [
    make_field("CreatedDate", "datetime", createable=False, updateable=False),
    make_field("LastModifiedDate", "datetime", createable=False, updateable=False),
    make_field("SystemModstamp", "datetime", createable=False, updateable=False),
]


class FakeInstance(InstanceClient):
    """
    Platform-like instance kept in memory.

    Enforces required fields, reference integrity, restricted picklists
    and unique fields on write, generates IDs, supports external id
    upsert and composite delete. Every call is recorded in ``calls``.
    """

    def __init__(self, name: str, prefix: str = "a00"):
        super().__init__(InstanceHandle(
            instance_url=f"https://{name}.example.com",
            access_token=f"{name}-token",
            instance_id=name.upper(),
            name=name,
        ))
        self.prefix = prefix
        self.schemas: Dict[str, Dict[str, Any]] = {}
        self.data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.validation_rules: List[Callable[[str, Dict[str, Any]], Optional[str]]] = []
        self.revoked = False
        self.revoke_after_writes: Optional[int] = None
        self.failing_describes: Dict[str, InstanceError] = {}
        self.failing_queries: Dict[str, InstanceError] = {}
        self.write_requests = 0
        self._counter = 0
        # Named record IDs for test assertions
        self.ids: Dict[str, str] = {}

    # Setup helpers

    def add_object(
        self,
        name: str,
        fields: Sequence[Dict[str, Any]],
        child_relationships: Sequence[Dict[str, Any]] = (),
    ) -> None:
        self.schemas[name] = {
            "name": name,
            "label": name,
            "keyPrefix": self.prefix,
            "fields": [ID_FIELD] + list(fields) + AUDIT_FIELDS,
            "childRelationships": list(child_relationships),
        }
        self.data.setdefault(name, {})

    def add_record(self, object_type: str, record_id: Optional[str] = None, **values) -> str:
        record_id = record_id or self._next_id()
        row = {"Id": record_id, "CreatedDate": "2024-01-01T00:00:00.000+0000"}
        row.update(values)
        self.data[object_type][record_id] = row
        return record_id

    def rows(self, object_type: str) -> List[Dict[str, Any]]:
        return list(self.data.get(object_type, {}).values())

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        for rows in self.data.values():
            if record_id in rows:
                return rows[record_id]
        return None

    def count_calls(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    # InstanceClient

    def list_objects(self) -> List[Dict[str, Any]]:
        self._check_auth()
        return [{"name": name} for name in self.schemas]

    def describe_object(self, object_type: str) -> Dict[str, Any]:
        self.calls.append(("describe", object_type))
        self._check_auth()
        if object_type in self.failing_describes:
            raise self.failing_describes[object_type]
        if object_type not in self.schemas:
            raise ObjectNotFoundError(f"{object_type} not found", 404, instance=self.name)
        return copy.deepcopy(self.schemas[object_type])

    def query(
        self,
        object_type: str,
        fields: Sequence[str],
        in_filters: Optional[Dict[str, Sequence[str]]] = None,
        where: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> QueryResult:
        self.calls.append(("query", object_type, list(fields), copy.deepcopy(in_filters), where, limit))
        self._check_auth()
        if object_type in self.failing_queries:
            raise self.failing_queries[object_type]
        matches = self._matching(object_type, in_filters)

        rows = []
        for row in matches:
            out = {"attributes": {"type": object_type}, "Id": row["Id"]}
            for name in fields:
                if name != "Id":
                    out[name] = row.get(name)
            rows.append(out)

        total = len(rows)
        if limit is not None:
            rows = rows[:limit]
        return QueryResult(records=rows, total_size=total)

    def count(
        self,
        object_type: str,
        in_filters: Optional[Dict[str, Sequence[str]]] = None,
        where: Optional[str] = None,
    ) -> int:
        self.calls.append(("count", object_type, copy.deepcopy(in_filters), where))
        self._check_auth()
        return len(self._matching(object_type, in_filters))

    def insert_records(self, object_type: str, records: List[Dict[str, Any]]) -> List[WriteResult]:
        self.calls.append(("insert", object_type, len(records)))
        self._before_write()
        self._require_object(object_type)

        results = []
        for record in records:
            errors = self._validate(object_type, record)
            if errors:
                results.append(WriteResult(success=False, errors=errors))
                continue
            record_id = self._next_id()
            self.data[object_type][record_id] = {"Id": record_id, **record}
            results.append(WriteResult(success=True, id=record_id, created=True))
        return results

    def upsert_record(
        self,
        object_type: str,
        external_id_field: str,
        external_id_value: str,
        record: Dict[str, Any],
    ) -> WriteResult:
        self.calls.append(("upsert", object_type, external_id_field, external_id_value))
        self._before_write()
        self._require_object(object_type)

        existing = [
            row for row in self.data[object_type].values()
            if row.get(external_id_field) == external_id_value
        ]
        if len(existing) > 1:
            return WriteResult(
                success=False,
                errors=[ApiError("DUPLICATE_EXTERNAL_ID", "Duplicate external id", [external_id_field])],
                http_status=300,
            )

        body = {k: v for k, v in record.items() if k != external_id_field}
        if existing:
            merged = {**existing[0], **body}
            errors = self._validate(object_type, merged, exclude_id=existing[0]["Id"])
            if errors:
                return WriteResult(success=False, errors=errors, http_status=400)
            existing[0].update(body)
            return WriteResult(success=True, id=existing[0]["Id"], created=False, http_status=200)

        new_row = {**body, external_id_field: external_id_value}
        errors = self._validate(object_type, new_row)
        if errors:
            return WriteResult(success=False, errors=errors, http_status=400)
        record_id = self._next_id()
        self.data[object_type][record_id] = {"Id": record_id, **new_row}
        return WriteResult(success=True, id=record_id, created=True, http_status=201)

    def delete_records(self, record_ids: List[str]) -> List[WriteResult]:
        self.calls.append(("delete", list(record_ids)))
        self._before_write()

        results = []
        for record_id in record_ids:
            for rows in self.data.values():
                if record_id in rows:
                    del rows[record_id]
                    results.append(WriteResult(success=True, id=record_id))
                    break
            else:
                results.append(WriteResult(
                    success=False,
                    id=record_id,
                    errors=[ApiError("ENTITY_IS_DELETED", "entity is deleted")],
                ))
        return results

    # Internals

    def _next_id(self) -> str:
        self._counter += 1
        return f"{self.prefix}{self._counter:012d}"

    def _check_auth(self) -> None:
        if self.revoked:
            raise AuthenticationError(
                f"Session for {self.name} expired or is invalid",
                401,
                [ApiError("INVALID_SESSION_ID", "Session expired or invalid")],
                self.name,
            )

    def _before_write(self) -> None:
        if self.revoke_after_writes is not None and self.write_requests >= self.revoke_after_writes:
            self.revoked = True
        self._check_auth()
        self.write_requests += 1

    def _require_object(self, object_type: str) -> None:
        if object_type not in self.schemas:
            raise ObjectNotFoundError(f"{object_type} not found", 404, instance=self.name)

    def _matching(self, object_type: str, in_filters: Optional[Dict[str, Sequence[str]]]) -> List[Dict[str, Any]]:
        self._require_object(object_type)
        rows = list(self.data[object_type].values())
        for field_name, values in (in_filters or {}).items():
            allowed = set(values)
            rows = [row for row in rows if row.get(field_name) in allowed]
        return rows

    def _validate(self, object_type: str, record: Dict[str, Any], exclude_id: Optional[str] = None) -> List[ApiError]:
        fields = {f["name"]: f for f in self.schemas[object_type]["fields"]}
        errors = []

        for name in record:
            if name in ("Id", "attributes"):
                continue
            descriptor = fields.get(name)
            if descriptor is None:
                errors.append(ApiError("INVALID_FIELD", f"No such column '{name}' on {object_type}", [name]))
            elif not descriptor["createable"] and exclude_id is None:
                errors.append(ApiError(
                    "INVALID_FIELD_FOR_INSERT_UPDATE", f"Unable to create/update fields: {name}", [name]
                ))

        missing = [
            f["name"] for f in fields.values()
            if not f["nillable"] and f["createable"] and not f["defaultedOnCreate"]
            and record.get(f["name"]) in (None, "")
        ]
        if missing:
            errors.append(ApiError(
                "REQUIRED_FIELD_MISSING", f"Required fields are missing: [{', '.join(missing)}]", missing
            ))

        for name, value in record.items():
            descriptor = fields.get(name)
            if descriptor is None or value in (None, ""):
                continue
            if descriptor["type"] == "reference":
                if not any(value in self.data.get(target, {}) for target in descriptor["referenceTo"]):
                    errors.append(ApiError(
                        "INVALID_CROSS_REFERENCE_KEY", f"invalid cross reference id: {value}", [name]
                    ))
            if descriptor.get("restrictedPicklist"):
                allowed = {pv["value"] for pv in descriptor["picklistValues"]}
                tokens = str(value).split(";") if descriptor["type"] == "multipicklist" else [value]
                if any(token not in allowed for token in tokens):
                    errors.append(ApiError(
                        "INVALID_OR_NULL_FOR_RESTRICTED_PICKLIST", f"bad value for restricted picklist field: {value}", [name]
                    ))
            if descriptor.get("unique"):
                for row in self.data[object_type].values():
                    if row["Id"] != exclude_id and row.get(name) == value:
                        errors.append(ApiError("DUPLICATE_VALUE", f"duplicate value found: {name}", [name]))
                        break

        for rule in self.validation_rules:
            message = rule(object_type, record)
            if message:
                errors.append(ApiError("FIELD_CUSTOM_VALIDATION_EXCEPTION", message))

        return errors
