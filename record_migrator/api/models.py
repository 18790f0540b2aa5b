"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.instance import InstanceHandle
from ..models.migration import MAX_BATCH_SIZE, MigrationConfig


class InstanceModel(BaseModel):
    instance_url: str
    access_token: str
    instance_id: str = ""
    is_sandbox: bool = False
    name: str = ""
    api_version: str = "59.0"

    def to_handle(self) -> InstanceHandle:
        return InstanceHandle.from_dict(self.model_dump())


class ChildRelationshipModel(BaseModel):
    child_object: str
    foreign_key_field: str
    relationship_name: Optional[str] = None
    cascade_delete: bool = False


class LookupModel(BaseModel):
    field: str
    object: str
    name_field: str = "Name"


# Request Models
class AnalysisRequest(BaseModel):
    source: InstanceModel
    target: InstanceModel
    object_name: str


class RelationshipRequest(BaseModel):
    source: InstanceModel
    object_name: str
    parent_ids: List[str] = Field(default_factory=list)


class MigrationStartRequest(BaseModel):
    source: InstanceModel
    target: InstanceModel
    object_name: str
    record_ids: List[str] = Field(default_factory=list)
    where: Optional[str] = None
    record_limit: int = Field(default=200, gt=0)
    relationships: List[ChildRelationshipModel] = Field(default_factory=list)
    external_id_field: Optional[str] = None
    child_external_id_fields: Dict[str, str] = Field(default_factory=dict)
    lookup: Optional[LookupModel] = None
    picklist_overrides: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    excluded_fields: List[str] = Field(default_factory=list)
    batch_size: int = Field(default=MAX_BATCH_SIZE, ge=1, le=MAX_BATCH_SIZE)
    max_error_examples: int = Field(default=5, ge=0)

    def to_config(self) -> MigrationConfig:
        return MigrationConfig.from_dict(self.model_dump(exclude={"source", "target"}))


class RollbackRequest(BaseModel):
    target: InstanceModel
    record_ids: List[str]


# Response Models
class RunResponse(BaseModel):
    result: Dict[str, Any]
    progress: List[Dict[str, Any]] = Field(default_factory=list)


class RelationshipListResponse(BaseModel):
    object_name: str
    relationships: List[Dict[str, Any]]
    total: int
