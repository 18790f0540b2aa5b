"""Pre-flight analysis endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..dependencies import ClientFactory, get_client_factory, raise_http_error
from ..models import AnalysisRequest, RelationshipListResponse, RelationshipRequest
from ...clients.exceptions import InstanceError
from ...orchestrator import analyze_object
from ...services.relationship_detector import RelationshipDetector

router = APIRouter()


@router.post("/analysis/fields")
def analyze_fields(data: AnalysisRequest, factory: ClientFactory = Depends(get_client_factory)) -> Dict[str, Any]:
    """Field mapping of an object between two instances."""
    try:
        analysis = analyze_object(factory(data.source.to_handle()), factory(data.target.to_handle()), data.object_name)
    except (InstanceError, ValueError) as e:
        raise_http_error(e)

    return {
        "object_name": analysis["object_name"],
        "field_mapping": analysis["field_mapping"],
        "validation": analysis["field_validation"],
    }


@router.post("/analysis/picklists")
def analyze_picklists(data: AnalysisRequest, factory: ClientFactory = Depends(get_client_factory)) -> Dict[str, Any]:
    """Picklist value mapping of an object between two instances."""
    try:
        analysis = analyze_object(factory(data.source.to_handle()), factory(data.target.to_handle()), data.object_name)
    except (InstanceError, ValueError) as e:
        raise_http_error(e)

    return {
        "object_name": analysis["object_name"],
        "picklists": analysis["picklists"],
        "report": analysis["picklist_report"],
        "validation": analysis["picklist_validation"],
    }


@router.post("/relationships", response_model=RelationshipListResponse)
def list_relationships(data: RelationshipRequest, factory: ClientFactory = Depends(get_client_factory)):
    """Child relationships of an object, with counts when parent IDs are given."""
    try:
        detector = RelationshipDetector(factory(data.source.to_handle()))
        relationships = detector.detect_child_relationships(data.object_name)
        if data.parent_ids:
            detector.estimate_counts(relationships, data.parent_ids)
    except (InstanceError, ValueError) as e:
        raise_http_error(e)

    return RelationshipListResponse(
        object_name=data.object_name,
        relationships=[r.to_dict() for r in relationships],
        total=len(relationships),
    )
