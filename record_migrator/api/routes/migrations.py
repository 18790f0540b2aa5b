"""Migration execution endpoints."""

import logging
from typing import List

from fastapi import APIRouter, Depends

from ..dependencies import ClientFactory, get_client_factory, raise_http_error
from ..models import MigrationStartRequest, RollbackRequest, RunResponse
from ...clients.exceptions import InstanceError
from ...models.migration import ProgressEvent
from ...orchestrator import rollback, start_migration

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/start", response_model=RunResponse)
def run_migration(data: MigrationStartRequest, factory: ClientFactory = Depends(get_client_factory)):
    """
    Run a migration to completion.

    Runs synchronously in the server's worker pool. The response carries
    the full result and every progress event emitted during the run.
    """
    events: List[ProgressEvent] = []
    try:
        config = data.to_config()
        source = factory(data.source.to_handle())
        target = factory(data.target.to_handle())
    except ValueError as e:
        raise_http_error(e)

    result = start_migration(source, target, config, on_progress=events.append)
    logger.info(f"Migration {result.id} finished in state {result.state.value}")

    return RunResponse(result=result.to_dict(), progress=[e.to_dict() for e in events])


@router.post("/rollback", response_model=RunResponse)
def rollback_migration(data: RollbackRequest, factory: ClientFactory = Depends(get_client_factory)):
    """Delete records created by an earlier run."""
    events: List[ProgressEvent] = []
    try:
        target = factory(data.target.to_handle())
        result = rollback(target, data.record_ids, on_progress=events.append)
    except (InstanceError, ValueError) as e:
        raise_http_error(e)

    return RunResponse(result=result.to_dict(), progress=[e.to_dict() for e in events])
