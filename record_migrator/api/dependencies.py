"""Shared route dependencies."""

from typing import Callable

from fastapi import HTTPException

from ..clients.base import InstanceClient
from ..clients.exceptions import (
    AuthenticationError,
    InstanceError,
    ObjectNotFoundError,
)
from ..models.instance import InstanceHandle
from ..orchestrator import as_client

ClientFactory = Callable[[InstanceHandle], InstanceClient]


def get_client_factory() -> ClientFactory:
    """Client construction for request handlers; overridden in tests."""
    return as_client


def raise_http_error(error: Exception) -> None:
    """Translate engine exceptions into HTTP errors."""
    if isinstance(error, AuthenticationError):
        raise HTTPException(status_code=401, detail=str(error)) from error
    if isinstance(error, ObjectNotFoundError):
        raise HTTPException(status_code=404, detail=str(error)) from error
    if isinstance(error, InstanceError):
        raise HTTPException(status_code=502, detail=str(error)) from error
    if isinstance(error, ValueError):
        raise HTTPException(status_code=400, detail=str(error)) from error
    raise error
