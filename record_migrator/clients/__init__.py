"""Clients for source and target instances."""

from .base import InstanceClient, QueryResult
from .exceptions import (
    ApiLimitError,
    AuthenticationError,
    InstanceError,
    ObjectNotFoundError,
)
from .rest_client import RestInstanceClient, build_soql, soql_literal

__all__ = [
    "InstanceClient",
    "QueryResult",
    "RestInstanceClient",
    "InstanceError",
    "AuthenticationError",
    "ObjectNotFoundError",
    "ApiLimitError",
    "build_soql",
    "soql_literal",
]
