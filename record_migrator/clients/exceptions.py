"""Exceptions raised by instance clients."""

from typing import List, Optional

from ..models.record import ApiError


class InstanceError(Exception):
    """A request against an instance failed as a whole."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        errors: Optional[List[ApiError]] = None,
        instance: str = "",
    ):
        super().__init__(message)
        self.status = status
        self.errors = errors or []
        self.instance = instance

    @property
    def error_codes(self) -> List[str]:
        return [e.status_code for e in self.errors if e.status_code]


class AuthenticationError(InstanceError):
    """The credential for an instance was rejected or has expired."""


class ObjectNotFoundError(InstanceError):
    """The object type does not exist (or is not visible) in the instance."""


class ApiLimitError(InstanceError):
    """The instance throttled the request."""
