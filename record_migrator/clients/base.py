"""Base client interface for talking to one instance."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..models.instance import InstanceHandle
from ..models.record import WriteResult


@dataclass
class QueryResult:
    """Rows returned by a query plus the instance's total count."""
    records: List[Dict[str, Any]] = field(default_factory=list)
    total_size: int = 0

    def __len__(self) -> int:
        return len(self.records)


class InstanceClient(ABC):
    """
    Base class for instance clients.

    A client wraps exactly one instance handle. All calls are synchronous
    and the engine never has more than one write in flight per client.

    Query filters are structured: ``in_filters`` maps a field name to the
    values it must be one of (conjunction across fields), ``where`` is an
    optional caller-supplied predicate ANDed with them.
    """

    def __init__(self, handle: InstanceHandle):
        self.handle = handle

    @property
    def name(self) -> str:
        return self.handle.display_name

    @abstractmethod
    def list_objects(self) -> List[Dict[str, Any]]:
        """List the object types visible in the instance."""
        pass

    @abstractmethod
    def describe_object(self, object_type: str) -> Dict[str, Any]:
        """
        Describe an object type.

        Returns:
            The raw describe body with ``fields`` and ``childRelationships``

        Raises:
            ObjectNotFoundError: if the type does not exist
        """
        pass

    @abstractmethod
    def query(
        self,
        object_type: str,
        fields: Sequence[str],
        in_filters: Optional[Dict[str, Sequence[str]]] = None,
        where: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> QueryResult:
        """Run a query and return every matching row (up to ``limit``)."""
        pass

    @abstractmethod
    def count(
        self,
        object_type: str,
        in_filters: Optional[Dict[str, Sequence[str]]] = None,
        where: Optional[str] = None,
    ) -> int:
        """Count matching rows."""
        pass

    @abstractmethod
    def insert_records(self, object_type: str, records: List[Dict[str, Any]]) -> List[WriteResult]:
        """
        Insert a batch of records with partial-success semantics.

        Returns one WriteResult per input record, in input order.
        """
        pass

    @abstractmethod
    def upsert_record(
        self,
        object_type: str,
        external_id_field: str,
        external_id_value: str,
        record: Dict[str, Any],
    ) -> WriteResult:
        """Create or update one record addressed by an external identifier."""
        pass

    @abstractmethod
    def delete_records(self, record_ids: List[str]) -> List[WriteResult]:
        """Delete a batch of records with partial-success semantics."""
        pass
