"""Schema fetcher: object descriptions from one instance."""

import logging
from typing import Dict, List

from ..clients.base import InstanceClient
from ..models.schema import FieldDescriptor, ObjectSchema, TEXT_TYPES

logger = logging.getLogger(__name__)


class SchemaFetcher:
    """
    Fetches and parses object descriptions.

    Results are cached for the lifetime of the fetcher only. A new fetcher
    is created for every run so schema changes between runs are picked up.
    """

    def __init__(self, client: InstanceClient):
        self.client = client
        self._cache: Dict[str, ObjectSchema] = {}

    def describe(self, object_type: str) -> ObjectSchema:
        """Describe an object type (cached per fetcher)."""
        if object_type not in self._cache:
            logger.debug(f"Describing {object_type} on {self.client.name}")
            raw = self.client.describe_object(object_type)
            schema = ObjectSchema.from_describe(raw)
            if not schema.name:
                schema.name = object_type
            self._cache[object_type] = schema
        return self._cache[object_type]

    def get_fields(self, object_type: str) -> List[FieldDescriptor]:
        return self.describe(object_type).field_list

    def exportable_fields(self, object_type: str) -> List[str]:
        """Createable, non-calculated fields plus Id."""
        return self.describe(object_type).exportable_fields()

    def external_id_fields(self, object_type: str) -> List[FieldDescriptor]:
        """Text fields flagged as external identifiers that can be written."""
        return [
            f for f in self.get_fields(object_type)
            if f.external_id and f.createable and f.type in TEXT_TYPES
        ]

    def clear(self) -> None:
        self._cache.clear()
