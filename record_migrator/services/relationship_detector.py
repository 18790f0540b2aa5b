"""Relationship detector: child objects available for cascade migration."""

import logging
from typing import List, Optional, Sequence

from ..clients.base import InstanceClient
from ..clients.exceptions import AuthenticationError, InstanceError
from ..extractors.schema_fetcher import SchemaFetcher
from ..models.schema import ChildRelationship

logger = logging.getLogger(__name__)

# Platform-maintained child objects that are never migrated
SYSTEM_CHILD_SUFFIXES = ("History", "Share", "Feed", "Tag", "Event")


class RelationshipDetector:
    """Finds child object / foreign key pairs that target a parent object."""

    def __init__(self, client: InstanceClient, schema_fetcher: Optional[SchemaFetcher] = None):
        self.client = client
        self.schema_fetcher = schema_fetcher or SchemaFetcher(client)

    def detect_child_relationships(self, parent_object: str) -> List[ChildRelationship]:
        """
        List the migratable child relationships of ``parent_object``.

        Args:
            parent_object: Parent object API name

        Returns:
            Relationships sorted by child object then foreign key field
        """
        schema = self.schema_fetcher.describe(parent_object)
        relationships = []
        seen = set()

        for rel in schema.child_relationships:
            if not rel.child_object or not rel.foreign_key_field:
                continue
            if rel.child_object.endswith(SYSTEM_CHILD_SUFFIXES):
                continue
            if rel.key in seen:
                continue
            seen.add(rel.key)
            relationships.append(rel)

        relationships.sort(key=lambda r: (r.child_object, r.foreign_key_field))
        logger.info(f"Found {len(relationships)} child relationships for {parent_object}")
        return relationships

    def estimate_counts(
        self,
        relationships: Sequence[ChildRelationship],
        parent_ids: Sequence[str],
    ) -> List[ChildRelationship]:
        """
        Fill ``estimated_count`` for each relationship.

        Counts are for display only. A relationship whose count query fails
        keeps ``estimated_count = None``.
        """
        for rel in relationships:
            if not parent_ids:
                rel.estimated_count = 0
                continue
            try:
                rel.estimated_count = self.client.count(
                    rel.child_object,
                    in_filters={rel.foreign_key_field: list(parent_ids)},
                )
            except AuthenticationError:
                raise
            except InstanceError as e:
                logger.warning(f"Cannot count {rel.child_object} via {rel.foreign_key_field}: {e}")
                rel.estimated_count = None
        return list(relationships)


def detect_child_relationships(client: InstanceClient, parent_object: str) -> List[ChildRelationship]:
    """Shortcut for RelationshipDetector(client).detect_child_relationships."""
    return RelationshipDetector(client).detect_child_relationships(parent_object)
