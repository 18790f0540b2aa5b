"""Lookup remapper: translates one reference field across instances by name."""

import logging
from typing import Dict, Iterable, List, Mapping

from ..clients.base import InstanceClient
from ..clients.exceptions import AuthenticationError, InstanceError
from ..models.migration import LookupConfig
from ..models.record import MigrationRecord

logger = logging.getLogger(__name__)


class LookupRemapper:
    """
    Builds and applies the remap table for a single reference field.

    The referenced records are matched across instances by their display
    name (``config.name_field``). A value with no counterpart is cleared,
    never sent as a source-side ID.
    """

    def __init__(self, config: LookupConfig):
        self.config = config

    @property
    def field(self) -> str:
        return self.config.field

    def collect_ids(self, records: Iterable[MigrationRecord]) -> List[str]:
        """Distinct non-null values of the designated field, in first-seen order."""
        seen = {}
        for record in records:
            value = record.fields.get(self.config.field)
            if value and value not in seen:
                seen[value] = True
        return list(seen)

    def build_lookup_id_mapping(
        self,
        source_client: InstanceClient,
        target_client: InstanceClient,
        records: Iterable[MigrationRecord],
    ) -> Dict[str, str]:
        """
        Build the source ID -> target ID table for the designated field.

        Args:
            source_client: Source instance client
            target_client: Target instance client
            records: Candidate records carrying the field

        Returns:
            The remap table. Empty when the referenced object is missing
            in either instance or a lookup query fails.

        Raises:
            AuthenticationError: if either credential is rejected
        """
        source_ids = self.collect_ids(records)
        if not source_ids:
            logger.info(f"No {self.config.field} values to remap")
            return {}
        return self._resolve(source_client, target_client, source_ids)

    def extend(
        self,
        table: Dict[str, str],
        source_client: InstanceClient,
        target_client: InstanceClient,
        records: Iterable[MigrationRecord],
        attempted: set,
    ) -> Dict[str, str]:
        """
        Resolve values not attempted before and add them to ``table``.

        Existing entries are never recomputed. ``attempted`` tracks every
        source ID already looked up, mapped or not, and is updated in place.

        Returns:
            Only the newly added entries
        """
        new_ids = [sid for sid in self.collect_ids(records) if sid not in attempted]
        if not new_ids:
            return {}

        attempted.update(new_ids)
        added = {
            sid: tid
            for sid, tid in self._resolve(source_client, target_client, new_ids).items()
            if sid not in table
        }
        table.update(added)
        return added

    def _resolve(
        self,
        source_client: InstanceClient,
        target_client: InstanceClient,
        source_ids: List[str],
    ) -> Dict[str, str]:
        object_name = self.config.object
        name_field = self.config.name_field
        fields = ["Id", name_field]

        try:
            source_rows = source_client.query(object_name, fields, in_filters={"Id": source_ids}).records
        except AuthenticationError:
            raise
        except InstanceError as e:
            logger.warning(f"Cannot read {object_name} from source, {self.config.field} will be cleared: {e}")
            return {}

        source_names: Dict[str, str] = {}
        for row in source_rows:
            name = row.get(name_field)
            if name:
                source_names[row["Id"]] = name

        for source_id in source_ids:
            if source_id not in source_names:
                logger.warning(f"{object_name} {source_id} has no {name_field} in source")

        if not source_names:
            return {}

        names = sorted(set(source_names.values()))
        try:
            target_rows = target_client.query(object_name, fields, in_filters={name_field: names}).records
        except AuthenticationError:
            raise
        except InstanceError as e:
            logger.warning(f"Cannot read {object_name} from target, {self.config.field} will be cleared: {e}")
            return {}

        target_by_name: Dict[str, str] = {}
        for row in target_rows:
            name = row.get(name_field)
            if name is None:
                continue
            if name in target_by_name:
                logger.warning(f"Several target {object_name} records named {name!r}, using {target_by_name[name]}")
                continue
            target_by_name[name] = row["Id"]

        table = {}
        for source_id, name in source_names.items():
            target_id = target_by_name.get(name)
            if target_id:
                table[source_id] = target_id
                logger.debug(f"Mapped {object_name} {name!r}: {source_id} -> {target_id}")
            else:
                logger.warning(f"No {object_name} named {name!r} in target")

        logger.info(f"{object_name} remap: {len(table)} of {len(source_ids)} values mapped")
        return table

    def apply(self, record: MigrationRecord, table: Mapping[str, str]) -> MigrationRecord:
        """Replace the field value from ``table`` or clear it."""
        field_name = self.config.field
        value = record.fields.get(field_name)
        if not value:
            return record

        target_id = table.get(value)
        if target_id:
            record.fields[field_name] = target_id
        else:
            record.fields[field_name] = None
            record.extras.setdefault(field_name, value)
            message = f"{field_name}: {value} has no counterpart in target, value cleared"
            record.warnings.append(message)
            logger.warning(f"{record.object_type} {record.source_id}: {message}")
        return record
