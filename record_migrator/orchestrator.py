"""Migration orchestrator - drives a run from export to report."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Union

from .clients.base import InstanceClient
from .clients.exceptions import AuthenticationError, InstanceError
from .clients.rest_client import RestInstanceClient
from .extractors.record_exporter import RecordExporter
from .extractors.schema_fetcher import SchemaFetcher
from .loaders.rollback_executor import RollbackExecutor
from .loaders.upsert_executor import UpsertExecutor
from .models.instance import InstanceHandle
from .models.migration import (
    MigrationConfig,
    MigrationResult,
    MigrationState,
    RelationshipSummary,
    TRANSITIONS,
)
from .models.record import (
    ErrorCode,
    MigrationRecord,
    RecordError,
    RollbackResult,
    UpsertResult,
)
from .models.schema import ChildRelationship, ObjectSchema
from .progress import CancellationToken, ProgressCallback, ProgressChannel
from .services.field_mapper import FieldMapper
from .services.lookup_remapper import LookupRemapper
from .services.picklist_mapper import PicklistMapper
from .services.transformer import RecordTransformer, TransformPlan

logger = logging.getLogger(__name__)

InstanceLike = Union[InstanceClient, InstanceHandle]

STEP_EXPORT_PARENTS = "export parents"
STEP_REMAP_LOOKUPS = "remap lookups"
STEP_UPSERT_PARENTS = "upsert parents"
STEP_REPORT = "report"


class InvalidTransitionError(RuntimeError):
    """The state machine was asked to make a transition it does not allow."""


class ConfigurationError(ValueError):
    """The migration configuration does not fit the instances' schemas."""


def as_client(instance: InstanceLike) -> InstanceClient:
    """Accept either a ready client or a bare instance handle."""
    if isinstance(instance, InstanceClient):
        return instance
    return RestInstanceClient(instance)


class MigrationOrchestrator:
    """
    Runs one migration.

    States: idle -> exporting parents -> remapping lookups -> upserting
    parents -> (exporting children -> upserting children) per selected
    relationship -> reporting -> done. Any unrecoverable error moves the
    run to failed; the result still lists every record written up to
    that point.

    An orchestrator owns its ID map, lookup table and result, and is used
    for a single run.
    """

    def __init__(
        self,
        source: InstanceLike,
        target: InstanceLike,
        config: MigrationConfig,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            source: Source instance client or handle
            target: Target instance client or handle
            config: Migration configuration
            on_progress: The single progress subscriber for this run
            cancel_token: Cooperative cancellation flag
        """
        self.source = as_client(source)
        self.target = as_client(target)
        self.config = config
        self.progress = ProgressChannel(on_progress)
        self.cancel_token = cancel_token or CancellationToken()

        # Schema is fetched fresh for every run
        self.source_schemas = SchemaFetcher(self.source)
        self.target_schemas = SchemaFetcher(self.target)
        self.exporter = RecordExporter(self.source, self.source_schemas)

        self.lookup_remapper = LookupRemapper(config.lookup) if config.lookup else None
        self.transformer = RecordTransformer(lookup_remapper=self.lookup_remapper)
        self.executor = UpsertExecutor(
            self.target,
            batch_size=config.batch_size,
            progress=self.progress,
            cancel_token=self.cancel_token,
        )

        self.result = MigrationResult(object_name=config.object_name)
        self._parents: List[MigrationRecord] = []
        self._parent_plan: Optional[TransformPlan] = None
        self._child_plans: Dict[str, TransformPlan] = {}
        self._lookup_attempted: Set[str] = set()
        self._child_sources: Dict[tuple, str] = {}

    @property
    def state(self) -> MigrationState:
        return self.result.state

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.cancelled

    def transition(self, new_state: MigrationState) -> None:
        """Move to ``new_state``; failed is reachable from any live state."""
        current = self.result.state
        allowed = TRANSITIONS[current]
        if new_state == MigrationState.FAILED and current not in (MigrationState.DONE, MigrationState.FAILED):
            allowed = allowed | {MigrationState.FAILED}
        if new_state not in allowed:
            raise InvalidTransitionError(f"Cannot move from {current.value} to {new_state.value}")

        logger.debug(f"Migration {self.result.id}: {current.value} -> {new_state.value}")
        self.result.state = new_state
        self.result.state_history.append(new_state)

    def run(self) -> MigrationResult:
        """
        Run the complete migration.

        Returns:
            MigrationResult with counts, IDs and categorized errors
        """
        if self.result.state != MigrationState.IDLE:
            raise InvalidTransitionError("An orchestrator runs only once")

        self.result.started_at = datetime.utcnow()
        self.result.state_history.append(MigrationState.IDLE)
        logger.info(
            f"Starting migration of {self.config.object_name} from {self.source.name} to {self.target.name}"
        )

        try:
            self._export_parents()

            if self._parents and not self._stop_requested():
                self._remap_lookups()
                if not self._stop_requested():
                    self._upsert_parents()
                    if not self._stop_requested():
                        self._migrate_children()

            self.transition(MigrationState.REPORTING)
            self._build_report()
            self.progress.finish(STEP_REPORT, "Migration complete")
            self.transition(MigrationState.DONE)
            logger.info(
                f"Migration {self.result.id} completed: {self.result.parent_success} parents, "
                f"{self.result.child_success} children, {self.result.total_failed} failed"
            )

        except Exception as e:
            failed_in = self.result.state
            logger.error(f"Migration failed during {failed_in.value}: {e}")
            self.result.fatal_error = f"{failed_in.value}: {e}"
            self.transition(MigrationState.FAILED)
            self._build_report()

        finally:
            self.result.completed_at = datetime.utcnow()
            self.result.cancelled = self.cancelled

        return self.result

    def _stop_requested(self) -> bool:
        if self.cancelled:
            logger.info(f"Migration {self.result.id} cancelled during {self.result.state.value}")
            return True
        return False

    def analyze(self) -> Dict[str, Any]:
        """
        Pre-flight field and picklist analysis for the parent object.

        Nothing is written. The caller decides whether findings block the run.
        """
        source_schema = self.source_schemas.describe(self.config.object_name)
        target_schema = self.target_schemas.describe(self.config.object_name)
        return analyze_schemas(source_schema, target_schema, self.config.picklist_overrides)

    # Parents

    def _export_parents(self) -> None:
        self.transition(MigrationState.EXPORTING_PARENTS)
        object_name = self.config.object_name

        source_schema = self.source_schemas.describe(object_name)
        target_schema = self.target_schemas.describe(object_name)
        self._check_external_id(target_schema, self.config.external_id_field)

        self._parent_plan = self.transformer.build_plan(
            source_schema,
            target_schema,
            picklist_overrides=self.config.picklist_overrides,
            excluded_fields=self.config.excluded_fields,
        )
        validation = self.transformer.field_mapper.validate_field_mapping(self._parent_plan.field_mapping)
        for message in validation["errors"]:
            self.result.warnings.append(f"{object_name}: {message}")
            logger.warning(f"{object_name}: {message}")

        self.progress.emit(STEP_EXPORT_PARENTS, 0, 1, f"Exporting {object_name} records")
        export = self.exporter.export_parents(
            object_name,
            record_ids=self.config.record_ids or None,
            where=self.config.where,
            limit=self.config.record_limit,
        )
        if export.truncated:
            self.result.warnings.append(
                f"{export.total_size} {object_name} records matched; only the first "
                f"{len(export.records)} were migrated"
            )

        self._parents = export.records
        count = len(self._parents)
        self.progress.emit(STEP_EXPORT_PARENTS, count, count, f"Exported {count} {object_name} records")
        self.progress.finish(STEP_EXPORT_PARENTS)

        if not self._parents:
            logger.info(f"No {object_name} records matched, nothing to migrate")

    def _remap_lookups(self) -> None:
        self.transition(MigrationState.REMAPPING_LOOKUPS)

        if self.lookup_remapper is None:
            self.progress.finish(STEP_REMAP_LOOKUPS, "No lookup field configured")
            return

        self.progress.emit(STEP_REMAP_LOOKUPS, 0, 1, f"Remapping {self.lookup_remapper.field}")
        table = self.lookup_remapper.build_lookup_id_mapping(self.source, self.target, self._parents)
        self._lookup_attempted.update(self.lookup_remapper.collect_ids(self._parents))
        self.result.lookup_id_map = table
        self.progress.emit(
            STEP_REMAP_LOOKUPS, 1, 1, f"{len(table)} {self.lookup_remapper.field} values mapped"
        )

    def _upsert_parents(self) -> None:
        self.transition(MigrationState.UPSERTING_PARENTS)
        object_name = self.config.object_name

        records = self.transformer.transform_all(
            self._parents, self._parent_plan, lookup_table=self.result.lookup_id_map
        )
        upsert = UpsertResult(object_type=object_name)
        try:
            self.executor.upsert_records(
                object_name,
                records,
                external_id_field=self.config.external_id_field,
                phase="parent",
                step=STEP_UPSERT_PARENTS,
                result=upsert,
            )
        finally:
            self._absorb(upsert, phase="parent")

        # Exported records are not needed past this point
        self._parents = []

    # Children

    def _migrate_children(self) -> None:
        relationships = list(self.config.relationships)
        parent_ids = list(self.result.id_map.keys())

        if not relationships:
            return
        if not parent_ids:
            logger.info("No parent succeeded, skipping child relationships")
            for rel in relationships:
                self.result.relationships.append(RelationshipSummary(relationship=rel, skipped=True))
            return

        for rel in relationships:
            if self._stop_requested():
                break
            self._migrate_relationship(rel, parent_ids)

    def _migrate_relationship(self, rel: ChildRelationship, parent_ids: List[str]) -> None:
        self.transition(MigrationState.EXPORTING_CHILDREN)
        summary = RelationshipSummary(relationship=rel)
        self.result.relationships.append(summary)
        export_step = f"export {rel.child_object} via {rel.foreign_key_field}"
        upsert_step = f"upsert {rel.child_object} via {rel.foreign_key_field}"

        try:
            plan = self._child_plan(rel)
            self.progress.emit(export_step, 0, 1, f"Exporting {rel.child_object} records")
            export = self.exporter.export_children(rel, parent_ids)
        except AuthenticationError:
            raise
        except (InstanceError, ConfigurationError) as e:
            self._relationship_failed(rel, summary, str(e))
            self.progress.finish(export_step, f"{rel.child_object} skipped", stopped_early=True)
            return

        records = export.records
        summary.exported = len(records)
        self.progress.emit(export_step, 1, 1, f"Exported {len(records)} {rel.child_object} records")
        if not records:
            return

        self._warn_duplicate_children(rel, records)

        if self.lookup_remapper is not None:
            self.lookup_remapper.extend(
                self.result.lookup_id_map, self.source, self.target, records, self._lookup_attempted
            )

        self.transition(MigrationState.UPSERTING_CHILDREN)
        records = self.transformer.transform_all(
            records, plan, lookup_table=self.result.lookup_id_map, parent_id_map=self.result.id_map
        )

        upsert = UpsertResult(object_type=rel.child_object)
        try:
            self.executor.upsert_records(
                rel.child_object,
                records,
                external_id_field=self.config.child_external_id_fields.get(rel.child_object),
                phase="child",
                step=upsert_step,
                result=upsert,
            )
        finally:
            self._absorb(upsert, phase="child")
            summary.succeeded = upsert.total_succeeded
            summary.failed = upsert.total_failed

    def _child_plan(self, rel: ChildRelationship) -> TransformPlan:
        """Build (once per child object) the transform plan for a relationship."""
        if rel.child_object not in self._child_plans:
            source_schema = self.source_schemas.describe(rel.child_object)
            target_schema = self.target_schemas.describe(rel.child_object)
            self._check_external_id(
                target_schema, self.config.child_external_id_fields.get(rel.child_object)
            )
            self._child_plans[rel.child_object] = self.transformer.build_plan(
                source_schema,
                target_schema,
                picklist_overrides=self.config.picklist_overrides,
                excluded_fields=self.config.excluded_fields,
                parent_object=self.config.object_name,
            )

        plan = self._child_plans[rel.child_object]
        target_fk = plan.target_schema.get_field(rel.foreign_key_field)
        if target_fk is None or not target_fk.writable:
            raise InstanceError(
                f"{rel.child_object}.{rel.foreign_key_field} cannot be written in the target",
                instance=self.target.name,
            )
        if rel.foreign_key_field not in plan.parent_reference_fields:
            plan.parent_reference_fields.append(rel.foreign_key_field)
        return plan

    def _relationship_failed(self, rel: ChildRelationship, summary: RelationshipSummary, message: str) -> None:
        logger.error(f"Relationship {rel.key} failed: {message}")
        summary.skipped = True
        self.result.detailed_errors.append(RecordError(
            code=ErrorCode.RELATIONSHIP_MIGRATION_FAILED,
            message=message,
            object_type=rel.child_object,
            phase="child",
        ))
        self.result.child_failed += 1

    def _warn_duplicate_children(self, rel: ChildRelationship, records: Sequence[MigrationRecord]) -> None:
        """Flag child records reached through more than one relationship."""
        duplicates = []
        for record in records:
            key = (rel.child_object, record.source_id)
            previous = self._child_sources.get(key)
            if previous is not None and previous != rel.key:
                duplicates.append(record.source_id)
            else:
                self._child_sources[key] = rel.key

        if duplicates:
            message = (
                f"{len(duplicates)} {rel.child_object} records were already migrated through another "
                f"relationship and are written again via {rel.foreign_key_field}: {', '.join(duplicates[:10])}"
            )
            self.result.warnings.append(message)
            logger.warning(message)

    # Bookkeeping

    def _check_external_id(self, target_schema: ObjectSchema, field_name: Optional[str]) -> None:
        if not field_name:
            return
        descriptor = target_schema.get_field(field_name)
        if descriptor is None:
            raise ConfigurationError(f"{target_schema.name}.{field_name} does not exist in the target")
        if not descriptor.external_id or not descriptor.createable:
            raise ConfigurationError(
                f"{target_schema.name}.{field_name} is not a writable external id field in the target"
            )

    def _absorb(self, upsert: UpsertResult, phase: str) -> None:
        """Fold an executor result into the run result."""
        self.result.created_record_ids.extend(upsert.created_ids)
        self.result.updated_record_ids.extend(upsert.updated_ids)
        self.result.outcomes.extend(upsert.outcomes)
        self.result.detailed_errors.extend(upsert.failures)

        if phase == "parent":
            self.result.id_map.update(upsert.id_map)
            self.result.parent_success += upsert.total_succeeded
            self.result.parent_failed += upsert.total_failed
        else:
            self.result.child_success += upsert.total_succeeded
            self.result.child_failed += upsert.total_failed

    def _build_report(self) -> None:
        """Group errors by category with a bounded number of examples."""
        limit = self.config.max_error_examples
        grouped: Dict[str, Dict[str, Any]] = {}

        for error in self.result.detailed_errors:
            entry = grouped.setdefault(error.code.value, {
                "label": error.code.label,
                "count": 0,
                "examples": [],
            })
            entry["count"] += 1
            if len(entry["examples"]) < limit:
                entry["examples"].append(error.to_dict())

        self.result.errors_by_category = {
            code.value: grouped[code.value] for code in ErrorCode if code.value in grouped
        }


def analyze_schemas(
    source_schema: ObjectSchema,
    target_schema: ObjectSchema,
    picklist_overrides: Optional[Dict[str, Dict[str, str]]] = None,
) -> Dict[str, Any]:
    """Field mapping, its validation and the picklist report for one object."""
    field_mapper = FieldMapper()
    picklist_mapper = PicklistMapper()

    mapping = field_mapper.build_field_mapping(source_schema.field_list, target_schema.field_list)
    picklist_fields = picklist_mapper.detect_picklist_fields(source_schema.field_list, target_schema.field_list)
    picklist_mappings = picklist_mapper.build_mappings(picklist_fields, picklist_overrides)

    picklist_validation = {"valid": True, "errors": [], "warnings": []}
    for picklist_mapping in picklist_mappings.values():
        check = picklist_mapper.validate_picklist_mapping(picklist_mapping)
        picklist_validation["valid"] = picklist_validation["valid"] and check["valid"]
        picklist_validation["errors"].extend(check["errors"])
        picklist_validation["warnings"].extend(check["warnings"])

    return {
        "object_name": source_schema.name or target_schema.name,
        "field_mapping": mapping.to_dict(),
        "field_validation": field_mapper.validate_field_mapping(mapping),
        "picklists": {name: m.to_dict() for name, m in picklist_mappings.items()},
        "picklist_report": picklist_mapper.generate_mapping_report(picklist_fields, picklist_mappings),
        "picklist_validation": picklist_validation,
    }


def analyze_object(source: InstanceLike, target: InstanceLike, object_name: str) -> Dict[str, Any]:
    """Describe ``object_name`` in both instances and analyze the differences."""
    source_schema = SchemaFetcher(as_client(source)).describe(object_name)
    target_schema = SchemaFetcher(as_client(target)).describe(object_name)
    return analyze_schemas(source_schema, target_schema)


def start_migration(
    source: InstanceLike,
    target: InstanceLike,
    config: MigrationConfig,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> MigrationResult:
    """Run a migration and return its result. Nothing is persisted."""
    return MigrationOrchestrator(source, target, config, on_progress, cancel_token).run()


def rollback(
    target: InstanceLike,
    record_ids: Sequence[str],
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> RollbackResult:
    """
    Delete records a run created.

    Args:
        target: Target instance client or handle
        record_ids: ``created_record_ids`` of a MigrationResult, in creation order
        on_progress: The single progress subscriber
        cancel_token: Cooperative cancellation flag

    Returns:
        RollbackResult
    """
    executor = RollbackExecutor(
        as_client(target),
        progress=ProgressChannel(on_progress),
        cancel_token=cancel_token,
    )
    return executor.rollback(record_ids)
