"""Command line interface for the record migrator."""

import argparse
import json
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .clients.exceptions import InstanceError
from .models.instance import InstanceHandle
from .models.migration import MigrationConfig, MigrationState, ProgressEvent
from .orchestrator import analyze_object, as_client, rollback, start_migration
from .progress import CancellationToken
from .services.relationship_detector import RelationshipDetector

logger = logging.getLogger(__name__)


def load_config_data(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    with open(path) as f:
        return json.load(f)


def load_instance(role: str, config_data: Dict[str, Any]) -> InstanceHandle:
    """Instance from the config file's ``source``/``target`` entry, else from the environment."""
    if config_data.get(role):
        return InstanceHandle.from_dict(config_data[role])
    return InstanceHandle.from_env(role)


def print_progress(event: ProgressEvent) -> None:
    print(f"[{event.step}] {event.completed}/{event.total} {event.message}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Record Migrator - Copy records and their children between platform instances"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Analyze
    analyze_parser = subparsers.add_parser("analyze", help="Compare fields and picklists of an object")
    analyze_parser.add_argument("--object", required=True, help="Object API name")
    analyze_parser.add_argument("--config", help="Config file with source/target instances")

    # Relationships
    rel_parser = subparsers.add_parser("relationships", help="List child relationships of an object")
    rel_parser.add_argument("--object", required=True, help="Parent object API name")
    rel_parser.add_argument("--parent-ids", nargs="*", default=[], help="Parent IDs to count children for")
    rel_parser.add_argument("--config", help="Config file with the source instance")

    # Run migration
    run_parser = subparsers.add_parser("run", help="Run a migration")
    run_parser.add_argument("--config", required=True, help="Path to migration config file")
    run_parser.add_argument("--output-dir", default="./output", help="Directory for the run report")

    # Rollback
    rollback_parser = subparsers.add_parser("rollback", help="Delete records created by a run")
    rollback_parser.add_argument("--report", help="Run report whose created_record_ids are deleted")
    rollback_parser.add_argument("--ids", nargs="*", default=[], help="Explicit target IDs, in creation order")
    rollback_parser.add_argument("--config", help="Config file with the target instance")

    # HTTP API
    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API (needs the server extra)")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        if args.command == "analyze":
            return run_analysis(args)
        elif args.command == "relationships":
            return run_relationships(args)
        elif args.command == "run":
            return run_migration(args)
        elif args.command == "rollback":
            return run_rollback(args)
        elif args.command == "serve":
            return run_server(args)
        else:
            parser.print_help()
            return 2
    except (InstanceError, ValueError, OSError) as e:
        logger.error(str(e))
        return 1


def run_analysis(args) -> int:
    """Print the field and picklist analysis of an object."""
    config_data = load_config_data(args.config)
    analysis = analyze_object(
        load_instance("source", config_data),
        load_instance("target", config_data),
        args.object,
    )

    mapping = analysis["field_mapping"]
    print(f"\n=== {analysis['object_name']} ===")
    print(f"Exact matches:      {len(mapping['exact'])}")
    print(f"Compatible:         {len(mapping['compatible'])}")
    print(f"Missing in target:  {len(mapping['missing_in_target'])}")
    print(f"Only in target:     {len(mapping['additional_in_target'])}")

    for rec in mapping["recommendations"]:
        print(f"  [{rec['severity']}] {rec['message']}")

    report = analysis["picklist_report"]
    print(f"\nPicklist fields: {report['total_fields']}, with mismatches: {report['fields_with_mismatches']}")
    for field_report in report["fields"]:
        for value in field_report["missing_values"]:
            print(f"  {field_report['name']}: {value['value']} missing in target")

    return 0 if analysis["field_validation"]["valid"] else 1


def run_relationships(args) -> int:
    """Print child relationships of an object."""
    config_data = load_config_data(args.config)
    detector = RelationshipDetector(as_client(load_instance("source", config_data)))

    relationships = detector.detect_child_relationships(args.object)
    if args.parent_ids:
        detector.estimate_counts(relationships, args.parent_ids)

    print(f"\n=== Child relationships of {args.object} ===")
    for rel in relationships:
        count = "" if rel.estimated_count is None else f" ({rel.estimated_count} records)"
        print(f"  {rel.child_object}.{rel.foreign_key_field}{count}")
    return 0


def run_migration(args) -> int:
    """Run a migration from config file and save its report."""
    config_data = load_config_data(args.config)
    config = MigrationConfig.from_dict(config_data.get("migration", config_data))
    source = load_instance("source", config_data)
    target = load_instance("target", config_data)

    cancel_token = CancellationToken()

    def on_interrupt(signum, frame):
        if cancel_token.cancelled:
            raise KeyboardInterrupt
        print("\nCancelling after the current write, press Ctrl-C again to abort")
        cancel_token.cancel()

    previous_handler = signal.signal(signal.SIGINT, on_interrupt)
    try:
        result = start_migration(source, target, config, on_progress=print_progress, cancel_token=cancel_token)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    report_path = save_report(result.to_dict(), args.output_dir)

    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE" if result.succeeded else "MIGRATION FAILED")
    print("=" * 60)
    print(f"Status: {result.state.value}{' (cancelled)' if result.cancelled else ''}")
    print(f"Parents: {result.parent_success} succeeded, {result.parent_failed} failed")
    print(f"Children: {result.child_success} succeeded, {result.child_failed} failed")
    print(f"Created records: {len(result.created_record_ids)}")
    if result.duration_seconds:
        print(f"Duration: {result.duration_seconds:.2f} seconds")

    for code, group in result.errors_by_category.items():
        print(f"\n{group['label']} ({group['count']})")
        for example in group["examples"]:
            print(f"  {example['object_type']} {example['record_id'] or ''}: {example['message']}")

    if result.fatal_error:
        print(f"\nFatal error: {result.fatal_error}")
    print(f"\nReport saved to {report_path}")

    return 0 if result.state == MigrationState.DONE else 1


def run_rollback(args) -> int:
    """Delete the records a run created."""
    config_data = load_config_data(args.config)
    record_ids = list(args.ids)
    if args.report:
        with open(args.report) as f:
            record_ids = json.load(f).get("created_record_ids", []) + record_ids

    if not record_ids:
        print("Nothing to roll back")
        return 0

    result = rollback(load_instance("target", config_data), record_ids, on_progress=print_progress)

    print(f"\nDeleted {result.success} of {result.requested} records")
    for error in result.errors:
        print(f"  {error['id']}: {error['message']}")
    return 0 if result.failed == 0 else 1


def run_server(args) -> int:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "record_migrator.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


def save_report(report: Dict[str, Any], output_dir: str) -> Path:
    """Save a run report as JSON."""
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    filepath = directory / f"migration_report_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.json"
    with open(filepath, 'w') as f:
        json.dump(report, f, indent=2, default=str)
    logger.info(f"Saved migration report to {filepath}")
    return filepath


if __name__ == "__main__":
    sys.exit(main())
