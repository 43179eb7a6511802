"""Command line interface for the store migration tool."""

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Settings
from .errors import (
    ConfigurationError,
    ConnectivityError,
    CyclicDependencyError,
    MigrationAbortedError,
    MigrationError,
)
from .loaders.base import TargetStore
from .models.migration import ExistingRowPolicy, MigrationReport
from .models.verification import VerificationReport
from .orchestrator import MigrationOrchestrator
from .services.catalog import EntityCatalog, default_catalog
from .services.preflight import PreflightChecker, PreflightReport
from .services.verifier import IntegrityVerifier

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_FINDINGS = 2
EXIT_ROW_ERRORS = 3

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """Configure console logging, plus log files when a directory is given."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path / "migration.log"))
        errors = logging.FileHandler(path / "migration_errors.log")
        errors.setLevel(logging.ERROR)
        handlers.append(errors)

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def install_signal_handlers(target: TargetStore) -> Dict[int, Any]:
    """
    Close the target connection and flush logs on SIGINT or SIGTERM.

    Returns:
        The previous handlers, for restoring
    """
    def _handler(signum, frame):
        logger.warning(f"Received {signal.Signals(signum).name}, closing target connection")
        try:
            target.close()
        finally:
            logging.shutdown()
            sys.exit(128 + signum)

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.getsignal(signum)
        signal.signal(signum, _handler)
    return previous


def restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def print_migration_summary(
    report: MigrationReport,
    existing_rows: ExistingRowPolicy = ExistingRowPolicy.SKIP
) -> None:
    """Print the per-table summary and the verdict."""
    title = "MIGRATION SUMMARY" + (" (DRY RUN)" if report.dry_run else "")
    skipped_label = "Existing" if existing_rows == ExistingRowPolicy.REPORT else "Skipped"

    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)
    print(
        "Table".ljust(26) + "Attempted".rjust(10) + "Succeeded".rjust(10)
        + "Failed".rjust(7) + skipped_label.rjust(9)
    )
    print("-" * 60)

    for name, result in report.per_type.items():
        line = (
            name[:25].ljust(26) + str(result.attempted).rjust(10) + str(result.migrated).rjust(10)
            + str(result.errors).rjust(7) + str(result.skipped).rjust(9)
        )
        if result.fallbacks:
            line += f"  ({result.fallbacks} fallbacks)"
        print(line)

    print("-" * 60)
    print(f"Total migrated: {report.total_migrated}")
    print(f"Total errors:   {report.total_errors}")
    print(f"Duration:       {report.duration_seconds}s")

    if report.aborted_at:
        print(f"\nABORTED while migrating {report.aborted_at}; tables above it completed")
    elif report.success:
        print("\nPASS: migration completed without errors")
    else:
        print("\nFAIL: migration completed with row errors, check the error log")


def print_verification_report(report: VerificationReport) -> None:
    print("\n" + "=" * 60)
    print("  VERIFICATION REPORT")
    print("=" * 60)
    print(f"Tables checked: {report.tables_checked}")

    if report.clean:
        print("\nPASS: no issues found")
        return

    print(f"\nFAIL: {report.count} issue(s) found")
    for i, finding in enumerate(report.findings, 1):
        print(f"  {i}. {finding.describe()}")


def print_preflight_report(report: PreflightReport) -> None:
    print("\n" + "=" * 60)
    print("  PRE-FLIGHT CHECKS")
    print("=" * 60)
    for check in report.checks:
        mark = "OK  " if check.passed else "FAIL"
        message = f" - {check.message}" if check.message else ""
        print(f"[{mark}] {check.name}{message}")

    for warning in report.warnings:
        print(f"WARNING: {warning}")
    for error in report.errors:
        print(f"ERROR: {error}")

    print("\nReady to migrate" if report.ok else "\nNot ready to migrate")


def _print_json(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, default=str))


def _migration_exit_code(report: MigrationReport) -> int:
    return EXIT_OK if report.total_errors == 0 else EXIT_ROW_ERRORS


def _migrate(args, settings: Settings, catalog: EntityCatalog, source, target) -> MigrationReport:
    config = settings.migration_config(
        batch_size=args.batch_size,
        existing_rows=args.existing_rows,
        dry_run=args.dry_run,
        only=args.only,
        output_dir=args.report_dir,
        save_report=bool(args.report_dir),
    )
    orchestrator = MigrationOrchestrator(source, target, catalog, config)
    try:
        report = orchestrator.run()
    except MigrationAbortedError as e:
        if args.json:
            _print_json(e.report.to_dict())
        else:
            print_migration_summary(e.report, config.existing_rows)
        raise

    if args.json:
        _print_json(report.to_dict())
    else:
        print_migration_summary(report, config.existing_rows)
    return report


def _verify(args, catalog: EntityCatalog, source, target) -> VerificationReport:
    verifier = IntegrityVerifier(target, catalog.ordered(args.only), source=source)
    report = verifier.verify()
    if args.json:
        _print_json(report.to_dict())
    else:
        print_verification_report(report)
    return report


def run_command(args, settings: Settings, catalog: EntityCatalog) -> int:
    """Open both stores, run the chosen command and close them again."""
    require_source = not args.source_dir and not getattr(args, "no_source_counts", False)
    if args.command != "check":
        settings.validate_required(require_source=require_source)

    source = settings.build_source(args.source_dir)
    target = settings.build_target()
    previous = install_signal_handlers(target)

    try:
        if args.command == "check":
            checker = PreflightChecker(
                source,
                target,
                catalog.ordered(args.only),
                settings_errors=[
                    f"{name} is not set" for name in settings.missing(require_source)
                ],
            )
            report = checker.run_all()
            if args.json:
                _print_json(report.to_dict())
            else:
                print_preflight_report(report)
            return EXIT_OK if report.ok else EXIT_FATAL

        target.connect()

        if args.command == "migrate":
            report = _migrate(args, settings, catalog, source, target)
            return _migration_exit_code(report)

        if args.command == "verify":
            verification = _verify(
                args, catalog, None if args.no_source_counts else source, target
            )
            return EXIT_OK if verification.clean else EXIT_FINDINGS

        # run: migrate, then verify
        report = _migrate(args, settings, catalog, source, target)
        verification = _verify(args, catalog, source, target)
        if not verification.clean:
            return EXIT_FINDINGS
        return _migration_exit_code(report)

    finally:
        target.close()
        source.close()
        restore_signal_handlers(previous)


def run_plan(catalog: EntityCatalog, only: Optional[List[str]] = None, as_json: bool = False) -> int:
    """Print the migration order."""
    specs = catalog.ordered(only)
    if as_json:
        _print_json({"order": [spec.to_dict() for spec in specs]})
        return EXIT_OK

    print("\nMigration order:")
    for i, spec in enumerate(specs, 1):
        deps = ", ".join(sorted(spec.all_dependencies)) or "-"
        print(f"  {i:2}. {spec.name.ljust(28)} depends on: {deps}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--source-dir", help="Read JSON exports from this directory instead of Supabase")
    common.add_argument("--batch-size", type=int, help="Records per page (default BATCH_SIZE or 1000)")
    common.add_argument(
        "--existing-rows",
        choices=[p.value for p in ExistingRowPolicy],
        help="How rows already in the target are surfaced",
    )
    common.add_argument("--report-dir", help="Save the JSON migration report here")
    common.add_argument("--json", action="store_true", help="Print reports as JSON")
    common.add_argument("--log-dir", help="Write migration.log and migration_errors.log here")
    common.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    common.add_argument(
        "--only", nargs="+", metavar="NAME",
        help="Restrict to these entity types and their dependencies",
    )

    migrate_options = argparse.ArgumentParser(add_help=False)
    migrate_options.add_argument("--dry-run", action="store_true", help="Simulate without inserting")

    parser = argparse.ArgumentParser(
        prog="store-migrate",
        description="Migrate the grievance portal from Supabase to MySQL and verify the result",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("check", parents=[common], help="Run pre-flight checks")
    subparsers.add_parser("migrate", parents=[common, migrate_options], help="Run a migration")
    verify_parser = subparsers.add_parser("verify", parents=[common], help="Verify migrated data")
    verify_parser.add_argument(
        "--no-source-counts", action="store_true", help="Skip source count reconciliation"
    )
    subparsers.add_parser("run", parents=[common, migrate_options], help="Migrate, then verify")
    subparsers.add_parser("plan", parents=[common], help="Print the migration order")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_FATAL

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return EXIT_FATAL

    setup_logging("DEBUG" if args.verbose else settings.log_level, args.log_dir)

    try:
        catalog = default_catalog()
        if args.command == "plan":
            return run_plan(catalog, args.only, args.json)
        return run_command(args, settings, catalog)

    except CyclicDependencyError as e:
        logger.error(f"Cannot order entity types: {e.message}")
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
    except ConnectivityError as e:
        logger.error(f"Connectivity error ({e.store}, {e.operation}): {e.message}")
    except MigrationAbortedError as e:
        logger.error(e.message)
    except MigrationError as e:
        logger.error(f"Migration failed: {e.message}")

    return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
