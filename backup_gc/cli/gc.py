# backup_gc/cli/gc.py
"""
CLI commands for backup garbage collection.

Usage:
    python -m backup_gc.cli.gc run
    python -m backup_gc.cli.gc run --http --workers 2
    python -m backup_gc.cli.gc scan --dry-run
    python -m backup_gc.cli.gc scan --confirm
    python -m backup_gc.cli.gc status
    python -m backup_gc.cli.gc init-db
"""

import argparse
import signal
import sys
from datetime import UTC, datetime

from dotenv import load_dotenv

load_dotenv()


def _settings(args):
    """Load settings, applying command-line overrides with the same validation as the environment."""
    from pydantic import ValidationError

    from backup_gc.config import Settings, get_settings

    settings = get_settings()
    overrides = {}
    if getattr(args, "workers", None) is not None:
        overrides["GC_WORKERS"] = args.workers
    if getattr(args, "sync_period", None) is not None:
        overrides["GC_SYNC_PERIOD_SECONDS"] = args.sync_period
    if getattr(args, "dry_run_client", False):
        overrides["DELETE_REQUEST_CLIENT"] = "dry-run"
    if not overrides:
        return settings

    try:
        return Settings(**{**settings.model_dump(), **overrides})
    except ValidationError as e:
        print(f"Error: invalid option: {e}")
        sys.exit(1)


def _engine(settings):
    from backup_gc.database import create_engine_for_url

    return create_engine_for_url(
        settings.DATABASE_URL,
        connect_timeout=settings.DB_CONNECT_TIMEOUT_SECONDS,
        statement_timeout=settings.DB_STATEMENT_TIMEOUT_SECONDS,
    )


def _configure_logging(settings, args):
    from backup_gc.logging_config import configure_logging

    configure_logging(json_format=settings.LOG_JSON and not args.plain_logs, level=settings.LOG_LEVEL)


def cmd_run(args):
    """Run the GC controller until interrupted."""
    from backup_gc.runtime import GCRuntime

    settings = _settings(args)
    _configure_logging(settings, args)
    runtime = GCRuntime.from_settings(settings)

    if args.http:
        import uvicorn

        from backup_gc.main import create_app

        uvicorn.run(
            create_app(runtime, manage_lifecycle=True),
            host=settings.HTTP_HOST,
            port=settings.HTTP_PORT,
            log_config=None,
        )
        return

    def handle_signal(signum, frame):
        runtime.request_stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    runtime.start()
    runtime.wait()
    runtime.stop()


def cmd_scan(args):
    """Run a single reconciliation pass over every backup in the database."""
    from backup_gc.cache import BackupCache
    from backup_gc.client import get_delete_request_client
    from backup_gc.database import create_session_factory
    from backup_gc.errors import ReconcileError
    from backup_gc.gc_controller import GCController
    from backup_gc.store import SqlBackupSource

    if not args.dry_run and not args.confirm:
        print("Error: scan requires --confirm to create delete requests")
        print("Use --dry-run to preview which backups have expired")
        sys.exit(1)

    settings = _settings(args)
    _configure_logging(settings, args)

    session_factory = create_session_factory(_engine(settings))
    client = get_delete_request_client("dry-run" if args.dry_run else settings.DELETE_REQUEST_CLIENT, session_factory)

    cache = BackupCache()
    controller = GCController(cache, client, sync_period=settings.GC_SYNC_PERIOD_SECONDS)
    cache.replace(SqlBackupSource(session_factory).list_backups())

    print(f"\n{'DRY RUN - ' if args.dry_run else ''}Scanning {len(cache)} backups...\n")

    errors = []
    for key in sorted(cache.keys()):
        try:
            controller.process_queue_item(key)
        except ReconcileError as e:
            errors.append(f"{key}: {e}")

    stats = controller.stats.snapshot()
    print(f"Checked: {stats['processed']}")
    print(f"Expired: {stats['expired']}")
    print(f"Delete requests {'previewed' if args.dry_run else 'created'}: {stats['submitted']}")

    if errors:
        print("\nErrors:")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)


def cmd_status(args):
    """Show backup and delete request counts."""
    from sqlalchemy import func, select

    from backup_gc.database import create_session_factory
    from backup_gc.models import Backup, DeleteBackupRequestRow

    settings = _settings(args)
    session_factory = create_session_factory(_engine(settings))
    now = datetime.now(UTC)

    with session_factory() as session:
        total = session.scalar(select(func.count()).select_from(Backup))
        expiring = session.scalar(select(func.count()).select_from(Backup).where(Backup.expiration.isnot(None)))
        expired = session.scalar(select(func.count()).select_from(Backup).where(Backup.expiration <= now))
        pending = session.scalar(
            select(func.count()).select_from(DeleteBackupRequestRow).where(DeleteBackupRequestRow.phase == "New")
        )

    print("\n=== Backup GC Status ===\n")
    print(f"Sync period: {settings.GC_SYNC_PERIOD_SECONDS:.0f}s")
    print(f"Workers: {settings.GC_WORKERS}")
    print(f"Delete request client: {settings.DELETE_REQUEST_CLIENT}")
    print(f"\nTotal backups: {total}")
    print(f"  With expiration: {expiring}")
    print(f"  Expired now: {expired}")
    print(f"\nPending delete requests: {pending}")
    print()


def cmd_init_db(args):
    """Create tables for local development."""
    from backup_gc.database import init_db

    settings = _settings(args)
    init_db(_engine(settings))
    print("Tables created")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Backup garbage collection CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the controller with the admin HTTP endpoints
  python -m backup_gc.cli.gc run --http

  # Preview which backups have expired
  python -m backup_gc.cli.gc scan --dry-run

  # Create delete requests for every expired backup once
  python -m backup_gc.cli.gc scan --confirm
        """,
    )
    parser.add_argument("--plain-logs", action="store_true", help="Human-readable logs instead of JSON")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run command
    run_parser = subparsers.add_parser("run", help="Run the GC controller")
    run_parser.add_argument("--workers", type=int, help="Worker threads (default: GC_WORKERS)")
    run_parser.add_argument("--sync-period", type=float, help="Seconds between full rescans (minimum 60)")
    run_parser.add_argument("--http", action="store_true", help="Serve health and admin endpoints")
    run_parser.add_argument(
        "--dry-run-client", action="store_true", help="Log delete requests instead of persisting them"
    )
    run_parser.set_defaults(func=cmd_run)

    # scan command
    scan_parser = subparsers.add_parser("scan", help="Reconcile every backup once")
    scan_parser.add_argument("--dry-run", action="store_true", help="Preview only, don't create requests")
    scan_parser.add_argument("--confirm", action="store_true", help="Confirm creating delete requests")
    scan_parser.set_defaults(func=cmd_scan)

    # status command
    status_parser = subparsers.add_parser("status", help="Show backup GC status")
    status_parser.set_defaults(func=cmd_status)

    # init-db command
    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.set_defaults(func=cmd_init_db)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
