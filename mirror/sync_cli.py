"""
Sync CLI for the document mirror.

Usage:
    python -m mirror.sync_cli
    python -m mirror.sync_cli --backend google_api --credentials key.json
    python -m mirror.sync_cli --status

Meant for cron: exits 1 on a failed sync, 2 on a partial one.
"""
import argparse
import json
import sys

from app.config import settings
from app.logging_config import setup_logging
from connectors import create_connector
from mirror.queries import get_sync_status
from mirror.store import MirrorStore
from mirror.sync import STATUS_PARTIAL, SyncService


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Mirror the client Drive tree into the relational store"
    )

    parser.add_argument(
        "--backend",
        type=str,
        default=settings.drive_backend,
        choices=["apps_script", "google_api"],
        help=f"Drive-side backend (default: {settings.drive_backend})",
    )
    parser.add_argument(
        "--credentials",
        type=str,
        help="Path to Google service account JSON file (google_api backend)",
    )
    parser.add_argument(
        "--sqlite-path",
        type=str,
        default=settings.mirror_sqlite_path,
        help="SQLite mirror file when DATABASE_URL is not set",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Print the latest sync status and exit",
    )

    args = parser.parse_args()
    setup_logging(settings.log_level)

    store = MirrorStore(settings.database_url, args.sqlite_path)
    store.init_schema()

    if args.status:
        print(json.dumps(get_sync_status(store), indent=2, ensure_ascii=False))
        return

    if args.credentials:
        settings.google_credentials_path = args.credentials

    try:
        connector = create_connector(settings, backend=args.backend)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    with connector:
        result = SyncService(store, connector).sync_all()

    print(result.message)
    if not result.success:
        sys.exit(1)
    if result.status == STATUS_PARTIAL:
        sys.exit(2)


if __name__ == "__main__":
    main()
