"""
Relational mirror of the Drive document tree.

Components:
- store: Postgres/SQLite connection, schema and transactional writes
- validation: file filtering and row normalization before persistence
- sync: full refresh and per-client refresh from the Drive side
- queries: read-only lookups used by the API

Usage:
    # Using CLI
    python -m mirror.sync_cli

    # Using Python
    from connectors import create_connector
    from mirror import MirrorStore, SyncService

    store = MirrorStore(sqlite_path="data/mirror.db")
    store.init_schema()
    result = SyncService(store, create_connector(settings)).sync_all()
"""
from mirror.store import MirrorStore, get_mirror_store
from mirror.sync import SyncResult, SyncService

__all__ = [
    "MirrorStore",
    "get_mirror_store",
    "SyncResult",
    "SyncService",
]
