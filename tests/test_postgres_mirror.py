"""
Sync against a real Postgres mirror.

This is an integration test that requires:
- TEST_DATABASE_URL pointing at a throwaway Postgres database

Run with: TEST_DATABASE_URL=postgresql://... pytest tests/test_postgres_mirror.py -v -s
"""
import os

import pytest

from mirror.store import MirrorStore
from mirror.sync import STATUS_SUCCESS, SyncService

requires_postgres = pytest.mark.skipif(
    not os.environ.get("TEST_DATABASE_URL"),
    reason="TEST_DATABASE_URL not set"
)


@pytest.fixture
def pg_store():
    store = MirrorStore(database_url=os.environ["TEST_DATABASE_URL"])
    store.init_schema()
    with store.transaction() as tx:
        tx.delete_all()
        tx.execute("DELETE FROM sync_status")
    return store


@requires_postgres
def test_postgres_sync_is_idempotent(pg_store, fake_connector):
    """
    Two full syncs leave the same row counts.

    This verifies:
    1. ON CONFLICT upserts work on the Postgres schema
    2. Savepoints and the single transaction behave as on SQLite
    """
    service = SyncService(pg_store, fake_connector)

    first = service.sync_all()
    assert first.status == STATUS_SUCCESS
    counts = pg_store.counts()

    service.sync_all()
    again = pg_store.counts()

    for table in ("clients", "documents", "files"):
        assert counts[table] == again[table]
    assert again["clients"] == 2
    assert again["files"] == 4
