"""
Relational mirror of the Drive document tree.

Postgres (Supabase) when DATABASE_URL is set, a local SQLite file otherwise.
SQL is written once with %s placeholders and rewritten for sqlite3.

Every operation opens its own connection and closes it when done. Writes go
through `transaction()`, which yields a MirrorTransaction bound to one
connection; savepoints inside it isolate per-client failures.
"""
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import psycopg2
from psycopg2.extras import RealDictCursor

from mirror.validation import MirrorClient, MirrorDocument
from app.logging_config import get_logger

logger = get_logger(__name__)

DIALECT_POSTGRES = "postgres"
DIALECT_SQLITE = "sqlite"

DATABASE_ERRORS = (psycopg2.Error, sqlite3.Error)

POSTGRES_SCHEMA_PATH = Path(__file__).resolve().parent.parent / "migrations" / "001_mirror.sql"

SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS clients (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    cedula TEXT NOT NULL UNIQUE,
    nombre TEXT NOT NULL,
    fecha TEXT,
    folder_url TEXT,
    folder_id TEXT,
    has_folder INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id INTEGER NOT NULL REFERENCES clients (id) ON DELETE CASCADE,
    type TEXT NOT NULL,
    label TEXT NOT NULL,
    folder_exists INTEGER NOT NULL DEFAULT 0,
    has_files INTEGER NOT NULL DEFAULT 0,
    file_count INTEGER NOT NULL DEFAULT 0,
    folder_id TEXT,
    folder_url TEXT,
    updated_at TEXT NOT NULL,
    UNIQUE (client_id, type)
);

CREATE TABLE IF NOT EXISTS files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id INTEGER NOT NULL REFERENCES documents (id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    file_id TEXT NOT NULL,
    url TEXT NOT NULL,
    download_url TEXT,
    size INTEGER,
    last_modified TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sync_status (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    last_sync TEXT NOT NULL,
    status TEXT NOT NULL,
    total_clients INTEGER NOT NULL DEFAULT 0,
    total_documents INTEGER NOT NULL DEFAULT 0,
    total_files INTEGER NOT NULL DEFAULT 0,
    failed_rows INTEGER NOT NULL DEFAULT 0,
    message TEXT
);

CREATE INDEX IF NOT EXISTS idx_clients_nombre ON clients (nombre);
CREATE INDEX IF NOT EXISTS idx_documents_client ON documents (client_id);
CREATE INDEX IF NOT EXISTS idx_files_document ON files (document_id);
CREATE INDEX IF NOT EXISTS idx_sync_status_last_sync ON sync_status (last_sync);
"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MirrorTransaction:
    """One open transaction on one connection. Created by MirrorStore.transaction()."""

    def __init__(self, store: "MirrorStore", conn):
        self._store = store
        self._conn = conn
        self._cursor = conn.cursor()

    def execute(self, sql: str, params: tuple = ()):
        self._cursor.execute(self._store.sql(sql), params)
        return self._cursor

    def fetchone(self, sql: str, params: tuple = ()) -> dict | None:
        row = self.execute(sql, params).fetchone()
        return dict(row) if row is not None else None

    def fetchall(self, sql: str, params: tuple = ()) -> list[dict]:
        return [dict(row) for row in self.execute(sql, params).fetchall()]

    @contextmanager
    def savepoint(self, name: str) -> Iterator[None]:
        """Roll back only the statements issued inside the block on error."""
        self._cursor.execute(f"SAVEPOINT {name}")
        try:
            yield
        except Exception:
            self._cursor.execute(f"ROLLBACK TO SAVEPOINT {name}")
            self._cursor.execute(f"RELEASE SAVEPOINT {name}")
            raise
        else:
            self._cursor.execute(f"RELEASE SAVEPOINT {name}")

    # ---- writes ----

    def delete_all(self) -> None:
        self.execute("DELETE FROM files")
        self.execute("DELETE FROM documents")
        self.execute("DELETE FROM clients")

    def upsert_client(self, client: MirrorClient, now: datetime) -> int:
        ts = self._store.ts(now)
        self.execute(
            """
            INSERT INTO clients (cedula, nombre, fecha, folder_url, folder_id, has_folder, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (cedula) DO UPDATE SET
                nombre = EXCLUDED.nombre,
                fecha = EXCLUDED.fecha,
                folder_url = EXCLUDED.folder_url,
                folder_id = EXCLUDED.folder_id,
                has_folder = EXCLUDED.has_folder,
                updated_at = EXCLUDED.updated_at
            """,
            (
                client.cedula,
                client.nombre,
                client.fecha,
                client.folder_url,
                client.folder_id,
                client.has_folder,
                ts,
                ts,
            ),
        )
        return self.client_id_for(client.cedula)

    def client_id_for(self, cedula: str) -> int | None:
        row = self.fetchone("SELECT id FROM clients WHERE cedula = %s", (cedula,))
        return row["id"] if row else None

    def update_client_folder(
        self,
        client_id: int,
        folder_url: str | None,
        folder_id: str | None,
        now: datetime,
    ) -> None:
        self.execute(
            """
            UPDATE clients
            SET folder_url = COALESCE(%s, folder_url),
                folder_id = COALESCE(%s, folder_id),
                has_folder = %s,
                updated_at = %s
            WHERE id = %s
            """,
            (folder_url, folder_id, True, self._store.ts(now), client_id),
        )

    def delete_client_documents(self, client_id: int) -> None:
        self.execute(
            "DELETE FROM files WHERE document_id IN (SELECT id FROM documents WHERE client_id = %s)",
            (client_id,),
        )
        self.execute("DELETE FROM documents WHERE client_id = %s", (client_id,))

    def upsert_document(self, client_id: int, doc: MirrorDocument, now: datetime) -> int:
        self.execute(
            """
            INSERT INTO documents
                (client_id, type, label, folder_exists, has_files, file_count, folder_id, folder_url, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (client_id, type) DO UPDATE SET
                label = EXCLUDED.label,
                folder_exists = EXCLUDED.folder_exists,
                has_files = EXCLUDED.has_files,
                file_count = EXCLUDED.file_count,
                folder_id = EXCLUDED.folder_id,
                folder_url = EXCLUDED.folder_url,
                updated_at = EXCLUDED.updated_at
            """,
            (
                client_id,
                doc.type,
                doc.label,
                doc.exists,
                doc.has_files,
                doc.file_count,
                doc.folder_id,
                doc.folder_url,
                self._store.ts(now),
            ),
        )
        row = self.fetchone(
            "SELECT id FROM documents WHERE client_id = %s AND type = %s",
            (client_id, doc.type),
        )
        return row["id"]

    def write_documents(self, client_id: int, documents: list[MirrorDocument], now: datetime) -> tuple[int, int]:
        """
        Write a client's documents and their files.

        Returns:
            (documents written, files written)
        """
        file_count = 0
        for doc in documents:
            document_id = self.upsert_document(client_id, doc, now)
            # Files are replaced wholesale under their document
            self.execute("DELETE FROM files WHERE document_id = %s", (document_id,))
            for f in doc.files:
                self.execute(
                    """
                    INSERT INTO files (document_id, name, file_id, url, download_url, size, last_modified, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        document_id,
                        f.name,
                        f.file_id,
                        f.url,
                        f.download_url,
                        f.size,
                        f.last_modified,
                        self._store.ts(now),
                    ),
                )
                file_count += 1
        return len(documents), file_count

    def insert_sync_status(
        self,
        status: str,
        total_clients: int = 0,
        total_documents: int = 0,
        total_files: int = 0,
        failed_rows: int = 0,
        message: str | None = None,
        now: datetime | None = None,
    ) -> None:
        self.execute(
            """
            INSERT INTO sync_status
                (last_sync, status, total_clients, total_documents, total_files, failed_rows, message)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                self._store.ts(now or utcnow()),
                status,
                total_clients,
                total_documents,
                total_files,
                failed_rows,
                message,
            ),
        )


class MirrorStore:
    """
    Connection factory and schema owner for the mirror.

    Thread-safe in the sense that no connection is shared between calls.
    """

    def __init__(self, database_url: str | None = None, sqlite_path: str = "data/mirror.db"):
        self.database_url = database_url
        self.dialect = DIALECT_POSTGRES if database_url else DIALECT_SQLITE
        self.sqlite_path = Path(sqlite_path)
        if self.dialect == DIALECT_SQLITE:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)

    def sql(self, statement: str) -> str:
        if self.dialect == DIALECT_SQLITE:
            return statement.replace("%s", "?")
        return statement

    def ts(self, value: datetime) -> datetime | str:
        # sqlite3 has no native timestamp type; store ISO-8601 text
        if self.dialect == DIALECT_SQLITE:
            return value.isoformat()
        return value

    def _connect(self):
        if self.dialect == DIALECT_POSTGRES:
            return psycopg2.connect(self.database_url, cursor_factory=RealDictCursor)

        # isolation_level=None: transactions are opened explicitly with BEGIN
        conn = sqlite3.connect(str(self.sqlite_path), check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        conn = self._connect()
        try:
            if self.dialect == DIALECT_SQLITE:
                conn.executescript(SQLITE_SCHEMA)
            else:
                with conn.cursor() as cursor:
                    cursor.execute(POSTGRES_SCHEMA_PATH.read_text(encoding="utf-8"))
                conn.commit()
        finally:
            conn.close()
        logger.info(f"mirror schema ready | dialect={self.dialect}")

    @contextmanager
    def transaction(self) -> Iterator[MirrorTransaction]:
        """
        Yield a MirrorTransaction. Commits on normal exit, rolls back on any
        exception and re-raises it.
        """
        conn = self._connect()
        try:
            if self.dialect == DIALECT_SQLITE:
                conn.execute("BEGIN")
            yield MirrorTransaction(self, conn)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def query(self, sql: str, params: tuple = ()) -> list[dict]:
        """Run a read-only statement on a fresh connection."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(self.sql(sql), params)
            return [dict(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def query_one(self, sql: str, params: tuple = ()) -> dict | None:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def counts(self) -> dict[str, int]:
        """Row counts per table."""
        return {
            table: self.query_one(f"SELECT COUNT(*) AS n FROM {table}")["n"]
            for table in ("clients", "documents", "files", "sync_status")
        }


_mirror_store: MirrorStore | None = None


def get_mirror_store() -> MirrorStore:
    """Get the global mirror store, creating its schema on first use."""
    global _mirror_store
    if _mirror_store is None:
        from app.config import settings

        _mirror_store = MirrorStore(settings.database_url, settings.mirror_sqlite_path)
        _mirror_store.init_schema()
    return _mirror_store
