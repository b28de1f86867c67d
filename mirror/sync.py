"""
Sync service: Drive side -> relational mirror.

`sync_all` replaces the whole mirror from one bulk getAllClients call.
`sync_client_after_upload` replaces a single client's documents after an
upload. Drive state always wins.
"""
import threading
import time
from collections import defaultdict
from dataclasses import dataclass

import sentry_sdk

from connectors.base import BaseConnector, MalformedResponseError, UpstreamError
from mirror.queries import find_client_by_name_or_id
from mirror.store import DATABASE_ERRORS, MirrorStore, utcnow
from mirror.validation import MirrorClient, normalize_client, normalize_documents
from app.logging_config import get_logger

logger = get_logger(__name__)

STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_ERROR = "error"


@dataclass
class SyncResult:
    success: bool
    status: str
    message: str
    total_clients: int = 0
    total_documents: int = 0
    total_files: int = 0
    failed_rows: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict:
        """camelCase, for the JSON envelope."""
        return {
            "success": self.success,
            "status": self.status,
            "message": self.message,
            "totalClients": self.total_clients,
            "totalDocuments": self.total_documents,
            "totalFiles": self.total_files,
            "failedRows": self.failed_rows,
            "durationMs": self.duration_ms,
        }


class SyncService:
    def __init__(self, store: MirrorStore, connector: BaseConnector):
        self.store = store
        self.connector = connector
        self._sync_lock = threading.Lock()
        self._client_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._client_locks_guard = threading.Lock()

    def _client_lock(self, cedula: str) -> threading.Lock:
        with self._client_locks_guard:
            return self._client_locks[cedula]

    def _fail(self, message: str, started: float, error: Exception | None = None) -> SyncResult:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if error is not None:
            sentry_sdk.capture_exception(error)
        try:
            with self.store.transaction() as tx:
                tx.insert_sync_status(STATUS_ERROR, message=message)
        except DATABASE_ERRORS as e:
            logger.error(f"sync_status write failed | err={type(e).__name__}: {e}")
            sentry_sdk.capture_exception(e)
        logger.error(f"sync_all failed | ms={elapsed_ms} | err={message}")
        return SyncResult(success=False, status=STATUS_ERROR, message=message, duration_ms=elapsed_ms)

    def sync_all(self) -> SyncResult:
        """
        Rebuild the mirror from the Drive side.

        Runs in one transaction: readers keep seeing the previous mirror until
        commit. A client whose rows fail to write is rolled back to its own
        savepoint and counted in failed_rows; any other failure rolls back
        everything and records an error status row.
        """
        with self._sync_lock:
            started = time.perf_counter()
            logger.info(f"sync_all start | connector={self.connector.name}")

            try:
                raw_clients = self.connector.get_all_clients()
            except (UpstreamError, MalformedResponseError) as e:
                return self._fail(e.message, started, e)

            if not raw_clients:
                return self._fail("No se encontraron clientes en Google Sheets", started)

            # Last registry row per cédula wins
            by_cedula: dict[str, MirrorClient] = {}
            failed_rows = 0
            for raw in raw_clients:
                client = normalize_client(raw)
                if client is None:
                    failed_rows += 1
                    continue
                if client.cedula in by_cedula:
                    logger.warning(f"Duplicate registry row | cedula={client.cedula} | row={raw.row_number}")
                    del by_cedula[client.cedula]
                by_cedula[client.cedula] = client
            clients = list(by_cedula.values())

            if not clients:
                return self._fail(
                    f"Ninguna fila válida en Google Sheets ({failed_rows} filas con error)",
                    started,
                )

            total_clients = total_documents = total_files = 0
            now = utcnow()
            try:
                with self.store.transaction() as tx:
                    tx.delete_all()
                    for index, client in enumerate(clients):
                        try:
                            with tx.savepoint(f"client_{index}"):
                                client_id = tx.upsert_client(client, now)
                                docs, files = tx.write_documents(client_id, client.documents, now)
                        except DATABASE_ERRORS as e:
                            failed_rows += 1
                            logger.warning(
                                f"sync_all client failed | cedula={client.cedula} | "
                                f"err={type(e).__name__}: {e}"
                            )
                            continue
                        total_clients += 1
                        total_documents += docs
                        total_files += files
            except DATABASE_ERRORS as e:
                return self._fail(f"Error de base de datos: {e}", started, e)

            status = STATUS_PARTIAL if failed_rows else STATUS_SUCCESS
            message = (
                f"Sincronización completada: {total_clients} clientes, "
                f"{total_documents} documentos, {total_files} archivos"
            )
            if failed_rows:
                message += f" ({failed_rows} filas con error)"

            with self.store.transaction() as tx:
                tx.insert_sync_status(
                    status,
                    total_clients=total_clients,
                    total_documents=total_documents,
                    total_files=total_files,
                    failed_rows=failed_rows,
                    message=message,
                )

            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.info(
                f"sync_all ok | status={status} | clients={total_clients} | docs={total_documents} | "
                f"files={total_files} | failed={failed_rows} | ms={elapsed_ms}"
            )
            return SyncResult(
                success=True,
                status=status,
                message=message,
                total_clients=total_clients,
                total_documents=total_documents,
                total_files=total_files,
                failed_rows=failed_rows,
                duration_ms=elapsed_ms,
            )

    def sync_client_after_upload(self, client_name: str | None, client_id: str | None) -> SyncResult | None:
        """
        Replace one client's documents and files with fresh Drive state.

        Returns None when the client is not in the mirror or has no Drive
        folder. Upstream errors propagate.
        """
        started = time.perf_counter()
        existing = find_client_by_name_or_id(self.store, client_name, client_id)
        if existing is None:
            logger.info(f"auto_sync miss | name={client_name!r} | id={client_id!r}")
            return None

        cedula = existing["cedula"]
        with self._client_lock(cedula):
            # Drive is read for the mirror row's client, whatever matched the input
            fresh = self.connector.find_client_documents(existing["nombre"], cedula)
            if fresh is None:
                logger.info(f"auto_sync no folder | cedula={cedula}")
                return None

            documents = normalize_documents(fresh.documents)
            now = utcnow()
            with self.store.transaction() as tx:
                tx.update_client_folder(existing["id"], fresh.client_folder_url, fresh.client_folder_id, now)
                tx.delete_client_documents(existing["id"])
                total_documents, total_files = tx.write_documents(existing["id"], documents, now)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"auto_sync ok | cedula={cedula} | docs={total_documents} | "
            f"files={total_files} | ms={elapsed_ms}"
        )
        return SyncResult(
            success=True,
            status=STATUS_SUCCESS,
            message="Cliente sincronizado correctamente",
            total_clients=1,
            total_documents=total_documents,
            total_files=total_files,
            duration_ms=elapsed_ms,
        )
