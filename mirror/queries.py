"""
Read-only queries against the mirror.

These back every fast-path route. They never call Drive; the shapes returned
are already camelCase for the JSON envelope.
"""
import time
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from connectors.base import DOCUMENT_TYPES, TOTAL_DOCUMENT_TYPES, progress_percentage
from connectors.matcher import normalize_id
from mirror.store import MirrorStore
from app.logging_config import get_logger

logger = get_logger(__name__)

_CLIENT_COLUMNS = "id, cedula, nombre, fecha, folder_url, folder_id, has_folder, updated_at"


def _as_datetime(value) -> datetime | None:
    # Postgres hands back datetimes, SQLite ISO strings
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def display_fecha(fecha: str | None) -> str:
    """YYYY-MM-DD -> DD/MM/YYYY; anything else is returned unchanged."""
    if not fecha:
        return ""
    try:
        return datetime.strptime(fecha, "%Y-%m-%d").strftime("%d/%m/%Y")
    except ValueError:
        return fecha


def _name_pattern(name: str) -> str:
    """Substring LIKE pattern; the input's own % and _ match literally (ESCAPE '\\')."""
    text = name.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{text}%"


def find_client_by_name_or_id(store: MirrorStore, client_name: str | None, client_id: str | None) -> dict | None:
    """
    Exact cédula first, then a case-insensitive substring match on nombre.

    Returns the raw client row or None.
    """
    cedula = normalize_id(client_id)
    if cedula:
        row = store.query_one(f"SELECT {_CLIENT_COLUMNS} FROM clients WHERE cedula = %s", (cedula,))
        if row is not None:
            return row

    if client_name and client_name.strip():
        return store.query_one(
            f"SELECT {_CLIENT_COLUMNS} FROM clients WHERE LOWER(nombre) LIKE %s ESCAPE '\\' ORDER BY id LIMIT 1",
            (_name_pattern(client_name),),
        )
    return None


def _client_summary(row: dict) -> dict:
    return {
        "nombre": row["nombre"],
        "cedula": row["cedula"],
        "fecha": display_fecha(row["fecha"]),
        "folderUrl": row["folder_url"] or "",
        "hasFolder": bool(row["has_folder"]),
    }


def search_clients(store: MirrorStore, text: str, limit: int = 10) -> list[dict]:
    """Exact cédula or partial name, at most `limit` rows."""
    trimmed = (text or "").strip()
    if not trimmed:
        return []
    cedula = normalize_id(trimmed)
    rows = store.query(
        f"""
        SELECT {_CLIENT_COLUMNS} FROM clients
        WHERE cedula = %s OR LOWER(nombre) LIKE %s ESCAPE '\\'
        ORDER BY fecha IS NULL, fecha DESC, nombre
        LIMIT %s
        """,
        (cedula, _name_pattern(trimmed), limit),
    )
    return [_client_summary(row) for row in rows]


def _file_entry(row: dict) -> dict:
    entry = {
        "name": row["name"],
        "id": row["file_id"],
        "url": row["url"],
        "downloadUrl": row["download_url"] or row["url"],
    }
    if row["size"]:
        entry["size"] = row["size"]
    if row["last_modified"]:
        entry["lastModified"] = row["last_modified"]
    return entry


def get_client_with_documents(store: MirrorStore, client_name: str | None, client_id: str | None) -> dict | None:
    """
    A client with its 8 document slots in the fixed order.

    Types with no mirror row come back as placeholders (exists false, no files).
    """
    client = find_client_by_name_or_id(store, client_name, client_id)
    if client is None:
        return None

    documents = {
        row["type"]: row
        for row in store.query("SELECT * FROM documents WHERE client_id = %s", (client["id"],))
    }
    files_by_document: dict[int, list[dict]] = {}
    if documents:
        file_rows = store.query(
            """
            SELECT f.* FROM files f
            JOIN documents d ON d.id = f.document_id
            WHERE d.client_id = %s
            ORDER BY f.created_at DESC, f.id
            """,
            (client["id"],),
        )
        for row in file_rows:
            files_by_document.setdefault(row["document_id"], []).append(_file_entry(row))

    slots = []
    for doc_type, label in DOCUMENT_TYPES:
        doc = documents.get(doc_type)
        if doc is None:
            slots.append({
                "type": doc_type,
                "label": label,
                "exists": False,
                "hasFiles": False,
                "fileCount": 0,
                "files": [],
            })
            continue

        slot = {
            "type": doc_type,
            "label": doc["label"] or label,
            "exists": bool(doc["folder_exists"]),
            "hasFiles": bool(doc["has_files"]),
            "fileCount": doc["file_count"],
            "files": files_by_document.get(doc["id"], []),
        }
        if doc["folder_id"]:
            slot["folderId"] = doc["folder_id"]
        if doc["folder_url"]:
            slot["folderUrl"] = doc["folder_url"]
        slots.append(slot)

    return {
        "name": client["nombre"],
        "id": client["cedula"],
        "fecha": display_fecha(client["fecha"]),
        "folderUrl": client["folder_url"] or "",
        "documents": slots,
    }


def get_sync_status(store: MirrorStore) -> dict | None:
    """The most recent sync_status row, or None if no sync ever ran."""
    row = store.query_one("SELECT * FROM sync_status ORDER BY last_sync DESC, id DESC LIMIT 1")
    if row is None:
        return None
    last_sync = _as_datetime(row["last_sync"])
    return {
        "lastSync": last_sync.isoformat(),
        "status": row["status"],
        "totalClients": row["total_clients"],
        "totalDocuments": row["total_documents"],
        "totalFiles": row["total_files"],
        "failedRows": row["failed_rows"],
        "message": row["message"],
    }


def get_all_clients_with_progress(
    store: MirrorStore,
    stale_after_minutes: int = 60,
    display_timezone: str = "America/Bogota",
    now: datetime | None = None,
) -> dict:
    """
    Every client with document progress, newest fecha first.

    Returns:
        {"clients": [...], "meta": {...}}. meta carries the last sync time
        (ISO and display form) and whether it is older than the stale window.
    """
    started = time.perf_counter()

    clients = store.query(
        f"SELECT {_CLIENT_COLUMNS} FROM clients ORDER BY fecha IS NULL, fecha DESC, nombre"
    )
    documents_by_client: dict[int, list[dict]] = {}
    for row in store.query("SELECT client_id, type, label, has_files, file_count FROM documents"):
        documents_by_client.setdefault(row["client_id"], []).append(row)

    results = []
    for client in clients:
        docs = documents_by_client.get(client["id"], [])
        completed = sum(1 for d in docs if d["has_files"] and d["file_count"] > 0)
        summary = _client_summary(client)
        summary["documentsStatus"] = {
            "completed": completed,
            "total": TOTAL_DOCUMENT_TYPES,
            "percentage": progress_percentage(completed),
        }
        summary["documentDetails"] = [
            {
                "type": d["type"],
                "label": d["label"],
                "hasFiles": bool(d["has_files"]),
                "fileCount": d["file_count"],
            }
            for d in docs
        ]
        results.append(summary)

    status = get_sync_status(store)
    now = now or datetime.now(timezone.utc)
    if status is None:
        last_sync_iso = None
        last_updated = "Nunca"
        stale = True
    else:
        last_sync = _as_datetime(status["lastSync"])
        last_sync_iso = status["lastSync"]
        last_updated = last_sync.astimezone(ZoneInfo(display_timezone)).strftime("%d/%m/%Y %H:%M")
        stale = (
            status["status"] == "error"
            or now - last_sync > timedelta(minutes=stale_after_minutes)
        )

    query_ms = int((time.perf_counter() - started) * 1000)
    logger.info(f"dashboard query ok | clients={len(results)} | ms={query_ms}")
    return {
        "clients": results,
        "meta": {
            "queryTime": query_ms,
            "totalClients": len(results),
            "lastUpdated": last_updated,
            "lastSync": last_sync_iso,
            "stale": stale,
        },
    }
