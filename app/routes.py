"""
HTTP routes for the document dashboard.

Fast path: reads served from the mirror behind the TTL cache.
Slow path: folder lookups, uploads and syncs that go to the Drive side.

Every JSON route answers with the envelope
{"success": bool, "data"?, "message"|"error"?, "meta"?}.
"""
import secrets
import time
from functools import lru_cache

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.cache import TTLCache
from app.config import settings
from app.logging_config import get_logger
from app.models import ClientQuery, Envelope, FindFolderRequest, SyncRequest
from connectors import BaseConnector, UploadRelay, create_connector
from connectors.base import (
    DOCUMENT_TYPE_VALUES,
    FileTooLargeError,
    MalformedResponseError,
    UpstreamError,
    drive_folder_url,
)
from connectors.factory import BACKEND_GOOGLE_API
from connectors.script_protocol import handle_script_request
from mirror.queries import (
    get_all_clients_with_progress,
    get_client_with_documents,
    get_sync_status,
    search_clients,
)
from mirror.store import DATABASE_ERRORS, MirrorStore, get_mirror_store
from mirror.sync import SyncService

logger = get_logger(__name__)

limiter = Limiter(key_func=get_remote_address)

router = APIRouter()

METHOD_RELAY = "zapier_relay"


def envelope(data=None, message: str | None = None, meta: dict | None = None) -> dict:
    return Envelope(success=True, data=data, message=message, meta=meta).model_dump(exclude_none=True)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


# ============== Dependencies ==============

def verify_api_key(x_api_key: str | None = Header(None, alias="X-API-Key")):
    """
    Verify API key for protected endpoints.
    If API_KEY is not configured, authentication is disabled (for development).
    """
    if not settings.api_key:
        return True

    if not x_api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Provide X-API-Key header.",
        )

    # Constant-time comparison
    if not secrets.compare_digest(x_api_key, settings.api_key):
        raise HTTPException(
            status_code=401,
            detail="Invalid API key.",
        )

    return True


def get_store() -> MirrorStore:
    return get_mirror_store()


@lru_cache
def _connector() -> BaseConnector:
    return create_connector(settings)


def get_connector() -> BaseConnector:
    try:
        return _connector()
    except ValueError as e:
        logger.error(f"Drive side not configured: {e}")
        raise HTTPException(status_code=503, detail=f"Drive no configurado: {e}")


@lru_cache
def _script_connector() -> BaseConnector:
    return create_connector(settings, backend=BACKEND_GOOGLE_API)


def get_script_connector() -> BaseConnector:
    try:
        return _script_connector()
    except ValueError as e:
        raise HTTPException(status_code=503, detail=f"Google API no configurada: {e}")


@lru_cache
def _relay() -> UploadRelay | None:
    if not settings.relay_webhook_url:
        return None
    return UploadRelay(settings.relay_webhook_url, timeout=settings.app_script_timeout_seconds)


def get_relay() -> UploadRelay | None:
    return _relay()


_cache = TTLCache(ttl_seconds=settings.cache_ttl_seconds)


def get_cache() -> TTLCache:
    return _cache


_sync_service: SyncService | None = None


def get_sync_service(
    store: MirrorStore = Depends(get_store),
    connector: BaseConnector = Depends(get_connector),
) -> SyncService:
    # One instance per process so its locks serialize every caller
    global _sync_service
    if _sync_service is None:
        _sync_service = SyncService(store, connector)
    return _sync_service


def _require_client(query: ClientQuery, message: str = "Se requiere nombre o cédula del cliente") -> None:
    if query.is_empty():
        raise HTTPException(status_code=400, detail=message)


# ============== Mirror reads ==============

@router.post("/api/clients/search")
def search_client(
    body: ClientQuery,
    store: MirrorStore = Depends(get_store),
    cache: TTLCache = Depends(get_cache),
):
    """One client with its 8 document slots, from the cache or the mirror."""
    _require_client(body)
    started = time.perf_counter()

    cached = cache.get_client(body.client_name, body.client_id)
    if cached is not None:
        return envelope(cached, meta={"queryTime": _elapsed_ms(started), "source": "cache"})

    data = get_client_with_documents(store, body.client_name, body.client_id)
    if data is None:
        raise HTTPException(status_code=404, detail="Cliente no encontrado en la base de datos")

    cache.set_client(body.client_name, body.client_id, data)
    logger.info(
        f"client search ok | cedula={data['id']} | "
        f"with_files={sum(1 for d in data['documents'] if d['hasFiles'])}"
    )
    return envelope(data, meta={"queryTime": _elapsed_ms(started), "source": "mirror"})


@router.get("/api/clients")
def list_clients(q: str = "", store: MirrorStore = Depends(get_store)):
    """Text search: exact cédula or partial name."""
    results = search_clients(store, q)
    return envelope(results, meta={"total": len(results)})


@router.api_route("/api/clients/dashboard", methods=["GET", "POST"])
def dashboard(store: MirrorStore = Depends(get_store), cache: TTLCache = Depends(get_cache)):
    started = time.perf_counter()
    cached = cache.get_dashboard()
    if cached is not None:
        meta = {**cached["meta"], "queryTime": _elapsed_ms(started), "source": "cache"}
        return envelope(cached["data"], meta=meta)

    result = get_all_clients_with_progress(
        store,
        stale_after_minutes=settings.sync_stale_after_minutes,
        display_timezone=settings.display_timezone,
    )
    payload = {
        "data": {"clients": result["clients"], "totalClients": result["meta"]["totalClients"]},
        "meta": result["meta"],
    }
    cache.set_dashboard(payload)
    return envelope(payload["data"], meta={**payload["meta"], "source": "mirror"})


@router.post("/api/clients/refresh")
def refresh_cache(cache: TTLCache = Depends(get_cache)):
    cache.clear()
    logger.info("cache cleared")
    return envelope(message="Caché limpiado exitosamente")


@router.get("/api/cache/stats")
def cache_stats(cache: TTLCache = Depends(get_cache)):
    return envelope(cache.stats())


# ============== Sync ==============

@router.post("/api/clients/auto-sync")
def auto_sync(
    body: ClientQuery,
    sync_service: SyncService = Depends(get_sync_service),
    cache: TTLCache = Depends(get_cache),
):
    """Re-read one client from Drive and replace its mirror rows."""
    _require_client(body)
    result = sync_service.sync_client_after_upload(body.client_name, body.client_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Cliente no encontrado en la base de datos")

    cache.invalidate_client(body.client_name, body.client_id)
    cache.invalidate_dashboard()
    return envelope(result.to_dict(), message=result.message)


@router.get("/api/sync")
def sync_status(store: MirrorStore = Depends(get_store)):
    return envelope(get_sync_status(store))


@router.post("/api/sync")
@limiter.limit(settings.rate_limit_sync)
def sync(
    request: Request,
    body: SyncRequest | None = None,
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    store: MirrorStore = Depends(get_store),
    sync_service: SyncService = Depends(get_sync_service),
    cache: TTLCache = Depends(get_cache),
):
    """
    {"action": "status"} returns the latest sync status.
    {"action": "sync"} (the default) runs a full refresh; requires the API key.
    """
    action = body.action if body else "sync"
    if action == "status":
        return envelope(get_sync_status(store))

    verify_api_key(x_api_key)
    result = sync_service.sync_all()
    if not result.success:
        return JSONResponse(
            status_code=502,
            content={"success": False, "error": result.message, "data": result.to_dict()},
        )

    cache.clear()
    return envelope(result.to_dict(), message=result.message)


# ============== Drive side ==============

@router.post("/api/find-folder")
def find_folder(body: FindFolderRequest, connector: BaseConnector = Depends(get_connector)):
    _require_client(body, "Se requiere nombre del cliente o cédula")
    if not body.has_valid_type():
        raise HTTPException(status_code=400, detail=f"Tipo de documento no válido: {body.document_type}")

    lookup = connector.find_document_folder(body.client_name, body.client_id, body.document_type)
    if lookup is None:
        raise HTTPException(status_code=404, detail="No se pudo encontrar la carpeta")

    return envelope(
        {
            **lookup.to_wire(),
            "documentType": body.document_type,
            "clientInfo": {"name": body.client_name, "id": body.client_id},
        },
        message="Carpeta encontrada exitosamente",
    )


@router.post("/api/create-folder")
def create_folder(
    connector: BaseConnector = Depends(get_connector),
    cache: TTLCache = Depends(get_cache),
):
    """Create the folder tree for the newest registry row."""
    folder_url = connector.create_client_folder()
    cache.invalidate_dashboard()
    logger.info(f"create_folder ok | url={folder_url}")
    return envelope({"folderUrl": folder_url}, message="Carpeta creada exitosamente")


def _read_upload(file: UploadFile) -> bytes:
    content = file.file.read()
    if len(content) > settings.upload_max_bytes:
        raise FileTooLargeError(len(content), settings.upload_max_bytes)
    return content


@router.post("/api/upload-document")
@limiter.limit(settings.rate_limit_upload)
def upload_document(
    request: Request,
    file: UploadFile = File(...),
    client_name: str | None = Form(None, alias="clientName"),
    client_id: str | None = Form(None, alias="clientId"),
    document_type: str = Form(..., alias="documentType"),
    connector: BaseConnector = Depends(get_connector),
    relay: UploadRelay | None = Depends(get_relay),
    sync_service: SyncService = Depends(get_sync_service),
    cache: TTLCache = Depends(get_cache),
):
    """
    Upload one document into a client's document-type folder.

    Files up to RELAY_MAX_FILE_MB go through the relay webhook, larger ones
    (or all of them when no relay is configured) straight to the Drive side.
    The client's mirror rows are refreshed afterwards.
    """
    content = _read_upload(file)
    file_name = file.filename or "documento"
    query = ClientQuery(client_name=client_name, client_id=client_id)
    _require_client(query, "Se requiere nombre del cliente o cédula")
    if document_type not in DOCUMENT_TYPE_VALUES:
        raise HTTPException(status_code=400, detail=f"Tipo de documento no válido: {document_type}")

    folder = connector.find_document_folder(client_name, client_id, document_type)
    if folder is None:
        raise HTTPException(status_code=404, detail="No se pudo encontrar la carpeta del cliente")

    size_mb = len(content) / 1024 / 1024
    if relay is not None and len(content) <= settings.relay_max_bytes:
        relay.send(
            file_name=file_name,
            content=content,
            content_type=file.content_type,
            folder_id=folder.folder_id,
            folder_name=folder.folder_name,
            document_type=document_type,
            client_name=client_name or "",
            client_id=client_id or "",
        )
        method = METHOD_RELAY
    else:
        result = connector.upload_large_file(
            folder.folder_id,
            file_name,
            content,
            file.content_type,
            fields={
                "documentType": document_type,
                "clientName": client_name or "",
                "clientId": client_id or "",
            },
        )
        method = result.method or "uploadLargeFile"

    logger.info(f"upload ok | file={file_name} | mb={size_mb:.2f} | method={method} | folder={folder.folder_id}")

    try:
        refreshed = sync_service.sync_client_after_upload(client_name, client_id)
    except (UpstreamError, MalformedResponseError) as e:
        # The file is already in Drive; the next full sync picks it up
        logger.warning(f"auto_sync after upload failed | err={e.message}")
        refreshed = None
    except DATABASE_ERRORS as e:
        logger.warning(f"auto_sync after upload failed | err={type(e).__name__}: {e}")
        refreshed = None

    cache.invalidate_client(client_name, client_id)
    cache.invalidate_dashboard()

    return envelope(
        {
            "fileName": file_name,
            "fileSize": f"{size_mb:.2f} MB",
            "folderId": folder.folder_id,
            "folderName": folder.folder_name,
            "folderUrl": drive_folder_url(folder.folder_id),
            "documentType": document_type,
            "method": method,
            "mirrorUpdated": refreshed is not None,
        },
        message=f'Documento "{file_name}" enviado exitosamente a la carpeta {folder.folder_name}',
    )


@router.post("/api/upload-large-file")
@limiter.limit(settings.rate_limit_upload)
def upload_large_file(
    request: Request,
    file: UploadFile = File(...),
    folder_id: str = Form(..., alias="folderId"),
    file_name: str | None = Form(None, alias="fileName"),
    connector: BaseConnector = Depends(get_connector),
):
    """Send a file straight to a Drive folder, bypassing the relay."""
    content = _read_upload(file)
    result = connector.upload_large_file(folder_id, file_name or file.filename or "documento", content, file.content_type)
    return envelope(result.to_wire(), message=result.message or "Archivo subido exitosamente")


@router.post("/script")
async def script_protocol(request: Request, connector: BaseConnector = Depends(get_script_connector)):
    """
    Drive-side script protocol served in-process.

    Same request and response shapes as the deployed Apps Script, so
    APP_SCRIPT_URL can point here.
    """
    upload = None
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        payload = {key: value for key, value in form.items() if isinstance(value, str)}
        uploaded = form.get("file")
        if uploaded is not None and not isinstance(uploaded, str):
            upload = (uploaded.filename, await uploaded.read(), uploaded.content_type)
    else:
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

    return await run_in_threadpool(handle_script_request, connector, payload, upload)
