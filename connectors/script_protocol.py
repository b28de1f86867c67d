"""
Server side of the Drive script protocol.

Lets this service stand in for the deployed Apps Script: a JSON (or
multipart, for uploads) body with an `action` is dispatched to a connector and
answered in the script's own `{ok, ...}` shape.
"""
from connectors.base import BaseConnector, MalformedResponseError, UpstreamError
from app.logging_config import get_logger

logger = get_logger(__name__)

ACTION_FIND_FOLDER = "findFolder"
ACTION_GET_ALL_CLIENTS = "getAllClients"
ACTION_UPLOAD_LARGE_FILE = "uploadLargeFile"

_UPLOAD_CONTROL_FIELDS = {"action", "folderId", "fileName"}


def handle_script_request(
    connector: BaseConnector,
    payload: dict,
    upload: tuple[str, bytes, str | None] | None = None,
) -> dict:
    """
    Dispatch one protocol call.

    Args:
        connector: Drive-side connector doing the work.
        payload: Request body (JSON object or the non-file form fields).
        upload: (filename, content, content_type) for uploadLargeFile.

    Returns:
        Protocol response. Failures come back as {"ok": False, "error": ...}.
    """
    action = payload.get("action")
    try:
        if action == ACTION_FIND_FOLDER:
            return _find_folder(connector, payload)
        if action == ACTION_GET_ALL_CLIENTS:
            clients = connector.get_all_clients()
            return {
                "ok": True,
                "clients": [client.to_wire() for client in clients],
                "totalClients": len(clients),
            }
        if action == ACTION_UPLOAD_LARGE_FILE:
            return _upload_large_file(connector, payload, upload)

        # Any other body is the default create-folder action
        return {"ok": True, "folderUrl": connector.create_client_folder()}
    except (UpstreamError, MalformedResponseError) as e:
        logger.warning(f"script action failed | action={action or 'createFolder'} | err={e.message}")
        return {"ok": False, "error": e.message}


def _find_folder(connector: BaseConnector, payload: dict) -> dict:
    client_name = payload.get("clientName")
    client_id = payload.get("clientId")
    if not client_name and not client_id:
        return {"ok": False, "error": "Se requiere clientName o clientId"}

    document_type = payload.get("documentType")
    if document_type:
        lookup = connector.find_document_folder(client_name, client_id, document_type)
        if lookup is None:
            return {
                "ok": False,
                "error": f"No se encontró la carpeta '{document_type}' para el cliente",
            }
        return {"ok": True, **lookup.to_wire()}

    documents = connector.find_client_documents(client_name, client_id)
    if documents is None:
        return {"ok": False, "error": "No se encontró la carpeta del cliente"}
    return {"ok": True, "data": documents.to_wire()}


def _upload_large_file(
    connector: BaseConnector,
    payload: dict,
    upload: tuple[str, bytes, str | None] | None,
) -> dict:
    folder_id = payload.get("folderId")
    if not folder_id or upload is None:
        return {"ok": False, "error": "Se requieren folderId y file"}

    filename, content, content_type = upload
    file_name = payload.get("fileName") or filename
    extra = {k: str(v) for k, v in payload.items() if k not in _UPLOAD_CONTROL_FIELDS}
    result = connector.upload_large_file(folder_id, file_name, content, content_type, fields=extra)
    return {"ok": True, **result.to_wire()}
