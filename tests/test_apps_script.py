"""
AppsScriptConnector against a mocked web app (httpx.MockTransport).
"""
import json

import httpx
import pytest

from connectors.apps_script import AppsScriptConnector
from connectors.base import MalformedResponseError, UpstreamError

SCRIPT_URL = "https://script.google.com/macros/s/test/exec"


def make_connector(handler) -> tuple[AppsScriptConnector, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.Client(transport=httpx.MockTransport(recording))
    return AppsScriptConnector(SCRIPT_URL, client=client), seen


def json_handler(payload, status_code: int = 200):
    return lambda request: httpx.Response(status_code, json=payload)


def test_requires_url():
    with pytest.raises(ValueError):
        AppsScriptConnector("")


def test_find_client_documents_sends_find_folder():
    payload = {
        "ok": True,
        "data": {
            "clientName": "20240115_maria_perez_1032456789",
            "clientFolderUrl": "https://drive.google.com/drive/folders/abc",
            "documents": [
                {"type": "02_pagare", "exists": True, "hasFiles": True, "fileCount": 1,
                 "files": [{"name": "pagare.pdf", "id": "f1", "url": "u", "size": 10}]},
            ],
        },
    }
    connector, seen = make_connector(json_handler(payload))

    result = connector.find_client_documents("  Maria ", "")

    assert json.loads(seen[0].content) == {"action": "findFolder", "clientName": "Maria", "clientId": None}
    assert result.client_name == "20240115_maria_perez_1032456789"
    assert result.documents[0].files[0].name == "pagare.pdf"


def test_find_client_documents_not_found_is_none():
    connector, _ = make_connector(json_handler({"ok": False, "error": "No encontrado"}))
    assert connector.find_client_documents("Nadie", None) is None


def test_find_document_folder_sends_document_type():
    payload = {"ok": True, "folderId": "sub-1", "folderName": "02_pagare", "folderUrl": "https://x", "fileCount": 0}
    connector, seen = make_connector(json_handler(payload))

    lookup = connector.find_document_folder("Maria", "1032456789", "02_pagare")

    assert json.loads(seen[0].content)["documentType"] == "02_pagare"
    assert lookup.folder_id == "sub-1"


def test_rate_limited_maps_to_429():
    connector, _ = make_connector(json_handler({}, status_code=429))
    with pytest.raises(UpstreamError) as excinfo:
        connector.get_all_clients()
    assert excinfo.value.status_code == 429


def test_server_error_maps_to_502():
    connector, _ = make_connector(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(UpstreamError) as excinfo:
        connector.find_client_documents("Maria", None)
    assert excinfo.value.status_code == 502
    assert "500" in excinfo.value.message


def test_transport_failure_maps_to_502():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    connector, _ = make_connector(handler)
    with pytest.raises(UpstreamError) as excinfo:
        connector.create_client_folder()
    assert excinfo.value.status_code == 502


def test_html_body_is_malformed():
    html = "<html><body>Sign in</body></html>"
    connector, _ = make_connector(lambda request: httpx.Response(200, text=html))
    with pytest.raises(MalformedResponseError) as excinfo:
        connector.find_client_documents("Maria", None)
    assert excinfo.value.raw == html


def test_get_all_clients_accepts_nested_list_and_numeric_cells():
    payload = {
        "ok": True,
        "data": {
            "clients": [
                {"rowNumber": 2, "fecha": "2024-01-15", "nombre": "Maria Perez", "cedula": 1032456789.0,
                 "hasFolder": True, "documentsStatus": {"completed": 3, "total": 8, "percentage": 38}},
            ],
        },
    }
    connector, _ = make_connector(json_handler(payload))

    clients = connector.get_all_clients()

    assert len(clients) == 1
    assert clients[0].cedula == "1032456789"
    assert clients[0].documents_status.percentage == 38


def test_get_all_clients_unrecognized_shape():
    connector, _ = make_connector(json_handler({"ok": True, "data": "nope"}))
    with pytest.raises(MalformedResponseError):
        connector.get_all_clients()


def test_get_all_clients_script_error():
    connector, _ = make_connector(json_handler({"ok": False, "error": "Hoja no encontrada"}))
    with pytest.raises(UpstreamError) as excinfo:
        connector.get_all_clients()
    assert excinfo.value.message == "Hoja no encontrada"


def test_upload_large_file_is_multipart():
    payload = {"ok": True, "fileId": "new", "fileName": "grande.pdf", "method": "direct_drive_api_upload"}
    connector, seen = make_connector(json_handler(payload))

    result = connector.upload_large_file("sub-1", "grande.pdf", b"%PDF-1.4", "application/pdf", fields={"clientName": "Maria"})

    body = seen[0].content
    assert seen[0].headers["content-type"].startswith("multipart/form-data")
    assert b'name="action"' in body and b"uploadLargeFile" in body
    assert b'name="clientName"' in body
    assert result.file_id == "new"


def test_create_client_folder():
    connector, seen = make_connector(json_handler({"ok": True, "folderUrl": "https://drive.google.com/drive/folders/n"}))
    assert connector.create_client_folder() == "https://drive.google.com/drive/folders/n"
    assert json.loads(seen[0].content) == {}


def test_create_client_folder_without_url_is_malformed():
    connector, _ = make_connector(json_handler({"ok": True}))
    with pytest.raises(MalformedResponseError):
        connector.create_client_folder()
