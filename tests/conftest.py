"""
Shared fixtures: in-memory Drive/Sheets fakes, a fake Drive-side connector,
a SQLite mirror in tmp_path and an API client with dependencies overridden.
"""
import re
from itertools import count

import pytest

from connectors.base import (
    DOCUMENT_LABELS,
    DOCUMENT_TYPE_VALUES,
    FOLDER_MIME_TYPE,
    BaseConnector,
    ClientDocuments,
    FolderLookup,
    ScriptClient,
    ScriptDocument,
    ScriptFile,
    UploadResult,
    drive_folder_url,
)
from mirror.store import MirrorStore

ROOT_ID = "root-folder"


# ============== Google API fakes ==============

class _Request:
    def __init__(self, result):
        self._result = result

    def execute(self):
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


class FakeDriveFiles:
    _PARENT = re.compile(r"'([^']+)' in parents")

    def __init__(self, service):
        self._service = service

    def list(self, q, pageToken=None, **kwargs):
        self._service.list_calls.append(q)
        match = self._PARENT.search(q)
        parent = match.group(1) if match else None
        items = [item for item in self._service.items.values() if parent in item["parents"]]
        if f"mimeType='{FOLDER_MIME_TYPE}'" in q:
            items = [i for i in items if i["mimeType"] == FOLDER_MIME_TYPE]
        elif f"mimeType!='{FOLDER_MIME_TYPE}'" in q:
            items = [i for i in items if i["mimeType"] != FOLDER_MIME_TYPE]
        if "trashed=false" in q:
            items = [i for i in items if not i.get("trashed")]

        start = int(pageToken or 0)
        page = items[start:start + self._service.page_size]
        response = {"files": [{k: v for k, v in i.items() if k != "parents"} for i in page]}
        if start + self._service.page_size < len(items):
            response["nextPageToken"] = str(start + self._service.page_size)
        return _Request(response)

    def create(self, body, media_body=None, fields=None, supportsAllDrives=None):
        item_id = self._service.next_id()
        item = {
            "id": item_id,
            "name": body["name"],
            "mimeType": body.get("mimeType", "application/pdf"),
            "parents": body.get("parents", []),
        }
        if media_body is not None:
            item["size"] = str(media_body.size())
        self._service.items[item_id] = item
        return _Request({"id": item_id, "name": body["name"]})


class FakeDriveService:
    """Just enough of the Drive v3 resource for the connector."""

    def __init__(self, page_size: int = 3):
        self.items: dict[str, dict] = {}
        self.page_size = page_size
        self.list_calls: list[str] = []
        self._ids = count(1)

    def next_id(self) -> str:
        return f"id{next(self._ids)}"

    def files(self):
        return FakeDriveFiles(self)

    def add_folder(self, name: str, parent: str = ROOT_ID) -> str:
        folder_id = self.next_id()
        self.items[folder_id] = {
            "id": folder_id,
            "name": name,
            "mimeType": FOLDER_MIME_TYPE,
            "parents": [parent],
        }
        return folder_id

    def add_file(self, name: str, parent: str, size: int = 1024, trashed: bool = False) -> str:
        file_id = self.next_id()
        self.items[file_id] = {
            "id": file_id,
            "name": name,
            "mimeType": "application/pdf",
            "size": str(size),
            "trashed": trashed,
            "modifiedTime": "2024-05-01T10:00:00.000Z",
            "parents": [parent],
        }
        return file_id

    def add_client(self, folder_name: str, with_files: dict[str, list[tuple[str, int, bool]]] | None = None) -> str:
        """
        Add a client folder. with_files maps a document type to
        (name, size, trashed) tuples; only those subfolders are created.
        """
        client_id = self.add_folder(folder_name)
        for doc_type, files in (with_files or {}).items():
            sub_id = self.add_folder(doc_type, parent=client_id)
            for name, size, trashed in files:
                self.add_file(name, sub_id, size=size, trashed=trashed)
        return client_id

    # FolderLister protocol, for testing the aggregator on its own

    def list_subfolders(self, folder_id: str) -> list[dict]:
        self.list_calls.append(f"'{folder_id}' in parents and mimeType='{FOLDER_MIME_TYPE}'")
        items = [
            i for i in self.items.values()
            if folder_id in i["parents"] and i["mimeType"] == FOLDER_MIME_TYPE and not i.get("trashed")
        ]
        return [{k: v for k, v in i.items() if k != "parents"} for i in items]

    def list_files(self, folder_id: str) -> list[dict]:
        items = [i for i in self.items.values() if folder_id in i["parents"] and i["mimeType"] != FOLDER_MIME_TYPE]
        return [{k: v for k, v in i.items() if k != "parents"} for i in items]


class _Values:
    def __init__(self, service):
        self._service = service

    def get(self, spreadsheetId, range, **kwargs):
        self._service.get_calls.append(range)
        return _Request({"values": self._service.rows})

    def update(self, spreadsheetId, range, valueInputOption, body):
        self._service.updates.append((range, body["values"]))
        return _Request({"updatedCells": 1})


class _Spreadsheets:
    def __init__(self, service):
        self._service = service

    def values(self):
        return _Values(self._service)


class FakeSheetsService:
    def __init__(self, rows: list[list] | None = None):
        self.rows = rows or []
        self.get_calls: list[str] = []
        self.updates: list[tuple[str, list]] = []

    def spreadsheets(self):
        return _Spreadsheets(self)


# ============== Drive-side connector fake ==============

def script_file(name: str, file_id: str, size: int | None = 2048, trashed: bool | None = None) -> ScriptFile:
    return ScriptFile(
        name=name,
        id=file_id,
        url=f"https://drive.google.com/file/d/{file_id}/view",
        download_url=f"https://drive.google.com/uc?id={file_id}",
        size=size,
        trashed=trashed,
    )


def script_documents(files_by_type: dict[str, list[ScriptFile]] | None = None) -> list[ScriptDocument]:
    """All 8 slots; types in files_by_type exist and carry those files."""
    files_by_type = files_by_type or {}
    documents = []
    for doc_type in DOCUMENT_TYPE_VALUES:
        if doc_type in files_by_type:
            files = files_by_type[doc_type]
            documents.append(ScriptDocument(
                type=doc_type,
                label=DOCUMENT_LABELS[doc_type],
                exists=True,
                has_files=bool(files),
                file_count=len(files),
                folder_id=f"sub-{doc_type}",
                folder_url=drive_folder_url(f"sub-{doc_type}"),
                files=files,
            ))
        else:
            documents.append(ScriptDocument(type=doc_type, label=DOCUMENT_LABELS[doc_type], exists=False))
    return documents


def script_client(
    nombre: str,
    cedula: str,
    fecha: str = "2024-01-15",
    files_by_type: dict[str, list[ScriptFile]] | None = None,
) -> ScriptClient:
    return ScriptClient(
        row_number=2,
        fecha=fecha,
        nombre=nombre,
        cedula=cedula,
        folder_url=drive_folder_url(f"folder-{cedula}"),
        folder_id=f"folder-{cedula}",
        has_folder=True,
        document_details=script_documents(files_by_type),
    )


class FakeConnector(BaseConnector):
    """In-memory Drive side. Set `error` to make every call raise it."""

    def __init__(self, clients: list[ScriptClient] | None = None):
        self.clients = clients or []
        self.error: Exception | None = None
        self.uploads: list[dict] = []
        self.calls: list[str] = []
        self.created_folders = 0

    @property
    def name(self) -> str:
        return "fake"

    def _check(self, call: str):
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    def _find(self, client_name, client_id) -> ScriptClient | None:
        for client in self.clients:
            if client_id and client.cedula == client_id:
                return client
        for client in self.clients:
            if client_name and client_name.lower() in client.nombre.lower():
                return client
        return None

    def find_client_documents(self, client_name, client_id):
        self._check("find_client_documents")
        client = self._find(client_name, client_id)
        if client is None:
            return None
        return ClientDocuments(
            client_name=client.nombre,
            client_folder_url=client.folder_url,
            client_folder_id=client.folder_id,
            documents=client.document_details,
        )

    def find_document_folder(self, client_name, client_id, document_type):
        self._check("find_document_folder")
        client = self._find(client_name, client_id)
        if client is None:
            return None
        return FolderLookup(
            folder_id=f"sub-{document_type}",
            folder_name=document_type,
            folder_url=drive_folder_url(f"sub-{document_type}"),
            subfolder_path=document_type,
            client_folder=client.nombre,
        )

    def get_all_clients(self):
        self._check("get_all_clients")
        return list(self.clients)

    def upload_large_file(self, folder_id, file_name, content, content_type=None, fields=None):
        self._check("upload_large_file")
        self.uploads.append({"folder_id": folder_id, "file_name": file_name, "size": len(content)})
        return UploadResult(
            file_id="uploaded-1",
            file_name=file_name,
            folder_id=folder_id,
            method="direct_drive_api_upload",
            message="Archivo subido exitosamente",
        )

    def create_client_folder(self):
        self._check("create_client_folder")
        self.created_folders += 1
        return drive_folder_url("new-folder")


class FakeRelay:
    def __init__(self):
        self.sent: list[dict] = []

    def send(self, **kwargs):
        self.sent.append(kwargs)
        return "ok"


# ============== Fixtures ==============

@pytest.fixture
def store(tmp_path) -> MirrorStore:
    mirror = MirrorStore(sqlite_path=str(tmp_path / "mirror.db"))
    mirror.init_schema()
    return mirror


@pytest.fixture
def sample_clients() -> list[ScriptClient]:
    return [
        script_client(
            "Maria Perez",
            "1032456789",
            fecha="2024-01-15",
            files_by_type={
                "01_escritura": [script_file("escritura.pdf", "f1")],
                "02_pagare": [script_file("pagare.pdf", "f2"), script_file("~$pagare.docx", "f3")],
                "06_avaluo": [script_file("avaluo.pdf", "f4")],
            },
        ),
        script_client(
            "Juan Gomez",
            "80123456",
            fecha="2024-03-02",
            files_by_type={"03_contrato_credito": [script_file("contrato.pdf", "f5")]},
        ),
    ]


@pytest.fixture
def fake_connector(sample_clients) -> FakeConnector:
    return FakeConnector(sample_clients)


@pytest.fixture
def fake_relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def api_client(store, fake_connector, fake_relay):
    from fastapi.testclient import TestClient

    from app.cache import TTLCache
    from app.main import app
    from app.routes import get_cache, get_connector, get_relay, get_store, get_sync_service, limiter
    from mirror.sync import SyncService

    cache = TTLCache(ttl_seconds=300)
    sync_service = SyncService(store, fake_connector)

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_connector] = lambda: fake_connector
    app.dependency_overrides[get_relay] = lambda: fake_relay
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    limiter.enabled = False

    with TestClient(app) as client:
        client.cache = cache
        yield client

    app.dependency_overrides.clear()
    limiter.enabled = True
