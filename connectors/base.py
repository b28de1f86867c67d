"""
Base types shared by every Drive-side connector.

The Drive side speaks a small JSON protocol (findFolder, getAllClients,
uploadLargeFile, create-folder). Both the remote Apps Script connector and the
in-process Google API connector return the models defined here, so the sync
service and the HTTP routes never care which one is configured.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Fixed, ordered document types. This list is the contract boundary between
# the Drive folder layout and the mirror.
DOCUMENT_TYPES: tuple[tuple[str, str], ...] = (
    ("01_escritura", "Escritura"),
    ("02_pagare", "Pagaré"),
    ("03_contrato_credito", "Contrato de Crédito"),
    ("04_carta_de_instrucciones", "Carta de Instrucciones"),
    ("05_aceptacion_de_credito", "Aceptación de Crédito"),
    ("06_avaluo", "Avalúo"),
    ("07_contrato_interco", "Contrato Interco"),
    ("08_Finanzas", "Finanzas"),
)

DOCUMENT_TYPE_VALUES: tuple[str, ...] = tuple(value for value, _ in DOCUMENT_TYPES)
DOCUMENT_LABELS: dict[str, str] = dict(DOCUMENT_TYPES)
TOTAL_DOCUMENT_TYPES = len(DOCUMENT_TYPES)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def drive_folder_url(folder_id: str) -> str:
    return f"https://drive.google.com/drive/folders/{folder_id}"


def drive_file_view_url(file_id: str) -> str:
    return f"https://drive.google.com/file/d/{file_id}/view"


def progress_percentage(completed: int, total: int = TOTAL_DOCUMENT_TYPES) -> int:
    """Whole percent, rounded half up (3 of 8 -> 38)."""
    if total <= 0:
        return 0
    return int(completed * 100 / total + 0.5)


# ============== Errors ==============

class UpstreamError(Exception):
    """The Apps Script, Drive API or upload relay was unreachable or answered non-2xx."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class MalformedResponseError(Exception):
    """The Drive side answered something that is not the JSON shape we expect."""

    def __init__(self, message: str = "Respuesta inválida del App Script", raw: str | None = None):
        super().__init__(message)
        self.message = message
        self.raw = raw


class FileTooLargeError(Exception):
    """Upload rejected before any network call."""

    def __init__(self, size_bytes: int, max_bytes: int):
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        self.message = (
            f"Archivo extremadamente grande ({size_bytes / 1024 / 1024:.2f}MB). "
            f"Máximo permitido: {max_bytes / 1024 / 1024:.0f}MB."
        )
        super().__init__(self.message)


# ============== Drive listing items ==============

@dataclass
class DriveItem:
    """A file or folder as listed by the Drive v3 API."""
    id: str
    name: str
    mime_type: str | None = None
    size: int = 0
    trashed: bool = False
    modified_at: str | None = None
    web_view_link: str | None = None

    @classmethod
    def from_api(cls, raw: dict) -> "DriveItem":
        """
        Build from a `files().list` entry.

        Raises KeyError/ValueError/TypeError on entries with unreadable metadata.
        """
        return cls(
            id=raw["id"],
            name=raw["name"],
            mime_type=raw.get("mimeType"),
            size=int(raw.get("size") or 0),
            trashed=bool(raw.get("trashed", False)),
            modified_at=raw.get("modifiedTime"),
            web_view_link=raw.get("webViewLink"),
        )

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @property
    def url(self) -> str:
        if self.web_view_link:
            return self.web_view_link
        return drive_folder_url(self.id) if self.is_folder else drive_file_view_url(self.id)


# ============== Wire models ==============

class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class ScriptFile(WireModel):
    name: str = ""
    id: str = ""
    url: str = ""
    download_url: str | None = Field(default=None, alias="downloadUrl")
    size: int | None = None
    last_modified: str | None = Field(default=None, alias="lastModified")
    trashed: bool | None = None

    @field_validator("name", "id", "url", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ScriptDocument(WireModel):
    type: str
    label: str | None = None
    exists: bool | None = None
    has_files: bool = Field(default=False, alias="hasFiles")
    file_count: int = Field(default=0, alias="fileCount")
    folder_id: str | None = Field(default=None, alias="folderId")
    folder_url: str | None = Field(default=None, alias="folderUrl")
    files: list[ScriptFile] = Field(default_factory=list)


class DocumentsStatus(WireModel):
    completed: int = 0
    total: int = TOTAL_DOCUMENT_TYPES
    percentage: int = 0


class ScriptClient(WireModel):
    """One row of the client registry, as returned by getAllClients."""
    row_number: int | None = Field(default=None, alias="rowNumber")
    fecha: str | None = None
    nombre: str = ""
    cedula: str = ""
    folder_url: str | None = Field(default=None, alias="folderUrl")
    folder_id: str | None = Field(default=None, alias="folderId")
    has_folder: bool = Field(default=False, alias="hasFolder")
    documents_status: DocumentsStatus | None = Field(default=None, alias="documentsStatus")
    document_details: list[ScriptDocument] = Field(default_factory=list, alias="documentDetails")

    @field_validator("fecha", "nombre", "cedula", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        # Sheet cells come back as numbers for cédulas and dates for fecha
        if value is None:
            return value
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value)


class ClientDocuments(WireModel):
    """findFolder without documentType: the full 8-slot aggregation for one client."""
    client_name: str = Field(alias="clientName")
    client_folder_url: str | None = Field(default=None, alias="clientFolderUrl")
    client_folder_id: str | None = Field(default=None, alias="clientFolderId")
    documents: list[ScriptDocument] = Field(default_factory=list)


class FolderLookup(WireModel):
    """findFolder with documentType: one document subfolder of one client."""
    folder_id: str = Field(alias="folderId")
    folder_name: str = Field(alias="folderName")
    folder_url: str = Field(alias="folderUrl")
    subfolder_path: str | None = Field(default=None, alias="subfolderPath")
    client_folder: str | None = Field(default=None, alias="clientFolder")
    has_files: bool = Field(default=False, alias="hasFiles")
    files: list[ScriptFile] = Field(default_factory=list)
    file_count: int = Field(default=0, alias="fileCount")


class UploadResult(WireModel):
    file_id: str | None = Field(default=None, alias="fileId")
    file_name: str | None = Field(default=None, alias="fileName")
    file_url: str | None = Field(default=None, alias="fileUrl")
    download_url: str | None = Field(default=None, alias="downloadUrl")
    folder_id: str | None = Field(default=None, alias="folderId")
    method: str | None = None
    message: str | None = None


# ============== Connector interface ==============

class BaseConnector(ABC):
    """
    Abstract Drive-side connector.

    Not-found outcomes are returned as None. Transport and protocol failures
    raise UpstreamError / MalformedResponseError.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this connector."""
        pass

    @abstractmethod
    def find_client_documents(
        self,
        client_name: str | None,
        client_id: str | None,
    ) -> ClientDocuments | None:
        """Locate a client folder and aggregate all 8 document slots."""
        pass

    @abstractmethod
    def find_document_folder(
        self,
        client_name: str | None,
        client_id: str | None,
        document_type: str,
    ) -> FolderLookup | None:
        """Locate one document-type subfolder of a client."""
        pass

    @abstractmethod
    def get_all_clients(self) -> list[ScriptClient]:
        """Bulk listing of every registry row with its documents and files."""
        pass

    @abstractmethod
    def upload_large_file(
        self,
        folder_id: str,
        file_name: str,
        content: bytes,
        content_type: str | None = None,
        fields: dict[str, str] | None = None,
    ) -> UploadResult:
        """Store a file directly in a Drive folder."""
        pass

    @abstractmethod
    def create_client_folder(self) -> str:
        """Create the folder tree for the newest registry row. Returns its URL."""
        pass

    def close(self) -> None:
        """Clean up connection resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
