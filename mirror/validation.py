"""
Validation between the Drive side and the mirror.

Upstream flags are not trusted: file lists are filtered again here and
hasFiles/fileCount are recomputed from what survives. Everything in this
module is pure so it can be tested without Drive or a database.
"""
from dataclasses import dataclass, field
from datetime import datetime

from connectors.base import DOCUMENT_LABELS, ScriptClient, ScriptDocument, ScriptFile
from connectors.matcher import normalize_id
from app.logging_config import get_logger

logger = get_logger(__name__)

_JUNK_NAMES = {"desktop.ini", "thumbs.db"}
_JUNK_PREFIXES = ("~$", ".")

# Registry dates arrive in whatever format the sheet cell was typed in
_FECHA_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y/%m/%d",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%SZ",
)


@dataclass
class MirrorFile:
    name: str
    file_id: str
    url: str
    download_url: str | None = None
    size: int | None = None
    last_modified: str | None = None


@dataclass
class MirrorDocument:
    type: str
    label: str
    exists: bool
    has_files: bool
    file_count: int
    folder_id: str | None = None
    folder_url: str | None = None
    files: list[MirrorFile] = field(default_factory=list)


@dataclass
class MirrorClient:
    cedula: str
    nombre: str
    fecha: str | None
    folder_url: str | None
    folder_id: str | None
    has_folder: bool
    documents: list[MirrorDocument] = field(default_factory=list)


def is_junk_filename(name: str | None) -> bool:
    """Office lock files, hidden files and OS thumbnails."""
    if not name:
        return True
    lowered = name.lower()
    return lowered.startswith(_JUNK_PREFIXES) or lowered in _JUNK_NAMES


def is_valid_file(file: ScriptFile) -> bool:
    if is_junk_filename(file.name):
        return False
    if file.trashed is True:
        return False
    # A missing size is accepted, only an explicit zero is rejected
    if file.size is not None and file.size <= 0:
        return False
    return True


def normalize_fecha(value: str | None) -> str | None:
    """Return YYYY-MM-DD when the value parses, otherwise the trimmed input."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    for fmt in _FECHA_FORMATS:
        try:
            return datetime.strptime(text, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return text


def normalize_document(raw: ScriptDocument) -> MirrorDocument | None:
    """
    Filter a document's files and recompute its flags.

    Returns None for a type outside the fixed document list.
    """
    if raw.type not in DOCUMENT_LABELS:
        logger.warning(f"Dropping unknown document type | type={raw.type!r}")
        return None

    files = [
        MirrorFile(
            name=f.name,
            file_id=f.id,
            url=f.url,
            download_url=f.download_url or f.url,
            size=f.size,
            last_modified=f.last_modified,
        )
        for f in raw.files
        if is_valid_file(f)
    ]
    exists = raw.exists if raw.exists is not None else bool(raw.folder_id)

    return MirrorDocument(
        type=raw.type,
        label=raw.label or DOCUMENT_LABELS[raw.type],
        exists=exists,
        has_files=bool(files),
        file_count=len(files),
        folder_id=raw.folder_id,
        folder_url=raw.folder_url,
        files=files,
    )


def normalize_documents(raw_documents: list[ScriptDocument]) -> list[MirrorDocument]:
    documents = []
    for raw in raw_documents:
        doc = normalize_document(raw)
        if doc is not None:
            documents.append(doc)
    return documents


def normalize_client(raw: ScriptClient) -> MirrorClient | None:
    """
    Normalize one registry row. Rows without a usable cédula return None.
    """
    cedula = normalize_id(raw.cedula)
    if not cedula:
        logger.warning(f"Rejecting registry row without cedula | row={raw.row_number} | nombre={raw.nombre!r}")
        return None

    return MirrorClient(
        cedula=cedula,
        nombre=(raw.nombre or "").strip(),
        fecha=normalize_fecha(raw.fecha),
        folder_url=raw.folder_url or None,
        folder_id=raw.folder_id or None,
        has_folder=bool(raw.has_folder),
        documents=normalize_documents(raw.document_details),
    )
