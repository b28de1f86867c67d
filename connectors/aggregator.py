"""
Per-client document aggregation.

A client folder holds one subfolder per document type. The aggregator lists
those subfolders once, keys them by name, and then walks the fixed list of
document types against that map so Drive is never listed once per type.
"""
from typing import Iterable, Protocol

from connectors.base import (
    DOCUMENT_LABELS,
    DOCUMENT_TYPE_VALUES,
    DriveItem,
    FolderLookup,
    ScriptDocument,
    ScriptFile,
    drive_file_view_url,
)
from connectors.matcher import find_subfolder
from app.logging_config import get_logger

logger = get_logger(__name__)


class FolderLister(Protocol):
    """The two listing calls the aggregator needs; returns raw Drive v3 entries."""

    def list_subfolders(self, folder_id: str) -> list[dict]: ...

    def list_files(self, folder_id: str) -> list[dict]: ...


def to_script_file(item: DriveItem) -> ScriptFile:
    return ScriptFile(
        name=item.name,
        id=item.id,
        url=item.url,
        download_url=drive_file_view_url(item.id),
        size=item.size,
        last_modified=item.modified_at,
    )


def collect_valid_files(raw_files: Iterable[dict], folder_name: str = "") -> list[ScriptFile]:
    """
    Keep files that are neither trashed nor empty.

    An entry whose metadata cannot be read is skipped, never fatal.
    """
    valid = []
    for raw in raw_files:
        try:
            item = DriveItem.from_api(raw)
        except (KeyError, ValueError, TypeError) as e:
            logger.debug(f"Skipping unreadable file in {folder_name}: {type(e).__name__}: {e}")
            continue

        if item.trashed:
            logger.debug(f"Skipping trashed file: {item.name}")
            continue
        if item.size <= 0:
            logger.debug(f"Skipping empty file: {item.name}")
            continue
        valid.append(to_script_file(item))
    return valid


def subfolder_items(drive: FolderLister, folder_id: str) -> list[DriveItem]:
    items = []
    for raw in drive.list_subfolders(folder_id):
        try:
            items.append(DriveItem.from_api(raw))
        except (KeyError, ValueError, TypeError):
            logger.debug(f"Skipping unreadable subfolder entry under {folder_id}")
    return items


def aggregate_client_documents(drive: FolderLister, client_folder: DriveItem) -> list[ScriptDocument]:
    """
    Build the 8 document slots for a client folder in one pass.

    Returns:
        One ScriptDocument per document type, in the fixed order. Types whose
        subfolder is missing come back with exists=False and no files.
    """
    subfolder_map = {item.name: item for item in subfolder_items(drive, client_folder.id)}

    documents = []
    for doc_type in DOCUMENT_TYPE_VALUES:
        subfolder = subfolder_map.get(doc_type)
        if subfolder is None:
            documents.append(ScriptDocument(
                type=doc_type,
                label=DOCUMENT_LABELS[doc_type],
                exists=False,
                has_files=False,
                file_count=0,
                files=[],
            ))
            continue

        files = collect_valid_files(drive.list_files(subfolder.id), folder_name=doc_type)
        documents.append(ScriptDocument(
            type=doc_type,
            label=DOCUMENT_LABELS[doc_type],
            exists=True,
            folder_id=subfolder.id,
            folder_url=subfolder.url,
            has_files=bool(files),
            file_count=len(files),
            files=files,
        ))

    logger.info(
        f"aggregate ok | client_folder={client_folder.name} | "
        f"with_files={sum(1 for d in documents if d.has_files)}/{len(documents)}"
    )
    return documents


def lookup_document_folder(
    drive: FolderLister,
    client_folder: DriveItem,
    document_type: str,
    fallback_to_parent: bool = False,
) -> FolderLookup | None:
    """
    Resolve one document-type subfolder and its valid files.

    A missing subfolder is a not-found outcome unless fallback_to_parent is
    set, in which case the client folder itself is returned.
    """
    subfolder = find_subfolder(subfolder_items(drive, client_folder.id), document_type)

    if subfolder is None:
        if not fallback_to_parent:
            return None
        logger.warning(
            f"Subfolder '{document_type}' missing in {client_folder.name}; "
            "falling back to the client folder"
        )
        subfolder = client_folder

    files = collect_valid_files(drive.list_files(subfolder.id), folder_name=subfolder.name)
    return FolderLookup(
        folder_id=subfolder.id,
        folder_name=subfolder.name,
        folder_url=subfolder.url,
        subfolder_path=document_type,
        client_folder=client_folder.name,
        has_files=bool(files),
        files=files,
        file_count=len(files),
    )
