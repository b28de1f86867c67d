"""
Client folder matching.

Client folders are named `yyyyMMdd_<name>_<cedula>`, e.g.
`20240115_maria_perez_1032456789`. A lookup normalizes the requested name and
cédula and scans the root folder's children once, looking for substrings.
"""
import re
from dataclasses import dataclass
from typing import Iterable

from connectors.base import DriveItem

_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"[^0-9]")

MATCH_BY_ID = "cedula"
MATCH_BY_NAME = "nombre"


def normalize_name(value: str | None) -> str:
    """Trim, join words with underscores, lowercase."""
    if not value:
        return ""
    return _WHITESPACE.sub("_", value.strip()).lower()


def normalize_id(value: str | int | None) -> str:
    """Keep only ASCII digits."""
    if value is None:
        return ""
    return _NON_DIGIT.sub("", str(value))


@dataclass
class FolderMatch:
    folder: DriveItem
    reason: str  # MATCH_BY_ID | MATCH_BY_NAME


def match_client_folder(
    folders: Iterable[DriveItem],
    client_name: str | None,
    client_id: str | None,
) -> FolderMatch | None:
    """
    Pick the client folder for a name and/or cédula.

    The first folder whose lowercased title contains the cédula digits wins
    outright. Failing that, the first folder containing the normalized name.
    Inputs that normalize to an empty string take no part in matching.
    """
    search_name = normalize_name(client_name)
    search_id = normalize_id(client_id)
    if not search_name and not search_id:
        return None

    first_by_name: DriveItem | None = None
    for folder in folders:
        title = folder.name.lower()
        if search_id and search_id in title:
            return FolderMatch(folder=folder, reason=MATCH_BY_ID)
        if first_by_name is None and search_name and search_name in title:
            first_by_name = folder

    if first_by_name is not None:
        return FolderMatch(folder=first_by_name, reason=MATCH_BY_NAME)
    return None


def find_subfolder(subfolders: Iterable[DriveItem], document_type: str) -> DriveItem | None:
    """Exact, case-sensitive name lookup of a document-type subfolder."""
    for subfolder in subfolders:
        if subfolder.name == document_type:
            return subfolder
    return None


def build_client_folder_name(fecha: str, nombre: str, cedula: str) -> str:
    """Folder title for a new client: `yyyyMMdd_<name>_<digits>`."""
    return f"{fecha}_{normalize_name(nombre)}_{normalize_id(cedula)}"
