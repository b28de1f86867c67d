"""
Normalization between the Drive side and the mirror.
"""
import pytest

from connectors.base import ScriptClient, ScriptDocument, ScriptFile
from mirror.validation import (
    is_junk_filename,
    is_valid_file,
    normalize_client,
    normalize_document,
    normalize_documents,
    normalize_fecha,
)
from tests.conftest import script_file


@pytest.mark.parametrize("name", ["~$pagare.docx", ".DS_Store", "desktop.ini", "Thumbs.db", "", None])
def test_junk_filenames(name):
    assert is_junk_filename(name)


def test_regular_filename_is_not_junk():
    assert not is_junk_filename("Pagaré firmado.pdf")


def test_is_valid_file():
    assert is_valid_file(script_file("a.pdf", "1"))
    assert is_valid_file(script_file("a.pdf", "1", size=None))
    assert not is_valid_file(script_file("a.pdf", "1", size=0))
    assert not is_valid_file(script_file("a.pdf", "1", trashed=True))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-01-15", "2024-01-15"),
        ("15/01/2024", "2024-01-15"),
        ("15-01-2024", "2024-01-15"),
        ("2024-01-15T05:00:00.000Z", "2024-01-15"),
        (" enero 2024 ", "enero 2024"),
        ("", None),
        (None, None),
    ],
)
def test_normalize_fecha(raw, expected):
    assert normalize_fecha(raw) == expected


def test_flags_are_recomputed_from_surviving_files():
    raw = ScriptDocument(
        type="02_pagare",
        exists=True,
        has_files=True,
        file_count=2,
        folder_id="sub-1",
        files=[script_file("~$pagare.docx", "x"), script_file("vacio.pdf", "y", size=0)],
    )
    doc = normalize_document(raw)

    assert doc.has_files is False
    assert doc.file_count == 0
    assert doc.files == []
    assert doc.label == "Pagaré"


def test_exists_falls_back_to_folder_id():
    assert normalize_document(ScriptDocument(type="01_escritura", folder_id="sub")).exists is True
    assert normalize_document(ScriptDocument(type="01_escritura")).exists is False


def test_download_url_defaults_to_url():
    raw = ScriptDocument(type="01_escritura", files=[ScriptFile(name="e.pdf", id="1", url="https://view")])
    doc = normalize_document(raw)
    assert doc.files[0].download_url == "https://view"


def test_unknown_document_types_are_dropped():
    docs = normalize_documents([ScriptDocument(type="99_otro"), ScriptDocument(type="06_avaluo")])
    assert [d.type for d in docs] == ["06_avaluo"]


def test_normalize_client():
    raw = ScriptClient(nombre="  Maria Perez ", cedula="1.032.456.789", fecha="15/01/2024", has_folder=True)
    client = normalize_client(raw)

    assert client.cedula == "1032456789"
    assert client.nombre == "Maria Perez"
    assert client.fecha == "2024-01-15"
    assert client.folder_url is None


def test_client_without_cedula_is_rejected():
    assert normalize_client(ScriptClient(nombre="Sin Cedula", cedula="N/A")) is None
