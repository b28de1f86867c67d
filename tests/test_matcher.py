"""
Client folder matching: normalization and match precedence.
"""
import pytest

from connectors.base import FOLDER_MIME_TYPE, DriveItem
from connectors.matcher import (
    MATCH_BY_ID,
    MATCH_BY_NAME,
    build_client_folder_name,
    find_subfolder,
    match_client_folder,
    normalize_id,
    normalize_name,
)


def folder(name: str, folder_id: str | None = None) -> DriveItem:
    return DriveItem(id=folder_id or name, name=name, mime_type=FOLDER_MIME_TYPE)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.032.456-789", "1032456789"),
        ("CC 80 123 456", "80123456"),
        ("  ", ""),
        (None, ""),
        (80123456, "80123456"),
        ("١٢٣", ""),  # non-ASCII digits are dropped
    ],
)
def test_normalize_id(raw, expected):
    assert normalize_id(raw) == expected


def test_normalize_id_is_idempotent_and_digits_only():
    for raw in ["1.032.456-789", "abc", "C.C. 52 000 111", "x9y8z7"]:
        once = normalize_id(raw)
        assert once == normalize_id(once)
        assert all(ch in "0123456789" for ch in once)


def test_normalize_name():
    assert normalize_name("  Maria   Jose Perez ") == "maria_jose_perez"
    assert normalize_name("MARIA") == "maria"
    assert normalize_name(None) == ""


def test_cedula_match_beats_earlier_name_match():
    folders = [
        folder("20240101_maria_perez_111"),
        folder("20240301_otra_persona_1032456789"),
    ]
    match = match_client_folder(folders, "Maria Perez", "1.032.456.789")

    assert match is not None
    assert match.reason == MATCH_BY_ID
    assert match.folder.name == "20240301_otra_persona_1032456789"


def test_first_name_match_wins_without_id():
    folders = [
        folder("20240101_juan_gomez_222"),
        folder("20240115_maria_perez_1032456789"),
        folder("20240220_maria_lopez_333"),
    ]
    match = match_client_folder(folders, "MARIA", None)

    assert match.reason == MATCH_BY_NAME
    assert match.folder.name == "20240115_maria_perez_1032456789"


def test_name_with_spaces_matches_underscored_folder():
    match = match_client_folder([folder("20240115_maria_perez_1032456789")], "Maria Perez", "")
    assert match is not None


def test_no_match_returns_none():
    assert match_client_folder([folder("20240101_juan_gomez_222")], "Pedro", "999") is None


def test_empty_inputs_never_match():
    folders = [folder("anything")]
    assert match_client_folder(folders, "   ", "--") is None
    assert match_client_folder(folders, None, None) is None


def test_id_without_digits_falls_back_to_name():
    match = match_client_folder([folder("20240115_maria_perez_1")], "maria", "sin cedula")
    assert match.reason == MATCH_BY_NAME


def test_find_subfolder_is_exact_and_case_sensitive():
    subfolders = [folder("02_Pagare"), folder("02_pagare_old"), folder("02_pagare")]
    assert find_subfolder(subfolders, "02_pagare").name == "02_pagare"
    assert find_subfolder([folder("02_Pagare")], "02_pagare") is None


def test_build_client_folder_name():
    assert build_client_folder_name("20240115", "Maria  Perez", "1.032.456.789") == "20240115_maria_perez_1032456789"
