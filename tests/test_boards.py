from __future__ import annotations

import json
from pathlib import Path

import pytest

from ssterm.core.boards import (
    UNAVAILABLE,
    UNAVAILABLE_VERSION,
    BoardCatalog,
    apply_update,
    is_newer,
    load_catalog,
    merge,
    merge_catalog,
    parse_catalog,
    save_catalog,
)
from ssterm.core.config import packaged_catalog
from ssterm.core.errors import CatalogUpdateError, DocumentError
from ssterm.core.model import BoardIdentity, VendorIdentity


def _catalog() -> BoardCatalog:
    return BoardCatalog(
        version="2024.01.01",
        vendors=(VendorIdentity(vid="239A", make="Adafruit"),),
        boards=(BoardIdentity(vid="239A", pid="8019", make="Adafruit", model="Circuit Playground Express"),),
    )


def _write(path: Path, doc: object) -> Path:
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


def test_match_exact_vendor_and_generic() -> None:
    catalog = _catalog()

    exact = catalog.match("239a", "8019")
    assert exact.model == "Circuit Playground Express"

    vendor_only = catalog.match("239A", "FFFF")
    assert vendor_only.make == "Adafruit"
    assert vendor_only.model == "PID:FFFF"

    generic = catalog.match("1234", "5678")
    assert str(generic) == "[1234:5678] VID:1234 PID:5678"


def test_match_unknown_ids_use_placeholder() -> None:
    board = BoardCatalog().match("", "")
    assert board.vid == "----"
    assert board.make == "VID:----"


def test_packaged_catalog_identifies_circuit_playground() -> None:
    catalog = load_catalog(packaged_catalog())
    assert catalog.available
    board = catalog.match("239A", "8019")
    assert (board.make, board.model) == ("Adafruit", "Circuit Playground Express")


def test_load_missing_file_returns_sentinel(tmp_path: Path) -> None:
    catalog = load_catalog(tmp_path / "missing.json")
    assert catalog is UNAVAILABLE
    assert catalog.version == UNAVAILABLE_VERSION
    assert not catalog.available
    assert catalog.match("239A", "8019").model == "PID:8019"


def test_load_invalid_document_returns_sentinel(tmp_path: Path) -> None:
    path = _write(tmp_path / "boards.json", {"version": "1", "boards": [{"vid": "XYZ", "pid": "0001"}]})
    assert load_catalog(path) is UNAVAILABLE


def test_load_failure_is_reported_to_warnings(tmp_path: Path) -> None:
    warnings: list[str] = []
    assert load_catalog(tmp_path / "missing.json", warnings) is UNAVAILABLE
    assert len(warnings) == 1
    assert warnings[0].startswith("Board catalog unavailable:")


def test_merge_replaces_records_and_keeps_base_version() -> None:
    base = _catalog()
    incoming = BoardCatalog(
        version="9999",
        vendors=(VendorIdentity(vid="239A", make="Adafruit Industries"),),
        boards=(BoardIdentity(vid="239A", pid="8019", make="Adafruit", model="CPX"),),
    )

    merged = merge(base, incoming)

    assert merged.version == base.version
    assert merged.match("239A", "8019").model == "CPX"
    assert merged.match("239A", "0001").make == "Adafruit Industries"
    assert len(merged.boards) == 1
    assert base.match("239A", "8019").model == "Circuit Playground Express"


def test_merge_is_idempotent() -> None:
    base = _catalog()
    extra = BoardCatalog(boards=(BoardIdentity(vid="2341", pid="0043", make="Arduino", model="Uno"),))
    once = merge(base, extra)
    assert merge(once, extra) == once


def test_merge_catalog_failure_keeps_base(tmp_path: Path) -> None:
    base = _catalog()
    broken = tmp_path / "boards.json"
    broken.write_text("{not json", encoding="utf-8")
    assert merge_catalog(base, broken) is base


def test_merge_catalog_failure_is_reported_to_warnings(tmp_path: Path) -> None:
    broken = tmp_path / "boards.json"
    broken.write_text("{not json", encoding="utf-8")
    warnings: list[str] = []
    merged = merge_catalog(_catalog(), broken, warnings)
    assert merged == _catalog()
    assert len(warnings) == 1
    assert warnings[0].startswith(f"Ignoring board catalog {broken}:")


def test_merge_catalog_success_adds_no_warning(tmp_path: Path) -> None:
    path = _write(tmp_path / "boards.json", {"boards": [{"vid": "2341", "pid": "0043", "model": "Uno"}]})
    warnings: list[str] = []
    merged = merge_catalog(_catalog(), path, warnings)
    assert merged.match("2341", "0043").model == "Uno"
    assert warnings == []


def test_board_identity_normalizes_padded_lowercase_ids() -> None:
    board = BoardIdentity(vid=" 239a ", pid="80b4")
    assert (board.vid, board.pid) == ("239A", "80B4")
    assert BoardIdentity(vid="").vid == "----"


def test_parse_collapses_duplicates_last_wins() -> None:
    catalog = parse_catalog(
        {
            "version": "1",
            "boards": [
                {"vid": "2341", "pid": "0043", "model": "Old"},
                None,
                {"vid": "2341", "pid": "0043", "model": "New"},
            ],
        }
    )
    assert len(catalog.boards) == 1
    assert catalog.boards[0].model == "New"


def test_parse_rejects_non_string_ids() -> None:
    with pytest.raises(DocumentError):
        parse_catalog({"version": "1", "boards": [{"vid": 2341, "pid": "0043"}]})


@pytest.mark.parametrize(
    ("remote", "current", "expected"),
    [
        ("2024.10.02", "2024.10.01", True),
        ("2024.10.01", "2024.10.01", False),
        ("2024.9.30", "2024.10.01", False),
        ("no-digits", "2024.10.01", False),
        ("2024.10.01", "unknown", True),
    ],
)
def test_is_newer(remote: str, current: str, expected: bool) -> None:
    assert is_newer(remote, current) is expected


def test_apply_update_refuses_same_or_older_version() -> None:
    catalog = _catalog()
    for remote in ("2024.01.01", "2023.12.31"):
        result = apply_update(catalog, remote, {"version": "x", "boards": []})
        assert not result.applied
        assert result.catalog is catalog
        assert "already up to date" in result.message


def test_apply_update_rejects_invalid_document_without_touching_catalog() -> None:
    catalog = _catalog()
    result = apply_update(catalog, "2025.01.01", "boards: [")
    assert not result.applied
    assert result.catalog is catalog
    assert catalog.version == "2024.01.01"


def test_apply_update_replaces_catalog_with_remote_version() -> None:
    document = json.dumps({"version": "ignored", "boards": [{"vid": "2E8A", "pid": "0005", "model": "Pico"}]})
    result = apply_update(_catalog(), "2025.01.01", document)
    assert result.applied
    updated = result.catalog
    assert updated.version == "2025.01.01"
    assert updated.match("2E8A", "0005").model == "Pico"
    assert updated.match("239A", "8019").model == "PID:8019"


def test_apply_update_accepts_anything_when_catalog_unavailable() -> None:
    result = apply_update(UNAVAILABLE, "1", {"boards": []})
    assert result.applied
    assert result.catalog.version == "1"


def test_save_catalog_unwritable_target(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")
    with pytest.raises(CatalogUpdateError):
        save_catalog(_catalog(), blocker / "boards.json")


def test_save_catalog_round_trips(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "boards.json"
    save_catalog(_catalog(), target)
    assert load_catalog(target) == _catalog()
    assert not target.with_suffix(".json.tmp").exists()
