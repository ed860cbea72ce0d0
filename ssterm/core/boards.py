"""Board catalog: resolves USB (VID, PID) pairs to human-readable board identities.

A catalog is an immutable value. Loading never raises past this module:
a missing or corrupt source yields the ``UNAVAILABLE`` sentinel (for a full
load) or the unchanged base catalog (for a merge). Merges are pure and
idempotent; records from the incoming source replace records with the same
key, so the last merge wins.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ssterm.core.documents import Source, parse_document, read_document, validate_document
from ssterm.core.errors import CatalogUpdateError, DocumentError
from ssterm.core.model import BoardIdentity, VendorIdentity

UNAVAILABLE_VERSION = "(board file is missing or invalid)"
_SCHEMA = "boards.schema.json"
_VERSION_PART_RE = re.compile(r"\d+")
LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoardCatalog:
    version: str = ""
    vendors: tuple[VendorIdentity, ...] = ()
    boards: tuple[BoardIdentity, ...] = ()

    @property
    def available(self) -> bool:
        return self.version != UNAVAILABLE_VERSION

    def match(self, vid: str, pid: str) -> BoardIdentity:
        """Return the known board for *vid*/*pid*, falling back to vendor make, then generic."""
        generic = BoardIdentity(vid=vid, pid=pid)
        for board in self.boards:
            if board.vid == generic.vid and board.pid == generic.pid:
                return board
        for vendor in self.vendors:
            if vendor.vid == generic.vid:
                return BoardIdentity(vid=generic.vid, pid=generic.pid, make=vendor.make)
        return generic

    def to_document(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "vendors": [{"vid": v.vid, "make": v.make} for v in self.vendors],
            "boards": [
                {"vid": b.vid, "pid": b.pid, "make": b.make, "model": b.model}
                for b in self.boards
            ],
        }


UNAVAILABLE = BoardCatalog(version=UNAVAILABLE_VERSION)


@dataclass(frozen=True)
class UpdateResult:
    applied: bool
    catalog: BoardCatalog
    message: str


def merge(old: BoardCatalog, new: BoardCatalog) -> BoardCatalog:
    """Merge *new* records over *old*; the base version tag is kept."""
    vendors = {vendor.vid: vendor for vendor in old.vendors}
    for vendor in new.vendors:
        vendors.pop(vendor.vid, None)
        vendors[vendor.vid] = vendor

    boards = {(board.vid, board.pid): board for board in old.boards}
    for board in new.boards:
        boards.pop((board.vid, board.pid), None)
        boards[(board.vid, board.pid)] = board

    return BoardCatalog(
        version=old.version,
        vendors=tuple(vendors.values()),
        boards=tuple(boards.values()),
    )


def parse_catalog(doc: Any, *, source: object = "<document>") -> BoardCatalog:
    validate_document(doc, _SCHEMA, source=source)
    parsed = BoardCatalog(
        version=str(doc.get("version", "")),
        vendors=tuple(
            VendorIdentity(vid=item["vid"], make=item["make"])
            for item in doc.get("vendors") or ()
            if item is not None
        ),
        boards=tuple(
            BoardIdentity(
                vid=item["vid"],
                pid=item["pid"],
                make=item.get("make", ""),
                model=item.get("model", ""),
            )
            for item in doc.get("boards") or ()
            if item is not None
        ),
    )
    # Collapse duplicate keys inside a single document.
    return merge(BoardCatalog(version=parsed.version), parsed)


def read_catalog(source: Source) -> BoardCatalog:
    """Read and validate a catalog source, raising ``DocumentError`` on failure."""
    return parse_catalog(read_document(source), source=source)


def _warn(warnings: list[str] | None, message: str) -> None:
    LOGGER.warning(message)
    if warnings is not None:
        warnings.append(message)


def load_catalog(source: Source, warnings: list[str] | None = None) -> BoardCatalog:
    """Read a full catalog; failures yield ``UNAVAILABLE`` and a warning."""
    try:
        catalog = read_catalog(source)
    except DocumentError as exc:
        _warn(warnings, f"Board catalog unavailable: {exc}")
        return UNAVAILABLE
    LOGGER.debug("Loaded board catalog %s from %s", catalog.version, source)
    return catalog


def merge_catalog(base: BoardCatalog, source: Source, warnings: list[str] | None = None) -> BoardCatalog:
    try:
        incoming = read_catalog(source)
    except DocumentError as exc:
        _warn(warnings, f"Ignoring board catalog {source}: {exc}")
        return base
    return merge(base, incoming)


def _version_key(tag: str) -> tuple[int, ...] | None:
    parts = _VERSION_PART_RE.findall(tag)
    if not parts:
        return None
    return tuple(int(part) for part in parts)


def is_newer(remote_version: str, current_version: str) -> bool:
    remote_key = _version_key(remote_version)
    if remote_key is None:
        return False
    current_key = _version_key(current_version)
    if current_key is None:
        return True
    return remote_key > current_key


def apply_update(
    catalog: BoardCatalog,
    remote_version: str,
    document: str | Mapping[str, Any],
) -> UpdateResult:
    """Build the replacement catalog described by *document*.

    Same-version and downgrade replacements are refused, as is an invalid
    document; in both cases the result carries *catalog* unchanged.
    """
    if catalog.available and not is_newer(remote_version, catalog.version):
        return UpdateResult(
            applied=False,
            catalog=catalog,
            message=f"Board catalog {catalog.version} is already up to date (available: {remote_version})",
        )

    try:
        doc = parse_document(document, source="update") if isinstance(document, str) else document
        replacement = parse_catalog(doc, source="update")
    except DocumentError as exc:
        LOGGER.warning("Rejected board catalog update %s: %s", remote_version, exc)
        return UpdateResult(applied=False, catalog=catalog, message=f"Rejected board catalog update: {exc}")

    LOGGER.info("Board catalog updated from %s to %s", catalog.version, remote_version)
    updated = BoardCatalog(
        version=remote_version,
        vendors=replacement.vendors,
        boards=replacement.boards,
    )
    return UpdateResult(applied=True, catalog=updated, message=f"Board catalog updated to {remote_version}")


def save_catalog(catalog: BoardCatalog, path: Path) -> None:
    staging = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        staging.write_text(json.dumps(catalog.to_document(), indent=2) + "\n", encoding="utf-8")
        staging.replace(path)
    except OSError as exc:
        raise CatalogUpdateError(f"Could not write board catalog {path}: {exc}") from exc
