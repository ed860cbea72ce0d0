"""Locating and loading the board catalog and filter sources.

Board catalog: the installed catalog (written by ``ssterm update-boards``)
replaces the packaged one; a catalog in the user config directory and any
``--boards`` file are then merged on top.

Filters: rules from the user config directory, the working directory and
any ``--filters`` file are concatenated.

Problems with any source are non-fatal and reported as warnings.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path

from ssterm.core.boards import BoardCatalog, load_catalog, merge_catalog
from ssterm.core.documents import find_document
from ssterm.core.filters import FilterSet, add_from
from ssterm.core.model import FilterRule

APP_NAME = "ssterm"
BOARDS_STEM = "boards"
FILTERS_STEM = "filters"
LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedConfig:
    catalog: BoardCatalog
    filters: FilterSet
    warnings: tuple[str, ...]


def config_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / APP_NAME, xdg_data / APP_NAME


def installed_catalog_path() -> Path:
    return config_dirs()[1] / f"{BOARDS_STEM}.json"


def packaged_catalog() -> Traversable:
    return resources.files("ssterm.data").joinpath(f"{BOARDS_STEM}.json")


def load_base_catalog(warnings: list[str] | None = None) -> BoardCatalog:
    """The installed catalog if present, else the packaged one, without user merges."""
    installed = installed_catalog_path()
    source: Path | Traversable = installed if installed.is_file() else packaged_catalog()
    return load_catalog(source, warnings)


def load_board_catalog(extra: Sequence[Path] = (), warnings: list[str] | None = None) -> BoardCatalog:
    catalog = load_base_catalog(warnings)

    user_catalog = find_document(config_dirs()[0], BOARDS_STEM)
    sources = [user_catalog] if user_catalog else []
    sources.extend(extra)
    for path in sources:
        catalog = merge_catalog(catalog, path, warnings)
    return catalog


def filter_sources(extra: Sequence[Path] = ()) -> list[Path]:
    sources: list[Path] = []
    for directory in (config_dirs()[0], Path.cwd()):
        path = find_document(directory, FILTERS_STEM)
        if path is not None and path.resolve() not in {p.resolve() for p in sources}:
            sources.append(path)
    sources.extend(extra)
    return sources


def load_filters(extra: Sequence[Path] = (), warnings: list[str] | None = None) -> FilterSet:
    rules: list[FilterRule] = []
    for path in filter_sources(extra):
        rules = add_from(path, rules, warnings)
    return FilterSet(rules)


def load_config(
    *,
    boards: Sequence[Path] = (),
    filters: Sequence[Path] = (),
) -> LoadedConfig:
    warnings: list[str] = []
    catalog = load_board_catalog(boards, warnings)
    filter_set = load_filters(filters, warnings)
    LOGGER.debug("Loaded %d filter rules, board catalog %s", len(filter_set), catalog.version)
    return LoadedConfig(catalog=catalog, filters=filter_set, warnings=tuple(warnings))
