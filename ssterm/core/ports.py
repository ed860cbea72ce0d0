"""Candidate pipeline: raw enumerator records -> Available / Excluded port lists."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable

from ssterm.core.boards import BoardCatalog
from ssterm.core.filters import FilterSet, match_filter
from ssterm.core.model import MatchMode, PortCandidate, PortList, RawPort

# Interface name prefixes reported by CircuitPython's USB CDC descriptor,
# as listed in adafruit_board_toolkit's INTERFACE_PREFIXES.
CIRCUITPYTHON_BUS_PREFIXES = ("CircuitPython CDC ", "Sol CDC ", "StringCarM0Ex CDC ")

_COM_RE = re.compile(r"^COM(\d+)$", re.IGNORECASE)
_TRAILING_NUMBER_RE = re.compile(r"(\d+)$")
LOGGER = logging.getLogger(__name__)

Enumerator = Callable[[], Iterable[RawPort]]


def port_ordinal(name: str) -> int:
    """Sort key parsed from a port name; 0 means the name is unusable.

    ``COM7`` is 7. Device paths are zero-based (``/dev/ttyACM0``), so their
    trailing number is shifted by one.
    """
    match = _COM_RE.match(name.strip())
    if match:
        return int(match.group(1))
    match = _TRAILING_NUMBER_RE.search(name.strip())
    if match:
        return int(match.group(1)) + 1
    return 0


def is_circuitpython_bus(bus_description: str) -> bool:
    return any(bus_description.startswith(prefix) for prefix in CIRCUITPYTHON_BUS_PREFIXES)


def build_candidate(raw: RawPort, catalog: BoardCatalog) -> PortCandidate | None:
    ordinal = port_ordinal(raw.name)
    if ordinal <= 0:
        LOGGER.debug("Skipping port with unparseable name %r", raw.name)
        return None
    board = catalog.match(raw.vid, raw.pid)
    bus_description = raw.bus_description or ""
    return PortCandidate(
        name=raw.name,
        ordinal=ordinal,
        vid=board.vid,
        pid=board.pid,
        description=raw.description or "",
        bus_description=bus_description,
        board=board,
        is_circuitpython=is_circuitpython_bus(bus_description),
    )


def _unique_sorted(candidates: Iterable[PortCandidate]) -> tuple[PortCandidate, ...]:
    return tuple(sorted(dict.fromkeys(candidates), key=lambda c: c.ordinal))


def classify(candidates: Iterable[PortCandidate], filters: FilterSet) -> PortList:
    include = filters.include
    # CircuitPython-mode Exclude rules only steer default selection.
    removal = [
        *(r for r in filters.exclude if r.match is not MatchMode.CIRCUITPYTHON),
        *filters.block,
    ]

    available: list[PortCandidate] = []
    excluded: list[PortCandidate] = []
    for candidate in candidates:
        if include and not any(match_filter(rule, candidate) for rule in include):
            excluded.append(candidate)
        elif any(match_filter(rule, candidate) for rule in removal):
            excluded.append(candidate)
        else:
            available.append(candidate)

    ports = PortList(available=_unique_sorted(available), excluded=_unique_sorted(excluded))

    if not ports.available and filters.block:
        removed = filters.clear_blocks()
        LOGGER.info("No ports available; cleared %d block rule(s)", removed)

    return ports


def scan_ports(enumerate_ports: Enumerator, catalog: BoardCatalog, filters: FilterSet) -> PortList:
    """Run one full enumeration pass through the catalog and filters."""
    candidates = []
    for raw in enumerate_ports():
        candidate = build_candidate(raw, catalog)
        if candidate is not None:
            candidates.append(candidate)
    ports = classify(candidates, filters)
    LOGGER.debug(
        "Enumerated %d port(s): available=%s excluded=%s",
        len(candidates),
        [c.name for c in ports.available],
        [c.name for c in ports.excluded],
    )
    return ports
