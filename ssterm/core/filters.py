"""Port filter rules: loading, matching, and the live Include/Exclude/Block views."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from typing import Any

from ssterm.core.documents import Source, read_document, validate_document
from ssterm.core.errors import DocumentError
from ssterm.core.model import (
    UNKNOWN_ID,
    WILDCARD,
    FilterKind,
    FilterRule,
    MatchMode,
    PortCandidate,
)

_SCHEMA = "filters.schema.json"
LOGGER = logging.getLogger(__name__)


def _rule_values(rule: FilterRule) -> tuple[str, ...]:
    return (rule.port, rule.vid, rule.pid, rule.description, rule.device)


def _candidate_values(candidate: PortCandidate) -> tuple[str, ...]:
    return (
        candidate.name,
        candidate.vid,
        candidate.pid,
        candidate.display_description,
        candidate.bus_description,
    )


def match_filter(rule: FilterRule, candidate: PortCandidate) -> bool:
    if rule.match is MatchMode.CIRCUITPYTHON:
        return candidate.is_circuitpython

    loose = rule.match is MatchMode.LOOSE
    for expected, actual in zip(_rule_values(rule), _candidate_values(candidate)):
        if expected == WILDCARD:
            continue
        wanted = expected.casefold()
        have = (actual or "").casefold()
        if loose:
            if wanted not in have:
                return False
        elif wanted != have:
            return False
    return True


def sort_rules(rules: Iterable[FilterRule]) -> list[FilterRule]:
    """Stable sort so Include rules precede Exclude, which precede Block."""
    return sorted(rules, key=lambda rule: rule.kind)


def merge_rules(existing: Sequence[FilterRule], added: Sequence[FilterRule]) -> list[FilterRule]:
    return sort_rules([*added, *existing])


def _normalize_value(value: Any) -> str:
    if value is None:
        return WILDCARD
    text = str(value).strip()
    if text in ("", UNKNOWN_ID):
        return WILDCARD
    return text


def parse_rules(doc: Any, *, source: object = "<document>") -> list[FilterRule]:
    validate_document(doc, _SCHEMA, source=source)
    rules: list[FilterRule] = []
    for item in doc:
        rule = FilterRule(
            kind=FilterKind[str(item.get("type", "exclude")).upper()],
            match=MatchMode(str(item.get("match", "strict")).lower()),
            port=_normalize_value(item.get("port")),
            vid=_normalize_value(item.get("vid")),
            pid=_normalize_value(item.get("pid")),
            description=_normalize_value(item.get("description")),
            device=_normalize_value(item.get("device")),
        )
        if rule.is_noop:
            LOGGER.debug("Dropping filter without constraints from %s: %s", source, item)
            continue
        rules.append(rule)
    return rules


def read_rules(source: Source) -> list[FilterRule]:
    """Read and validate a filter source, raising ``DocumentError`` on failure."""
    return parse_rules(read_document(source), source=source)


def add_from(
    source: Source,
    existing: Sequence[FilterRule] | None = None,
    warnings: list[str] | None = None,
) -> list[FilterRule]:
    """Load rules from *source* ahead of *existing*; an unreadable source adds nothing."""
    try:
        added = read_rules(source)
    except DocumentError as exc:
        message = f"Ignoring filters {source}: {exc}"
        LOGGER.warning(message)
        if warnings is not None:
            warnings.append(message)
        added = []
    return merge_rules(existing or (), added)


class FilterSet:
    """All loaded rules in one ordered list, with per-kind views derived on access."""

    def __init__(self, rules: Iterable[FilterRule] = ()) -> None:
        self.all: list[FilterRule] = sort_rules(rules)

    def __iter__(self) -> Iterator[FilterRule]:
        return iter(self.all)

    def __len__(self) -> int:
        return len(self.all)

    def _of_kind(self, kind: FilterKind) -> tuple[FilterRule, ...]:
        return tuple(rule for rule in self.all if rule.kind is kind)

    @property
    def include(self) -> tuple[FilterRule, ...]:
        return self._of_kind(FilterKind.INCLUDE)

    @property
    def exclude(self) -> tuple[FilterRule, ...]:
        return self._of_kind(FilterKind.EXCLUDE)

    @property
    def block(self) -> tuple[FilterRule, ...]:
        return self._of_kind(FilterKind.BLOCK)

    @property
    def prefers_circuitpython(self) -> bool:
        return not any(rule.match is MatchMode.CIRCUITPYTHON for rule in self.exclude)

    def add(self, rule: FilterRule) -> bool:
        if rule in self.all:
            return False
        self.all = sort_rules([*self.all, rule])
        return True

    def block_port(self, name: str) -> bool:
        return self.add(FilterRule(kind=FilterKind.BLOCK, match=MatchMode.STRICT, port=name))

    def clear_blocks(self) -> int:
        kept = [rule for rule in self.all if rule.kind is not FilterKind.BLOCK]
        removed = len(self.all) - len(kept)
        self.all = kept
        return removed
