"""Reading and schema validation of JSON/YAML catalog and filter documents."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from ssterm.core.errors import DocumentError

DOCUMENT_SUFFIXES = (".json", ".yaml", ".yml")
LOGGER = logging.getLogger(__name__)

Source = Path | Traversable


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

# Filter values such as "on" or "no" must stay strings.
for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise DocumentError(f"Duplicate key '{key}' in document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@lru_cache(maxsize=None)
def _load_schema_validator(name: str) -> Any:
    schema_text = resources.files("ssterm.schemas").joinpath(name).read_text(encoding="utf-8")
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def parse_document(content: str, *, source: object = "<string>") -> Any:
    try:
        return yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise DocumentError(f"Invalid document {source}: {exc}") from exc


def read_document(path: Source) -> Any:
    """Read a JSON or YAML document; JSON is parsed as the YAML subset it is."""
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DocumentError(f"Could not read {path}: {exc}") from exc
    LOGGER.debug("Read document %s", path)
    return parse_document(content, source=path)


def validate_document(doc: Any, schema_name: str, *, source: object) -> None:
    validator = _load_schema_validator(schema_name)
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise DocumentError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def find_document(directory: Path, stem: str) -> Path | None:
    """Return the first ``stem.{json,yaml,yml}`` that exists in *directory*."""
    for suffix in DOCUMENT_SUFFIXES:
        candidate = directory / f"{stem}{suffix}"
        if candidate.is_file():
            return candidate
    return None
