"""Versioned JSON import and export of property trees."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from ._errors import TreeImportError
from ._node import Node, NodeType

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
MIN_SUPPORTED_VERSION = 1

# Upgrades a raw document from the key version to the next one.
_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {}


class TreeDocument(BaseModel):
    """Envelope of an exported tree."""

    version: int
    tree: Node


def export_tree(root: Node, *, indent: int | None = 2) -> str:
    """Serialize ``root`` to a versioned JSON document."""
    document = TreeDocument(version=SCHEMA_VERSION, tree=root)
    return json.dumps(document.model_dump(mode="json", by_alias=True, exclude_none=True), indent=indent)


def _check_version(raw: dict[str, Any]) -> int:
    if "version" not in raw:
        msg = "Tree document has no 'version' tag"
        raise TreeImportError(msg)
    version = raw["version"]
    if isinstance(version, bool) or not isinstance(version, int):
        msg = f"Tree document version must be an integer, got {version!r}"
        raise TreeImportError(msg)
    if version > SCHEMA_VERSION:
        msg = f"Tree document version {version} is newer than supported version {SCHEMA_VERSION}"
        raise TreeImportError(msg)
    if version < MIN_SUPPORTED_VERSION:
        msg = f"Unknown tree document version {version}"
        raise TreeImportError(msg)
    return version


def _upgrade(raw: dict[str, Any], version: int) -> dict[str, Any]:
    while version < SCHEMA_VERSION:
        migrate = _MIGRATIONS.get(version)
        if migrate is None:
            msg = f"No migration from tree document version {version}"
            raise TreeImportError(msg)
        logger.debug("Upgrading tree document from version %d", version)
        raw = migrate(raw)
        version += 1
        raw["version"] = version
    return raw


def import_tree(text: str | bytes) -> Node:
    """Parse a document produced by :func:`export_tree`.

    Older supported versions are upgraded first.

    Raises:
        TreeImportError: If the JSON is malformed, the version tag is missing,
            unknown or newer than supported, or the tree does not validate.

    """
    try:
        raw = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError) as e:
        msg = f"Malformed tree document: {e}"
        raise TreeImportError(msg) from e
    if not isinstance(raw, dict):
        msg = f"Tree document must be a JSON object, got {type(raw).__name__}"
        raise TreeImportError(msg)

    raw = _upgrade(raw, _check_version(raw))

    try:
        document = TreeDocument.model_validate(raw)
    except ValidationError as e:
        msg = f"Invalid tree document: {e}"
        raise TreeImportError(msg) from e
    if document.tree.type != NodeType.OBJECT:
        msg = f"Tree root must be an object, got {document.tree.type}"
        raise TreeImportError(msg)
    return document.tree
