"""Conversion between property trees and the legacy flat map.

The legacy map only knows top-level keys: ``{key: {"type", "value", "global"}}``.
Containers are stored there as compact JSON strings.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ._errors import TreeImportError
from ._node import Node, NodeType, coerce_to_type, create_node, from_python, to_python

if TYPE_CHECKING:
    from collections.abc import Mapping, MutableMapping

logger = logging.getLogger(__name__)

TREE_KEY = "user_props_tree"
LEGACY_KEY = "user_props"
WATCHER_SNAPSHOT_KEY = "user_props_watcher_snapshot"

LegacyEntry = dict[str, Any]


def _parse_container(key: str, raw: Any, type_: NodeType) -> Any:
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Legacy value of %r is not valid JSON; using an empty %s", key, type_)
        return {} if type_ == NodeType.OBJECT else []


def migrate_flat_map_to_tree(flat_map: Mapping[str, LegacyEntry] | None) -> Node:
    """Build an object root from a legacy flat map.

    Entries without a known type are skipped. Container values may be JSON text
    or already-structured Python values.
    """
    root = create_node(NodeType.OBJECT)
    children = root.children
    assert children is not None

    for key, data in (flat_map or {}).items():
        entry = data or {}
        raw_type = entry.get("type")
        try:
            node_type = NodeType(raw_type)
        except ValueError:
            logger.debug("Skipping legacy key %r with type %r", key, raw_type)
            continue
        is_global = bool(entry.get("global", False))
        value = entry.get("value")

        if node_type.is_primitive:
            if value is not None and from_python(value).type != node_type:
                value = coerce_to_type(value, node_type)
            children[key] = create_node(node_type, value=value, global_=is_global)
            continue

        parsed = _parse_container(key, value, node_type)
        if node_type == NodeType.OBJECT and not isinstance(parsed, dict):
            parsed = {}
        if node_type == NodeType.ARRAY and not isinstance(parsed, list):
            parsed = []
        children[key] = from_python(parsed, global_=is_global)
    return root


def flatten_tree_to_legacy_map(root: Node | None) -> dict[str, LegacyEntry]:
    """Project the top-level children of ``root`` onto the legacy flat map."""
    if root is None or root.type != NodeType.OBJECT:
        return {}
    result: dict[str, LegacyEntry] = {}
    for key, node in (root.children or {}).items():
        if node.is_primitive:
            value: Any = node.value
        else:
            value = json.dumps(to_python(node), separators=(",", ":"), ensure_ascii=False)
        result[key] = {"type": str(node.type), "value": value, "global": node.global_}
    return result


def _as_tree(stored: Any) -> Node:
    if isinstance(stored, Node):
        tree = stored
    else:
        try:
            tree = Node.model_validate(stored)
        except ValidationError as e:
            msg = f"Stored property tree is invalid: {e}"
            raise TreeImportError(msg) from e
    if tree.type != NodeType.OBJECT:
        msg = f"Stored property tree root must be an object, got {tree.type}"
        raise TreeImportError(msg)
    return tree


def ensure_tree(container: MutableMapping[str, Any]) -> Node:
    """Return the property tree of a host object, materializing it lazily.

    An existing tree is reused, a legacy map is migrated (and its mirror
    refreshed), otherwise an empty object root is installed.

    Raises:
        TreeImportError: If a stored tree does not validate.

    """
    container.setdefault(WATCHER_SNAPSHOT_KEY, None)

    stored = container.get(TREE_KEY)
    if stored is not None:
        tree = _as_tree(stored)
        container[TREE_KEY] = tree
        return tree

    legacy = container.get(LEGACY_KEY)
    if legacy:
        logger.debug("Migrating %d legacy user props", len(legacy))
        tree = migrate_flat_map_to_tree(legacy)
        container[TREE_KEY] = tree
        container[LEGACY_KEY] = flatten_tree_to_legacy_map(tree)
        return tree

    tree = create_node(NodeType.OBJECT)
    container[TREE_KEY] = tree
    container[LEGACY_KEY] = {}
    return tree


def touch_legacy_map(container: MutableMapping[str, Any]) -> None:
    """Refresh the legacy mirror from the stored tree, if there is one."""
    stored = container.get(TREE_KEY)
    if stored is None:
        return
    container[LEGACY_KEY] = flatten_tree_to_legacy_map(_as_tree(stored))
