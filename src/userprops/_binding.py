"""Live binding between user properties and component props.

A bound node carries ``meta.ref`` naming the component (``source_id``) and the
prop (``prop_name``) that drive its value. The host resolves those through a
callable and :func:`traverse_and_sync_references` mirrors the values in.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from ._errors import PathError
from ._node import Node, NodeType, Ref, create_node, from_python, to_python, to_text, values_equal
from ._path import get_node_at_path, join_path, set_node_at_path

logger = logging.getLogger(__name__)

PropResolver = Callable[[str, str], Any]


def _is_container_value(value: Any) -> bool:
    return isinstance(value, dict | list | tuple)


def update_node_from_python(root: Node, path: str, value: Any, *, preserve_meta: bool = True) -> Node:
    """Replace the node at ``path`` with a structure mirroring ``value``.

    The global flag of the replaced node is kept, and so is its meta when
    ``preserve_meta`` is set (minus an expression, if the new node is a
    container).

    Returns:
        The new node.

    """
    existing = get_node_at_path(root, path)
    new_node = create_node(NodeType.STRING) if value is None else from_python(value)
    if existing is not None:
        new_node.global_ = existing.global_
        if preserve_meta:
            new_node.meta = existing.meta.model_copy(deep=True)
            if new_node.is_container:
                new_node.meta.expression = None
                new_node.meta.expression_error = None
    set_node_at_path(root, path, new_node)
    return new_node


def _assign_primitive(node: Node, value: Any) -> None:
    if isinstance(value, bool):
        node.type, node.value = NodeType.BOOLEAN, value
    elif isinstance(value, int | float):
        node.type, node.value = NodeType.NUMBER, value
    else:
        node.type, node.value = NodeType.STRING, to_text(value)


def bind_user_prop_to_component_prop(
    root: Node,
    path: str,
    source_id: str,
    prop_name: str,
    initial_value: Any,
) -> Node:
    """Bind the node at ``path`` to a component prop and seed its value.

    A container value, or a container node, rebuilds the node to mirror the
    value; a primitive node takes the primitive type of the value.

    Raises:
        PathError: If no node exists at ``path``.

    """
    node = get_node_at_path(root, path)
    if node is None:
        msg = f"Cannot bind a non-existent user prop: {path}"
        raise PathError(msg)

    if _is_container_value(initial_value) or node.is_container:
        node = update_node_from_python(root, path, initial_value)
    else:
        _assign_primitive(node, initial_value)
    node.meta.ref = Ref(source_id=source_id, prop_name=prop_name)
    logger.debug("Bound %s to %s.%s", path, source_id, prop_name)
    return node


def unbind_user_prop(root: Node, path: str) -> None:
    node = get_node_at_path(root, path)
    if node is not None:
        node.meta.ref = None


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _sync_node(root: Node, path: str, node: Node, incoming: Any) -> Node | None:
    """Update one bound node; return the node now at ``path`` if it changed."""
    ref = node.meta.ref
    if node.is_container:
        if _canonical(to_python(node)) == _canonical(incoming):
            return None
        updated = update_node_from_python(root, path, incoming)
        updated.meta.ref = ref
        return updated

    if _is_container_value(incoming):
        incoming = json.dumps(incoming, separators=(",", ":"))
    if values_equal(node.value, incoming):
        return None
    _assign_primitive(node, incoming)
    return node


def traverse_and_sync_references(root: Node, resolver: PropResolver) -> bool:
    """Pull current prop values into every bound node.

    ``resolver(source_id, prop_name)`` returns the prop value, or None when it
    is not available (the node is then left unchanged).

    Returns:
        True if any node changed.

    """
    changed = False

    def visit(node: Node, path: str) -> None:
        nonlocal changed
        ref = node.meta.ref
        if ref is not None and path:
            incoming = resolver(ref.source_id, ref.prop_name)
            if incoming is not None:
                updated = _sync_node(root, path, node, incoming)
                if updated is not None:
                    logger.debug("Synced %s from %s.%s", path, ref.source_id, ref.prop_name)
                    changed = True
                    node = updated
        if node.type == NodeType.OBJECT:
            for key, child in list((node.children or {}).items()):
                visit(child, join_path(path, key))
        elif node.type == NodeType.ARRAY:
            for index, item in enumerate(list(node.items or [])):
                visit(item, join_path(path, index))

    visit(root, "")
    return changed
