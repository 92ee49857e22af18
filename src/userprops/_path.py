"""Path addressing and structural mutation of property trees.

A path is a dot-separated sequence of segments. Object segments are child keys
and array segments are base-10 indices; the empty path is the root.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ._errors import InvalidNodeTypeError, PathError
from ._node import (
    Node,
    NodeType,
    coerce_to_type,
    create_node,
    infer_type_from_string,
    to_python,
    to_text,
)

if TYPE_CHECKING:
    from collections.abc import Collection, Generator

logger = logging.getLogger(__name__)

SEPARATOR = "."


def split_path(path: str | None) -> list[str]:
    """Split a path into its segments, ignoring empty ones."""
    if not path:
        return []
    return [segment for segment in path.split(SEPARATOR) if segment]


def join_path(parent: str, segment: str | int) -> str:
    """Append a segment to a path."""
    return f"{parent}{SEPARATOR}{segment}" if parent else str(segment)


def parent_path(path: str) -> tuple[str, str]:
    """Split a path into its parent path and last segment."""
    parts = split_path(path)
    if not parts:
        msg = "Path required"
        raise PathError(msg)
    return SEPARATOR.join(parts[:-1]), parts[-1]


def parse_index(segment: str) -> int | None:
    """Parse an array segment; only plain base-10 digits are indices."""
    if segment.isascii() and segment.isdigit():
        return int(segment, 10)
    return None


def get_node_at_path(root: Node | None, path: str | None) -> Node | None:
    """Resolve ``path`` from ``root``.

    Returns:
        The node, or None when any segment is missing. Never raises.

    """
    current = root
    for segment in split_path(path):
        if current is None:
            return None
        if current.type == NodeType.OBJECT:
            current = (current.children or {}).get(segment)
        elif current.type == NodeType.ARRAY:
            index = parse_index(segment)
            items = current.items or []
            if index is None or index >= len(items):
                return None
            current = items[index]
        else:
            return None
    return current


def set_node_at_path(root: Node, path: str, node: Node) -> None:
    """Place ``node`` at ``path``, creating intermediate object nodes.

    Array segments must address an existing item or the position just past the
    end, which appends.

    Raises:
        PathError: If the path is empty, an array segment is not a valid index,
            or the walk reaches a primitive node.

    """
    parts = split_path(path)
    if not parts:
        msg = "Path required"
        raise PathError(msg)

    current = root
    for i, segment in enumerate(parts):
        is_last = i == len(parts) - 1
        if current.type == NodeType.OBJECT:
            children = current.children if current.children is not None else {}
            current.children = children
            if is_last:
                children[segment] = node
                return
            if segment not in children:
                children[segment] = create_node(NodeType.OBJECT)
            current = children[segment]
        elif current.type == NodeType.ARRAY:
            items = current.items if current.items is not None else []
            current.items = items
            index = parse_index(segment)
            if index is None:
                msg = f"Invalid array index in path segment: {segment}"
                raise PathError(msg)
            if index > len(items):
                msg = f"Array index {index} out of range at {SEPARATOR.join(parts[:i]) or '<root>'}"
                raise PathError(msg)
            if is_last:
                if index == len(items):
                    items.append(node)
                else:
                    items[index] = node
                return
            if index == len(items):
                items.append(create_node(NodeType.OBJECT))
            current = items[index]
        else:
            msg = f"Cannot traverse into primitive at {SEPARATOR.join(parts[:i])}"
            raise PathError(msg)


def delete_at_path(root: Node, path: str) -> None:
    """Remove the node at ``path`` and its descendants; no-op if not found."""
    try:
        parent_part, last = parent_path(path)
    except PathError:
        return
    parent = get_node_at_path(root, parent_part)
    if parent is None:
        return
    if parent.type == NodeType.OBJECT:
        (parent.children or {}).pop(last, None)
    elif parent.type == NodeType.ARRAY:
        index = parse_index(last)
        items = parent.items or []
        if index is not None and index < len(items):
            del items[index]


@dataclass(frozen=True, slots=True)
class PathEntry:
    """One node yielded by :func:`list_paths`."""

    path: str
    node: Node
    type: NodeType
    is_leaf: bool


def iter_nodes(root: Node, prefix: str = "") -> Generator[tuple[str, Node]]:
    """Depth-first traversal yielding ``(path, node)``, root included."""
    yield prefix, root
    if root.type == NodeType.OBJECT:
        for key, child in (root.children or {}).items():
            yield from iter_nodes(child, join_path(prefix, key))
    elif root.type == NodeType.ARRAY:
        for index, item in enumerate(root.items or []):
            yield from iter_nodes(item, join_path(prefix, index))


def list_paths(  # noqa: PLR0913
    root: Node,
    *,
    leaves_only: bool = False,
    include_containers: bool = True,
    filter_global: bool | None = None,
    prefix: str = "",
    name_filter: str | None = None,
    type_filter: NodeType | str | Collection[NodeType | str] | None = None,
) -> list[PathEntry]:
    """List the nodes of a tree in depth-first order.

    Args:
        root: Tree to traverse. The root itself is never listed.
        leaves_only: Only list primitives and empty containers.
        include_containers: List non-empty containers too (ignored with leaves_only).
        filter_global: If set, only list nodes whose global flag equals it.
        prefix: Path the root is considered to live at.
        name_filter: Case-insensitive substring the path must contain.
        type_filter: Node type, or collection of node types, to keep.

    Returns:
        The matching entries.

    """
    if type_filter is None:
        allowed_types = None
    elif isinstance(type_filter, str):
        allowed_types = {NodeType(type_filter)}
    else:
        allowed_types = {NodeType(t) for t in type_filter}
    needle = name_filter.lower() if name_filter else None

    results: list[PathEntry] = []
    for path, node in iter_nodes(root, prefix):
        if node is root:
            continue
        is_leaf = node.is_leaf
        if not (is_leaf if leaves_only else include_containers or is_leaf):
            continue
        if filter_global is not None and node.global_ != filter_global:
            continue
        if needle is not None and needle not in path.lower():
            continue
        if allowed_types is not None and node.type not in allowed_types:
            continue
        results.append(PathEntry(path=path, node=node, type=node.type, is_leaf=is_leaf))
    return results


def search_paths(root: Node, query: str | None, **options: Any) -> list[PathEntry]:
    """List paths containing ``query`` (all paths when query is empty)."""
    if not query:
        return list_paths(root, **options)
    return list_paths(root, **{**options, "name_filter": query})


def reorder_array_item(root: Node, path: str, from_index: int, to_index: int) -> bool:
    """Move one array item to a new position.

    The other items keep their relative order. When nothing would move (same
    index or an index out of range) the array is left untouched, the same list
    object included.

    Returns:
        True if an item was moved.

    Raises:
        PathError: If ``path`` does not address an array node.

    """
    node = get_node_at_path(root, path)
    if node is None or node.type != NodeType.ARRAY:
        msg = f"Path is not an array node: {path}"
        raise PathError(msg)
    items = node.items
    if items is None:
        return False
    size = len(items)
    if not (0 <= from_index < size and 0 <= to_index < size):
        return False
    if from_index == to_index:
        return False
    moved = items.pop(from_index)
    items.insert(to_index, moved)
    return True


def _container_parent(root: Node, path: str, expected: NodeType) -> Node:
    parent = get_node_at_path(root, path) if path else root
    if parent is None or parent.type != expected:
        msg = f"Parent path is not an {expected} node: {path or '<root>'}"
        raise PathError(msg)
    return parent


def _new_child(type_: NodeType | str, initial_value: Any, *, global_: bool) -> Node:
    try:
        node_type = NodeType(type_)
    except ValueError as e:
        msg = f"Invalid type: {type_}"
        raise InvalidNodeTypeError(msg) from e
    if node_type.is_primitive:
        value = None if initial_value is None else coerce_to_type(initial_value, node_type)
        return create_node(node_type, value=value, global_=global_)
    return create_node(node_type, global_=global_)


def add_child_to_object(
    root: Node,
    path: str,
    key: str,
    type: NodeType | str,  # noqa: A002
    initial_value: Any = None,
    *,
    global_: bool = False,
) -> Node:
    """Create a new child under the object node at ``path``.

    Raises:
        PathError: If the parent is not an object or ``key`` already exists.
        InvalidNodeTypeError: If ``type`` is unknown.

    """
    parent = _container_parent(root, path, NodeType.OBJECT)
    children = parent.children if parent.children is not None else {}
    parent.children = children
    if key in children:
        msg = f"Key already exists: {key}"
        raise PathError(msg)
    node = _new_child(type, initial_value, global_=global_)
    children[key] = node
    return node


def push_item_to_array(
    root: Node,
    path: str,
    type: NodeType | str,  # noqa: A002
    initial_value: Any = None,
    *,
    global_: bool = False,
) -> int:
    """Append a new item to the array node at ``path`` and return its index."""
    parent = _container_parent(root, path, NodeType.ARRAY)
    items = parent.items if parent.items is not None else []
    parent.items = items
    items.append(_new_child(type, initial_value, global_=global_))
    return len(items) - 1


def _primitive_type_for(value: Any) -> NodeType | None:
    if isinstance(value, bool):
        return NodeType.BOOLEAN
    if isinstance(value, int | float):
        return NodeType.NUMBER
    if isinstance(value, str):
        return NodeType.STRING
    return None


def set_primitive_value_at_path(
    root: Node,
    path: str,
    value: Any,
    type_hint: NodeType | str | None = None,
) -> Node:
    """Set a primitive value at ``path``.

    An existing primitive node is updated in place so its meta and global flag
    survive; otherwise a new node is created (with intermediate objects).

    Raises:
        InvalidNodeTypeError: If the type is not a primitive type.
        PathError: If the path cannot be written.

    """
    if type_hint is not None:
        try:
            node_type = NodeType(type_hint)
        except ValueError as e:
            msg = f"Invalid primitive type: {type_hint}"
            raise InvalidNodeTypeError(msg) from e
    else:
        node_type = _primitive_type_for(value) or NodeType.STRING
        if node_type == NodeType.STRING and not isinstance(value, str):
            value = to_text(value)
    if not node_type.is_primitive:
        msg = f"Invalid primitive type: {node_type}"
        raise InvalidNodeTypeError(msg)
    value = coerce_to_type(value, node_type) if _primitive_type_for(value) != node_type else value

    existing = get_node_at_path(root, path)
    if existing is not None and existing.is_primitive:
        existing.type = node_type
        existing.value = value
        return existing
    node = create_node(node_type, value=value)
    set_node_at_path(root, path, node)
    return node


def set_primitive_smart(
    root: Node,
    path: str,
    raw_value: Any,
    *,
    respect_existing_type: bool = True,
    explicit_type: NodeType | str | None = None,
) -> tuple[NodeType, Any]:
    """Set a primitive from raw (typically text) input, inferring its type.

    Returns:
        The ``(type, coerced_value)`` that was stored.

    """
    existing = get_node_at_path(root, path)
    if explicit_type is not None:
        target = NodeType(explicit_type)
    elif respect_existing_type and existing is not None and existing.is_primitive:
        target = existing.type
    else:
        target = infer_type_from_string(to_text(raw_value))
    if not target.is_primitive:
        msg = "Smart set only supports primitive target types"
        raise InvalidNodeTypeError(msg)
    coerced = coerce_to_type(raw_value, target)
    set_primitive_value_at_path(root, path, coerced, target)
    return target, coerced


def set_global_flag(root: Node, path: str, is_global: bool) -> None:  # noqa: FBT001
    node = get_node_at_path(root, path)
    if node is not None:
        node.global_ = bool(is_global)


def flatten_snapshot(root: Node) -> dict[str, Any]:
    """Map every primitive path to its current value."""
    return {path: to_python(node) for path, node in iter_nodes(root) if node.is_primitive}
