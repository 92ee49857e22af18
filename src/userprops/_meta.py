"""Editing of node metadata: expressions, references, validation, watchers.

None of these functions evaluate anything; they only edit ``node.meta``. Run
the pipeline afterwards to see their effect.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ._errors import InvalidNodeTypeError, PathError
from ._node import Node, Ref, ValidationRules, Watcher
from ._path import get_node_at_path

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


def _require_node(root: Node, path: str) -> Node:
    node = get_node_at_path(root, path)
    if node is None:
        msg = f"No node at path: {path}"
        raise PathError(msg)
    return node


def _require_primitive(root: Node, path: str, what: str) -> Node:
    node = _require_node(root, path)
    if not node.is_primitive:
        msg = f"{what} can only be set on a primitive node, {path} is {node.type}"
        raise InvalidNodeTypeError(msg)
    return node


def set_expression_at_path(root: Node, path: str, expression: str) -> None:
    """Attach a computed expression to an existing primitive node.

    Raises:
        PathError: If no node exists at ``path``.
        InvalidNodeTypeError: If the node is a container.

    """
    node = _require_primitive(root, path, "Expression")
    node.meta.expression = expression
    node.meta.expression_error = None


def clear_expression_at_path(root: Node, path: str) -> None:
    node = get_node_at_path(root, path)
    if node is not None:
        node.meta.expression = None
        node.meta.expression_error = None


def set_reference_at_path(root: Node, path: str, ref: Ref | Mapping[str, Any]) -> None:
    """Mark a primitive node as driven by a component prop."""
    node = _require_primitive(root, path, "Reference")
    node.meta.ref = ref if isinstance(ref, Ref) else Ref.model_validate(ref)


def clear_reference_at_path(root: Node, path: str) -> None:
    node = get_node_at_path(root, path)
    if node is not None:
        node.meta.ref = None


def update_validation(root: Node, path: str, rules: ValidationRules | Mapping[str, Any]) -> ValidationRules:
    """Merge ``rules`` into the validation rules of the node at ``path``.

    Keys that are not given keep their current value.

    Returns:
        The merged rules now stored on the node.

    """
    node = _require_node(root, path)
    if isinstance(rules, ValidationRules):
        updates = rules.model_dump(exclude_unset=True)
    else:
        updates = ValidationRules.model_validate(dict(rules)).model_dump(exclude_unset=True)
    current = node.meta.validation.model_dump(exclude_unset=True) if node.meta.validation else {}
    merged = ValidationRules.model_validate({**current, **updates})
    node.meta.validation = merged
    return merged


def clear_validation_at_path(root: Node, path: str) -> None:
    node = get_node_at_path(root, path)
    if node is not None:
        node.meta.validation = None


def add_watcher(root: Node, path: str, script: str) -> int:
    """Append a watcher script to the node at ``path`` and return its index."""
    node = _require_node(root, path)
    node.meta.watchers.append(Watcher(script=script))
    return len(node.meta.watchers) - 1


def remove_watcher(root: Node, path: str, index: int) -> bool:
    node = get_node_at_path(root, path)
    if node is None or not 0 <= index < len(node.meta.watchers):
        return False
    del node.meta.watchers[index]
    return True


def update_watcher(root: Node, path: str, index: int, script: str) -> bool:
    node = get_node_at_path(root, path)
    if node is None or not 0 <= index < len(node.meta.watchers):
        return False
    node.meta.watchers[index] = Watcher(script=script)
    return True


def list_watchers(root: Node, path: str) -> list[Watcher]:
    """Return a copy of the watchers of the node at ``path`` (empty if missing)."""
    node = get_node_at_path(root, path)
    if node is None:
        return []
    return [watcher.model_copy() for watcher in node.meta.watchers]


def set_namespace(root: Node, path: str, namespace: str | None) -> None:
    _require_node(root, path).meta.namespace = namespace or None
