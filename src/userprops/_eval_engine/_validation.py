"""Validation of primitive node values against their rules."""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import TYPE_CHECKING

from userprops._config import EngineConfig, get_engine_config
from userprops._meta import update_validation
from userprops._node import Node, NodeType, ValidationRules
from userprops._path import iter_nodes
from userprops._sandbox import run_snippet

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

REQUIRED = "Required"
PATTERN_MISMATCH = "Pattern mismatch"
CUSTOM_FAILED = "Custom validation failed"
CUSTOM_ERROR = "Custom validation error"

VALIDATION_PRESETS: Mapping[str, ValidationRules] = {
    "email": ValidationRules(required=True, pattern=r"^\S+@\S+\.\S+$"),
    "url": ValidationRules(pattern=r"^https?://[^\s/$.?#].[^\s]*$"),
    "positiveNumber": ValidationRules(min=0),
    "nonEmpty": ValidationRules(required=True, pattern=r".+"),
}


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def _format_bound(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)


def _check_node(  # noqa: PLR0911
    node: Node,
    rules: ValidationRules,
    path: str,
    root: Node,
    config: EngineConfig,
) -> str | None:
    """Return the first failing rule's message, or None if the value passes."""
    value = node.value

    if rules.required and (value is None or value == ""):
        return REQUIRED

    if node.type == NodeType.NUMBER and isinstance(value, int | float) and not isinstance(value, bool):
        if rules.min is not None and value < rules.min:
            return f"Min {_format_bound(rules.min)}"
        if rules.max is not None and value > rules.max:
            return f"Max {_format_bound(rules.max)}"

    if rules.pattern and node.type == NodeType.STRING and isinstance(value, str):
        try:
            regex = _compile_pattern(rules.pattern)
        except re.error as e:
            return f"Invalid pattern: {e}"
        if regex.search(value) is None:
            return PATTERN_MISMATCH

    if rules.custom:
        try:
            outcome = run_snippet(
                rules.custom,
                {"value": value, "path": path, "root": root},
                kind="validator",
                path=path,
                config=config,
            )
        except Exception as e:  # noqa: BLE001
            return f"{CUSTOM_ERROR}: {type(e).__name__}: {e}"
        if outcome is False:
            return CUSTOM_FAILED
        if isinstance(outcome, str):
            return outcome

    return None


def validate_tree(root: Node, config: EngineConfig | None = None) -> dict[str, str]:
    """Validate every primitive node that has rules.

    Rules are checked in order (required, min/max, pattern, custom) and the
    first failure is reported. The tree is not modified.

    Args:
        root: The tree to validate.
        config: Limits for custom validators; defaults to the active engine config.

    Returns:
        Mapping from failing path to its error message.

    """
    config = config or get_engine_config()
    errors: dict[str, str] = {}
    for path, node in iter_nodes(root):
        rules = node.meta.validation
        if rules is None or not node.is_primitive:
            continue
        message = _check_node(node, rules, path, root, config)
        if message is not None:
            errors[path] = message
    if errors:
        logger.debug("Validation failed for %d paths", len(errors))
    return errors


def apply_validation_preset(root: Node, path: str, name: str) -> ValidationRules:
    """Merge a named preset into the validation rules of the node at ``path``.

    Raises:
        KeyError: If ``name`` is not a known preset.
        PathError: If no node exists at ``path``.

    """
    try:
        preset = VALIDATION_PRESETS[name]
    except KeyError:
        msg = f"Unknown validation preset: {name}"
        raise KeyError(msg) from None
    return update_validation(root, path, preset)

