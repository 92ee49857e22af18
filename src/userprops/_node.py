"""Node model for user property trees.

A node is one of ``object`` (named children), ``array`` (ordered items) or a
primitive (``string``, ``number``, ``boolean``) holding a value. Every node
carries a :class:`NodeMeta` with its behavioral metadata.
"""

from __future__ import annotations

import json
import math
from enum import StrEnum, auto
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, SerializerFunctionWrapHandler, model_serializer, model_validator
from pydantic.alias_generators import to_camel

from ._errors import InvalidNodeTypeError


class NodeType(StrEnum):
    """The kind of a node in the property tree."""

    OBJECT = auto()
    ARRAY = auto()
    STRING = auto()
    NUMBER = auto()
    BOOLEAN = auto()

    @property
    def is_primitive(self) -> bool:
        return self in PRIMITIVE_TYPES

    @property
    def is_container(self) -> bool:
        return self in CONTAINER_TYPES


PRIMITIVE_TYPES = frozenset({NodeType.STRING, NodeType.NUMBER, NodeType.BOOLEAN})
CONTAINER_TYPES = frozenset({NodeType.OBJECT, NodeType.ARRAY})

PrimitiveValue = str | bool | int | float


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class Ref(_CamelModel):
    """Binding descriptor marking a node's value as driven by a component prop."""

    source_id: str
    prop_name: str


class Watcher(_CamelModel):
    """A side-effect script run when its node's value changes."""

    script: str


class ValidationRules(_CamelModel):
    """Rules checked in order by the validation engine.

    Attributes:
        required: Value must not be None or the empty string.
        min: Lower bound, numeric nodes only.
        max: Upper bound, numeric nodes only.
        pattern: Regular expression source, string nodes only.
        custom: Snippet receiving ``value``; returning False or a string fails.

    """

    required: bool = False
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    custom: str | None = None


class NodeMeta(_CamelModel):
    """Behavioral metadata of a node.

    Keys that are not declared here (flags of the global alias mechanism) are
    kept as extra fields so that every tree transform preserves them.
    """

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="allow")

    expression: str | None = None
    expression_error: str | None = None
    validation: ValidationRules | None = None
    watchers: list[Watcher] = Field(default_factory=list)
    ref: Ref | None = None
    namespace: str | None = None

    @model_serializer(mode="wrap")
    def _keep_extra_nulls(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        # exclude_none only drops unset declared fields; extra flags round-trip as stored.
        data = handler(self)
        for key, value in (self.model_extra or {}).items():
            data.setdefault(key, value)
        return data


_DEFAULT_VALUES: dict[NodeType, PrimitiveValue] = {
    NodeType.STRING: "",
    NodeType.NUMBER: 0,
    NodeType.BOOLEAN: False,
}


def _value_matches(type_: NodeType, value: object) -> bool:
    match type_:
        case NodeType.STRING:
            return isinstance(value, str)
        case NodeType.NUMBER:
            return isinstance(value, int | float) and not isinstance(value, bool)
        case NodeType.BOOLEAN:
            return isinstance(value, bool)
        case _:
            return False


class Node(BaseModel):
    """One entry of the property tree."""

    model_config = ConfigDict(populate_by_name=True)

    type: NodeType
    value: PrimitiveValue | None = None
    children: dict[str, Node] | None = None
    items: list[Node] | None = None
    global_: bool = Field(default=False, alias="global")
    meta: NodeMeta = Field(default_factory=NodeMeta)

    @model_validator(mode="after")
    def _check_storage(self) -> Self:
        if self.type == NodeType.OBJECT:
            if self.items is not None or self.value is not None:
                msg = "object node must only hold 'children'"
                raise ValueError(msg)
            if self.children is None:
                self.children = {}
        elif self.type == NodeType.ARRAY:
            if self.children is not None or self.value is not None:
                msg = "array node must only hold 'items'"
                raise ValueError(msg)
            if self.items is None:
                self.items = []
        else:
            if self.children is not None or self.items is not None:
                msg = f"{self.type} node must only hold 'value'"
                raise ValueError(msg)
            if self.value is None:
                self.value = _DEFAULT_VALUES[self.type]
            elif not _value_matches(self.type, self.value):
                msg = f"{self.type} node cannot hold {type(self.value).__name__} value {self.value!r}"
                raise ValueError(msg)

        if self.meta.expression is not None and not self.type.is_primitive:
            msg = "expressions are only allowed on primitive nodes"
            raise ValueError(msg)
        return self

    @property
    def is_primitive(self) -> bool:
        return self.type.is_primitive

    @property
    def is_container(self) -> bool:
        return self.type.is_container

    @property
    def is_leaf(self) -> bool:
        """Primitives and empty containers are leaves."""
        if self.type == NodeType.OBJECT:
            return not self.children
        if self.type == NodeType.ARRAY:
            return not self.items
        return True


def create_node(
    type: NodeType | str,  # noqa: A002
    *,
    value: PrimitiveValue | None = None,
    children: dict[str, Node] | None = None,
    items: list[Node] | None = None,
    global_: bool = False,
    meta: NodeMeta | None = None,
) -> Node:
    """Build a node with the type-appropriate default storage.

    Primitives default to ``""``, ``0`` or ``False``; containers to an empty
    mapping or sequence.

    Raises:
        InvalidNodeTypeError: If ``type`` is not a known node type, or the value
            does not fit the type.

    """
    node_type = _node_type(type)
    if node_type.is_primitive:
        if value is not None and not _value_matches(node_type, value):
            msg = f"{node_type} node cannot hold {type_name(value)} value {value!r}"
            raise InvalidNodeTypeError(msg)
        return Node(type=node_type, value=value, global_=global_, meta=meta or NodeMeta())
    if node_type == NodeType.OBJECT:
        return Node(type=node_type, children=children if children is not None else {}, global_=global_, meta=meta or NodeMeta())
    return Node(type=node_type, items=items if items is not None else [], global_=global_, meta=meta or NodeMeta())


def _node_type(type_: NodeType | str) -> NodeType:
    try:
        return NodeType(type_)
    except ValueError as e:
        msg = f"Invalid node type: {type_!r}"
        raise InvalidNodeTypeError(msg) from e


def type_name(value: object) -> str:
    return type(value).__name__


def clone_node(node: Node) -> Node:
    """Return a deep copy of ``node``, meta included."""
    return node.model_copy(deep=True)


def to_python(node: Node | None) -> Any:
    """Convert a node to its structural Python value.

    Objects become dicts, arrays become lists, primitives return their value.
    The result never shares mutable state with the tree.
    """
    if node is None:
        return None
    if node.type == NodeType.OBJECT:
        return {key: to_python(child) for key, child in (node.children or {}).items()}
    if node.type == NodeType.ARRAY:
        return [to_python(item) for item in node.items or []]
    return node.value


def from_python(value: Any, *, global_: bool = False) -> Node:
    """Build a node tree mirroring a plain Python value.

    Lists and tuples become arrays, mappings become objects. ``None`` becomes an
    empty string and any other unsupported value its string form.
    """
    if isinstance(value, list | tuple):
        return create_node(NodeType.ARRAY, items=[from_python(v) for v in value], global_=global_)
    if isinstance(value, dict):
        return create_node(
            NodeType.OBJECT,
            children={str(k): from_python(v) for k, v in value.items()},
            global_=global_,
        )
    if isinstance(value, bool):
        return create_node(NodeType.BOOLEAN, value=value, global_=global_)
    if isinstance(value, int | float):
        return create_node(NodeType.NUMBER, value=value, global_=global_)
    if isinstance(value, str):
        return create_node(NodeType.STRING, value=value, global_=global_)
    return create_node(NodeType.STRING, value=to_text(value), global_=global_)


def to_text(value: Any) -> str:
    """Render a value as text the way the editor displays it.

    ``None`` is empty, booleans are lowercase, integral floats drop their
    fractional part and containers are compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    if isinstance(value, dict | list | tuple):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def parse_number(raw: Any) -> int | float | None:
    """Parse a number from text, returning None when it is not numeric."""
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, int | float):
        return raw if not (isinstance(raw, float) and math.isnan(raw)) else None
    if not isinstance(raw, str) or not raw.strip():
        return None
    text = raw.strip()
    try:
        return int(text, 10)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return None if math.isnan(number) else number


def values_equal(a: Any, b: Any) -> bool:
    """Value equality used for change detection.

    NaN equals NaN and booleans never equal numbers.
    """
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    return a == b


def infer_type_from_string(raw: str | None) -> NodeType:
    """Guess the node type a raw text input should produce."""
    if raw is None or raw == "":
        return NodeType.STRING
    if raw in ("true", "false"):
        return NodeType.BOOLEAN
    if parse_number(raw) is not None:
        return NodeType.NUMBER
    stripped = raw.strip()
    if (stripped.startswith("{") and stripped.endswith("}")) or (stripped.startswith("[") and stripped.endswith("]")):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError:
            return NodeType.STRING
        if isinstance(parsed, list):
            return NodeType.ARRAY
        if isinstance(parsed, dict):
            return NodeType.OBJECT
    return NodeType.STRING


def coerce_to_type(value: Any, type_: NodeType | str) -> Any:
    """Coerce a raw value to ``type_``, falling back to the type default."""
    node_type = _node_type(type_)
    match node_type:
        case NodeType.STRING:
            return to_text(value)
        case NodeType.NUMBER:
            number = parse_number(value)
            return 0 if number is None else number
        case NodeType.BOOLEAN:
            if isinstance(value, str):
                return value not in ("false", "")
            return bool(value)
        case NodeType.OBJECT:
            parsed = _parse_json(value) if isinstance(value, str) else value
            return parsed if isinstance(parsed, dict) else {}
        case NodeType.ARRAY:
            parsed = _parse_json(value) if isinstance(value, str) else value
            return list(parsed) if isinstance(parsed, list | tuple) else []


def _parse_json(raw: str) -> Any:
    try:
        return json.loads(raw or "null")
    except json.JSONDecodeError:
        return None
