"""Tests for the node model and value conversions."""

import math

import pytest
from pydantic import ValidationError

from userprops import InvalidNodeTypeError, Node, NodeMeta, NodeType, clone_node, create_node, from_python, to_python
from userprops._node import coerce_to_type, infer_type_from_string, parse_number, to_text, values_equal


class TestCreateNode:
    """Tests for create_node defaults and checks."""

    @pytest.mark.parametrize(
        ("node_type", "expected"),
        [
            (NodeType.STRING, ""),
            (NodeType.NUMBER, 0),
            (NodeType.BOOLEAN, False),
        ],
    )
    def test_primitive_defaults(self, node_type: NodeType, expected: object) -> None:
        node = create_node(node_type)
        assert node.value == expected
        assert node.children is None
        assert node.items is None

    def test_container_defaults(self) -> None:
        obj = create_node("object")
        arr = create_node("array")
        assert obj.children == {}
        assert obj.value is None
        assert arr.items == []
        assert arr.value is None

    def test_invalid_type(self) -> None:
        with pytest.raises(InvalidNodeTypeError, match="Invalid node type"):
            create_node("date")

    def test_value_must_fit_type(self) -> None:
        with pytest.raises(InvalidNodeTypeError):
            create_node(NodeType.NUMBER, value="12")

    def test_bool_is_not_a_number(self) -> None:
        with pytest.raises(InvalidNodeTypeError):
            create_node(NodeType.NUMBER, value=True)

    def test_global_flag(self) -> None:
        assert create_node(NodeType.STRING, global_=True).global_ is True


class TestNodeValidation:
    """Tests for the invariants enforced when a node is validated."""

    def test_object_with_value_rejected(self) -> None:
        with pytest.raises(ValidationError, match="only hold 'children'"):
            Node.model_validate({"type": "object", "value": "x"})

    def test_primitive_with_children_rejected(self) -> None:
        with pytest.raises(ValidationError, match="only hold 'value'"):
            Node.model_validate({"type": "string", "children": {}})

    def test_expression_on_container_rejected(self) -> None:
        with pytest.raises(ValidationError, match="only allowed on primitive"):
            Node.model_validate({"type": "array", "meta": {"expression": "1"}})

    def test_camel_case_meta_and_global_alias(self) -> None:
        node = Node.model_validate(
            {
                "type": "number",
                "value": 1,
                "global": True,
                "meta": {"expressionError": "boom", "ref": {"sourceId": "c1", "propName": "width"}},
            },
        )
        assert node.global_ is True
        assert node.meta.expression_error == "boom"
        assert node.meta.ref is not None
        assert node.meta.ref.prop_name == "width"

    def test_extra_meta_fields_kept(self) -> None:
        node = Node.model_validate({"type": "string", "meta": {"aliasOf": "theme.color"}})
        clone = clone_node(node)
        dumped = clone.model_dump(by_alias=True)
        assert dumped["meta"]["aliasOf"] == "theme.color"

    def test_is_leaf(self) -> None:
        assert create_node(NodeType.OBJECT).is_leaf
        assert not from_python({"a": 1}).is_leaf
        assert create_node(NodeType.BOOLEAN).is_leaf


class TestPythonConversion:
    """Tests for to_python, from_python and clone_node."""

    def test_round_trip(self) -> None:
        value = {"a": 1, "b": [True, "x", {"c": 2.5}], "d": {}}
        assert to_python(from_python(value)) == value

    def test_none_becomes_empty_string(self) -> None:
        node = from_python(None)
        assert node.type == NodeType.STRING
        assert node.value == ""

    def test_to_python_of_missing_node(self) -> None:
        assert to_python(None) is None

    def test_to_python_does_not_share_state(self) -> None:
        node = from_python({"list": [1, 2]})
        value = to_python(node)
        value["list"].append(3)
        assert to_python(node) == {"list": [1, 2]}

    def test_clone_is_deep(self) -> None:
        node = from_python({"a": {"b": 1}})
        node.meta = NodeMeta(namespace="ns")
        clone = clone_node(node)
        assert clone is not node
        clone.children["a"].children["b"].value = 2
        assert node.children["a"].children["b"].value == 1
        assert clone.meta.namespace == "ns"


class TestTextAndNumbers:
    """Tests for the scalar conversion helpers."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, ""),
            (True, "true"),
            (False, "false"),
            (3.0, "3"),
            (2.5, "2.5"),
            ([1, "a"], '[1,"a"]'),
            ({"k": None}, '{"k":null}'),
        ],
    )
    def test_to_text(self, value: object, expected: str) -> None:
        assert to_text(value) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("42", 42),
            (" 1.5 ", 1.5),
            ("1e3", 1000.0),
            ("abc", None),
            ("", None),
            (True, 1),
            (float("nan"), None),
        ],
    )
    def test_parse_number(self, raw: object, expected: object) -> None:
        assert parse_number(raw) == expected

    def test_values_equal(self) -> None:
        assert values_equal(float("nan"), float("nan"))
        assert values_equal(1, 1.0)
        assert not values_equal(True, 1)
        assert not values_equal(0, False)
        assert values_equal([1, 2], [1, 2])


class TestTypeInference:
    """Tests for infer_type_from_string and coerce_to_type."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("", NodeType.STRING),
            ("true", NodeType.BOOLEAN),
            ("12", NodeType.NUMBER),
            ("-0.5", NodeType.NUMBER),
            ('{"a": 1}', NodeType.OBJECT),
            ("[1, 2]", NodeType.ARRAY),
            ("[not json", NodeType.STRING),
            ("hello", NodeType.STRING),
        ],
    )
    def test_infer(self, raw: str, expected: NodeType) -> None:
        assert infer_type_from_string(raw) == expected

    def test_coerce_number_fallback(self) -> None:
        assert coerce_to_type("abc", NodeType.NUMBER) == 0
        assert coerce_to_type("7", "number") == 7

    def test_coerce_boolean(self) -> None:
        assert coerce_to_type("false", NodeType.BOOLEAN) is False
        assert coerce_to_type("", NodeType.BOOLEAN) is False
        assert coerce_to_type("no", NodeType.BOOLEAN) is True
        assert coerce_to_type(0, NodeType.BOOLEAN) is False

    def test_coerce_containers(self) -> None:
        assert coerce_to_type('{"a":1}', NodeType.OBJECT) == {"a": 1}
        assert coerce_to_type("[1]", NodeType.OBJECT) == {}
        assert coerce_to_type((1, 2), NodeType.ARRAY) == [1, 2]
        assert coerce_to_type("oops", NodeType.ARRAY) == []

    def test_coerce_string(self) -> None:
        assert coerce_to_type(4.0, NodeType.STRING) == "4"
        assert math.isclose(float(coerce_to_type(0.25, NodeType.STRING)), 0.25)
