"""Tests for path addressing and tree mutation primitives."""

import pytest

from userprops import (
    InvalidNodeTypeError,
    Node,
    NodeType,
    PathError,
    add_child_to_object,
    create_node,
    delete_at_path,
    flatten_snapshot,
    from_python,
    get_node_at_path,
    list_paths,
    push_item_to_array,
    reorder_array_item,
    search_paths,
    set_global_flag,
    set_node_at_path,
    set_primitive_smart,
    set_primitive_value_at_path,
    set_reference_at_path,
    to_python,
)
from userprops._path import join_path, parent_path, parse_index, split_path


@pytest.fixture
def tree() -> Node:
    return from_python(
        {
            "title": "Hello",
            "size": {"width": 10, "height": 20},
            "tags": ["a", "b", "c"],
            "empty": {},
        },
    )


class TestPathHelpers:
    """Tests for path string helpers."""

    def test_split_ignores_empty_segments(self) -> None:
        assert split_path("a..b.") == ["a", "b"]
        assert split_path("") == []
        assert split_path(None) == []

    def test_join(self) -> None:
        assert join_path("", "a") == "a"
        assert join_path("a", 0) == "a.0"

    def test_parent_path(self) -> None:
        assert parent_path("a.b.c") == ("a.b", "c")
        assert parent_path("a") == ("", "a")
        with pytest.raises(PathError):
            parent_path("")

    @pytest.mark.parametrize(
        ("segment", "expected"),
        [("0", 0), ("12", 12), ("-1", None), ("1e2", None), ("x", None), ("٣", None)],
    )
    def test_parse_index(self, segment: str, expected: int | None) -> None:
        assert parse_index(segment) == expected


class TestGetNodeAtPath:
    """Tests for get_node_at_path."""

    def test_root(self, tree: Node) -> None:
        assert get_node_at_path(tree, "") is tree

    def test_nested(self, tree: Node) -> None:
        node = get_node_at_path(tree, "size.width")
        assert node is not None
        assert node.value == 10

    def test_array_item(self, tree: Node) -> None:
        node = get_node_at_path(tree, "tags.1")
        assert node is not None
        assert node.value == "b"

    @pytest.mark.parametrize("path", ["missing", "size.depth", "tags.9", "tags.x", "title.length"])
    def test_missing_returns_none(self, tree: Node, path: str) -> None:
        assert get_node_at_path(tree, path) is None


class TestSetNodeAtPath:
    """Tests for set_node_at_path."""

    def test_creates_intermediate_objects(self, tree: Node) -> None:
        set_node_at_path(tree, "style.color.primary", create_node(NodeType.STRING, value="red"))
        style = get_node_at_path(tree, "style")
        assert style is not None
        assert style.type == NodeType.OBJECT
        assert to_python(style) == {"color": {"primary": "red"}}

    def test_replaces_array_item(self, tree: Node) -> None:
        set_node_at_path(tree, "tags.0", create_node(NodeType.STRING, value="z"))
        assert to_python(get_node_at_path(tree, "tags")) == ["z", "b", "c"]

    def test_appends_at_length(self, tree: Node) -> None:
        set_node_at_path(tree, "tags.3", create_node(NodeType.STRING, value="d"))
        assert to_python(get_node_at_path(tree, "tags")) == ["a", "b", "c", "d"]

    def test_empty_path(self, tree: Node) -> None:
        with pytest.raises(PathError, match="Path required"):
            set_node_at_path(tree, "", create_node(NodeType.STRING))

    def test_invalid_index(self, tree: Node) -> None:
        with pytest.raises(PathError, match="Invalid array index"):
            set_node_at_path(tree, "tags.first", create_node(NodeType.STRING))

    def test_out_of_range(self, tree: Node) -> None:
        with pytest.raises(PathError, match="out of range"):
            set_node_at_path(tree, "tags.5", create_node(NodeType.STRING))

    def test_cannot_traverse_primitive(self, tree: Node) -> None:
        with pytest.raises(PathError, match="Cannot traverse into primitive"):
            set_node_at_path(tree, "title.sub", create_node(NodeType.STRING))


class TestDeleteAtPath:
    """Tests for delete_at_path."""

    def test_delete_object_key(self, tree: Node) -> None:
        delete_at_path(tree, "size")
        assert get_node_at_path(tree, "size") is None
        assert get_node_at_path(tree, "size.width") is None

    def test_splice_array(self, tree: Node) -> None:
        delete_at_path(tree, "tags.0")
        assert to_python(get_node_at_path(tree, "tags")) == ["b", "c"]

    def test_missing_is_noop(self, tree: Node) -> None:
        before = to_python(tree)
        delete_at_path(tree, "nope.deeper")
        delete_at_path(tree, "tags.7")
        delete_at_path(tree, "")
        assert to_python(tree) == before


class TestListPaths:
    """Tests for list_paths and search_paths."""

    def test_depth_first_order_without_root(self, tree: Node) -> None:
        paths = [entry.path for entry in list_paths(tree)]
        assert paths == [
            "title",
            "size",
            "size.width",
            "size.height",
            "tags",
            "tags.0",
            "tags.1",
            "tags.2",
            "empty",
        ]

    def test_leaves_only(self, tree: Node) -> None:
        entries = list_paths(tree, leaves_only=True)
        assert all(entry.is_leaf for entry in entries)
        assert "empty" in {entry.path for entry in entries}
        assert "size" not in {entry.path for entry in entries}

    def test_exclude_containers(self, tree: Node) -> None:
        paths = {entry.path for entry in list_paths(tree, include_containers=False)}
        assert "size" not in paths
        assert "empty" in paths

    def test_type_filter(self, tree: Node) -> None:
        entries = list_paths(tree, type_filter=NodeType.NUMBER)
        assert [entry.path for entry in entries] == ["size.width", "size.height"]

    def test_type_filter_collection(self, tree: Node) -> None:
        entries = list_paths(tree, type_filter=["object", "array"])
        assert [entry.path for entry in entries] == ["size", "tags", "empty"]

    def test_global_filter(self, tree: Node) -> None:
        set_global_flag(tree, "title", True)
        assert [entry.path for entry in list_paths(tree, filter_global=True)] == ["title"]

    def test_prefix(self, tree: Node) -> None:
        size = get_node_at_path(tree, "size")
        assert size is not None
        paths = [entry.path for entry in list_paths(size, prefix="size")]
        assert paths == ["size.width", "size.height"]

    def test_search_is_case_insensitive(self, tree: Node) -> None:
        assert [entry.path for entry in search_paths(tree, "WIDTH")] == ["size.width"]

    def test_search_empty_query_lists_everything(self, tree: Node) -> None:
        assert len(search_paths(tree, "")) == len(list_paths(tree))


class TestReorderArrayItem:
    """Tests for reorder_array_item."""

    def test_moves_item(self, tree: Node) -> None:
        assert reorder_array_item(tree, "tags", 0, 2)
        assert to_python(get_node_at_path(tree, "tags")) == ["b", "c", "a"]

    def test_moves_backwards(self, tree: Node) -> None:
        assert reorder_array_item(tree, "tags", 2, 0)
        assert to_python(get_node_at_path(tree, "tags")) == ["c", "a", "b"]

    @pytest.mark.parametrize(("src", "dst"), [(1, 1), (-1, 0), (0, 3), (5, 0)])
    def test_noop_keeps_same_list(self, tree: Node, src: int, dst: int) -> None:
        tags = get_node_at_path(tree, "tags")
        assert tags is not None
        items = tags.items
        snapshot = list(items or [])
        assert not reorder_array_item(tree, "tags", src, dst)
        assert tags.items is items
        assert tags.items == snapshot

    def test_not_an_array(self, tree: Node) -> None:
        with pytest.raises(PathError, match="not an array"):
            reorder_array_item(tree, "size", 0, 1)


class TestStructuralHelpers:
    """Tests for add_child_to_object and push_item_to_array."""

    def test_add_child(self, tree: Node) -> None:
        node = add_child_to_object(tree, "size", "depth", NodeType.NUMBER, "5")
        assert node.value == 5
        assert get_node_at_path(tree, "size.depth") is node

    def test_add_child_to_root(self, tree: Node) -> None:
        add_child_to_object(tree, "", "flag", "boolean", global_=True)
        node = get_node_at_path(tree, "flag")
        assert node is not None
        assert node.value is False
        assert node.global_

    def test_add_duplicate_key(self, tree: Node) -> None:
        with pytest.raises(PathError, match="already exists"):
            add_child_to_object(tree, "", "title", NodeType.STRING)

    def test_add_to_non_object(self, tree: Node) -> None:
        with pytest.raises(PathError, match="not an object"):
            add_child_to_object(tree, "tags", "x", NodeType.STRING)

    def test_add_invalid_type(self, tree: Node) -> None:
        with pytest.raises(InvalidNodeTypeError):
            add_child_to_object(tree, "", "when", "date")

    def test_push_item(self, tree: Node) -> None:
        index = push_item_to_array(tree, "tags", NodeType.STRING, "d")
        assert index == 3
        assert to_python(get_node_at_path(tree, "tags.3")) == "d"

    def test_push_container(self, tree: Node) -> None:
        index = push_item_to_array(tree, "tags", NodeType.OBJECT)
        node = get_node_at_path(tree, f"tags.{index}")
        assert node is not None
        assert node.children == {}


class TestPrimitiveSetters:
    """Tests for set_primitive_value_at_path and set_primitive_smart."""

    def test_infers_type(self, tree: Node) -> None:
        node = set_primitive_value_at_path(tree, "count", 3)
        assert node.type == NodeType.NUMBER
        node = set_primitive_value_at_path(tree, "on", True)
        assert node.type == NodeType.BOOLEAN

    def test_updates_in_place_keeping_meta(self, tree: Node) -> None:
        set_reference_at_path(tree, "size.width", {"sourceId": "box", "propName": "width"})
        before = get_node_at_path(tree, "size.width")
        after = set_primitive_value_at_path(tree, "size.width", 99)
        assert after is before
        assert after.value == 99
        assert after.meta.ref is not None

    def test_type_hint_coerces(self, tree: Node) -> None:
        node = set_primitive_value_at_path(tree, "n", "12", NodeType.NUMBER)
        assert node.value == 12

    def test_rejects_container_type(self, tree: Node) -> None:
        with pytest.raises(InvalidNodeTypeError):
            set_primitive_value_at_path(tree, "x", "[]", NodeType.ARRAY)

    def test_smart_infers_from_text(self, tree: Node) -> None:
        assert set_primitive_smart(tree, "fresh", "42") == (NodeType.NUMBER, 42)
        assert set_primitive_smart(tree, "flag", "true") == (NodeType.BOOLEAN, True)

    def test_smart_respects_existing_type(self, tree: Node) -> None:
        assert set_primitive_smart(tree, "title", "42") == (NodeType.STRING, "42")

    def test_smart_explicit_type(self, tree: Node) -> None:
        assert set_primitive_smart(tree, "title", "7", explicit_type="number") == (NodeType.NUMBER, 7)

    def test_flatten_snapshot(self, tree: Node) -> None:
        snapshot = flatten_snapshot(tree)
        assert snapshot["size.width"] == 10
        assert snapshot["tags.2"] == "c"
        assert "size" not in snapshot
