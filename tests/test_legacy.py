"""Tests for the legacy flat map conversion and lazy tree materialization."""

import logging

import pytest

from userprops import (
    Node,
    NodeType,
    TreeImportError,
    ensure_tree,
    flatten_tree_to_legacy_map,
    from_python,
    get_node_at_path,
    migrate_flat_map_to_tree,
    to_python,
    touch_legacy_map,
)
from userprops._legacy import LEGACY_KEY, TREE_KEY, WATCHER_SNAPSHOT_KEY


class TestMigrateFlatMap:
    """Tests for migrate_flat_map_to_tree."""

    def test_primitives(self) -> None:
        tree = migrate_flat_map_to_tree(
            {
                "name": {"type": "string", "value": "Ada"},
                "age": {"type": "number", "value": 36, "global": True},
                "active": {"type": "boolean", "value": True},
            },
        )
        assert to_python(tree) == {"name": "Ada", "age": 36, "active": True}
        age = get_node_at_path(tree, "age")
        assert age is not None
        assert age.global_ is True

    def test_containers_from_json_text(self) -> None:
        tree = migrate_flat_map_to_tree(
            {
                "size": {"type": "object", "value": '{"w":1,"h":2}'},
                "tags": {"type": "array", "value": '["a","b"]'},
            },
        )
        assert to_python(tree) == {"size": {"w": 1, "h": 2}, "tags": ["a", "b"]}
        tags = get_node_at_path(tree, "tags")
        assert tags is not None
        assert tags.type == NodeType.ARRAY

    def test_containers_from_structured_values(self) -> None:
        tree = migrate_flat_map_to_tree({"size": {"type": "object", "value": {"w": 1}}})
        assert to_python(tree) == {"size": {"w": 1}}

    def test_invalid_json_falls_back_to_empty(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="userprops._legacy"):
            tree = migrate_flat_map_to_tree({"tags": {"type": "array", "value": "[oops"}})
        assert to_python(tree) == {"tags": []}
        assert "not valid JSON" in caplog.text

    def test_mismatched_container_json_falls_back_to_empty(self) -> None:
        tree = migrate_flat_map_to_tree({"size": {"type": "object", "value": "[1, 2]"}})
        assert to_python(tree) == {"size": {}}

    def test_mismatched_primitive_is_coerced(self) -> None:
        tree = migrate_flat_map_to_tree(
            {
                "count": {"type": "number", "value": "12"},
                "label": {"type": "string", "value": 5},
            },
        )
        assert to_python(tree) == {"count": 12, "label": "5"}

    def test_unknown_type_skipped(self) -> None:
        tree = migrate_flat_map_to_tree({"when": {"type": "date", "value": "2024-01-01"}, "ok": {"type": "string"}})
        assert to_python(tree) == {"ok": ""}

    def test_none_map(self) -> None:
        assert to_python(migrate_flat_map_to_tree(None)) == {}


class TestFlattenTree:
    """Tests for flatten_tree_to_legacy_map."""

    def test_containers_become_compact_json(self) -> None:
        tree = from_python({"size": {"w": 1}, "tags": ["é"], "n": 2})
        flat = flatten_tree_to_legacy_map(tree)
        assert flat["size"] == {"type": "object", "value": '{"w":1}', "global": False}
        assert flat["tags"]["value"] == '["é"]'
        assert flat["n"] == {"type": "number", "value": 2, "global": False}

    def test_non_object_root(self) -> None:
        assert flatten_tree_to_legacy_map(None) == {}
        assert flatten_tree_to_legacy_map(from_python([1])) == {}

    def test_round_trip(self) -> None:
        value = {
            "title": "Hi",
            "count": 3.5,
            "enabled": False,
            "size": {"w": 1, "nested": {"deep": [1, 2]}},
            "tags": ["a", {"b": True}],
        }
        tree = from_python(value)
        assert to_python(migrate_flat_map_to_tree(flatten_tree_to_legacy_map(tree))) == value

    def test_round_trip_keeps_global_flags(self) -> None:
        flat = {
            "a": {"type": "string", "value": "x", "global": True},
            "b": {"type": "array", "value": "[1]", "global": False},
        }
        assert flatten_tree_to_legacy_map(migrate_flat_map_to_tree(flat)) == flat


class TestEnsureTree:
    """Tests for ensure_tree and touch_legacy_map."""

    def test_empty_container(self) -> None:
        container: dict = {}
        tree = ensure_tree(container)
        assert tree.type == NodeType.OBJECT
        assert container[TREE_KEY] is tree
        assert container[LEGACY_KEY] == {}
        assert container[WATCHER_SNAPSHOT_KEY] is None

    def test_reuses_existing_tree(self) -> None:
        tree = from_python({"a": 1})
        container = {TREE_KEY: tree}
        assert ensure_tree(container) is tree

    def test_validates_plain_dict_tree(self) -> None:
        container = {TREE_KEY: {"type": "object", "children": {"a": {"type": "number", "value": 1}}}}
        tree = ensure_tree(container)
        assert isinstance(tree, Node)
        assert container[TREE_KEY] is tree
        assert to_python(tree) == {"a": 1}

    def test_invalid_stored_tree_raises(self) -> None:
        with pytest.raises(TreeImportError):
            ensure_tree({TREE_KEY: {"type": "object", "value": 1}})

    def test_stored_root_must_be_object(self) -> None:
        with pytest.raises(TreeImportError, match="must be an object"):
            ensure_tree({TREE_KEY: {"type": "array"}})

    def test_migrates_legacy_map(self) -> None:
        container = {LEGACY_KEY: {"size": {"type": "object", "value": '{"w":1}'}}}
        tree = ensure_tree(container)
        assert to_python(tree) == {"size": {"w": 1}}
        assert container[LEGACY_KEY]["size"]["value"] == '{"w":1}'

    def test_keeps_existing_snapshot(self) -> None:
        container = {WATCHER_SNAPSHOT_KEY: {"a": 1}}
        ensure_tree(container)
        assert container[WATCHER_SNAPSHOT_KEY] == {"a": 1}

    def test_touch_refreshes_mirror(self) -> None:
        container: dict = {}
        tree = ensure_tree(container)
        tree.children["x"] = from_python(5)
        touch_legacy_map(container)
        assert container[LEGACY_KEY] == {"x": {"type": "number", "value": 5, "global": False}}
