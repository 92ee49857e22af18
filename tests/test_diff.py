"""Tests for the JSON line diff."""

from userprops import DiffLine, DiffLineType, generate_line_diff


class TestGenerateLineDiff:
    def test_identical_values(self) -> None:
        diff = generate_line_diff({"a": 1}, {"a": 1})
        assert all(line.type == DiffLineType.UNCHANGED for line in diff)
        assert [line.line for line in diff] == ["{", '  "a": 1', "}"]

    def test_changed_line_removed_then_added(self) -> None:
        diff = generate_line_diff({"a": 1, "b": 2}, {"a": 1, "b": 3})
        assert diff == [
            DiffLine(DiffLineType.UNCHANGED, "{"),
            DiffLine(DiffLineType.UNCHANGED, '  "a": 1,'),
            DiffLine(DiffLineType.REMOVED, '  "b": 2'),
            DiffLine(DiffLineType.ADDED, '  "b": 3'),
            DiffLine(DiffLineType.UNCHANGED, "}"),
        ]

    def test_inserted_lines(self) -> None:
        diff = generate_line_diff([1, 3], [1, 2, 3])
        assert [(line.type, line.line) for line in diff] == [
            ("unchanged", "["),
            ("unchanged", "  1,"),
            ("added", "  2,"),
            ("unchanged", "  3"),
            ("unchanged", "]"),
        ]

    def test_primitives(self) -> None:
        diff = generate_line_diff("x", None)
        assert diff == [DiffLine(DiffLineType.REMOVED, '"x"'), DiffLine(DiffLineType.ADDED, "null")]
