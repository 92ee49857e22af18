"""Ready-made expression and watcher snippets.

Builders substitute parameters verbatim. A missing parameter falls back to
its default and nothing is validated, so callers are responsible for passing
values that produce a valid snippet.
"""

from __future__ import annotations

import textwrap
from dataclasses import dataclass, field
from enum import StrEnum, auto
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping


class TemplateKind(StrEnum):
    EXPRESSION = auto()
    WATCHER = auto()


@dataclass(frozen=True, slots=True)
class SnippetTemplate:
    """A parameterized snippet.

    Attributes:
        key: Identifier passed to the builders.
        name: Human-readable name.
        kind: Whether the snippet is an expression or a watcher.
        description: One-line description.
        build: Renders the snippet from a complete parameter mapping.
        defaults: Parameter names with their default values, in display order.

    """

    key: str
    name: str
    kind: TemplateKind
    description: str
    build: Callable[[Mapping[str, Any]], str] = field(repr=False)
    defaults: Mapping[str, Any] = field(default_factory=dict)

    @property
    def params(self) -> tuple[str, ...]:
        return tuple(self.defaults)

    def render(self, params: Mapping[str, Any] | None = None) -> str:
        return self.build({**self.defaults, **(params or {})})

    @property
    def code(self) -> str:
        """The snippet rendered with default parameters."""
        return self.render()


def _array_length(p: Mapping[str, Any]) -> str:
    return f'v = get("{p["arrayPath"]}")\nreturn len(v) if isinstance(v, list) else 0'


def _clamp_number(p: Mapping[str, Any]) -> str:
    return (
        "if isinstance(value, (int, float)):\n"
        f"    if value < {p['min']}:\n"
        f"        value = {p['min']}\n"
        f"    if value > {p['max']}:\n"
        f"        value = {p['max']}"
    )


def _trigger_equals(p: Mapping[str, Any]) -> str:
    return f"if value == {p['target']!r}:\n{textwrap.indent(str(p['body']), '    ')}"


EXPRESSION_TEMPLATES: tuple[SnippetTemplate, ...] = (
    SnippetTemplate(
        key="sumTwo",
        name="Sum Two Props",
        kind=TemplateKind.EXPRESSION,
        description="Adds two other numeric props by path.",
        defaults={"pathA": "a", "pathB": "b"},
        build=lambda p: f'number(get("{p["pathA"]}")) + number(get("{p["pathB"]}"))',
    ),
    SnippetTemplate(
        key="concatTwo",
        name="Concatenate Strings",
        kind=TemplateKind.EXPRESSION,
        description="Concatenates two string props.",
        defaults={"pathA": "first", "pathB": "second"},
        build=lambda p: f'text(get("{p["pathA"]}")) + text(get("{p["pathB"]}"))',
    ),
    SnippetTemplate(
        key="conditional",
        name="Conditional",
        kind=TemplateKind.EXPRESSION,
        description="Selects between two values based on another path's truthiness.",
        defaults={"conditionPath": "flag", "truePath": "valueA", "falsePath": "valueB"},
        build=lambda p: f'get("{p["truePath"]}") if get("{p["conditionPath"]}") else get("{p["falsePath"]}")',
    ),
    SnippetTemplate(
        key="arrayLength",
        name="Length of Array",
        kind=TemplateKind.EXPRESSION,
        description="Returns the length of an array prop, or 0.",
        defaults={"arrayPath": "items"},
        build=_array_length,
    ),
)

WATCHER_TEMPLATES: tuple[SnippetTemplate, ...] = (
    SnippetTemplate(
        key="logChange",
        name="Log Change",
        kind=TemplateKind.WATCHER,
        description="Logs when the value changes.",
        build=lambda _: 'log("UserProp changed", path, "prev=", previous, "next=", value)',
    ),
    SnippetTemplate(
        key="clampNumber",
        name="Clamp Number",
        kind=TemplateKind.WATCHER,
        description="Clamps a numeric value into [min, max] (defaults 0..100).",
        defaults={"min": 0, "max": 100},
        build=_clamp_number,
    ),
    SnippetTemplate(
        key="triggerEquals",
        name="Trigger When Equals",
        kind=TemplateKind.WATCHER,
        description="Runs the body only when the value equals the target.",
        defaults={"target": 1, "body": 'log("Reached target", value)'},
        build=_trigger_equals,
    ),
)


def _find(templates: tuple[SnippetTemplate, ...], key: str) -> SnippetTemplate | None:
    return next((t for t in templates if t.key == key), None)


def list_expression_templates() -> list[SnippetTemplate]:
    return list(EXPRESSION_TEMPLATES)


def list_watcher_templates() -> list[SnippetTemplate]:
    return list(WATCHER_TEMPLATES)


def build_expression_template(key: str, params: Mapping[str, Any] | None = None) -> str | None:
    """Render an expression template, or return None for an unknown key."""
    template = _find(EXPRESSION_TEMPLATES, key)
    return None if template is None else template.render(params)


def build_watcher_template(key: str, params: Mapping[str, Any] | None = None) -> str | None:
    """Render a watcher template, or return None for an unknown key."""
    template = _find(WATCHER_TEMPLATES, key)
    return None if template is None else template.render(params)
