"""Rich rendering utilities for the CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from userprops._node import NodeType, to_python
from userprops._path import get_node_at_path

if TYPE_CHECKING:
    from rich.console import Console

    from userprops._eval_engine import PipelineResult
    from userprops._graph import ExpressionGraph
    from userprops._node import Node
    from userprops._path import PathEntry
    from userprops._templates import SnippetTemplate

_TYPE_STYLES = {
    NodeType.STRING: "green",
    NodeType.NUMBER: "yellow",
    NodeType.BOOLEAN: "magenta",
    NodeType.OBJECT: "cyan",
    NodeType.ARRAY: "blue",
}


def _preview(value: Any, limit: int = 50) -> str:
    text = json.dumps(value, ensure_ascii=False, default=str)
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return escape(text)


def _type_cell(type_: NodeType) -> str:
    style = _TYPE_STYLES.get(type_, "white")
    return f"[{style}]{type_}[/{style}]"


def render_path_table(entries: list[PathEntry], console: Console) -> None:
    """Render listed paths as a Rich table.

    Args:
        entries: Entries returned by ``list_paths``.
        console: Rich Console to output to.

    """
    if not entries:
        console.print("[dim]No paths match the given filters[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Path", style="bold")
    table.add_column("Type")
    table.add_column("Value")
    table.add_column("Global", justify="center")
    table.add_column("Expr", justify="center")

    for entry in entries:
        meta = entry.node.meta
        value = _preview(to_python(entry.node)) if entry.is_leaf else "[dim]...[/dim]"
        table.add_row(
            escape(entry.path),
            _type_cell(entry.type),
            value,
            "✓" if entry.node.global_ else "",
            "ƒ" if meta is not None and meta.expression else "",
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(entries)} paths[/dim]")


def render_graph(graph: ExpressionGraph, console: Console) -> None:
    """Render the expression graph as a tree of levels."""
    if not graph.nodes:
        console.print("[dim]No expressions in tree[/dim]")
        return

    by_level: dict[int, list[str]] = {}
    errored = {node.id for node in graph.nodes if node.has_error}
    for node in graph.nodes:
        by_level.setdefault(node.level, []).append(node.id)
    inputs: dict[str, list[str]] = {edge.target: [] for edge in graph.edges}
    for edge in graph.edges:
        inputs[edge.target].append(edge.source)

    title = "[bold]Expression graph[/bold]"
    if graph.has_cycle:
        title += " [red](cycle detected)[/red]"
    tree = Tree(title)
    for level in sorted(by_level):
        branch = tree.add(f"[cyan]Level {level}[/cyan]")
        for path in by_level[level]:
            label = escape(path)
            if path in graph.cyclic:
                label = f"[red]{label} ↻[/red]"
            elif path in errored:
                label = f"[yellow]{label} ⚠[/yellow]"
            if path in inputs:
                deps = ", ".join(escape(dep) for dep in inputs[path])
                label += f" [dim]← {deps}[/dim]"
            branch.add(label)
    console.print(tree)


def render_dependents(path: str, dependents: list[str], console: Console) -> None:
    if not dependents:
        console.print(f"[dim]No expressions depend on {escape(path)}[/dim]")
        return
    console.print(f"[cyan]Dependents of {escape(path)} ({len(dependents)}):[/cyan]")
    for dependent in dependents:
        console.print(f"  {escape(dependent)}")


def render_pipeline_result(result: PipelineResult, root: Node, console: Console) -> None:
    """Render the outcome of one pipeline call.

    Args:
        result: The pipeline result.
        root: The evaluated tree, used to show the new values.
        console: Rich Console to output to.

    """
    if result.expr_changes or result.expression_errors:
        table = Table(show_header=True, header_style="bold cyan", title="Expressions")
        table.add_column("Path", style="bold")
        table.add_column("Result")
        for path in result.expr_changes:
            node = get_node_at_path(root, path)
            table.add_row(escape(path), f"[green]{_preview(to_python(node))}[/green]")
        for path, error in result.expression_errors.items():
            table.add_row(escape(path), f"[red]{escape(error)}[/red]")
        console.print(table)

    if result.validation_errors:
        table = Table(show_header=True, header_style="bold cyan", title="Validation")
        table.add_column("Path", style="bold")
        table.add_column("Error", style="red")
        for path, error in result.validation_errors.items():
            table.add_row(escape(path), escape(error))
        console.print(table)

    if result.watcher_result.logs:
        table = Table(show_header=True, header_style="bold cyan", title="Watchers")
        table.add_column("Path", style="bold")
        table.add_column("#", justify="right")
        table.add_column("Time", justify="right")
        table.add_column("Status")
        for log in result.watcher_result.logs:
            status = "[green]✓ ok[/green]" if log.error is None else f"[red]✗ {escape(log.error)}[/red]"
            table.add_row(escape(log.path), str(log.index), f"{log.duration_ms:.2f}ms", status)
        console.print(table)

    metrics = result.metrics
    console.print(
        f"[dim]{metrics.expression_evaluations} expression(s) evaluated, "
        f"{metrics.expressions_skipped} skipped, "
        f"{metrics.expression_errors} error(s), "
        f"{metrics.watchers_triggered} watcher path(s) triggered in {metrics.took_ms:.2f}ms[/dim]",
    )


def render_templates(title: str, templates: list[SnippetTemplate], console: Console) -> None:
    table = Table(show_header=True, header_style="bold cyan", title=title)
    table.add_column("Key", style="bold")
    table.add_column("Name")
    table.add_column("Params", style="dim")
    table.add_column("Description")
    for template in templates:
        params = ", ".join(f"{k}={v!r}" for k, v in template.defaults.items())
        table.add_row(template.key, template.name, escape(params), escape(template.description))
    console.print(table)
