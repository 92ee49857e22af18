import json
import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from userprops._config import EngineConfig, get_config
from userprops._errors import UserPropsError
from userprops._eval_engine import evaluate_pipeline
from userprops._graph import build_expression_dependency_graph, list_expression_dependents
from userprops._io import export_tree, import_tree
from userprops._legacy import LEGACY_KEY, TREE_KEY, ensure_tree, migrate_flat_map_to_tree
from userprops._node import Node
from userprops._path import list_paths
from userprops._templates import list_expression_templates, list_watcher_templates

from .render import render_dependents, render_graph, render_path_table, render_pipeline_result, render_templates

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """User props CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


def _fail(message: str) -> typer.Exit:
    err_console.print(f"[red]Error: {message}[/red]")
    return typer.Exit(code=1)


def _read_json(path: Path) -> Any:
    if not path.exists():
        raise _fail(f"File not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise _fail(f"Invalid JSON in {path}: {e}") from e


def _load_tree(path: Path) -> Node:
    if not path.exists():
        raise _fail(f"File not found: {path}")
    try:
        return import_tree(path.read_text(encoding="utf-8"))
    except UserPropsError as e:
        raise _fail(str(e)) from e


def _load_config() -> EngineConfig:
    try:
        return get_config()
    except UserPropsError as e:
        raise _fail(str(e)) from e


@app.command()
def evaluate(
    tree_path: Annotated[
        Path,
        typer.Argument(help="Path to an exported tree JSON file"),
    ],
    *,
    snapshot: Annotated[
        Path | None,
        typer.Option("--snapshot", help="Watcher snapshot file; read if present, then overwritten"),
    ] = None,
    write: Annotated[
        bool,
        typer.Option("--write", help="Write the evaluated tree back to TREE_PATH"),
    ] = False,
) -> None:
    """Run expressions, validation and watchers on a tree."""
    config = _load_config()
    root = _load_tree(tree_path)

    previous = None
    if snapshot is not None and snapshot.exists():
        previous = _read_json(snapshot)
        if not isinstance(previous, dict):
            raise _fail(f"Snapshot must be a JSON object: {snapshot}")

    err_console.print(f"[cyan]Evaluating:[/cyan] {tree_path}")
    result = evaluate_pipeline(root, previous, config=config)
    render_pipeline_result(result, root, out_console)

    if snapshot is not None:
        snapshot.parent.mkdir(parents=True, exist_ok=True)
        snapshot.write_text(json.dumps(result.watcher_result.snapshot, indent=2, default=str), encoding="utf-8")
        err_console.print(f"[cyan]Snapshot written to:[/cyan] {snapshot}")

    if write:
        tree_path.write_text(export_tree(root), encoding="utf-8")
        err_console.print(f"[cyan]Tree written to:[/cyan] {tree_path}")

    if result.validation_errors or result.expression_errors:
        raise typer.Exit(code=1)


@app.command()
def graph(
    tree_path: Annotated[
        Path,
        typer.Argument(help="Path to an exported tree JSON file"),
    ],
    *,
    path: Annotated[
        str | None,
        typer.Option("--path", help="Only list the expressions depending on this path"),
    ] = None,
) -> None:
    """Show the expression dependency graph of a tree."""
    root = _load_tree(tree_path)

    if path is not None:
        render_dependents(path, list_expression_dependents(root, path), out_console)
        return

    render_graph(build_expression_dependency_graph(root), out_console)


@app.command()
def paths(
    tree_path: Annotated[
        Path,
        typer.Argument(help="Path to an exported tree JSON file"),
    ],
    *,
    leaves: Annotated[
        bool,
        typer.Option("--leaves", help="Only list primitives and empty containers"),
    ] = False,
    filter_: Annotated[
        str | None,
        typer.Option("--filter", help="Case-insensitive substring the path must contain"),
    ] = None,
) -> None:
    """List the paths of a tree."""
    root = _load_tree(tree_path)
    render_path_table(list_paths(root, leaves_only=leaves, name_filter=filter_), out_console)


@app.command()
def migrate(
    legacy_path: Annotated[
        Path,
        typer.Argument(help="Legacy flat map, or a host object holding one, as JSON"),
    ],
    *,
    output: Annotated[
        Path,
        typer.Option("-o", "--output", help="Path to output tree JSON file"),
    ],
) -> None:
    """Convert a legacy flat property map into an exported tree."""
    data = _read_json(legacy_path)
    if not isinstance(data, dict):
        raise _fail(f"Expected a JSON object in {legacy_path}")

    try:
        if LEGACY_KEY in data or TREE_KEY in data:
            root = ensure_tree(data)
        else:
            root = migrate_flat_map_to_tree(data)
    except UserPropsError as e:
        raise _fail(str(e)) from e

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(export_tree(root), encoding="utf-8")
    count = len(list_paths(root, leaves_only=True))
    err_console.print(f"[green]✓ Migrated {count} leaf path(s) to {output}[/green]")


@app.command()
def templates() -> None:
    """List the built-in expression and watcher templates."""
    render_templates("Expression templates", list_expression_templates(), out_console)
    render_templates("Watcher templates", list_watcher_templates(), out_console)


def main() -> None:
    app()
