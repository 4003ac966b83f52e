"""Memograph command line: ingest observations, browse facts, graph, and run history."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar, get_args, get_origin

import typer
from pydantic import BaseModel, ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from memograph.config import MemographConfig, loadConfig
from memograph.models import FactKind, Importance, Observation
from memograph.service import (
    svcGraph,
    svcHistory,
    svcIngest,
    svcListFacts,
    svcRunDetail,
    svcSearchFacts,
)
from memograph.state import AppState, createAppState

logger = logging.getLogger("memograph")

T = TypeVar("T")

_cli = typer.Typer(
    name="memograph",
    help="Turn screenshot observations into a deduplicated personal knowledge graph.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
_config_cli = typer.Typer(help="Read/write [bold]~/.memograph/config.json[/bold].")
_cli.add_typer(_config_cli, name="config")

_console = Console()


def _checkFormat(format: str) -> None:
    if format not in ("human", "json"):
        raise typer.BadParameter(f"Invalid format {format!r}; choose human or json")


def _withState(fn: Callable[[AppState], Awaitable[T]]) -> T:
    """Open app state, run one async operation, close the DB. One event loop per command."""

    async def _run() -> T:
        state = await createAppState(check_same_thread=False)
        try:
            return await fn(state)
        finally:
            state.db.close()

    return asyncio.run(_run())


def _fmtTime(ms: int | None) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


@_cli.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline progress"),
) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING, format="%(name)s | %(message)s"
    )


# ── Ingest ───────────────────────────────────────────────────


@_cli.command()
def ingest(
    path: str = typer.Argument(help="Screenshot image or text file (the ref with --text)"),
    text: str | None = typer.Option(
        None, "--text", "-t", help="Observation text (skips reading PATH)"
    ),
    stream: bool = typer.Option(False, "--stream", help="Stream the generated reply"),
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """Run one observation through the pipeline."""
    _checkFormat(format)
    try:
        if text is not None:
            observation = Observation(ref=path, text=text)
        else:
            observation = Observation.fromPath(path)
    except (OSError, ValidationError) as e:
        if format == "json":
            print(json.dumps({"ok": False, "error": str(e)}))
        else:
            _console.print(f"[red]Cannot read observation:[/red] {e}")
        raise typer.Exit(1) from e

    on_token = None
    if stream and format == "human":
        on_token = lambda token: _console.print(token, end="", highlight=False)  # noqa: E731

    outcome = _withState(lambda state: svcIngest(state, observation, on_token=on_token))

    if format == "json":
        print(json.dumps(outcome.model_dump(mode="json")))
        if not outcome.ok:
            raise typer.Exit(1)
        return

    if on_token is not None:
        _console.print()
    if not outcome.ok or outcome.result is None:
        _console.print(f"[red]Pipeline failed:[/red] {outcome.error}")
        raise typer.Exit(1)

    r = outcome.result
    t = Table(show_header=False, box=box.SIMPLE, padding=(0, 1))
    t.add_column("key", style="dim")
    t.add_column("val")
    t.add_row("run", str(r.run_id))
    t.add_row("action", r.action_kind.value)
    t.add_row("facts saved", str(r.facts_saved))
    t.add_row("entities", f"{r.entities_created} new, {r.entities_matched} matched")
    t.add_row("relations", str(r.relations_created))
    _console.print(t)
    if r.generated_response and on_token is None:
        _console.print(f"[bold]Reply:[/bold] {r.generated_response}")


# ── Browse ───────────────────────────────────────────────────


@_cli.command()
def facts(
    query: str | None = typer.Option(
        None, "--query", "-q", help="Search by meaning (text match if embedding fails)"
    ),
    kind: FactKind | None = typer.Option(None, "--kind", "-k", help="Only facts of this kind"),
    importance: Importance | None = typer.Option(None, "--importance", "-i"),
    limit: int = typer.Option(20, "--limit", "-n"),
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """List saved facts, newest first, or search them with --query."""
    _checkFormat(format)
    if query:
        data = _withState(lambda state: svcSearchFacts(state, query, top_k=limit))
    else:
        data = _withState(
            lambda state: svcListFacts(
                state,
                limit=limit,
                kind=kind.value if kind else None,
                importance=importance.value if importance else None,
            )
        )
    if format == "json":
        print(json.dumps(data))
        return
    t = Table(box=box.SIMPLE)
    t.add_column("id", style="dim")
    t.add_column("kind")
    t.add_column("importance")
    if query:
        t.add_column("score", style="cyan")
    t.add_column("content")
    for f in data["facts"]:
        row = [str(f["id"]), f["kind"], f["importance"]]
        if query:
            row.append(f"{f['score']:.2f}" if "score" in f else "-")
        t.add_row(*row, f["content"])
    _console.print(t)
    if query:
        _console.print(f"[dim]{data['count']} results via {data['strategy']}[/dim]")


@_cli.command()
def graph(
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """Print the entity graph."""
    _checkFormat(format)
    data = _withState(svcGraph)
    if format == "json":
        print(json.dumps(data))
        return
    names = {n["id"]: n["name"] for n in data["nodes"]}
    _console.print(f"[bold]{len(data['nodes'])} entities, {len(data['edges'])} relations[/bold]")
    for node in data["nodes"]:
        _console.print(f"  {node['name']} [dim]({node['type']})[/dim]")
    for edge in data["edges"]:
        _console.print(
            f"  {names.get(edge['source'], edge['source'])} "
            f"[cyan]{edge['label']}[/cyan] {names.get(edge['target'], edge['target'])}"
        )


@_cli.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n"),
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """List recent pipeline runs."""
    _checkFormat(format)
    data = _withState(lambda state: svcHistory(state, limit=limit))
    if format == "json":
        print(json.dumps(data))
        return
    t = Table(box=box.SIMPLE)
    for col in ("id", "started", "status", "action", "facts", "entities", "relations"):
        t.add_column(col)
    for r in data["runs"]:
        style = "red" if r["status"] == "error" else None
        t.add_row(
            str(r["id"]),
            _fmtTime(r["started_at"]),
            r["status"],
            r["action_kind"] or "-",
            str(r["facts_saved"]),
            str(r["entities_created"] + r["entities_matched"]),
            str(r["relations_created"]),
            style=style,
        )
    _console.print(t)


@_cli.command()
def run(
    run_id: int = typer.Argument(help="Run id from `memograph history`"),
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """Show one run and its steps."""
    _checkFormat(format)
    data = _withState(lambda state: svcRunDetail(state, run_id))
    if "error" in data:
        if format == "json":
            print(json.dumps({"ok": False, **data}))
        else:
            _console.print(f"[red]{data['error']}:[/red] {run_id}")
        raise typer.Exit(1)
    if format == "json":
        print(json.dumps(data))
        return
    r = data["run"]
    _console.print(f"[bold]Run {r['id']}[/bold] {r['observation_ref']} [dim]{r['status']}[/dim]")
    if r["error_message"]:
        _console.print(f"[red]{r['error_message']}[/red]")
    t = Table(box=box.SIMPLE)
    for col in ("step", "status", "details", "error"):
        t.add_column(col)
    for s in data["steps"]:
        t.add_row(s["name"], s["status"], s["details"] or "", s["error_message"] or "")
    _console.print(t)


# ── Server ───────────────────────────────────────────────────


@_cli.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int | None = typer.Option(None, "--port", "-p"),
) -> None:
    """Run the HTTP API (uvicorn)."""
    import uvicorn

    from memograph.server.app import createApp

    p = port or loadConfig().port
    logger.info("Starting Memograph API on %s:%d", host, p)
    uvicorn.run(createApp(), host=host, port=p, log_level="info")


# ── Config ───────────────────────────────────────────────────


def _fmtVal(v: Any) -> str:
    if v is None:
        return "[dim](not set)[/dim]"
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def _annStr(ann: Any) -> str:
    """Return a simple string representation of a type annotation."""
    args = get_args(ann)
    if args:
        non_none = [a for a in args if a is not type(None)]
        has_none = type(None) in args
        base = non_none[0] if non_none else args[0]
        name = getattr(base, "__name__", str(base))
        return f"{name} | None" if has_none else name
    return getattr(ann, "__name__", str(ann))


def _unwrapModel(ann: Any) -> type[BaseModel] | None:
    if isinstance(ann, type) and issubclass(ann, BaseModel):
        return ann
    for arg in get_args(ann):
        if isinstance(arg, type) and issubclass(arg, BaseModel):
            return arg
    return None


def _getFieldAnnotation(dotpath: str) -> Any:
    """Walk config model fields for dotpath, return annotation or None."""
    parts = dotpath.split(".")
    model: type[BaseModel] | None = MemographConfig
    for part in parts[:-1]:
        f = model.model_fields.get(part)
        if f is None:
            return None
        model = _unwrapModel(f.annotation)
        if model is None:
            return None
    f = model.model_fields.get(parts[-1])
    return f.annotation if f else None


def _coerceTyped(value: str, annotation: Any) -> Any:
    """Coerce a CLI string using the field annotation."""
    origin = get_origin(annotation)
    args = get_args(annotation) if origin else ()
    types = [a for a in args if a is not type(None)] if args else [annotation]
    base = types[0] if types else str

    if value.lower() in ("none", "null") and type(None) in (args or []):
        return None
    if base is bool:
        if value.lower() in ("true", "yes", "1"):
            return True
        if value.lower() in ("false", "no", "0"):
            return False
        raise ValueError(f"Expected bool, got {value!r}")
    if base is int:
        return int(value)
    if base is float:
        return float(value)
    if origin is list or base is list:
        return [v.strip() for v in value.split(",") if v.strip()]
    return value


def _renderConfigSection(title: str, pairs: list[tuple[str, Any, Any]]) -> None:
    """Print a section title + key/value table. pairs = (key, value, default)."""
    _console.print(f"\n[bold]{title}[/bold]")
    t = Table(show_header=False, box=box.SIMPLE, padding=(0, 1))
    t.add_column("key", style="dim")
    t.add_column("val")
    for key, val, default in pairs:
        fmt = _fmtVal(val)
        if val != default:
            fmt = f"[yellow]{fmt}[/yellow]"
        t.add_row(key, fmt)
    _console.print(t)


@_config_cli.command("list")
def config_list(
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """Pretty-print the current config grouped by section."""
    _checkFormat(format)
    cfg = loadConfig()
    if format == "json":
        print(json.dumps(cfg.model_dump()))
        raise typer.Exit()

    d = cfg.model_dump()
    dd = MemographConfig().model_dump()
    _renderConfigSection("General", [(k, d[k], dd[k]) for k in ("db_path", "port")])
    for section in ("embedding", "generation", "resolution", "context", "filter"):
        pairs = [(k, v, dd[section].get(k)) for k, v in d[section].items()]
        _renderConfigSection(section.capitalize(), pairs)


@_config_cli.command("get")
def config_get(
    dotpath: str = typer.Argument(help="Dot-separated key, e.g. resolution.similarity_threshold"),
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """Get a single config value."""
    _checkFormat(format)
    node: Any = loadConfig().model_dump()
    for part in dotpath.split("."):
        if isinstance(node, dict) and part in node:
            node = node[part]
        else:
            if format == "json":
                print(json.dumps({"ok": False, "error": f"Key not found: {dotpath}"}))
            else:
                _console.print(f"[red]Key not found:[/red] {dotpath}")
            raise typer.Exit(1)
    ann = _getFieldAnnotation(dotpath)
    if format == "json":
        print(
            json.dumps({"key": dotpath, "value": node, "type": _annStr(ann) if ann else "unknown"})
        )
    else:
        type_hint = f"  [dim]({_annStr(ann)})[/dim]" if ann else ""
        _console.print(f"[bold]{dotpath}[/bold] = {_fmtVal(node)}{type_hint}")


@_config_cli.command("set")
def config_set(
    dotpath: str = typer.Argument(help="Dot-separated key path"),
    value: str = typer.Argument(help="Value (type-coerced via schema)"),
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """Set a config value."""
    _checkFormat(format)
    from memograph import config as config_module

    config_path: Path = config_module.CONFIG_PATH
    ann = _getFieldAnnotation(dotpath)
    try:
        coerced = _coerceTyped(value, ann) if ann else value
    except ValueError as e:
        if format == "json":
            print(json.dumps({"ok": False, "error": str(e)}))
        else:
            _console.print(f"[red]Invalid:[/red] {e}")
        raise typer.Exit(1) from e

    raw: dict = {}
    if config_path.exists():
        with contextlib.suppress(json.JSONDecodeError):
            raw = json.loads(config_path.read_text())

    parts = dotpath.split(".")
    node = raw
    for part in parts[:-1]:
        if part not in node or not isinstance(node[part], dict):
            node[part] = {}
        node = node[part]
    node[parts[-1]] = coerced

    try:
        MemographConfig(**raw)
    except ValidationError as e:
        if format == "json":
            print(json.dumps({"ok": False, "error": str(e)}))
        else:
            _console.print(f"[red]Invalid value:[/red] {e}")
        raise typer.Exit(1) from e

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(raw, indent=2) + "\n")
    if format == "json":
        print(json.dumps({"ok": True, "key": dotpath, "value": coerced}))
    else:
        _console.print(f"[green]Set[/green] {dotpath} = {coerced!r}")


def main() -> None:
    _cli()


if __name__ == "__main__":
    main()
