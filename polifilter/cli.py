"""Typer-based CLI for polifilter.

Commands:
- categories: Build every filter category and show its state
- validate: Validate a selection against a category's options
- dropdown: Load a dropdown (optionally searching it)
- check-relationship: Validate one declared relationship
- consistency-report: Validate every relationship and summarize
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import ServiceConfig, load_config
from .context import AppContext
from .errors import ConfigurationError

app = typer.Typer(add_completion=False, no_args_is_help=True)


class _NullConsole:
    """Minimal console stub used when Rich output is disabled in tests."""

    def print(self, *args, **kwargs):
        return


console: Console | _NullConsole = _NullConsole()


def _rich_enabled() -> bool:
    return os.environ.get("POLIFILTER_NO_RICH") != "1"


def _get_console() -> Console | _NullConsole:
    if not _rich_enabled():
        return _NullConsole()
    return Console(
        file=sys.stdout,
        force_terminal=False,
        color_system=None,
        no_color=True,
        soft_wrap=True,
    )


def _configure_console_if_needed() -> None:
    """Rebind the module-level console; silence logging under POLIFILTER_NO_RICH."""
    global console
    console = _get_console()
    if not _rich_enabled():
        logging.disable(logging.CRITICAL)
    else:
        logging.disable(logging.NOTSET)


def _print(text: str) -> None:
    if not _rich_enabled():
        print(text, file=sys.stdout)
    else:
        _get_console().print(text)


def _print_json(data: Any) -> None:
    """Always raw JSON on stdout so output stays parseable."""
    print(json.dumps(data, indent=2, default=str), file=sys.stdout)


def _build_context(config_path: Optional[Path], data_dir: Optional[Path]) -> AppContext:
    if config_path is not None and not Path(config_path).exists():
        _print(f"Config file not found: {config_path}")
        raise typer.Exit(code=1)
    try:
        config = load_config(config_path)
        updates: Dict[str, Any] = {"enable_real_time_updates": False}
        if data_dir is not None:
            updates["data_dir"] = str(data_dir)
        config = ServiceConfig(**{**config.model_dump(), **updates})
        return AppContext.build(config, setup_logging=_rich_enabled())
    except ConfigurationError as e:
        _print(f"Configuration error: {e}")
        raise typer.Exit(code=1)


ConfigOpt = typer.Option(None, "--config", "-c", help="YAML/JSON config file")
DataDirOpt = typer.Option(None, "--data-dir", help="Root directory of the datasets")
JsonOpt = typer.Option(False, "--json", help="Emit machine-readable JSON")
OrphansOpt = typer.Option(False, "--orphans", help="Also look for orphaned records")


@app.command("categories")
def categories(
    config_path: Optional[Path] = ConfigOpt,
    data_dir: Optional[Path] = DataDirOpt,
    json_output: bool = JsonOpt,
):
    """Build every filter category and list its state."""
    _configure_console_if_needed()
    with _build_context(config_path, data_dir) as ctx:
        cats = asyncio.run(ctx.filters.get_all_filter_categories())
    rows = [
        {
            "id": c.id,
            "name": c.name,
            "data_source": c.data_source,
            "loading_state": c.loading_state.value,
            "options": len(c.options),
        }
        for c in cats.values()
    ]
    if json_output:
        _print_json(rows)
        raise typer.Exit(code=0)
    table = Table(title="Filter Categories")
    for col in ("ID", "Name", "Data source", "State"):
        table.add_column(col)
    table.add_column("#Options", justify="right")
    for r in rows:
        table.add_row(
            r["id"], r["name"], r["data_source"], r["loading_state"], str(r["options"])
        )
    if _rich_enabled():
        console.print(table)
        _print("Filter Categories")
    else:
        lines = ["Filter Categories"]
        for r in rows:
            lines.append(f"- {r['id']}")
            lines.append(f"  name        : {r['name']}")
            lines.append(f"  data source : {r['data_source']}")
            lines.append(f"  state       : {r['loading_state']}")
            lines.append(f"  options     : {r['options']}")
        _print("\n".join(lines))


@app.command("validate")
def validate(
    category: str = typer.Argument(..., help="Filter category id"),
    values: List[str] = typer.Argument(..., help="Selected values"),
    config_path: Optional[Path] = ConfigOpt,
    data_dir: Optional[Path] = DataDirOpt,
    json_output: bool = JsonOpt,
):
    """Validate a selection; exits with code 1 when it is invalid."""
    _configure_console_if_needed()
    with _build_context(config_path, data_dir) as ctx:
        if category in ctx.filters.list_category_ids():
            cat = asyncio.run(ctx.filters.get_filter_category(category))
            for dep_id in cat.dependencies:
                if dep_id in ctx.filters.list_category_ids():
                    asyncio.run(ctx.filters.get_filter_category(dep_id))
        result = ctx.filters.validate_filter_selection(category, values)
    if json_output:
        _print_json(result.model_dump(mode="json"))
    else:
        _print("Selection is valid" if result.is_valid else "Selection is invalid")
        for err in result.errors:
            _print(f"  error: {err}")
        for warning in result.warnings:
            _print(f"  warning: {warning}")
        if result.suggestions:
            _print("  did you mean: " + ", ".join(s.value for s in result.suggestions))
    raise typer.Exit(code=0 if result.is_valid else 1)


@app.command("dropdown")
def dropdown(
    dropdown_id: str = typer.Argument(..., help="Dropdown id, e.g. nigerian-states"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Search query"),
    config_path: Optional[Path] = ConfigOpt,
    data_dir: Optional[Path] = DataDirOpt,
    json_output: bool = JsonOpt,
):
    """Load a dropdown and print its (optionally filtered) options."""
    _configure_console_if_needed()
    with _build_context(config_path, data_dir) as ctx:
        try:
            state = asyncio.run(ctx.dropdowns.load_dropdown_data(dropdown_id))
        except ConfigurationError as e:
            _print(str(e))
            raise typer.Exit(code=1)
        options = (
            ctx.dropdowns.search_dropdown(dropdown_id, query) if query else state.options
        )
    if state.error:
        _print(f"Failed to load {dropdown_id}: {state.error}")
        raise typer.Exit(code=1)
    if json_output:
        _print_json(
            {
                "dropdown_id": dropdown_id,
                "options": [o.model_dump(mode="json") for o in options],
                "groups": [
                    {"id": g.id, "label": g.label, "options": [o.value for o in g.options]}
                    for g in state.groups
                ],
            }
        )
        raise typer.Exit(code=0)
    table = Table(title=dropdown_id)
    for col in ("Value", "Label", "Group", "Badge"):
        table.add_column(col)
    for o in options:
        table.add_row(o.value, o.label, o.group or "", o.badge or "")
    if _rich_enabled():
        console.print(table)
    else:
        lines = [dropdown_id]
        for o in options:
            extras = ", ".join(x for x in (o.group, o.badge) if x)
            lines.append(f"- {o.value}: {o.label}" + (f" ({extras})" if extras else ""))
        _print("\n".join(lines))
    _print(f"{len(options)} options")


@app.command("check-relationship")
def check_relationship(
    relationship_id: str = typer.Argument(..., help="Relationship id, e.g. politician-party"),
    orphans: bool = OrphansOpt,
    config_path: Optional[Path] = ConfigOpt,
    data_dir: Optional[Path] = DataDirOpt,
    json_output: bool = JsonOpt,
):
    """Validate one relationship; exits with code 1 when it is not valid."""
    _configure_console_if_needed()
    with _build_context(config_path, data_dir) as ctx:
        try:
            result = asyncio.run(
                ctx.consistency.validate_relationship(
                    relationship_id, include_orphans=orphans
                )
            )
        except ConfigurationError as e:
            _print(str(e))
            raise typer.Exit(code=1)
    if json_output:
        _print_json(result.model_dump(mode="json"))
    else:
        _print(f"{relationship_id}: {'valid' if result.is_valid else 'INVALID'}")
        for b in result.broken_relationships:
            _print(f"  broken: {b.source_record_id} -> {b.source_value}")
        for d in result.duplicate_keys:
            _print(f"  duplicate: {d.value} x{d.occurrences}")
        for o in result.orphaned_records:
            _print(f"  orphan: {o.record_id}")
        for w in result.warnings:
            _print(f"  warning: {w}")
    raise typer.Exit(code=0 if result.is_valid else 1)


@app.command("consistency-report")
def consistency_report(
    orphans: bool = OrphansOpt,
    config_path: Optional[Path] = ConfigOpt,
    data_dir: Optional[Path] = DataDirOpt,
    json_output: bool = JsonOpt,
):
    """Validate every relationship; exits with code 1 when issues were found."""
    _configure_console_if_needed()
    with _build_context(config_path, data_dir) as ctx:
        report = asyncio.run(
            ctx.consistency.generate_consistency_report(include_orphans=orphans)
        )
    has_issues = report.valid_relationships < report.total_relationships
    if json_output:
        _print_json(report.summary())
        raise typer.Exit(code=1 if has_issues else 0)
    table = Table(title="Consistency Report")
    table.add_column("Relationship")
    table.add_column("Valid")
    table.add_column("Broken", justify="right")
    table.add_column("Orphans", justify="right")
    table.add_column("Duplicates", justify="right")
    for rid, r in report.results.items():
        table.add_row(
            rid,
            "yes" if r.is_valid else "no",
            str(len(r.broken_relationships)),
            str(len(r.orphaned_records)),
            str(len(r.duplicate_keys)),
        )
    if _rich_enabled():
        console.print(table)
    _print(
        f"{report.valid_relationships}/{report.total_relationships} relationships valid"
    )
    for rec in report.recommendations:
        _print(f"- {rec}")
    raise typer.Exit(code=1 if has_issues else 0)


def main() -> None:
    """Entrypoint for console_scripts."""
    app()


if __name__ == "__main__":
    main()
