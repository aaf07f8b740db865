"""Ontoloom CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from ontoloom import __version__

if TYPE_CHECKING:
    from ontoloom.methodology.playbook import DescriptionSchema
    from ontoloom.methodology.routing import FileRouting
    from ontoloom.workspace import Workspace

_WORKSPACE_OPTION = click.option(
    "--workspace",
    "-w",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Workspace snapshot file or directory (default: current directory).",
)


@click.group()
@click.version_option(version=__version__, prog_name="ontoloom")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """Ontoloom - name resolution and methodology linting for OML ontologies."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    elif quiet:
        logging.basicConfig(level=logging.ERROR)
    else:
        logging.basicConfig(level=logging.WARNING)


def _load_workspace_or_exit(path: Path | None) -> Workspace:
    from ontoloom.workspace import WorkspaceError, load_workspace

    try:
        return load_workspace(path or Path.cwd())
    except (OSError, WorkspaceError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


# ---------------------------------------------------------------------------
# lint
# ---------------------------------------------------------------------------


@main.command()
@click.argument("description")
@_WORKSPACE_OPTION
@click.option(
    "--playbook",
    "-p",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Playbook file (default: nearest *_playbook.yaml above the workspace).",
)
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Exit 1 if error-severity violations are found.",
)
def lint(
    description: str,
    *,
    workspace: Path | None,
    playbook: Path | None,
    fmt: str | None,
    strict: bool,
) -> None:
    """Check DESCRIPTION against the methodology playbook.

    Exit codes: 0 = valid or violations without --strict,
    1 = error-severity violations with --strict, 2 = configuration error.
    """
    from ontoloom.methodology.linter import LintError
    from ontoloom.methodology.linter import format_json as _format_json
    from ontoloom.methodology.linter import format_porcelain as _format_porcelain
    from ontoloom.methodology.linter import format_rich as _format_rich
    from ontoloom.methodology.linter import lint as run_lint

    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    try:
        result = run_lint(workspace or Path.cwd(), description, playbook_path=playbook)
    except (LintError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    formatters = {
        "rich": _format_rich,
        "json": _format_json,
        "porcelain": _format_porcelain,
    }
    output = formatters[fmt](result)
    if output:
        click.echo(output)

    if strict and not result.is_valid:
        sys.exit(1)


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------


@main.command()
@click.argument("name")
@click.option(
    "--context", "-c", "context_path", required=True, help="Ontology file to resolve from."
)
@_WORKSPACE_OPTION
@click.option(
    "--kind",
    "kinds",
    multiple=True,
    help="Restrict to symbol kinds (e.g. concept, scalar_property). Repeatable.",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def resolve(
    name: str,
    *,
    context_path: str,
    workspace: Path | None,
    kinds: tuple[str, ...],
    as_json: bool,
) -> None:
    """Resolve NAME as seen from an ontology.

    Exit codes: 0 = resolved, 1 = ambiguous or not found, 2 = configuration error.
    """
    from ontoloom.model import SymbolKind
    from ontoloom.resolution.imports import plan_import
    from ontoloom.resolution.symbols import (
        Ambiguous,
        Resolved,
        format_disambiguation,
        resolve_symbol,
    )

    ws = _load_workspace_or_exit(workspace)
    context = ws.by_path(context_path)
    if context is None:
        click.echo(f"Error: '{context_path}' is not in the workspace", err=True)
        sys.exit(2)

    try:
        wanted = frozenset(SymbolKind(k) for k in kinds) if kinds else None
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    result = resolve_symbol(ws, context, name, wanted)

    if isinstance(result, Resolved):
        instruction = (
            plan_import(context, result.pending_import) if result.pending_import else None
        )
        if as_json:
            payload: dict[str, object] = {
                "status": "resolved",
                "qualified_name": result.qualified_name,
                "kind": result.kind.value,
                "path": result.path,
                "reference": result.reference,
                "insert_import": None,
            }
            if instruction is not None:
                payload["insert_import"] = {
                    "path": instruction.path,
                    "text": instruction.text,
                    "policy": instruction.policy,
                }
            click.echo(json.dumps(payload, indent=2))
        else:
            click.echo(f"{result.qualified_name} ({result.kind.value}) from {result.path}")
            click.echo(f"Write as: {result.reference}")
            if instruction is not None:
                click.echo(f"Missing import in {instruction.path}: {instruction.text}")
        return

    if isinstance(result, Ambiguous):
        if as_json:
            click.echo(
                json.dumps(
                    {
                        "status": "ambiguous",
                        "candidates": [
                            {
                                "qualified_name": c.qualified_name,
                                "kind": c.kind.value,
                                "path": c.path,
                                "origin": c.origin,
                            }
                            for c in result.candidates
                        ],
                    },
                    indent=2,
                )
            )
        else:
            click.echo(format_disambiguation(name, result))
        sys.exit(1)

    if as_json:
        click.echo(
            json.dumps(
                {
                    "status": "not_found",
                    "hint": result.hint,
                    "missing_prefix": result.missing_prefix,
                },
                indent=2,
            )
        )
    else:
        click.echo(f"Not found: {result.hint}", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# route
# ---------------------------------------------------------------------------


@main.command()
@click.argument("instance_type")
@click.option(
    "--playbook",
    "-p",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Playbook file (default: nearest playbook above the current directory).",
)
@click.option(
    "--file",
    "files",
    multiple=True,
    help="Description file available in the workspace. Repeatable.",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def route(
    instance_type: str,
    *,
    playbook: Path | None,
    files: tuple[str, ...],
    as_json: bool,
) -> None:
    """Recommend a description file for a new INSTANCE_TYPE instance."""
    from ontoloom.methodology.playbook import PlaybookError, find_playbook, load_playbook
    from ontoloom.methodology.routing import render_routing, route_instance

    descriptions: dict[str, DescriptionSchema] = {}
    playbook_path = playbook or find_playbook(Path.cwd())
    if playbook_path is not None:
        try:
            descriptions = load_playbook(playbook_path).descriptions
        except (OSError, PlaybookError) as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(2)

    rec = route_instance(instance_type, descriptions, files)

    if as_json:
        def _entry(r: FileRouting) -> dict[str, object]:
            return {"file": r.file, "confidence": r.confidence, "reason": r.reason}

        click.echo(
            json.dumps(
                {
                    "recommended": _entry(rec.recommended) if rec.recommended else None,
                    "alternatives": [_entry(a) for a in rec.alternatives],
                    "missing": [_entry(m) for m in rec.missing],
                    "explanation": rec.explanation,
                },
                indent=2,
            )
        )
        return

    from rich.console import Console

    render_routing(rec, Console())


# ---------------------------------------------------------------------------
# supertypes
# ---------------------------------------------------------------------------


@main.command()
@click.argument("type_name")
@_WORKSPACE_OPTION
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def supertypes(type_name: str, *, workspace: Path | None, as_json: bool) -> None:
    """List the transitive supertypes of TYPE_NAME (canonical prefix:Name)."""
    from ontoloom.hierarchy import HierarchyCycleError

    ws = _load_workspace_or_exit(workspace)
    try:
        found = sorted(ws.hierarchy.supertypes_of(type_name))
        direct = list(ws.hierarchy.direct_supertypes_of(type_name))
    except HierarchyCycleError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    if as_json:
        click.echo(json.dumps({"type": type_name, "direct": direct, "all": found}, indent=2))
        return

    if not found:
        click.echo(f"{type_name} has no supertypes")
        return
    for name in found:
        marker = "*" if name in direct else " "
        click.echo(f"{marker} {name}")
