"""Symbol resolver: map user-supplied names to canonical qualified names.

Resolution never guesses.  An unknown prefix or an ambiguous unqualified name
comes back as a value (:class:`NotFound`, :class:`Ambiguous`) that the caller
has to act on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ontoloom.model import ImportKind, declared_symbols, strip_namespace
from ontoloom.resolution.imports import IncompatibleImportError, import_keyword
from ontoloom.resolution.prefixes import (
    PrefixMap,
    build_prefix_map,
    split_name,
    unescape,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ontoloom.model import Ontology, SymbolKind
    from ontoloom.workspace import Workspace

logger = logging.getLogger(__name__)

# Candidate origin, in presentation order.
LOCAL = "local"
IMPORTED = "imported"
WORKSPACE = "workspace"

_ORIGIN_ORDER = {LOCAL: 0, IMPORTED: 1, WORKSPACE: 2}


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Candidate:
    """One visible declaration matching a name."""

    qualified_name: str  # canonical prefix:Name
    kind: SymbolKind
    path: str  # source file of the declaring ontology
    namespace: str
    origin: str  # LOCAL | IMPORTED | WORKSPACE


@dataclass(frozen=True)
class PendingImport:
    """Import the context ontology still needs before it can use a symbol."""

    namespace: str
    prefix: str  # canonical prefix of the target
    keyword: ImportKind
    path: str  # target ontology file


@dataclass(frozen=True)
class Resolved:
    qualified_name: str
    kind: SymbolKind
    path: str
    namespace: str
    reference: str  # text to write in the context ontology
    pending_import: PendingImport | None = None


@dataclass(frozen=True)
class Ambiguous:
    name: str
    candidates: tuple[Candidate, ...]


@dataclass(frozen=True)
class NotFound:
    name: str
    hint: str
    missing_prefix: str | None = None


Resolution = Resolved | Ambiguous | NotFound


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _matches(
    ontology: Ontology,
    local_name: str,
    kinds: frozenset[SymbolKind] | None,
    origin: str,
) -> list[Candidate]:
    prefix = unescape(ontology.prefix)
    found: list[Candidate] = []
    for statement in ontology.statements:
        for symbol, kind in declared_symbols(statement):
            if symbol != local_name:
                continue
            if kinds is not None and kind not in kinds:
                continue
            found.append(
                Candidate(
                    qualified_name=f"{prefix}:{symbol}",
                    kind=kind,
                    path=ontology.path,
                    namespace=ontology.namespace,
                    origin=origin,
                )
            )
    return found


def _sorted(candidates: Iterable[Candidate]) -> tuple[Candidate, ...]:
    return tuple(
        sorted(candidates, key=lambda c: (_ORIGIN_ORDER[c.origin], c.qualified_name, c.path))
    )


def _resolved(
    workspace: Workspace,
    context: Ontology,
    prefix_map: PrefixMap,
    candidate: Candidate,
) -> Resolution:
    """Build the success result, attaching a pending import if one is needed."""
    canonical, local_name = split_name(candidate.qualified_name)
    assert canonical is not None

    pending: PendingImport | None = None
    if candidate.path != context.path and not workspace.imports_namespace(
        context, candidate.namespace
    ):
        target = workspace.by_namespace(candidate.namespace)
        assert target is not None
        try:
            keyword = import_keyword(context.kind, target.kind)
        except IncompatibleImportError as exc:
            return NotFound(
                name=candidate.qualified_name,
                hint=f"{exc}; '{candidate.qualified_name}' cannot be used from {context.path}",
            )
        pending = PendingImport(
            namespace=target.namespace,
            prefix=canonical,
            keyword=keyword,
            path=target.path,
        )
        logger.debug(
            "%s needs '%s %s' to use %s",
            context.path,
            keyword.value,
            target.namespace,
            candidate.qualified_name,
        )

    return Resolved(
        qualified_name=candidate.qualified_name,
        kind=candidate.kind,
        path=candidate.path,
        namespace=candidate.namespace,
        reference=prefix_map.reference(canonical, local_name),
        pending_import=pending,
    )


def _decide(
    workspace: Workspace,
    context: Ontology,
    prefix_map: PrefixMap,
    name: str,
    candidates: list[Candidate],
) -> Resolution | None:
    if not candidates:
        return None
    if len(candidates) > 1:
        logger.debug("'%s' is ambiguous: %d candidates", name, len(candidates))
        return Ambiguous(name=name, candidates=_sorted(candidates))
    return _resolved(workspace, context, prefix_map, candidates[0])


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _resolve_qualified(
    workspace: Workspace,
    context: Ontology,
    prefix_map: PrefixMap,
    name: str,
    prefix: str,
    local_name: str,
    kinds: frozenset[SymbolKind] | None,
) -> Resolution:
    canonical = prefix_map.resolve_prefix(prefix)
    if canonical is None:
        declaring = workspace.by_prefix(prefix)
        if declaring:
            namespaces = ", ".join(f"<{o.namespace}> ({o.path})" for o in declaring)
            hint = (
                f"Prefix '{prefix}' is not imported by {context.path}; "
                f"add an import of {namespaces}"
            )
        else:
            hint = f"No ontology in the workspace declares prefix '{prefix}'"
        return NotFound(name=name, hint=hint, missing_prefix=prefix)

    if prefix_map.is_local(canonical):
        owners = [context]
    else:
        owners = [
            o for o in workspace.imported_closure(context) if unescape(o.prefix) == canonical
        ]
        if not owners:
            imported = {strip_namespace(imp.namespace) for imp in context.imports}
            owners = [
                o
                for o in workspace.by_prefix(canonical)
                if strip_namespace(o.namespace) in imported
            ]

    candidates: list[Candidate] = []
    for owner in owners:
        origin = LOCAL if owner is context else IMPORTED
        candidates.extend(_matches(owner, local_name, kinds, origin))

    decided = _decide(workspace, context, prefix_map, name, candidates)
    if decided is not None:
        return decided
    if not owners:
        hint = f"Prefix '{prefix}' maps to '{canonical}', which is not loaded"
    else:
        hint = f"'{local_name}' is not declared in '{canonical}'"
    return NotFound(name=name, hint=hint)


def resolve_symbol(
    workspace: Workspace,
    context: Ontology,
    name: str,
    kinds: frozenset[SymbolKind] | None = None,
) -> Resolution:
    """Resolve *name* as seen from *context*.

    Qualified names go through the context's prefix map.  Unqualified names
    are searched tier by tier: local declarations, then the transitive import
    closure, then the rest of the workspace.  The first tier with a match
    decides; several matches inside it give :class:`Ambiguous`.
    """
    prefix_map = build_prefix_map(context, workspace)
    prefix, local_name = split_name(name.strip())

    if prefix is not None:
        return _resolve_qualified(
            workspace, context, prefix_map, name, prefix, local_name, kinds
        )

    tiers: list[tuple[str, list[Ontology]]] = [(LOCAL, [context])]
    closure = workspace.imported_closure(context)
    tiers.append((IMPORTED, closure))
    seen = {context.path, *(o.path for o in closure)}
    tiers.append((WORKSPACE, [o for o in workspace if o.path not in seen]))

    for origin, ontologies in tiers:
        candidates: list[Candidate] = []
        for ontology in ontologies:
            candidates.extend(_matches(ontology, local_name, kinds, origin))
        decided = _decide(workspace, context, prefix_map, name, candidates)
        if decided is not None:
            return decided

    wanted = ", ".join(sorted(k.value for k in kinds)) if kinds else "any kind"
    hint = f"No declaration of '{local_name}' ({wanted}) in the workspace"
    return NotFound(name=name, hint=hint)


def resolve_symbols(
    workspace: Workspace,
    context: Ontology,
    names: Iterable[str],
    kinds: frozenset[SymbolKind] | None = None,
) -> dict[str, Resolution]:
    """Resolve several names against the same snapshot."""
    return {name: resolve_symbol(workspace, context, name, kinds) for name in names}


def format_disambiguation(name: str, ambiguous: Ambiguous) -> str:
    """Render an ambiguity as a message asking for a qualified name."""
    if not ambiguous.candidates:
        return f'Symbol "{name}" not found.'
    lines = [f'Ambiguous symbol "{name}": multiple matches found:', ""]
    for candidate in ambiguous.candidates:
        lines.append(
            f"  - {candidate.qualified_name} ({candidate.kind.value}) from {candidate.path}"
        )
    lines.append("")
    lines.append("Use a qualified name (prefix:Name) to pick one.")
    return "\n".join(lines)
