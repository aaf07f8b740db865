"""Import keyword selection, import insertion instructions, and resolve-then-import."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from ontoloom.model import ImportKind, OntologyKind
from ontoloom.resolution.prefixes import escape_prefix
from ontoloom.workspace import WorkspaceError

if TYPE_CHECKING:
    from ontoloom.model import Ontology, SymbolKind
    from ontoloom.resolution.symbols import PendingImport, Resolution
    from ontoloom.workspace import Workspace

logger = logging.getLogger(__name__)

INSERT_POLICY = "after-imports-before-statements"

_IMPORT_LINE_RE = re.compile(r"^\s*(extends|uses|includes)\b")


class IncompatibleImportError(ValueError):
    """Raised when one ontology kind may not import another."""

    def __init__(self, source_kind: OntologyKind, target_kind: OntologyKind) -> None:
        self.source_kind = source_kind
        self.target_kind = target_kind
        super().__init__(
            f"A {source_kind.value} cannot import a {target_kind.value}"
        )


def import_keyword(source_kind: OntologyKind, target_kind: OntologyKind) -> ImportKind:
    """Pick the import keyword *source_kind* uses to import *target_kind*.

    Same kind on both sides gives ``extends``; a vocabulary imported by a
    description gives ``uses``; a vocabulary imported by a vocabulary bundle
    gives ``includes``.  Any other pair raises :class:`IncompatibleImportError`.
    """
    if source_kind == target_kind:
        return ImportKind.EXTENDS
    if target_kind == OntologyKind.VOCABULARY:
        if source_kind == OntologyKind.DESCRIPTION:
            return ImportKind.USES
        if source_kind == OntologyKind.VOCABULARY_BUNDLE:
            return ImportKind.INCLUDES
    raise IncompatibleImportError(source_kind, target_kind)


# ---------------------------------------------------------------------------
# Insert-import instruction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InsertImport:
    """Instruction for the write-back collaborator to add one import."""

    path: str  # file to edit (the importing ontology)
    text: str  # import statement, without indentation or line ending
    namespace: str
    keyword: ImportKind
    prefix: str
    policy: str = INSERT_POLICY


def import_statement(keyword: ImportKind, namespace: str, prefix: str) -> str:
    return f"{keyword.value} <{namespace}> as {escape_prefix(prefix)}"


def plan_import(context: Ontology, pending: PendingImport) -> InsertImport:
    """Turn a pending import of a resolution into an insertion instruction."""
    return InsertImport(
        path=context.path,
        text=import_statement(pending.keyword, pending.namespace, pending.prefix),
        namespace=pending.namespace,
        keyword=pending.keyword,
        prefix=pending.prefix,
    )


def _detect_indent(lines: list[str], start: int) -> str:
    for line in lines[start:]:
        if not line.strip():
            continue
        stripped = line.lstrip(" \t")
        if len(stripped) < len(line):
            return line[: len(line) - len(stripped)]
    return "    "


def apply_import(text: str, instruction: InsertImport) -> str:
    """Insert *instruction*'s import statement into ontology source *text*.

    The statement goes after the last existing import, or directly after the
    opening brace when there are none.  Text that already imports the
    namespace is returned unchanged.

    Raises:
        ValueError: if *text* has no opening brace.
    """
    existing = re.compile(
        r"\b(extends|uses|includes)\s+<" + re.escape(instruction.namespace) + r">"
    )
    if existing.search(text):
        logger.debug("%s already imports %s", instruction.path, instruction.namespace)
        return text

    eol = "\r\n" if "\r\n" in text else "\n"
    lines = text.split(eol)

    brace_line = next((i for i, line in enumerate(lines) if "{" in line), None)
    if brace_line is None:
        msg = f"{instruction.path}: could not find the ontology's opening brace"
        raise ValueError(msg)

    insert_at = brace_line + 1
    for idx in range(brace_line + 1, len(lines)):
        line = lines[idx]
        if _IMPORT_LINE_RE.match(line):
            insert_at = idx + 1
        elif line.strip():
            break

    indent = _detect_indent(lines, brace_line + 1)
    lines.insert(insert_at, f"{indent}{instruction.text}")
    return eol.join(lines)


# ---------------------------------------------------------------------------
# Write-back round trip
# ---------------------------------------------------------------------------


class DocumentStore(Protocol):
    """External collaborator that persists edits and re-parses documents."""

    def apply(self, instruction: InsertImport) -> None: ...

    def notify_changed(self, path: str) -> None: ...

    def snapshot(self) -> Workspace: ...


def ensure_symbol(
    store: DocumentStore,
    context_path: str,
    name: str,
    kinds: frozenset[SymbolKind] | None = None,
) -> Resolution:
    """Resolve *name* in *context_path*, inserting a missing import if needed.

    Steps run strictly in sequence: resolve, apply the import, notify the
    store, take a fresh snapshot, then resolve again against it.  Callers
    must serialize requests that touch the same file.
    """
    from ontoloom.resolution.symbols import Resolved, resolve_symbol

    workspace = store.snapshot()
    context = workspace.by_path(context_path)
    if context is None:
        msg = f"{context_path}: not part of the workspace"
        raise WorkspaceError(msg)

    result = resolve_symbol(workspace, context, name, kinds)
    if not isinstance(result, Resolved) or result.pending_import is None:
        return result

    instruction = plan_import(context, result.pending_import)
    logger.info("Adding import to %s: %s", instruction.path, instruction.text)
    store.apply(instruction)
    store.notify_changed(instruction.path)

    workspace = store.snapshot()
    context = workspace.by_path(context_path)
    if context is None:
        msg = f"{context_path}: disappeared from the workspace after import"
        raise WorkspaceError(msg)

    resolved = resolve_symbol(workspace, context, name, kinds)
    if isinstance(resolved, Resolved) and resolved.pending_import is not None:
        logger.warning(
            "Import of %s into %s is still pending after write-back",
            resolved.pending_import.namespace,
            context_path,
        )
    return resolved
