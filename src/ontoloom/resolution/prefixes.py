"""Prefix resolver: alias -> canonical prefix map for one ontology's imports."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ontoloom.model import strip_namespace

if TYPE_CHECKING:
    from ontoloom.model import Ontology
    from ontoloom.workspace import Workspace

logger = logging.getLogger(__name__)

# Keywords of the modeling language; a prefix spelled like one must be escaped.
RESERVED_KEYWORDS: frozenset[str] = frozenset(
    {
        "all", "annotation", "as", "aspect", "asymmetric", "builtin", "bundle",
        "concept", "description", "differentfrom", "domain", "entity", "exactly",
        "extends", "forward", "from", "functional", "includes", "instance",
        "inverse", "irreflexive", "key", "language", "length", "max",
        "maxexclusive", "maxinclusive", "maxlength", "min", "minexclusive",
        "mininclusive", "minlength", "oneof", "pattern", "property", "range",
        "ref", "reflexive", "relation", "restricts", "reverse", "rule", "sameas",
        "scalar", "self", "some", "symmetric", "to", "transitive", "uses",
        "vocabulary",
    }
)  # fmt: skip

# Last path segment before a trailing '#' or '/', e.g. http://x.com/foo/bar# -> bar
_NAMESPACE_SEGMENT_RE = re.compile(r"/([^/#]+)[#/]>?$")


# ---------------------------------------------------------------------------
# Name helpers
# ---------------------------------------------------------------------------


def unescape(identifier: str) -> str:
    """Drop a leading ``^`` keyword escape."""
    return identifier[1:] if identifier.startswith("^") else identifier


def escape_prefix(prefix: str) -> str:
    """Escape *prefix* with ``^`` if it collides with a reserved keyword."""
    if prefix.startswith("^"):
        return prefix
    if prefix.lower() in RESERVED_KEYWORDS:
        return f"^{prefix}"
    return prefix


def split_name(name: str) -> tuple[str | None, str]:
    """Split ``prefix:Name`` on the first colon; unqualified names give ``(None, name)``."""
    prefix, sep, local = name.partition(":")
    if not sep:
        return None, unescape(name)
    return unescape(prefix), unescape(local)


def strip_local_prefix(name: str, local_prefix: str) -> str:
    """Remove *local_prefix* (escaped or not) from *name* if it qualifies it."""
    prefix, local = split_name(name)
    if prefix is not None and prefix == unescape(local_prefix):
        return local
    return name


def is_local_reference(name: str, local_prefix: str) -> bool:
    prefix, _local = split_name(name)
    return prefix is not None and prefix == unescape(local_prefix)


def namespace_prefix(namespace: str) -> str | None:
    """Derive a prefix candidate from a namespace IRI.

    >>> namespace_prefix("http://example.com/requirement#")
    'requirement'
    """
    match = _NAMESPACE_SEGMENT_RE.search(namespace.strip())
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Prefix map
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PrefixConflict:
    """The same alias bound to two different targets."""

    alias: str
    first: str  # canonical prefix bound first
    second: str  # canonical prefix that replaced it
    first_namespace: str = ""
    second_namespace: str = ""

    def describe(self) -> str:
        if self.first == self.second:
            return (
                f"alias '{self.alias}' is bound to both <{self.first_namespace}> "
                f"and <{self.second_namespace}>"
            )
        return f"alias '{self.alias}' is bound to both '{self.first}' and '{self.second}'"


class PrefixConflictError(ValueError):
    """Raised in strict mode when an import list binds one alias twice."""

    def __init__(self, path: str, conflicts: list[PrefixConflict]) -> None:
        self.path = path
        self.conflicts = conflicts
        details = "; ".join(c.describe() for c in conflicts)
        super().__init__(f"{path}: conflicting import aliases: {details}")


@dataclass(frozen=True)
class PrefixMap:
    """Alias map of a single ontology, built per request and never persisted."""

    local_prefix: str
    aliases: dict[str, str] = field(default_factory=dict)  # alias -> canonical
    prefixes: frozenset[str] = frozenset()  # canonical prefixes usable as-is
    conflicts: tuple[PrefixConflict, ...] = ()

    def is_local(self, prefix: str) -> bool:
        return unescape(prefix) == self.local_prefix

    def resolve_prefix(self, prefix: str) -> str | None:
        """Return the canonical prefix *prefix* stands for, or None if unknown."""
        prefix = unescape(prefix)
        if prefix in self.aliases:
            return self.aliases[prefix]
        if prefix in self.prefixes or prefix == self.local_prefix:
            return prefix
        return None

    def canonicalize(self, name: str) -> str:
        """Rewrite *name* to ``canonical:Name``.

        Unqualified names belong to the local prefix; unknown prefixes are
        kept as written.
        """
        prefix, local = split_name(name)
        if prefix is None:
            return f"{self.local_prefix}:{local}"
        canonical = self.resolve_prefix(prefix)
        return f"{canonical or prefix}:{local}"

    def alias_for(self, canonical: str) -> str | None:
        """Return the prefix this ontology uses to write names of *canonical*."""
        if canonical == self.local_prefix:
            return canonical
        if canonical in self.prefixes:
            return canonical
        for alias, target in self.aliases.items():
            if target == canonical:
                return alias
        return None

    def reference(self, canonical: str, name: str) -> str:
        """Text that refers to *name* of prefix *canonical* from this ontology."""
        if canonical == self.local_prefix:
            return name
        alias = self.alias_for(canonical) or canonical
        return f"{escape_prefix(alias)}:{name}"


def build_prefix_map(
    ontology: Ontology,
    workspace: Workspace | None = None,
    *,
    strict: bool = False,
) -> PrefixMap:
    """Build the alias map for *ontology*'s imports.

    The effective alias of an import is its explicit alias, else the
    canonical prefix of the loaded target, else a prefix derived from the
    namespace IRI.  Only aliases that differ from their canonical prefix are
    recorded in ``aliases``.

    Raises:
        PrefixConflictError: if *strict* and one alias is bound twice.
    """
    local = unescape(ontology.prefix)
    bindings: dict[str, tuple[str, str]] = {local: (local, strip_namespace(ontology.namespace))}
    aliases: dict[str, str] = {}
    prefixes: set[str] = set()
    conflicts: list[PrefixConflict] = []

    for imp in ontology.imports:
        target = workspace.import_target(imp) if workspace is not None else None
        if target is not None:
            canonical: str | None = unescape(target.prefix)
        else:
            canonical = namespace_prefix(imp.namespace)
            logger.debug(
                "Import '%s' in %s is not loaded, derived prefix %r",
                imp.namespace,
                ontology.path,
                canonical,
            )
        alias = unescape(imp.alias) if imp.alias else canonical
        if alias is None or canonical is None:
            logger.debug("No prefix derivable for import '%s'", imp.namespace)
            continue

        namespace = strip_namespace(imp.namespace)
        previous = bindings.get(alias)
        if previous is not None and previous != (canonical, namespace):
            conflict = PrefixConflict(
                alias=alias,
                first=previous[0],
                second=canonical,
                first_namespace=previous[1],
                second_namespace=namespace,
            )
            conflicts.append(conflict)
            logger.warning("%s: %s", ontology.path, conflict.describe())
            prefixes.discard(alias)
        bindings[alias] = (canonical, namespace)

        if alias != canonical:
            aliases[alias] = canonical
        else:
            aliases.pop(alias, None)
            prefixes.add(canonical)

    if conflicts and strict:
        raise PrefixConflictError(ontology.path, conflicts)

    return PrefixMap(
        local_prefix=local,
        aliases=aliases,
        prefixes=frozenset(prefixes),
        conflicts=tuple(conflicts),
    )
