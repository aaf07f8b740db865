"""Type hierarchy index: transitive supertypes over the loaded vocabularies."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ontoloom.resolution.prefixes import build_prefix_map, unescape

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from ontoloom.workspace import Workspace

logger = logging.getLogger(__name__)


class HierarchyCycleError(ValueError):
    """Raised when specialization edges form a cycle."""

    def __init__(self, members: list[str]) -> None:
        self.members = members
        display = " -> ".join([*members, members[0]])
        super().__init__(f"Cyclic specialization detected: {display}")


def _normalize_cycle(path: list[str]) -> list[str]:
    """Rotate a cycle so that its smallest member comes first."""
    min_idx = path.index(min(path))
    return path[min_idx:] + path[:min_idx]


class TypeHierarchy:
    """Direct and transitive supertypes of canonical qualified type names.

    Transitive sets are computed on demand and memoized; a query touching a
    cycle raises :class:`HierarchyCycleError`.
    """

    def __init__(self, edges: Mapping[str, Iterable[str]]) -> None:
        self._direct: dict[str, tuple[str, ...]] = {
            sub: tuple(dict.fromkeys(supers)) for sub, supers in edges.items()
        }
        self._closed: dict[str, frozenset[str]] = {}

    @classmethod
    def from_workspace(cls, workspace: Workspace) -> TypeHierarchy:
        """Collect every term's direct supertypes, canonicalized per vocabulary."""
        edges: dict[str, list[str]] = {}
        for ontology in workspace:
            terms = ontology.terms()
            if not terms:
                continue
            prefix_map = build_prefix_map(ontology, workspace)
            prefix = unescape(ontology.prefix)
            for term in terms:
                supers = edges.setdefault(f"{prefix}:{term.name}", [])
                supers.extend(prefix_map.canonicalize(s) for s in term.supertypes)
        logger.debug("Type hierarchy built with %d types", len(edges))
        return cls(edges)

    @property
    def types(self) -> frozenset[str]:
        """Every type named in the hierarchy, as subtype or supertype."""
        names = set(self._direct)
        for supers in self._direct.values():
            names.update(supers)
        return frozenset(names)

    def direct_supertypes_of(self, type_name: str) -> tuple[str, ...]:
        return self._direct.get(type_name, ())

    def supertypes_of(self, type_name: str) -> frozenset[str]:
        """Return all proper supertypes of *type_name*, transitively closed."""
        return self._close(type_name, [])

    def _close(self, type_name: str, path: list[str]) -> frozenset[str]:
        cached = self._closed.get(type_name)
        if cached is not None:
            return cached
        if type_name in path:
            cycle = path[path.index(type_name) :]
            raise HierarchyCycleError(_normalize_cycle(cycle))

        path.append(type_name)
        result: set[str] = set()
        for parent in self._direct.get(type_name, ()):
            result.add(parent)
            result.update(self._close(parent, path))
        path.pop()

        closed = frozenset(result)
        self._closed[type_name] = closed
        return closed

    def is_subtype_of(self, type_name: str, base: str) -> bool:
        """Reflexive: every type is a subtype of itself."""
        return type_name == base or base in self.supertypes_of(type_name)

    def subtypes_of(self, base: str) -> frozenset[str]:
        """Return every known proper subtype of *base*."""
        return frozenset(
            name for name in self._direct if name != base and base in self.supertypes_of(name)
        )

    def check(self) -> None:
        """Raise :class:`HierarchyCycleError` if any specialization cycle exists."""
        for name in sorted(self._direct):
            self.supertypes_of(name)
