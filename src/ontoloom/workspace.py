"""Workspace snapshot: the explicitly passed set of loaded ontology documents.

Also loads workspace snapshots serialized as YAML by the external parser.
"""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import yaml

from ontoloom.model import (
    AnnotationProperty,
    Aspect,
    Concept,
    ConceptInstance,
    Import,
    ImportKind,
    Ontology,
    OntologyKind,
    PropertyValue,
    RelationEntity,
    RelationInstance,
    Rule,
    Scalar,
    ScalarProperty,
    Statement,
    UnreifiedRelation,
    strip_namespace,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from ontoloom.hierarchy import TypeHierarchy

logger = logging.getLogger(__name__)


class WorkspaceError(ValueError):
    """Raised when a workspace snapshot is malformed."""


def _normalize_path(path: str) -> str:
    return str(PurePosixPath(path.replace("\\", "/")))


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


class Workspace:
    """Immutable snapshot of every ontology document visible to a request.

    Resolution and validation take a ``Workspace`` explicitly; a mutation
    produces a new snapshot through :meth:`with_ontology`.
    """

    def __init__(self, ontologies: Iterable[Ontology]) -> None:
        self._ontologies: tuple[Ontology, ...] = tuple(ontologies)
        self._by_namespace: dict[str, Ontology] = {}
        self._by_path: dict[str, Ontology] = {}
        self._by_prefix: dict[str, list[Ontology]] = {}
        self._hierarchy: TypeHierarchy | None = None

        for ontology in self._ontologies:
            namespace = strip_namespace(ontology.namespace)
            if namespace in self._by_namespace:
                other = self._by_namespace[namespace]
                msg = (
                    f"Namespace '{namespace}' is declared by both "
                    f"'{other.path}' and '{ontology.path}'"
                )
                raise WorkspaceError(msg)
            self._by_namespace[namespace] = ontology
            self._by_path[_normalize_path(ontology.path)] = ontology
            self._by_prefix.setdefault(ontology.prefix.lstrip("^"), []).append(ontology)

    def __len__(self) -> int:
        return len(self._ontologies)

    def __iter__(self) -> Iterator[Ontology]:
        return iter(self._ontologies)

    @property
    def ontologies(self) -> tuple[Ontology, ...]:
        return self._ontologies

    def by_namespace(self, namespace: str) -> Ontology | None:
        return self._by_namespace.get(strip_namespace(namespace))

    def by_path(self, path: str) -> Ontology | None:
        """Look up a document by path; falls back to a unique basename match."""
        normalized = _normalize_path(path)
        found = self._by_path.get(normalized)
        if found is not None:
            return found
        name = PurePosixPath(normalized).name
        matches = [o for p, o in self._by_path.items() if PurePosixPath(p).name == name]
        return matches[0] if len(matches) == 1 else None

    def by_prefix(self, prefix: str) -> list[Ontology]:
        return list(self._by_prefix.get(prefix.lstrip("^"), []))

    def import_target(self, imp: Import) -> Ontology | None:
        """Return the ontology an import points at, or None if it is not loaded."""
        return self.by_namespace(imp.namespace)

    def imported_closure(self, ontology: Ontology) -> list[Ontology]:
        """Return every ontology transitively imported by *ontology*, breadth-first.

        The context ontology itself is excluded; import cycles are tolerated.
        """
        seen: set[str] = {strip_namespace(ontology.namespace)}
        result: list[Ontology] = []
        queue: deque[Ontology] = deque([ontology])
        while queue:
            current = queue.popleft()
            for imp in current.imports:
                namespace = strip_namespace(imp.namespace)
                if namespace in seen:
                    continue
                seen.add(namespace)
                target = self._by_namespace.get(namespace)
                if target is None:
                    logger.debug(
                        "Import of '%s' in %s is not loaded", namespace, current.path
                    )
                    continue
                result.append(target)
                queue.append(target)
        return result

    def imports_namespace(self, ontology: Ontology, namespace: str) -> bool:
        """Return True if *ontology* directly declares an import of *namespace*."""
        wanted = strip_namespace(namespace)
        return any(strip_namespace(imp.namespace) == wanted for imp in ontology.imports)

    def with_ontology(self, ontology: Ontology) -> Workspace:
        """Return a new snapshot where *ontology* replaces the document at its path."""
        key = _normalize_path(ontology.path)
        replaced = False
        ontologies: list[Ontology] = []
        for existing in self._ontologies:
            if _normalize_path(existing.path) == key:
                ontologies.append(ontology)
                replaced = True
            else:
                ontologies.append(existing)
        if not replaced:
            ontologies.append(ontology)
        return Workspace(ontologies)

    @property
    def hierarchy(self) -> TypeHierarchy:
        """Type hierarchy of this snapshot, built on first access."""
        if self._hierarchy is None:
            from ontoloom.hierarchy import TypeHierarchy

            self._hierarchy = TypeHierarchy.from_workspace(self)
        return self._hierarchy


# ---------------------------------------------------------------------------
# YAML snapshot loading
# ---------------------------------------------------------------------------


def _str_tuple(value: object, context: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        msg = f"{context}: expected a string or a list of strings"
        raise WorkspaceError(msg)
    return tuple(str(v) for v in value)


def _optional_str(data: dict[str, object], key: str) -> str | None:
    value = data.get(key)
    return str(value) if value is not None else None


def _optional_int(data: dict[str, object], key: str, context: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"{context}: '{key}' must be an integer"
        raise WorkspaceError(msg)
    return value


def _parse_import(data: object, context: str) -> Import:
    if not isinstance(data, dict):
        msg = f"{context}: import must be a mapping"
        raise WorkspaceError(msg)

    kind_raw = data.get("kind")
    try:
        kind = ImportKind(str(kind_raw))
    except ValueError:
        valid = sorted(k.value for k in ImportKind)
        msg = f"{context}: invalid import kind '{kind_raw}', must be one of {valid}"
        raise WorkspaceError(msg) from None

    namespace = data.get("namespace")
    if not isinstance(namespace, str) or not namespace.strip():
        msg = f"{context}: import is missing required 'namespace'"
        raise WorkspaceError(msg)

    return Import(
        kind=kind,
        namespace=strip_namespace(namespace),
        alias=_optional_str(data, "alias"),
        line=_optional_int(data, "line", context),
    )


def _parse_property_values(data: object, context: str) -> tuple[PropertyValue, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        msg = f"{context}: 'properties' must be a list"
        raise WorkspaceError(msg)

    values: list[PropertyValue] = []
    for idx, item in enumerate(data):
        item_context = f"{context} property at index {idx}"
        if not isinstance(item, dict):
            msg = f"{item_context}: must be a mapping"
            raise WorkspaceError(msg)
        prop = item.get("property")
        if not isinstance(prop, str) or not prop.strip():
            msg = f"{item_context}: missing required 'property'"
            raise WorkspaceError(msg)
        values.append(
            PropertyValue(
                property=prop,
                literal_values=_str_tuple(item.get("literals"), item_context),
                referenced_values=_str_tuple(item.get("references"), item_context),
                line=_optional_int(item, "line", item_context),
            )
        )
    return tuple(values)


def _parse_statement(data: object, context: str) -> Statement:
    if not isinstance(data, dict):
        msg = f"{context}: statement must be a mapping"
        raise WorkspaceError(msg)

    stmt_type = data.get("type")
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        msg = f"{context}: statement is missing required 'name'"
        raise WorkspaceError(msg)

    line = _optional_int(data, "line", context)
    supertypes = _str_tuple(data.get("supertypes"), context)
    keys = tuple(_str_tuple(k, context) for k in data.get("keys") or [])

    if stmt_type == "Concept":
        return Concept(
            name=name,
            supertypes=supertypes,
            equivalences=_str_tuple(data.get("equivalences"), context),
            keys=keys,
            line=line,
        )
    if stmt_type == "Aspect":
        return Aspect(name=name, supertypes=supertypes, keys=keys, line=line)
    if stmt_type == "RelationEntity":
        return RelationEntity(
            name=name,
            supertypes=supertypes,
            source=_optional_str(data, "source"),
            target=_optional_str(data, "target"),
            forward=_optional_str(data, "forward"),
            reverse=_optional_str(data, "reverse"),
            keys=keys,
            line=line,
        )
    if stmt_type == "UnreifiedRelation":
        return UnreifiedRelation(
            name=name,
            supertypes=supertypes,
            source=_optional_str(data, "source"),
            target=_optional_str(data, "target"),
            reverse=_optional_str(data, "reverse"),
            line=line,
        )
    if stmt_type == "Scalar":
        return Scalar(name=name, supertypes=supertypes, line=line)
    if stmt_type == "ScalarProperty":
        return ScalarProperty(
            name=name,
            supertypes=supertypes,
            domain=_optional_str(data, "domain"),
            range=_optional_str(data, "range"),
            line=line,
        )
    if stmt_type == "AnnotationProperty":
        return AnnotationProperty(name=name, supertypes=supertypes, line=line)
    if stmt_type == "ConceptInstance":
        return ConceptInstance(
            name=name,
            types=_str_tuple(data.get("types"), context),
            property_values=_parse_property_values(data.get("properties"), context),
            line=line,
        )
    if stmt_type == "RelationInstance":
        return RelationInstance(
            name=name,
            types=_str_tuple(data.get("types"), context),
            sources=_str_tuple(data.get("sources"), context),
            targets=_str_tuple(data.get("targets"), context),
            property_values=_parse_property_values(data.get("properties"), context),
            line=line,
        )
    if stmt_type == "Rule":
        return Rule(name=name, line=line)

    msg = f"{context}: unknown statement type '{stmt_type}'"
    raise WorkspaceError(msg)


def parse_ontology(data: object, context: str) -> Ontology:
    """Build an :class:`Ontology` from one mapping of a workspace snapshot."""
    if not isinstance(data, dict):
        msg = f"{context}: ontology must be a mapping"
        raise WorkspaceError(msg)

    for key in ("path", "kind", "namespace", "prefix"):
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            msg = f"{context}: missing required '{key}' field"
            raise WorkspaceError(msg)

    path = str(data["path"])
    context = f"{context} ({path})"
    kind_raw = str(data["kind"])
    try:
        kind = OntologyKind(kind_raw)
    except ValueError:
        valid = sorted(k.value for k in OntologyKind)
        msg = f"{context}: invalid kind '{kind_raw}', must be one of {valid}"
        raise WorkspaceError(msg) from None

    imports_raw = data.get("imports") or []
    statements_raw = data.get("statements") or []
    if not isinstance(imports_raw, list):
        msg = f"{context}: 'imports' must be a list"
        raise WorkspaceError(msg)
    if not isinstance(statements_raw, list):
        msg = f"{context}: 'statements' must be a list"
        raise WorkspaceError(msg)

    return Ontology(
        path=path,
        kind=kind,
        namespace=strip_namespace(str(data["namespace"])),
        prefix=str(data["prefix"]),
        imports=tuple(
            _parse_import(imp, f"{context} import at index {idx}")
            for idx, imp in enumerate(imports_raw)
        ),
        statements=tuple(
            _parse_statement(stmt, f"{context} statement at index {idx}")
            for idx, stmt in enumerate(statements_raw)
        ),
    )


def _load_snapshot_file(path: Path) -> list[Ontology]:
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    if data is None:
        return []
    if not isinstance(data, dict):
        msg = f"{path.name}: workspace snapshot must be a YAML mapping"
        raise WorkspaceError(msg)

    entries = data.get("ontologies", [])
    if not isinstance(entries, list):
        msg = f"{path.name}: 'ontologies' must be a list"
        raise WorkspaceError(msg)

    return [
        parse_ontology(entry, f"{path.name}: ontology at index {idx}")
        for idx, entry in enumerate(entries)
    ]


def load_workspace(path: Path) -> Workspace:
    """Load a workspace snapshot from a YAML file or a directory of YAML files.

    Raises :class:`WorkspaceError` on malformed input.
    """
    if path.is_dir():
        files = sorted([*path.glob("*.yml"), *path.glob("*.yaml")])
    else:
        files = [path]

    ontologies: list[Ontology] = []
    for file_path in files:
        try:
            ontologies.extend(_load_snapshot_file(file_path))
        except yaml.YAMLError as exc:
            msg = f"{file_path.name}: invalid YAML: {exc}"
            raise WorkspaceError(msg) from exc

    logger.debug("Loaded %d ontologies from %s", len(ontologies), path)
    return Workspace(ontologies)
