"""Document model: ontologies, imports, terms, and instances supplied by the parser."""

from __future__ import annotations

import enum
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OntologyKind(enum.Enum):
    """Kind of an ontology document."""

    VOCABULARY = "vocabulary"
    DESCRIPTION = "description"
    VOCABULARY_BUNDLE = "vocabulary_bundle"
    DESCRIPTION_BUNDLE = "description_bundle"


class ImportKind(enum.Enum):
    """Import keyword used in an ontology header."""

    EXTENDS = "extends"
    USES = "uses"
    INCLUDES = "includes"


class SymbolKind(enum.Enum):
    """Kind of a named declaration that a reference can resolve to."""

    CONCEPT = "concept"
    ASPECT = "aspect"
    RELATION_ENTITY = "relation_entity"
    UNREIFIED_RELATION = "unreified_relation"
    FORWARD_RELATION = "forward_relation"
    REVERSE_RELATION = "reverse_relation"
    SCALAR = "scalar"
    SCALAR_PROPERTY = "scalar_property"
    ANNOTATION_PROPERTY = "annotation_property"
    CONCEPT_INSTANCE = "concept_instance"
    RELATION_INSTANCE = "relation_instance"
    RULE = "rule"


ENTITY_KINDS: frozenset[SymbolKind] = frozenset(
    {SymbolKind.CONCEPT, SymbolKind.ASPECT, SymbolKind.RELATION_ENTITY}
)

PROPERTY_KINDS: frozenset[SymbolKind] = frozenset(
    {
        SymbolKind.SCALAR_PROPERTY,
        SymbolKind.ANNOTATION_PROPERTY,
        SymbolKind.UNREIFIED_RELATION,
        SymbolKind.FORWARD_RELATION,
        SymbolKind.REVERSE_RELATION,
    }
)

# ---------------------------------------------------------------------------
# Imports
# ---------------------------------------------------------------------------


def strip_namespace(namespace: str) -> str:
    """Drop the angle brackets around a namespace IRI, if any."""
    namespace = namespace.strip()
    if namespace.startswith("<") and namespace.endswith(">"):
        return namespace[1:-1]
    return namespace


@dataclass(frozen=True)
class Import:
    """A single ``extends`` / ``uses`` / ``includes`` declaration."""

    kind: ImportKind
    namespace: str  # target namespace IRI, without angle brackets
    alias: str | None = None  # explicit ``as <alias>``
    line: int | None = None


# ---------------------------------------------------------------------------
# Terms (vocabulary statements)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Aspect:
    name: str
    supertypes: tuple[str, ...] = ()
    keys: tuple[tuple[str, ...], ...] = ()
    line: int | None = None


@dataclass(frozen=True)
class Concept:
    name: str
    supertypes: tuple[str, ...] = ()
    equivalences: tuple[str, ...] = ()
    keys: tuple[tuple[str, ...], ...] = ()
    line: int | None = None


@dataclass(frozen=True)
class RelationEntity:
    """A reified relation; its forward/reverse names are resolvable properties."""

    name: str
    supertypes: tuple[str, ...] = ()
    source: str | None = None
    target: str | None = None
    forward: str | None = None
    reverse: str | None = None
    keys: tuple[tuple[str, ...], ...] = ()
    line: int | None = None


@dataclass(frozen=True)
class UnreifiedRelation:
    name: str
    supertypes: tuple[str, ...] = ()
    source: str | None = None
    target: str | None = None
    reverse: str | None = None
    line: int | None = None


@dataclass(frozen=True)
class Scalar:
    name: str
    supertypes: tuple[str, ...] = ()
    line: int | None = None


@dataclass(frozen=True)
class ScalarProperty:
    name: str
    supertypes: tuple[str, ...] = ()
    domain: str | None = None
    range: str | None = None
    line: int | None = None


@dataclass(frozen=True)
class AnnotationProperty:
    name: str
    supertypes: tuple[str, ...] = ()
    line: int | None = None


@dataclass(frozen=True)
class Rule:
    name: str
    line: int | None = None


# ---------------------------------------------------------------------------
# Instances (description statements)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PropertyValue:
    """A property-value assertion on an instance."""

    property: str  # property name as written (possibly aliased)
    literal_values: tuple[str, ...] = ()
    referenced_values: tuple[str, ...] = ()  # instance names as written
    line: int | None = None

    @property
    def count(self) -> int:
        return len(self.literal_values) + len(self.referenced_values)


@dataclass(frozen=True)
class ConceptInstance:
    name: str
    types: tuple[str, ...] = ()
    property_values: tuple[PropertyValue, ...] = ()
    line: int | None = None


@dataclass(frozen=True)
class RelationInstance:
    name: str
    types: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()
    targets: tuple[str, ...] = ()
    property_values: tuple[PropertyValue, ...] = ()
    line: int | None = None


Term = (
    Aspect
    | Concept
    | RelationEntity
    | UnreifiedRelation
    | Scalar
    | ScalarProperty
    | AnnotationProperty
)

Instance = ConceptInstance | RelationInstance

Statement = Term | Instance | Rule

_TERM_TYPES = (
    Aspect,
    Concept,
    RelationEntity,
    UnreifiedRelation,
    Scalar,
    ScalarProperty,
    AnnotationProperty,
)


def symbol_kind(statement: Statement) -> SymbolKind:
    """Return the symbol kind of a statement; unknown variants raise ``TypeError``."""
    if isinstance(statement, Concept):
        return SymbolKind.CONCEPT
    if isinstance(statement, Aspect):
        return SymbolKind.ASPECT
    if isinstance(statement, RelationEntity):
        return SymbolKind.RELATION_ENTITY
    if isinstance(statement, UnreifiedRelation):
        return SymbolKind.UNREIFIED_RELATION
    if isinstance(statement, Scalar):
        return SymbolKind.SCALAR
    if isinstance(statement, ScalarProperty):
        return SymbolKind.SCALAR_PROPERTY
    if isinstance(statement, AnnotationProperty):
        return SymbolKind.ANNOTATION_PROPERTY
    if isinstance(statement, ConceptInstance):
        return SymbolKind.CONCEPT_INSTANCE
    if isinstance(statement, RelationInstance):
        return SymbolKind.RELATION_INSTANCE
    if isinstance(statement, Rule):
        return SymbolKind.RULE
    msg = f"Unknown statement type: {type(statement).__name__}"
    raise TypeError(msg)


def declared_symbols(statement: Statement) -> list[tuple[str, SymbolKind]]:
    """Return every ``(name, kind)`` a statement declares.

    Relation entities and unreified relations also declare their forward and
    reverse relation names.
    """
    symbols = [(statement.name, symbol_kind(statement))]
    if isinstance(statement, RelationEntity):
        if statement.forward:
            symbols.append((statement.forward, SymbolKind.FORWARD_RELATION))
        if statement.reverse:
            symbols.append((statement.reverse, SymbolKind.REVERSE_RELATION))
    elif isinstance(statement, UnreifiedRelation) and statement.reverse:
        symbols.append((statement.reverse, SymbolKind.REVERSE_RELATION))
    return symbols


# ---------------------------------------------------------------------------
# Ontology document
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Ontology:
    """A parsed ontology document (read-mostly input)."""

    path: str
    kind: OntologyKind
    namespace: str
    prefix: str
    imports: tuple[Import, ...] = ()
    statements: tuple[Statement, ...] = ()

    def terms(self) -> list[Term]:
        return [s for s in self.statements if isinstance(s, _TERM_TYPES)]

    def instances(self) -> list[Instance]:
        return [s for s in self.statements if isinstance(s, (ConceptInstance, RelationInstance))]

    def find(self, name: str) -> Statement | None:
        """Return the statement declaring *name* (including relation names)."""
        for statement in self.statements:
            for symbol, _kind in declared_symbols(statement):
                if symbol == name:
                    return statement
        return None

    def with_import(self, imp: Import) -> Ontology:
        """Return a copy of this ontology with *imp* appended to its imports."""
        return Ontology(
            path=self.path,
            kind=self.kind,
            namespace=self.namespace,
            prefix=self.prefix,
            imports=(*self.imports, imp),
            statements=self.statements,
        )
