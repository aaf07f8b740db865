"""Methodology playbook: data model, YAML/JSON loading, validation, discovery."""

from __future__ import annotations

import enum
import fnmatch
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import yaml

if TYPE_CHECKING:
    from ontoloom.cache import PlaybookCache

logger = logging.getLogger(__name__)

PLAYBOOK_SUFFIXES: tuple[str, ...] = ("_playbook.yaml", "_playbook.yml")
PLAYBOOK_NAMES: frozenset[str] = frozenset({"playbook.yaml", "playbook.yml"})

VALID_DIRECTIONS: frozenset[str] = frozenset({"forward", "reverse"})


class PlaybookError(ValueError):
    """Raised when a playbook is malformed; nothing is evaluated against it."""


class Severity(enum.Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlaybookMetadata:
    methodology: str = ""
    version: str = ""
    generated_at: str = ""
    source_vocabularies: tuple[str, ...] = ()


@dataclass(frozen=True)
class RelationRule:
    """Which end of a bidirectional relation owns the assertion in descriptions."""

    forward_relation: str  # e.g. "requirement:expresses"
    reverse_relation: str  # e.g. "requirement:isExpressedBy"
    owning_concept: str
    preferred_direction: str  # "forward" | "reverse"
    rationale: str | None = None
    source_file: str | None = None

    @property
    def preferred_relation(self) -> str:
        if self.preferred_direction == "forward":
            return self.forward_relation
        return self.reverse_relation


@dataclass(frozen=True)
class AppliesTo:
    """Selector deciding which instances a constraint applies to.

    An empty selector matches every instance.
    """

    concept_type: str | None = None
    match_subtypes: bool = False  # with concept_type: also match its subtypes
    concept_types: tuple[str, ...] = ()
    any_subtype_of: str | None = None
    concept_pattern: str | None = None  # '*' is the only wildcard

    @property
    def is_empty(self) -> bool:
        return (
            self.concept_type is None
            and not self.concept_types
            and self.any_subtype_of is None
            and self.concept_pattern is None
        )


@dataclass(frozen=True)
class PropertyConstraint:
    property: str
    required: bool = False
    min_occurrences: int | None = None
    max_occurrences: int | None = None
    target_must_be: str | None = None
    target_must_be_one_of: tuple[str, ...] = ()
    target_match_subtypes: bool = False

    @property
    def allowed_targets(self) -> tuple[str, ...]:
        """Union of ``target_must_be`` and ``target_must_be_one_of``."""
        if self.target_must_be is None:
            return self.target_must_be_one_of
        rest = (t for t in self.target_must_be_one_of if t != self.target_must_be)
        return (self.target_must_be, *rest)


@dataclass(frozen=True)
class DescriptionConstraint:
    id: str
    message: str
    applies_to: AppliesTo
    constraints: tuple[PropertyConstraint, ...] = ()
    severity: Severity = Severity.ERROR
    rationale: str | None = None


@dataclass(frozen=True)
class RoutingEntry:
    concept: str
    priority: int  # 1 = primary placement


@dataclass(frozen=True)
class DescriptionSchema:
    """What may live in one description file, and the rules it must satisfy."""

    file: str
    purpose: str = ""
    allowed_types: tuple[str, ...] = ()
    routing: tuple[RoutingEntry, ...] = ()
    constraints: tuple[DescriptionConstraint, ...] = ()

    def routing_priority(self, concept: str) -> int | None:
        for entry in self.routing:
            if entry.concept == concept:
                return entry.priority
        return None


@dataclass(frozen=True)
class MethodologyPlaybook:
    metadata: PlaybookMetadata = field(default_factory=PlaybookMetadata)
    relation_rules: tuple[RelationRule, ...] = ()
    descriptions: dict[str, DescriptionSchema] = field(default_factory=dict)
    source: str | None = None

    def schema_for(self, file_path: str) -> DescriptionSchema | None:
        """Return the schema of *file_path*: exact basename first, then glob keys."""
        normalized = file_path.replace("\\", "/")
        name = PurePosixPath(normalized).name
        if name in self.descriptions:
            return self.descriptions[name]
        for key, schema in self.descriptions.items():
            if "*" not in key:
                continue
            if fnmatch.fnmatchcase(name, key) or fnmatch.fnmatchcase(normalized, key):
                return schema
        return None


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _require_mapping(value: object, context: str) -> dict[str, object]:
    if not isinstance(value, dict):
        msg = f"{context}: must be a mapping"
        raise PlaybookError(msg)
    return value


def _optional_list(value: object, context: str) -> list[object]:
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"{context}: must be a list"
        raise PlaybookError(msg)
    return value


def _optional_bound(data: dict[str, object], key: str, context: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"{context}: '{key}' must be an integer"
        raise PlaybookError(msg)
    if value < 0:
        msg = f"{context}: '{key}' must not be negative"
        raise PlaybookError(msg)
    return value


def _parse_severity(value: object, context: str) -> Severity:
    if value is None:
        return Severity.ERROR
    try:
        return Severity(str(value))
    except ValueError:
        valid = sorted(s.value for s in Severity)
        msg = f"{context}: invalid severity '{value}', must be one of {valid}"
        raise PlaybookError(msg) from None


def _parse_metadata(data: object) -> PlaybookMetadata:
    if data is None:
        return PlaybookMetadata()
    meta = _require_mapping(data, "metadata")
    return PlaybookMetadata(
        methodology=str(meta.get("methodology", "")),
        version=str(meta.get("version", "")),
        generated_at=str(meta.get("generatedAt", "")),
        source_vocabularies=tuple(
            str(v)
            for v in _optional_list(
                meta.get("sourceVocabularies"), "metadata.sourceVocabularies"
            )
        ),
    )


def _parse_relation_rule(data: object, context: str) -> RelationRule:
    rule = _require_mapping(data, context)
    for key in ("forwardRelation", "reverseRelation"):
        value = rule.get(key)
        if not isinstance(value, str) or not value.strip():
            msg = f"{context}: missing required '{key}'"
            raise PlaybookError(msg)

    direction = str(rule.get("preferredDirection", "forward"))
    if direction not in VALID_DIRECTIONS:
        msg = (
            f"{context}: invalid preferredDirection '{direction}', "
            f"must be one of {sorted(VALID_DIRECTIONS)}"
        )
        raise PlaybookError(msg)

    rationale = rule.get("rationale")
    source_file = rule.get("sourceFile")
    return RelationRule(
        forward_relation=str(rule["forwardRelation"]),
        reverse_relation=str(rule["reverseRelation"]),
        owning_concept=str(rule.get("owningConcept", "")),
        preferred_direction=direction,
        rationale=str(rationale) if rationale is not None else None,
        source_file=str(source_file) if source_file is not None else None,
    )


def _parse_applies_to(data: object, context: str) -> AppliesTo:
    if data is None:
        return AppliesTo()
    applies = _require_mapping(data, f"{context} appliesTo")

    pattern = applies.get("conceptPattern")
    if pattern is not None and not str(pattern).strip():
        msg = f"{context}: appliesTo.conceptPattern must not be empty"
        raise PlaybookError(msg)

    concept_type = applies.get("conceptType")
    any_subtype_of = applies.get("anySubtypeOf")
    types = _optional_list(applies.get("conceptTypes"), f"{context} appliesTo.conceptTypes")
    return AppliesTo(
        concept_type=str(concept_type) if concept_type is not None else None,
        match_subtypes=bool(applies.get("matchSubtypes", False)),
        concept_types=tuple(str(t) for t in types),
        any_subtype_of=str(any_subtype_of) if any_subtype_of is not None else None,
        concept_pattern=str(pattern) if pattern is not None else None,
    )


def _parse_property_constraint(data: object, context: str) -> PropertyConstraint:
    item = _require_mapping(data, context)
    prop = item.get("property")
    if not isinstance(prop, str) or not prop.strip():
        msg = f"{context}: property constraint is missing a property name"
        raise PlaybookError(msg)

    min_occ = _optional_bound(item, "minOccurrences", context)
    max_occ = _optional_bound(item, "maxOccurrences", context)
    if min_occ is not None and max_occ is not None and min_occ > max_occ:
        msg = f"{context}: minOccurrences ({min_occ}) exceeds maxOccurrences ({max_occ})"
        raise PlaybookError(msg)

    target = item.get("targetMustBe")
    one_of = _optional_list(item.get("targetMustBeOneOf"), f"{context} targetMustBeOneOf")
    return PropertyConstraint(
        property=prop.strip(),
        required=bool(item.get("required", False)),
        min_occurrences=min_occ,
        max_occurrences=max_occ,
        target_must_be=str(target) if target is not None else None,
        target_must_be_one_of=tuple(str(t) for t in one_of),
        target_match_subtypes=bool(item.get("targetMatchSubtypes", False)),
    )


def _parse_constraint(data: object, context: str) -> DescriptionConstraint:
    item = _require_mapping(data, context)
    rule_id = item.get("id")
    if not isinstance(rule_id, str) or not rule_id.strip():
        msg = f"{context}: missing required 'id'"
        raise PlaybookError(msg)

    context = f"{context} ('{rule_id}')"
    rationale = item.get("rationale")
    props = _optional_list(item.get("constraints"), f"{context} constraints")
    return DescriptionConstraint(
        id=rule_id,
        message=str(item.get("message", "")),
        applies_to=_parse_applies_to(item.get("appliesTo"), context),
        constraints=tuple(
            _parse_property_constraint(p, f"{context} property constraint at index {idx}")
            for idx, p in enumerate(props)
        ),
        severity=_parse_severity(item.get("severity"), context),
        rationale=str(rationale) if rationale is not None else None,
    )


def _parse_routing(data: object, context: str) -> tuple[RoutingEntry, ...]:
    entries: list[RoutingEntry] = []
    for idx, raw in enumerate(_optional_list(data, f"{context} routing")):
        entry_context = f"{context} routing entry at index {idx}"
        entry = _require_mapping(raw, entry_context)
        concept = entry.get("concept")
        if not isinstance(concept, str) or not concept.strip():
            msg = f"{entry_context}: missing required 'concept'"
            raise PlaybookError(msg)
        priority = entry.get("priority", 1)
        if isinstance(priority, bool) or not isinstance(priority, int) or priority < 1:
            msg = f"{entry_context}: priority must be a positive integer, got {priority!r}"
            raise PlaybookError(msg)
        entries.append(RoutingEntry(concept=concept, priority=priority))
    return tuple(entries)


def _parse_schema(key: str, data: object) -> DescriptionSchema:
    context = f"descriptions['{key}']"
    schema = _require_mapping(data, context)

    constraints: list[DescriptionConstraint] = []
    seen_ids: set[str] = set()
    for idx, raw in enumerate(_optional_list(schema.get("constraints"), f"{context} constraints")):
        constraint = _parse_constraint(raw, f"{context} constraint at index {idx}")
        if constraint.id in seen_ids:
            msg = f"{context}: duplicate constraint id '{constraint.id}'"
            raise PlaybookError(msg)
        seen_ids.add(constraint.id)
        constraints.append(constraint)

    allowed = _optional_list(schema.get("allowedTypes"), f"{context} allowedTypes")
    return DescriptionSchema(
        file=str(schema.get("file", key)),
        purpose=str(schema.get("purpose", "")),
        allowed_types=tuple(str(t) for t in allowed),
        routing=_parse_routing(schema.get("routing"), context),
        constraints=tuple(constraints),
    )


def parse_playbook(data: object, source: str | None = None) -> MethodologyPlaybook:
    """Validate raw playbook data and build a :class:`MethodologyPlaybook`.

    Raises :class:`PlaybookError` on any malformed entry.
    """
    label = source or "playbook"
    if not isinstance(data, dict):
        msg = f"{label}: playbook must be a mapping"
        raise PlaybookError(msg)

    try:
        relation_rules = tuple(
            _parse_relation_rule(rule, f"relationRules[{idx}]")
            for idx, rule in enumerate(_optional_list(data.get("relationRules"), "relationRules"))
        )
        descriptions_raw = data.get("descriptions") or {}
        if not isinstance(descriptions_raw, dict):
            msg = "descriptions: must be a mapping of file name to schema"
            raise PlaybookError(msg)
        descriptions = {
            str(key): _parse_schema(str(key), value) for key, value in descriptions_raw.items()
        }
        metadata = _parse_metadata(data.get("metadata"))
    except PlaybookError as exc:
        msg = f"{label}: {exc}"
        raise PlaybookError(msg) from exc

    return MethodologyPlaybook(
        metadata=metadata,
        relation_rules=relation_rules,
        descriptions=descriptions,
        source=source,
    )


# ---------------------------------------------------------------------------
# Loading and discovery
# ---------------------------------------------------------------------------


def _read_playbook(path: Path) -> MethodologyPlaybook:
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        msg = f"{path.name}: cannot parse playbook: {exc}"
        raise PlaybookError(msg) from exc
    return parse_playbook(data, source=str(path))


def load_playbook(path: Path, cache: PlaybookCache | None = None) -> MethodologyPlaybook:
    """Load a playbook from YAML (or JSON for ``.json`` files).

    With a *cache*, an unchanged file is parsed only once.
    """
    if not path.is_file():
        msg = f"{path}: playbook file not found"
        raise PlaybookError(msg)

    if cache is not None:
        cached = cache.get(path)
        if cached is not None:
            return cached

    playbook = _read_playbook(path)
    logger.debug(
        "Loaded playbook %s: %d description schemas, %d relation rules",
        path,
        len(playbook.descriptions),
        len(playbook.relation_rules),
    )
    if cache is not None:
        cache.put(path, playbook)
    return playbook


def _is_playbook_name(name: str) -> bool:
    return name in PLAYBOOK_NAMES or name.endswith(PLAYBOOK_SUFFIXES)


def find_playbook(start_dir: Path, max_depth: int = 10) -> Path | None:
    """Walk up from *start_dir* looking for the nearest playbook file."""
    current = start_dir.resolve()
    for _ in range(max_depth):
        if current.is_dir():
            matches = sorted(
                p for p in current.iterdir() if p.is_file() and _is_playbook_name(p.name)
            )
            if matches:
                logger.debug("Found playbook %s", matches[0])
                return matches[0]
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None
