"""Rule engine: match description constraints to instances and evaluate them.

Matching and evaluation are pure functions over canonical qualified names.
Callers canonicalize instance types and playbook names first.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ontoloom.methodology.playbook import Severity

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from ontoloom.hierarchy import TypeHierarchy
    from ontoloom.methodology.playbook import (
        AppliesTo,
        DescriptionConstraint,
        PropertyConstraint,
    )
    from ontoloom.model import PropertyValue


class MatcherKind(enum.IntEnum):
    """Matcher specificity; a higher value is more specific."""

    ANY = 0
    PATTERN = 1
    SUBTYPE = 2
    TYPE_LIST = 3
    EXACT_TYPE = 4


class ViolationType(enum.Enum):
    WRONG_DIRECTION = "wrong_direction"
    MISSING_PROPERTY = "missing_property"
    WRONG_CONTAINER = "wrong_container"
    INVALID_CARDINALITY = "invalid_cardinality"
    INVALID_TARGET_TYPE = "invalid_target_type"
    TYPE_NOT_ALLOWED = "type_not_allowed"


@dataclass(frozen=True)
class Location:
    file: str
    instance: str | None = None
    line: int | None = None


@dataclass(frozen=True)
class Violation:
    """A single playbook finding."""

    type: ViolationType
    rule: str  # id of the violated rule
    location: Location
    message: str
    severity: Severity


@dataclass(frozen=True)
class RuleMatch:
    rule: DescriptionConstraint
    kind: MatcherKind
    index: int  # declaration position in the schema


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def pattern_matches(pattern: str, name: str) -> bool:
    """Case-sensitive glob match where ``*`` is the only wildcard."""
    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.fullmatch(regex, name) is not None


def _match_type(
    applies_to: AppliesTo, type_name: str, hierarchy: TypeHierarchy
) -> MatcherKind | None:
    found: list[MatcherKind] = []
    if applies_to.concept_type is not None:
        if type_name == applies_to.concept_type:
            return MatcherKind.EXACT_TYPE
        if applies_to.match_subtypes and hierarchy.is_subtype_of(
            type_name, applies_to.concept_type
        ):
            found.append(MatcherKind.SUBTYPE)
    if type_name in applies_to.concept_types:
        found.append(MatcherKind.TYPE_LIST)
    if applies_to.any_subtype_of is not None and hierarchy.is_subtype_of(
        type_name, applies_to.any_subtype_of
    ):
        found.append(MatcherKind.SUBTYPE)
    if applies_to.concept_pattern is not None and pattern_matches(
        applies_to.concept_pattern, type_name
    ):
        found.append(MatcherKind.PATTERN)
    return max(found) if found else None


def match_applies_to(
    applies_to: AppliesTo,
    types: Sequence[str],
    hierarchy: TypeHierarchy,
) -> MatcherKind | None:
    """Return the most specific way *applies_to* matches any of *types*, or None."""
    if applies_to.is_empty:
        return MatcherKind.ANY
    best: MatcherKind | None = None
    for type_name in types:
        kind = _match_type(applies_to, type_name, hierarchy)
        if kind is not None and (best is None or kind > best):
            best = kind
    return best


def applicable_rules(
    types: Sequence[str],
    constraints: Sequence[DescriptionConstraint],
    hierarchy: TypeHierarchy,
) -> list[RuleMatch]:
    """Return every rule matching *types*, most specific first.

    Rules of equal specificity keep their declaration order.
    """
    matches: list[RuleMatch] = []
    for index, rule in enumerate(constraints):
        kind = match_applies_to(rule.applies_to, types, hierarchy)
        if kind is not None:
            matches.append(RuleMatch(rule=rule, kind=kind, index=index))
    matches.sort(key=lambda m: (-m.kind, m.index))
    return matches


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _target_ok(
    target_types: Sequence[str],
    constraint: PropertyConstraint,
    hierarchy: TypeHierarchy,
) -> bool:
    for allowed in constraint.allowed_targets:
        for type_name in target_types:
            if type_name == allowed:
                return True
            if constraint.target_match_subtypes and hierarchy.is_subtype_of(type_name, allowed):
                return True
    return False


def evaluate_constraint(
    constraint: PropertyConstraint,
    rule: DescriptionConstraint,
    values: Sequence[PropertyValue],
    location: Location,
    target_types: Mapping[str, Sequence[str]],
    hierarchy: TypeHierarchy,
) -> list[Violation]:
    """Check one property constraint against an instance's assertions.

    *values* are the assertions of the constrained property only.
    *target_types* maps each referenced value, as written, to its canonical
    types; a reference missing from it is an unknown target and offends.

    A property with no assertions yields at most ``missing_property``;
    ``invalid_cardinality`` is only reported for properties that are present.
    """
    instance = location.instance or "?"
    count = sum(v.count for v in values)
    min_occ = constraint.min_occurrences
    max_occ = constraint.max_occurrences

    if count == 0:
        if constraint.required or (min_occ is not None and min_occ >= 1):
            return [
                Violation(
                    type=ViolationType.MISSING_PROPERTY,
                    rule=rule.id,
                    location=location,
                    message=(
                        f'Instance "{instance}" is missing required property '
                        f'"{constraint.property}". {rule.message}'
                    ).strip(),
                    severity=rule.severity,
                )
            ]
        return []

    violations: list[Violation] = []
    first_line = next((v.line for v in values if v.line is not None), location.line)

    if (min_occ is not None and count < min_occ) or (max_occ is not None and count > max_occ):
        low = str(min_occ) if min_occ is not None else "0"
        high = str(max_occ) if max_occ is not None else "*"
        violations.append(
            Violation(
                type=ViolationType.INVALID_CARDINALITY,
                rule=rule.id,
                location=Location(file=location.file, instance=location.instance, line=first_line),
                message=(
                    f'Instance "{instance}" has {count} value(s) for '
                    f'"{constraint.property}", expected [{low}..{high}]'
                ),
                severity=rule.severity,
            )
        )

    allowed = constraint.allowed_targets
    if allowed:
        expected = " or ".join(allowed)
        for value in values:
            for ref in value.referenced_values:
                types = target_types.get(ref)
                if types is not None and _target_ok(types, constraint, hierarchy):
                    continue
                actual = ", ".join(types) if types else "unknown"
                violations.append(
                    Violation(
                        type=ViolationType.INVALID_TARGET_TYPE,
                        rule=rule.id,
                        location=Location(
                            file=location.file,
                            instance=location.instance,
                            line=value.line if value.line is not None else location.line,
                        ),
                        message=(
                            f'Instance "{instance}" property "{constraint.property}" '
                            f'targets "{ref}" of type {actual}, expected {expected}'
                        ),
                        severity=rule.severity,
                    )
                )
    return violations
