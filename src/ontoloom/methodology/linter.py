"""Linter orchestrator: check a description against a playbook, format results."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from ontoloom.methodology.playbook import (
    PlaybookError,
    Severity,
    find_playbook,
    load_playbook,
)
from ontoloom.methodology.rule_engine import (
    Location,
    Violation,
    ViolationType,
    applicable_rules,
    evaluate_constraint,
    pattern_matches,
)
from ontoloom.model import OntologyKind
from ontoloom.resolution.prefixes import build_prefix_map, split_name, unescape
from ontoloom.workspace import WorkspaceError, load_workspace

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from ontoloom.cache import PlaybookCache
    from ontoloom.methodology.playbook import (
        AppliesTo,
        DescriptionConstraint,
        MethodologyPlaybook,
        PropertyConstraint,
        RelationRule,
    )
    from ontoloom.model import Instance, Ontology, PropertyValue
    from ontoloom.resolution.prefixes import PrefixMap
    from ontoloom.workspace import Workspace

logger = logging.getLogger(__name__)

_DESCRIPTION_KINDS = frozenset({OntologyKind.DESCRIPTION, OntologyKind.DESCRIPTION_BUNDLE})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class LintError(Exception):
    """Raised when lint encounters a configuration error."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PropertyEdit:
    instance: str
    property: str
    value: str


@dataclass(frozen=True)
class Correction:
    """A suggested fix for a violation."""

    violation_type: ViolationType
    explanation: str
    remove: PropertyEdit | None = None
    add: PropertyEdit | None = None


@dataclass
class LintResult:
    """Result of a lint run."""

    file: str
    violations: list[Violation] = field(default_factory=list)
    corrections: list[Correction] = field(default_factory=list)
    schema: str | None = None  # schema key the file matched, if any
    instances_checked: int = 0
    rules_evaluated: int = 0
    elapsed_ms: float = 0.0

    @property
    def is_valid(self) -> bool:
        """True iff no violation has severity ``error``."""
        return not any(v.severity == Severity.ERROR for v in self.violations)


# ---------------------------------------------------------------------------
# Canonicalization
# ---------------------------------------------------------------------------


def _canonical_applies_to(applies_to: AppliesTo, prefix_map: PrefixMap) -> AppliesTo:
    canon = prefix_map.canonicalize
    return replace(
        applies_to,
        concept_type=canon(applies_to.concept_type) if applies_to.concept_type else None,
        concept_types=tuple(canon(t) for t in applies_to.concept_types),
        any_subtype_of=canon(applies_to.any_subtype_of) if applies_to.any_subtype_of else None,
    )


def _canonical_property_constraint(
    constraint: PropertyConstraint, prefix_map: PrefixMap
) -> PropertyConstraint:
    canon = prefix_map.canonicalize
    return replace(
        constraint,
        target_must_be=canon(constraint.target_must_be) if constraint.target_must_be else None,
        target_must_be_one_of=tuple(canon(t) for t in constraint.target_must_be_one_of),
    )


def _canonical_rules(
    rules: Iterable[DescriptionConstraint], prefix_map: PrefixMap
) -> list[DescriptionConstraint]:
    return [
        replace(
            rule,
            applies_to=_canonical_applies_to(rule.applies_to, prefix_map),
            constraints=tuple(
                _canonical_property_constraint(c, prefix_map) for c in rule.constraints
            ),
        )
        for rule in rules
    ]


def _property_matches(written: str, constrained: str, prefix_map: PrefixMap) -> bool:
    """Qualified constraint names compare canonically, bare ones by local name."""
    prefix, local = split_name(constrained)
    if prefix is None:
        return split_name(written)[1] == local
    if ":" not in written:
        return False
    return prefix_map.canonicalize(written) == prefix_map.canonicalize(constrained)


class _InstanceIndex:
    """Canonical types of instances visible from one description."""

    def __init__(self, workspace: Workspace, description: Ontology, prefix_map: PrefixMap) -> None:
        self._prefix_map = prefix_map
        self._by_qualified: dict[str, tuple[str, ...]] = {}
        self._by_local: dict[str, tuple[str, ...]] = {}
        self._local_names: set[str] = set()
        self._ambiguous: set[str] = set()

        visible = [description, *workspace.imported_closure(description)]
        for ontology in visible:
            if ontology.kind not in _DESCRIPTION_KINDS:
                continue
            own_map = (
                prefix_map if ontology is description else build_prefix_map(ontology, workspace)
            )
            prefix = unescape(ontology.prefix)
            for instance in ontology.instances():
                types = tuple(own_map.canonicalize(t) for t in instance.types)
                self._by_qualified.setdefault(f"{prefix}:{instance.name}", types)
                name = instance.name
                if name in self._local_names:
                    continue
                if ontology is description:
                    self._local_names.add(name)
                    self._by_local[name] = types
                elif name in self._by_local:
                    self._ambiguous.add(name)
                else:
                    self._by_local[name] = types

    def types_of(self, reference: str) -> tuple[str, ...] | None:
        qualified = self._prefix_map.canonicalize(reference)
        found = self._by_qualified.get(qualified)
        if found is None and ":" not in reference:
            name = unescape(reference)
            if name not in self._ambiguous:
                found = self._by_local.get(name)
        return found

    def is_ambiguous(self, reference: str) -> bool:
        """True for a bare name declared by more than one imported description."""
        return ":" not in reference and unescape(reference) in self._ambiguous


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def _canonical_allowed(entry: str, prefix_map: PrefixMap) -> str:
    """Canonicalize an ``allowedTypes`` entry; a pattern keeps its bare form."""
    if "*" not in entry:
        return prefix_map.canonicalize(entry)
    prefix, local = split_name(entry)
    if prefix is None or "*" in prefix:
        return entry
    return f"{prefix_map.resolve_prefix(prefix) or prefix}:{local}"


def _type_allowed(type_name: str, allowed: Iterable[str]) -> bool:
    for entry in allowed:
        if "*" in entry:
            if pattern_matches(entry, type_name):
                return True
        elif entry == type_name:
            return True
    return False


def _check_placement(
    instance: Instance,
    types: tuple[str, ...],
    schema_key: str | None,
    allowed: dict[str, tuple[str, ...]],
    location: Location,
) -> Violation | None:
    """Placement of one instance.

    A type no schema allows gives ``type_not_allowed`` wherever the instance
    lives.  ``wrong_container`` needs a schema for the file that lists
    ``allowedTypes`` and leaves the type out.
    """
    own = allowed.get(schema_key, ()) if schema_key is not None else ()
    disallowed = [t for t in types if not _type_allowed(t, own)] if own else list(types)
    if not disallowed:
        return None

    elsewhere = {
        t: sorted(
            key
            for key, entries in allowed.items()
            if key != schema_key and _type_allowed(t, entries)
        )
        for t in disallowed
    }
    nowhere = [t for t, files in elsewhere.items() if not files]
    if nowhere:
        return Violation(
            type=ViolationType.TYPE_NOT_ALLOWED,
            rule="allowedTypes",
            location=location,
            message=(
                f'Instance "{instance.name}" has type {", ".join(nowhere)}, '
                "which no description schema allows"
            ),
            severity=Severity.WARNING,
        )
    if not own:
        return None

    files = sorted({f for fs in elsewhere.values() for f in fs})
    return Violation(
        type=ViolationType.WRONG_CONTAINER,
        rule="allowedTypes",
        location=location,
        message=(
            f'Instance "{instance.name}" of type {", ".join(disallowed)} does not belong in '
            f'"{schema_key}"; move it to {", ".join(files)}'
        ),
        severity=Severity.WARNING,
    )


def _relation_lookups(
    rules: Iterable[RelationRule], prefix_map: PrefixMap
) -> tuple[dict[str, RelationRule], dict[str, RelationRule]]:
    forward: dict[str, RelationRule] = {}
    reverse: dict[str, RelationRule] = {}
    for rule in rules:
        for name, table in ((rule.forward_relation, forward), (rule.reverse_relation, reverse)):
            table[prefix_map.canonicalize(name) if ":" in name else name] = rule
            table[split_name(name)[1]] = rule
    return forward, reverse


def _check_direction(
    instance: Instance,
    value: PropertyValue,
    lookups: tuple[dict[str, RelationRule], dict[str, RelationRule]],
    prefix_map: PrefixMap,
    file: str,
) -> tuple[Violation | None, list[Correction]]:
    forward, reverse = lookups
    key = prefix_map.canonicalize(value.property) if ":" in value.property else value.property
    forward_rule = forward.get(key)
    reverse_rule = reverse.get(key)
    rule = forward_rule or reverse_rule
    if rule is None:
        return None, []

    is_forward = forward_rule is not None and reverse_rule is None
    is_reverse = reverse_rule is not None and forward_rule is None
    wrong = (rule.preferred_direction == "forward" and is_reverse) or (
        rule.preferred_direction == "reverse" and is_forward
    )
    if not wrong:
        return None, []

    preferred = rule.preferred_relation
    current = rule.forward_relation if is_forward else rule.reverse_relation
    violation = Violation(
        type=ViolationType.WRONG_DIRECTION,
        rule=f"Relation direction: use {preferred}",
        location=Location(file=file, instance=instance.name, line=value.line),
        message=(
            f'Instance "{instance.name}" uses "{current}" but the playbook prefers '
            f'"{preferred}". Move this assertion to the target instance using the '
            f"{rule.preferred_direction} relation."
        ),
        severity=Severity.WARNING,
    )
    corrections = [
        Correction(
            violation_type=ViolationType.WRONG_DIRECTION,
            remove=PropertyEdit(instance=instance.name, property=current, value=target),
            add=PropertyEdit(instance=target, property=preferred, value=instance.name),
            explanation=(
                f'Move "{instance.name} [ {value.property} {target} ]" to '
                f'"{target} [ {preferred} {instance.name} ]"'
            ),
        )
        for target in value.referenced_values
    ]
    return violation, corrections


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def lint_description(
    workspace: Workspace,
    description: Ontology,
    playbook: MethodologyPlaybook,
) -> LintResult:
    """Check every instance of *description* against *playbook*.

    Per instance, in declaration order: placement, relation direction, then
    the matched rules' property constraints, most specific rule first.
    Evaluation never stops at the first finding.
    """
    start = time.monotonic()
    prefix_map = build_prefix_map(description, workspace)
    hierarchy = workspace.hierarchy
    index = _InstanceIndex(workspace, description, prefix_map)
    lookups = _relation_lookups(playbook.relation_rules, prefix_map)

    schema = playbook.schema_for(description.path)
    schema_key = next((k for k, s in playbook.descriptions.items() if s is schema), None)
    allowed = {
        key: tuple(_canonical_allowed(t, prefix_map) for t in s.allowed_types)
        for key, s in playbook.descriptions.items()
    }
    rules = _canonical_rules(schema.constraints, prefix_map) if schema is not None else []
    check_placement = any(allowed.values())
    if schema is None:
        logger.debug("No description schema for %s", description.path)

    result = LintResult(file=description.path, schema=schema_key, rules_evaluated=len(rules))

    for instance in description.instances():
        result.instances_checked += 1
        types = tuple(prefix_map.canonicalize(t) for t in instance.types)
        location = Location(file=description.path, instance=instance.name, line=instance.line)

        if check_placement and types:
            placement = _check_placement(instance, types, schema_key, allowed, location)
            if placement is not None:
                result.violations.append(placement)

        for value in instance.property_values:
            violation, corrections = _check_direction(
                instance, value, lookups, prefix_map, description.path
            )
            if violation is not None:
                logger.debug("Wrong direction on %s: %s", instance.name, value.property)
                result.violations.append(violation)
                result.corrections.extend(corrections)

        for match in applicable_rules(types, rules, hierarchy):
            for constraint in match.rule.constraints:
                values = [
                    v
                    for v in instance.property_values
                    if _property_matches(v.property, constraint.property, prefix_map)
                ]
                target_types: dict[str, tuple[str, ...]] = {}
                for ref in (r for v in values for r in v.referenced_values):
                    found = index.types_of(ref)
                    if found is None:
                        reason = "ambiguous" if index.is_ambiguous(ref) else "unknown"
                        logger.warning(
                            "%s: %s references %s instance '%s'",
                            description.path,
                            instance.name,
                            reason,
                            ref,
                        )
                    else:
                        target_types[ref] = found
                result.violations.extend(
                    evaluate_constraint(
                        constraint, match.rule, values, location, target_types, hierarchy
                    )
                )

    result.elapsed_ms = (time.monotonic() - start) * 1000
    return result


def lint(
    workspace_path: Path,
    description_path: str,
    *,
    playbook_path: Path | None = None,
    cache: PlaybookCache | None = None,
) -> LintResult:
    """Load a workspace snapshot and a playbook, then lint one description.

    When *playbook_path* is None, the nearest playbook above the workspace
    snapshot is used.

    Raises
    ------
    LintError
        When the workspace, the playbook, or the description cannot be loaded.
    """
    try:
        workspace = load_workspace(workspace_path)
    except (OSError, WorkspaceError) as exc:
        msg = f"Invalid workspace: {exc}"
        raise LintError(msg) from exc

    if playbook_path is None:
        base = workspace_path if workspace_path.is_dir() else workspace_path.parent
        playbook_path = find_playbook(base)
        if playbook_path is None:
            msg = f"No playbook found above {base}"
            raise LintError(msg)

    try:
        playbook = load_playbook(playbook_path, cache=cache)
    except (OSError, PlaybookError) as exc:
        msg = f"Invalid playbook configuration: {exc}"
        raise LintError(msg) from exc

    description = workspace.by_path(description_path)
    if description is None:
        msg = f"Description '{description_path}' is not in the workspace"
        raise LintError(msg)

    return lint_description(workspace, description, playbook)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


def _format_location(location: Location) -> str:
    loc = location.file
    if location.line is not None:
        loc += f":{location.line}"
    if location.instance is not None:
        loc += f" ({location.instance})"
    return loc


def format_rich(result: LintResult) -> str:
    """Format a LintResult as human-readable text.

    Example output::

        Schema: requirements.oml (3 rules)
        Instances: 4 checked

        x [error] missing_property R-req-1
          requirements.oml:12 (R1) -> Instance "R1" is missing ...

        1 violations found (invalid)
    """
    lines: list[str] = []
    schema = result.schema if result.schema is not None else "none"
    lines.append(f"Schema: {schema} ({result.rules_evaluated} rules)")
    lines.append(f"Instances: {result.instances_checked} checked")
    lines.append("")

    if result.violations:
        for v in result.violations:
            lines.append(f"✗ [{v.severity.value}] {v.type.value} {v.rule}")
            lines.append(f"  {_format_location(v.location)} → {v.message}")
            lines.append("")
        for c in result.corrections:
            lines.append(f"  fix: {c.explanation}")
        if result.corrections:
            lines.append("")
        status = "valid" if result.is_valid else "invalid"
        lines.append(f"{len(result.violations)} violations found ({status})")
    else:
        lines.append("✓ No violations found")

    return "\n".join(lines)


def format_json(result: LintResult) -> str:
    """Format a LintResult as structured JSON."""
    violations_list: list[dict[str, object]] = [
        {
            "type": v.type.value,
            "rule": v.rule,
            "severity": v.severity.value,
            "file": v.location.file,
            "instance": v.location.instance,
            "line": v.location.line,
            "message": v.message,
        }
        for v in result.violations
    ]
    corrections_list: list[dict[str, object]] = []
    for c in result.corrections:
        entry: dict[str, object] = {
            "violation_type": c.violation_type.value,
            "explanation": c.explanation,
        }
        if c.remove is not None:
            entry["remove"] = {
                "instance": c.remove.instance,
                "property": c.remove.property,
                "value": c.remove.value,
            }
        if c.add is not None:
            entry["add"] = {
                "instance": c.add.instance,
                "property": c.add.property,
                "value": c.add.value,
            }
        corrections_list.append(entry)

    output: dict[str, object] = {
        "file": result.file,
        "is_valid": result.is_valid,
        "violations": violations_list,
        "corrections": corrections_list,
        "summary": {
            "schema": result.schema,
            "rules_evaluated": result.rules_evaluated,
            "instances_checked": result.instances_checked,
            "violations_count": len(result.violations),
            "elapsed_ms": result.elapsed_ms,
        },
    }
    return json.dumps(output, indent=2)


def format_porcelain(result: LintResult) -> str:
    """One line per violation: ``type:severity:rule:file:line:instance``.

    Returns empty string when there are no violations.
    """
    lines: list[str] = []
    for v in result.violations:
        line = str(v.location.line) if v.location.line is not None else ""
        instance = v.location.instance or ""
        lines.append(
            f"{v.type.value}:{v.severity.value}:{v.rule}:{v.location.file}:{line}:{instance}"
        )
    return "\n".join(lines)
