"""Routing advisor: rank description files as homes for a new instance."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from ontoloom.methodology.rule_engine import pattern_matches
from ontoloom.resolution.prefixes import split_name

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from rich.console import Console

    from ontoloom.methodology.playbook import DescriptionSchema

logger = logging.getLogger(__name__)

ROUTED_FLOOR = 60
UNROUTED_CONFIDENCE = 50
WILDCARD_CONFIDENCE = 30
HEURISTIC_CONFIDENCE = 20
NEW_FILE_CONFIDENCE = 10

UNROUTED_PRIORITY = 999

# Keyword found in a type's prefix or name -> description file stems to look for.
_NAMING_HINTS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("requirement",), ("stakeholders_requirements", "requirements", "stakeholder")),
    (("stakeholder",), ("stakeholders_requirements", "stakeholders", "stakeholder")),
    (("component",), ("system_components", "components", "component")),
    (("interface",), ("interfaces", "system_components")),
    (("function",), ("functions", "functional_analysis")),
    (("capability",), ("missions_capabilities", "capabilities", "capability")),
    (("mission",), ("missions_capabilities", "missions", "mission")),
    (("process", "activity"), ("processes_activities", "processes", "activities")),
    (("scenario",), ("scenarios", "scenario")),
    (("state",), ("state_machines", "states", "state")),
)


@dataclass(frozen=True)
class FileRouting:
    file: str
    confidence: int  # 0-100
    priority: int
    reason: str


@dataclass(frozen=True)
class RoutingRecommendation:
    recommended: FileRouting | None
    alternatives: tuple[FileRouting, ...] = ()
    missing: tuple[FileRouting, ...] = ()  # candidates absent from the available files
    explanation: str = ""
    heuristic: bool = False


def _score(instance_type: str, file: str, schema: DescriptionSchema) -> FileRouting | None:
    priority = schema.routing_priority(instance_type)
    if priority is not None:
        confidence = max(100 - (priority - 1) * 10, ROUTED_FLOOR)
        reason = f"Explicitly routed with priority {priority}"
        return FileRouting(file, confidence, priority, reason)
    if instance_type in schema.allowed_types:
        return FileRouting(
            file,
            UNROUTED_CONFIDENCE,
            UNROUTED_PRIORITY,
            "Type is allowed but not explicitly routed",
        )
    if any(
        "*" in entry and pattern_matches(entry, instance_type) for entry in schema.allowed_types
    ):
        return FileRouting(
            file,
            WILDCARD_CONFIDENCE,
            UNROUTED_PRIORITY,
            "Type matches a pattern in allowedTypes",
        )
    return None


def _basename(path: str) -> str:
    return PurePosixPath(path.replace("\\", "/")).name


def _naming_patterns(instance_type: str) -> list[str]:
    prefix, name = split_name(instance_type)
    prefix = (prefix or "").lower()
    name = name.lower()
    patterns: list[str] = []
    for keywords, stems in _NAMING_HINTS:
        if any(k in prefix or k in name for k in keywords):
            patterns.extend(stems)
    if not patterns:
        base = prefix or name
        patterns.extend([base, f"{base}_instances"])
    return patterns


def _infer_routing(instance_type: str, available_files: Iterable[str]) -> RoutingRecommendation:
    patterns = _naming_patterns(instance_type)
    files = sorted(available_files)
    for pattern in patterns:
        for file in files:
            if pattern in _basename(file).lower():
                guess = FileRouting(
                    file,
                    HEURISTIC_CONFIDENCE,
                    UNROUTED_PRIORITY,
                    f'Matches naming pattern "{pattern}" for type "{instance_type}"',
                )
                return RoutingRecommendation(
                    recommended=guess,
                    explanation=(
                        f'No description schemas; based on type "{instance_type}", '
                        f'suggesting "{file}"'
                    ),
                    heuristic=True,
                )

    stem = patterns[-1] if patterns[-1].endswith("_instances") else patterns[0]
    new_file = f"{stem}.oml"
    suggestion = FileRouting(
        new_file,
        NEW_FILE_CONFIDENCE,
        UNROUTED_PRIORITY,
        "No matching description file; consider creating it",
    )
    return RoutingRecommendation(
        recommended=suggestion,
        explanation=(
            'No description schemas and no matching description files for type '
            f'"{instance_type}"; consider creating "{new_file}"'
        ),
        heuristic=True,
    )


def route_instance(
    instance_type: str,
    descriptions: Mapping[str, DescriptionSchema],
    available_files: Iterable[str] = (),
) -> RoutingRecommendation:
    """Rank the description files that could hold an instance of *instance_type*.

    *instance_type* must be a canonical qualified name.  When
    *available_files* is given, candidates whose file is not among them are
    reported in ``missing`` instead of being recommended.  Without any
    schemas, a naming-convention guess over *available_files* is returned.
    """
    available = list(available_files)
    if not descriptions:
        logger.debug("No description schemas, inferring routing for %s", instance_type)
        return _infer_routing(instance_type, available)

    available_names = {_basename(f) for f in available}
    scored: list[FileRouting] = []
    missing: list[FileRouting] = []
    for file, schema in descriptions.items():
        routing = _score(instance_type, file, schema)
        if routing is None:
            continue
        if available and _basename(file) not in available_names and "*" not in file:
            missing.append(routing)
        else:
            scored.append(routing)

    def order(r: FileRouting) -> tuple[int, int, str]:
        return (-r.confidence, r.priority, r.file)

    scored.sort(key=order)
    missing.sort(key=order)

    if not scored:
        if missing:
            explanation = (
                f'The playbook suggests "{missing[0].file}" for "{instance_type}", '
                "but that file is not in the workspace"
            )
        else:
            explanation = f'No description schema allows type "{instance_type}"'
        return RoutingRecommendation(
            recommended=None, missing=tuple(missing), explanation=explanation
        )

    recommended, alternatives = scored[0], tuple(scored[1:])
    if recommended.confidence >= 90:
        explanation = f'Strong match: "{instance_type}" belongs in "{recommended.file}"'
    elif recommended.confidence >= UNROUTED_CONFIDENCE:
        explanation = f'Good match: "{instance_type}" is allowed in "{recommended.file}"'
    else:
        explanation = f'Weak match: "{instance_type}" may fit in "{recommended.file}"'
    if alternatives:
        explanation += f"; alternatives: {', '.join(a.file for a in alternatives)}"

    return RoutingRecommendation(
        recommended=recommended,
        alternatives=alternatives,
        missing=tuple(missing),
        explanation=explanation,
    )


def render_routing(rec: RoutingRecommendation, console: Console) -> None:
    """Render a routing recommendation using Rich console output.

    The recommended file is green when a schema allows the type and yellow
    for guesses; files the playbook names but the workspace lacks are red.
    """
    if rec.recommended is not None:
        r = rec.recommended
        style = "green" if r.confidence >= UNROUTED_CONFIDENCE else "yellow"
        console.print(f"[{style}]{r.file}[/{style}] ({r.confidence}%)")
        console.print(f"  [dim]{r.reason}[/dim]")
        for alt in rec.alternatives:
            console.print(f"  alt: {alt.file} ({alt.confidence}%)")
    for m in rec.missing:
        console.print(f"  [red]missing:[/red] {m.file} ({m.confidence}%)")
    console.print(rec.explanation)
