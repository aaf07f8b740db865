"""Methodology domain: playbooks, rule engine, linter, routing."""

from ontoloom.methodology.linter import (
    Correction,
    LintError,
    LintResult,
    PropertyEdit,
    format_json,
    format_porcelain,
    format_rich,
    lint,
    lint_description,
)
from ontoloom.methodology.playbook import (
    AppliesTo,
    DescriptionConstraint,
    DescriptionSchema,
    MethodologyPlaybook,
    PlaybookError,
    PlaybookMetadata,
    PropertyConstraint,
    RelationRule,
    RoutingEntry,
    Severity,
    find_playbook,
    load_playbook,
    parse_playbook,
)
from ontoloom.methodology.routing import (
    FileRouting,
    RoutingRecommendation,
    render_routing,
    route_instance,
)
from ontoloom.methodology.rule_engine import (
    Location,
    MatcherKind,
    RuleMatch,
    Violation,
    ViolationType,
    applicable_rules,
    evaluate_constraint,
    match_applies_to,
    pattern_matches,
)

__all__ = [
    "AppliesTo",
    "Correction",
    "DescriptionConstraint",
    "DescriptionSchema",
    "FileRouting",
    "LintError",
    "LintResult",
    "Location",
    "MatcherKind",
    "MethodologyPlaybook",
    "PlaybookError",
    "PlaybookMetadata",
    "PropertyConstraint",
    "PropertyEdit",
    "RelationRule",
    "RoutingEntry",
    "RoutingRecommendation",
    "RuleMatch",
    "Severity",
    "Violation",
    "ViolationType",
    "applicable_rules",
    "evaluate_constraint",
    "find_playbook",
    "format_json",
    "format_porcelain",
    "format_rich",
    "lint",
    "lint_description",
    "load_playbook",
    "match_applies_to",
    "parse_playbook",
    "pattern_matches",
    "render_routing",
    "route_instance",
]
