"""Tests for ontoloom.methodology.linter: description linting and formatters."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest

from ontoloom.methodology.linter import (
    LintError,
    LintResult,
    format_json,
    format_porcelain,
    format_rich,
    lint,
    lint_description,
)
from ontoloom.methodology.playbook import Severity, parse_playbook
from ontoloom.methodology.rule_engine import Location, Violation, ViolationType
from ontoloom.model import (
    ConceptInstance,
    Import,
    ImportKind,
    Ontology,
    OntologyKind,
    PropertyValue,
)
from ontoloom.workspace import Workspace

if TYPE_CHECKING:
    from pathlib import Path

    from ontoloom.methodology.playbook import MethodologyPlaybook

DESCRIPTION = "description/stakeholders_requirements.oml"


def _description(workspace: Workspace) -> Ontology:
    description = workspace.by_path(DESCRIPTION)
    assert description is not None
    return description


def _add_instances(workspace: Workspace, *instances: ConceptInstance) -> Workspace:
    description = _description(workspace)
    updated = Ontology(
        path=description.path,
        kind=description.kind,
        namespace=description.namespace,
        prefix=description.prefix,
        imports=description.imports,
        statements=(*description.statements, *instances),
    )
    return workspace.with_ontology(updated)


@pytest.fixture()
def playbook(playbook_data: dict[str, object]) -> MethodologyPlaybook:
    return parse_playbook(playbook_data)


# ---------------------------------------------------------------------------
# lint_description
# ---------------------------------------------------------------------------


class TestConstraints:
    def test_only_r1_is_missing_its_stakeholder(
        self, workspace: Workspace, playbook: MethodologyPlaybook
    ) -> None:
        result = lint_description(workspace, _description(workspace), playbook)
        assert result.instances_checked == 3
        assert result.rules_evaluated == 1
        assert result.schema == "stakeholders_requirements.oml"
        assert len(result.violations) == 1
        violation = result.violations[0]
        assert violation.type == ViolationType.MISSING_PROPERTY
        assert violation.rule == "R-req-expressed"
        assert violation.location.instance == "R1"
        assert violation.location.line == 5
        assert violation.severity == Severity.ERROR
        assert not result.is_valid

    def test_r2_satisfies_the_constraint(
        self, workspace: Workspace, playbook: MethodologyPlaybook
    ) -> None:
        result = lint_description(workspace, _description(workspace), playbook)
        assert all(v.location.instance != "R2" for v in result.violations)

    def test_wrong_target_type(self, workspace: Workspace, playbook: MethodologyPlaybook) -> None:
        r3 = ConceptInstance(
            name="R3",
            types=("req:Requirement",),
            property_values=(
                PropertyValue(property="req:isExpressedBy", referenced_values=("R1",), line=12),
            ),
            line=11,
        )
        ws = _add_instances(workspace, r3)
        result = lint_description(ws, _description(ws), playbook)
        r3_violations = [v for v in result.violations if v.location.instance == "R3"]
        assert [v.type for v in r3_violations] == [ViolationType.INVALID_TARGET_TYPE]
        assert r3_violations[0].location.line == 12

    def test_unknown_target_is_logged_and_reported(
        self,
        workspace: Workspace,
        playbook: MethodologyPlaybook,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        r3 = ConceptInstance(
            name="R3",
            types=("req:Requirement",),
            property_values=(
                PropertyValue(property="req:isExpressedBy", referenced_values=("Ghost",)),
            ),
        )
        ws = _add_instances(workspace, r3)
        with caplog.at_level(logging.WARNING):
            result = lint_description(ws, _description(ws), playbook)
        types = [v.type for v in result.violations if v.location.instance == "R3"]
        assert types == [ViolationType.INVALID_TARGET_TYPE]
        assert "unknown instance 'Ghost'" in caplog.text

    def test_file_without_schema(
        self, workspace: Workspace, playbook: MethodologyPlaybook
    ) -> None:
        description = _description(workspace)
        other = Ontology(
            path="description/unplanned.oml",
            kind=description.kind,
            namespace="http://example.com/descriptions/unplanned#",
            prefix="up",
            imports=description.imports,
            statements=(ConceptInstance(name="X", types=("req:Requirement",)),),
        )
        ws = workspace.with_ontology(other)
        result = lint_description(ws, other, playbook)
        assert result.schema is None
        assert result.violations == []
        assert result.is_valid
    def test_bare_reference_declared_by_two_imports_is_ambiguous(
        self,
        workspace: Workspace,
        playbook: MethodologyPlaybook,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        def _imported(prefix: str, type_name: str) -> Ontology:
            return Ontology(
                path=f"description/{prefix}.oml",
                kind=OntologyKind.DESCRIPTION,
                namespace=f"http://example.com/descriptions/{prefix}#",
                prefix=prefix,
                statements=(ConceptInstance(name="Shared", types=(type_name,)),),
            )

        first = _imported("first", "requirement:Stakeholder")
        second = _imported("second", "requirement:Requirement")
        description = _description(workspace)
        r3 = ConceptInstance(
            name="R3",
            types=("req:Requirement",),
            property_values=(
                PropertyValue(property="req:isExpressedBy", referenced_values=("Shared",)),
            ),
        )
        updated = Ontology(
            path=description.path,
            kind=description.kind,
            namespace=description.namespace,
            prefix=description.prefix,
            imports=(
                *description.imports,
                Import(kind=ImportKind.EXTENDS, namespace=first.namespace),
                Import(kind=ImportKind.EXTENDS, namespace=second.namespace),
            ),
            statements=(*description.statements, r3),
        )
        ws = Workspace([*workspace.with_ontology(updated), first, second])
        with caplog.at_level(logging.WARNING):
            result = lint_description(ws, updated, playbook)
        r3_types = [v.type for v in result.violations if v.location.instance == "R3"]
        assert r3_types == [ViolationType.INVALID_TARGET_TYPE]
        assert "ambiguous instance 'Shared'" in caplog.text


class TestPlacement:
    def test_wrong_container(self, workspace: Workspace, playbook: MethodologyPlaybook) -> None:
        c1 = ConceptInstance(name="C1", types=("component:Component",), line=20)
        ws = _add_instances(workspace, c1)
        result = lint_description(ws, _description(ws), playbook)
        placement = [v for v in result.violations if v.location.instance == "C1"]
        assert len(placement) == 1
        assert placement[0].type == ViolationType.WRONG_CONTAINER
        assert placement[0].severity == Severity.WARNING
        assert "system_components.oml" in placement[0].message

    def test_type_not_allowed_anywhere(
        self, workspace: Workspace, playbook: MethodologyPlaybook
    ) -> None:
        s2 = ConceptInstance(name="SR1", types=("req:SafetyRequirement",))
        ws = _add_instances(workspace, s2)
        result = lint_description(ws, _description(ws), playbook)
        placement = [v for v in result.violations if v.location.instance == "SR1"]
        assert [v.type for v in placement] == [ViolationType.TYPE_NOT_ALLOWED]

    def test_placement_warnings_keep_result_valid(
        self, workspace: Workspace, playbook_data: dict[str, object]
    ) -> None:
        descriptions = playbook_data["descriptions"]
        assert isinstance(descriptions, dict)
        descriptions["stakeholders_requirements.oml"]["constraints"] = []
        c1 = ConceptInstance(name="C1", types=("component:Component",))
        ws = _add_instances(workspace, c1)
        result = lint_description(ws, _description(ws), parse_playbook(playbook_data))
        assert result.violations
        assert result.is_valid

    def test_wildcard_allowed_types(
        self, workspace: Workspace, playbook_data: dict[str, object]
    ) -> None:
        descriptions = playbook_data["descriptions"]
        assert isinstance(descriptions, dict)
        descriptions["stakeholders_requirements.oml"]["allowedTypes"] = ["requirement:*"]
        sr1 = ConceptInstance(name="SR1", types=("req:SafetyRequirement",))
        ws = _add_instances(workspace, sr1)
        result = lint_description(ws, _description(ws), parse_playbook(playbook_data))
        assert all(
            v.type not in (ViolationType.WRONG_CONTAINER, ViolationType.TYPE_NOT_ALLOWED)
            for v in result.violations
        )
    def test_bare_wildcard_allowed_types(
        self, workspace: Workspace, playbook_data: dict[str, object]
    ) -> None:
        descriptions = playbook_data["descriptions"]
        assert isinstance(descriptions, dict)
        descriptions["stakeholders_requirements.oml"]["allowedTypes"] = [
            "*Requirement",
            "requirement:Stakeholder",
        ]
        sr1 = ConceptInstance(name="SR1", types=("req:SafetyRequirement",))
        ws = _add_instances(workspace, sr1)
        result = lint_description(ws, _description(ws), parse_playbook(playbook_data))
        assert [v for v in result.violations if v.location.instance == "SR1"] == []

    def test_type_not_allowed_in_file_without_schema(
        self, workspace: Workspace, playbook: MethodologyPlaybook
    ) -> None:
        description = _description(workspace)
        other = Ontology(
            path="description/unplanned.oml",
            kind=description.kind,
            namespace="http://example.com/descriptions/unplanned#",
            prefix="up",
            imports=description.imports,
            statements=(ConceptInstance(name="X", types=("req:SafetyRequirement",)),),
        )
        ws = workspace.with_ontology(other)
        result = lint_description(ws, other, playbook)
        assert result.schema is None
        assert [v.type for v in result.violations] == [ViolationType.TYPE_NOT_ALLOWED]

    def test_type_not_allowed_when_schema_lists_no_types(
        self, workspace: Workspace, playbook_data: dict[str, object]
    ) -> None:
        descriptions = playbook_data["descriptions"]
        assert isinstance(descriptions, dict)
        descriptions["stakeholders_requirements.oml"]["allowedTypes"] = []
        sr1 = ConceptInstance(name="SR1", types=("req:SafetyRequirement",))
        ws = _add_instances(workspace, sr1)
        result = lint_description(ws, _description(ws), parse_playbook(playbook_data))
        placement = [v for v in result.violations if v.location.instance == "SR1"]
        assert [v.type for v in placement] == [ViolationType.TYPE_NOT_ALLOWED]

    def test_schema_without_types_accepts_types_allowed_elsewhere(
        self, workspace: Workspace, playbook_data: dict[str, object]
    ) -> None:
        descriptions = playbook_data["descriptions"]
        assert isinstance(descriptions, dict)
        descriptions["stakeholders_requirements.oml"]["allowedTypes"] = []
        c1 = ConceptInstance(name="C1", types=("component:Component",))
        ws = _add_instances(workspace, c1)
        result = lint_description(ws, _description(ws), parse_playbook(playbook_data))
        assert [v for v in result.violations if v.location.instance == "C1"] == []


class TestRelationDirection:
    def test_forward_assertion_is_flagged(
        self, workspace: Workspace, playbook: MethodologyPlaybook
    ) -> None:
        s2 = ConceptInstance(
            name="S2",
            types=("req:Stakeholder",),
            property_values=(
                PropertyValue(property="req:expresses", referenced_values=("R1", "R2"), line=15),
            ),
            line=14,
        )
        ws = _add_instances(workspace, s2)
        result = lint_description(ws, _description(ws), playbook)

        direction = [v for v in result.violations if v.type == ViolationType.WRONG_DIRECTION]
        assert len(direction) == 1
        assert direction[0].severity == Severity.WARNING
        assert direction[0].location == Location(file=DESCRIPTION, instance="S2", line=15)
        assert "requirement:isExpressedBy" in direction[0].rule

        assert len(result.corrections) == 2
        first = result.corrections[0]
        assert first.remove is not None
        assert first.add is not None
        assert (first.remove.instance, first.remove.property, first.remove.value) == (
            "S2",
            "requirement:expresses",
            "R1",
        )
        assert (first.add.instance, first.add.property, first.add.value) == (
            "R1",
            "requirement:isExpressedBy",
            "S2",
        )

    def test_preferred_direction_is_clean(
        self, workspace: Workspace, playbook: MethodologyPlaybook
    ) -> None:
        result = lint_description(workspace, _description(workspace), playbook)
        assert result.corrections == []
        assert all(v.type != ViolationType.WRONG_DIRECTION for v in result.violations)


# ---------------------------------------------------------------------------
# lint (from disk)
# ---------------------------------------------------------------------------


class TestLintFromDisk:
    def test_discovers_playbook(self, workspace_file: Path, playbook_file: Path) -> None:
        result = lint(workspace_file, DESCRIPTION)
        assert [v.location.instance for v in result.violations] == ["R1"]

    def test_explicit_playbook(self, workspace_file: Path, playbook_file: Path) -> None:
        result = lint(workspace_file, "stakeholders_requirements.oml", playbook_path=playbook_file)
        assert result.file == DESCRIPTION

    def test_no_playbook(self, workspace_file: Path) -> None:
        with pytest.raises(LintError, match="No playbook found"):
            lint(workspace_file, DESCRIPTION)

    def test_unknown_description(self, workspace_file: Path, playbook_file: Path) -> None:
        with pytest.raises(LintError, match="not in the workspace"):
            lint(workspace_file, "description/missing.oml")

    def test_invalid_playbook(self, workspace_file: Path, tmp_path: Path) -> None:
        bad = tmp_path / "bad_playbook.yaml"
        bad.write_text("descriptions:\n  d.oml:\n    routing: [{concept: x, priority: 0}]\n")
        with pytest.raises(LintError, match="Invalid playbook configuration"):
            lint(workspace_file, DESCRIPTION, playbook_path=bad)

    def test_invalid_workspace(self, tmp_path: Path, playbook_file: Path) -> None:
        broken = tmp_path / "workspace.yaml"
        broken.write_text("ontologies: 3\n")
        with pytest.raises(LintError, match="Invalid workspace"):
            lint(broken, DESCRIPTION)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


def _result() -> LintResult:
    return LintResult(
        file=DESCRIPTION,
        violations=[
            Violation(
                type=ViolationType.MISSING_PROPERTY,
                rule="R-req-expressed",
                location=Location(file=DESCRIPTION, instance="R1", line=5),
                message='Instance "R1" is missing required property "isExpressedBy".',
                severity=Severity.ERROR,
            )
        ],
        schema="stakeholders_requirements.oml",
        instances_checked=3,
        rules_evaluated=1,
    )


class TestFormatters:
    def test_rich(self) -> None:
        output = format_rich(_result())
        assert "Schema: stakeholders_requirements.oml (1 rules)" in output
        assert "[error] missing_property R-req-expressed" in output
        assert f"{DESCRIPTION}:5 (R1)" in output
        assert "1 violations found (invalid)" in output

    def test_rich_clean(self) -> None:
        output = format_rich(LintResult(file=DESCRIPTION))
        assert "No violations found" in output
        assert "Schema: none" in output

    def test_json(self) -> None:
        data = json.loads(format_json(_result()))
        assert data["is_valid"] is False
        assert data["violations"][0]["type"] == "missing_property"
        assert data["violations"][0]["line"] == 5
        assert data["summary"]["violations_count"] == 1

    def test_porcelain(self) -> None:
        assert format_porcelain(_result()) == (
            f"missing_property:error:R-req-expressed:{DESCRIPTION}:5:R1"
        )

    def test_porcelain_empty(self) -> None:
        assert format_porcelain(LintResult(file=DESCRIPTION)) == ""

    def test_is_valid_ignores_warnings(self) -> None:
        result = LintResult(
            file=DESCRIPTION,
            violations=[
                Violation(
                    type=ViolationType.WRONG_CONTAINER,
                    rule="allowedTypes",
                    location=Location(file=DESCRIPTION),
                    message="m",
                    severity=Severity.WARNING,
                )
            ],
        )
        assert result.is_valid
