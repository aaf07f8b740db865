"""Shared test fixtures for Ontoloom."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from ontoloom.model import (
    Concept,
    ConceptInstance,
    Import,
    ImportKind,
    Ontology,
    OntologyKind,
    PropertyValue,
    RelationEntity,
    ScalarProperty,
)
from ontoloom.workspace import Workspace

if TYPE_CHECKING:
    from pathlib import Path

BASE_NS = "http://example.com/base#"
REQUIREMENT_NS = "http://example.com/requirement#"
COMPONENT_NS = "http://example.com/component#"
STAKEHOLDERS_NS = "http://example.com/descriptions/stakeholders_requirements#"


@pytest.fixture()
def base_vocab() -> Ontology:
    return Ontology(
        path="vocabulary/base.oml",
        kind=OntologyKind.VOCABULARY,
        namespace=BASE_NS,
        prefix="base",
        statements=(
            Concept(name="Element", line=3),
            ScalarProperty(name="description", domain="Element", range="xsd:string", line=4),
        ),
    )


@pytest.fixture()
def requirement_vocab() -> Ontology:
    return Ontology(
        path="vocabulary/requirement.oml",
        kind=OntologyKind.VOCABULARY,
        namespace=REQUIREMENT_NS,
        prefix="requirement",
        imports=(Import(kind=ImportKind.EXTENDS, namespace=BASE_NS, alias="base"),),
        statements=(
            Concept(name="Requirement", supertypes=("base:Element",), line=5),
            Concept(name="SafetyRequirement", supertypes=("Requirement",), line=6),
            Concept(name="Stakeholder", supertypes=("base:Element",), line=7),
            RelationEntity(
                name="Expresses",
                source="Stakeholder",
                target="Requirement",
                forward="expresses",
                reverse="isExpressedBy",
                line=8,
            ),
        ),
    )


@pytest.fixture()
def component_vocab() -> Ontology:
    return Ontology(
        path="vocabulary/component.oml",
        kind=OntologyKind.VOCABULARY,
        namespace=COMPONENT_NS,
        prefix="component",
        imports=(Import(kind=ImportKind.EXTENDS, namespace=BASE_NS),),
        statements=(
            Concept(name="Component", supertypes=("base:Element",), line=4),
            Concept(name="Interface", supertypes=("base:Element",), line=5),
        ),
    )


@pytest.fixture()
def stakeholders_description() -> Ontology:
    """Description importing the requirement vocabulary under the alias ``req``."""
    return Ontology(
        path="description/stakeholders_requirements.oml",
        kind=OntologyKind.DESCRIPTION,
        namespace=STAKEHOLDERS_NS,
        prefix="sr",
        imports=(Import(kind=ImportKind.USES, namespace=REQUIREMENT_NS, alias="req"),),
        statements=(
            ConceptInstance(name="S1", types=("req:Stakeholder",), line=4),
            ConceptInstance(name="R1", types=("req:Requirement",), line=5),
            ConceptInstance(
                name="R2",
                types=("req:Requirement",),
                property_values=(
                    PropertyValue(property="req:isExpressedBy", referenced_values=("S1",), line=8),
                ),
                line=7,
            ),
        ),
    )


@pytest.fixture()
def workspace(
    base_vocab: Ontology,
    requirement_vocab: Ontology,
    component_vocab: Ontology,
    stakeholders_description: Ontology,
) -> Workspace:
    return Workspace([base_vocab, requirement_vocab, component_vocab, stakeholders_description])


@pytest.fixture()
def playbook_data() -> dict[str, object]:
    """Raw playbook mapping, as it would be read from YAML."""
    return {
        "metadata": {"methodology": "Sierra", "version": "1.0"},
        "relationRules": [
            {
                "forwardRelation": "requirement:expresses",
                "reverseRelation": "requirement:isExpressedBy",
                "owningConcept": "requirement:Requirement",
                "preferredDirection": "reverse",
            }
        ],
        "descriptions": {
            "stakeholders_requirements.oml": {
                "file": "stakeholders_requirements.oml",
                "purpose": "Stakeholders and their requirements",
                "allowedTypes": ["requirement:Requirement", "requirement:Stakeholder"],
                "routing": [
                    {"concept": "requirement:Requirement", "priority": 1},
                    {"concept": "requirement:Stakeholder", "priority": 1},
                ],
                "constraints": [
                    {
                        "id": "R-req-expressed",
                        "message": "Requirements must be expressed by a stakeholder.",
                        "appliesTo": {"conceptType": "requirement:Requirement"},
                        "constraints": [
                            {
                                "property": "isExpressedBy",
                                "targetMustBe": "requirement:Stakeholder",
                                "minOccurrences": 1,
                            }
                        ],
                        "severity": "error",
                    }
                ],
            },
            "system_components.oml": {
                "file": "system_components.oml",
                "allowedTypes": ["component:Component"],
                "routing": [{"concept": "component:Component", "priority": 1}],
            },
        },
    }


@pytest.fixture()
def playbook_file(tmp_path: Path) -> Path:
    """A playbook YAML file on disk."""
    path = tmp_path / "sierra_playbook.yaml"
    path.write_text(
        "metadata:\n"
        "  methodology: Sierra\n"
        "  version: '1.0'\n"
        "relationRules: []\n"
        "descriptions:\n"
        "  stakeholders_requirements.oml:\n"
        "    allowedTypes: ['requirement:Requirement', 'requirement:Stakeholder']\n"
        "    routing:\n"
        "      - {concept: 'requirement:Requirement', priority: 1}\n"
        "    constraints:\n"
        "      - id: R-req-expressed\n"
        "        message: Requirements must be expressed by a stakeholder.\n"
        "        appliesTo: {conceptType: 'requirement:Requirement'}\n"
        "        constraints:\n"
        "          - property: isExpressedBy\n"
        "            targetMustBe: requirement:Stakeholder\n"
        "            minOccurrences: 1\n"
    )
    return path


WORKSPACE_YAML = """\
ontologies:
  - path: vocabulary/base.oml
    kind: vocabulary
    namespace: <http://example.com/base#>
    prefix: base
    statements:
      - {type: Concept, name: Element, line: 3}
  - path: vocabulary/requirement.oml
    kind: vocabulary
    namespace: http://example.com/requirement#
    prefix: requirement
    imports:
      - {kind: extends, namespace: "http://example.com/base#", alias: base}
    statements:
      - {type: Concept, name: Requirement, supertypes: ["base:Element"], line: 5}
      - {type: Concept, name: Stakeholder, supertypes: ["base:Element"], line: 7}
      - type: RelationEntity
        name: Expresses
        source: Stakeholder
        target: Requirement
        forward: expresses
        reverse: isExpressedBy
        line: 8
  - path: description/stakeholders_requirements.oml
    kind: description
    namespace: http://example.com/descriptions/stakeholders_requirements#
    prefix: sr
    imports:
      - {kind: uses, namespace: "http://example.com/requirement#", alias: req}
    statements:
      - {type: ConceptInstance, name: S1, types: ["req:Stakeholder"], line: 4}
      - {type: ConceptInstance, name: R1, types: ["req:Requirement"], line: 5}
      - type: ConceptInstance
        name: R2
        types: req:Requirement
        line: 7
        properties:
          - {property: "req:isExpressedBy", references: [S1], line: 8}
"""


@pytest.fixture()
def workspace_file(tmp_path: Path) -> Path:
    """The base/requirement/stakeholders ontologies as a YAML snapshot."""
    path = tmp_path / "workspace.yaml"
    path.write_text(WORKSPACE_YAML)
    return path
