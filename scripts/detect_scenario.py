#!/usr/bin/env python3
"""
Brain Validation - Scenario Detector

Maps a free-text prompt to the kind of note that should be written before
work starts. Scenarios are tried in priority order and keywords are plain
substring matches against the lowercased prompt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from bv_schema import SchemaRegistry, get_schema
from bv_validation_common import ValidationError


@dataclass(frozen=True)
class Scenario:
    name: str
    keywords: tuple[str, ...]
    recommended: str
    directory: str
    note_type: str


# Priority order: the first scenario with any matching keyword wins
SCENARIOS: tuple[Scenario, ...] = (
    Scenario(
        "BUG",
        ("bug", "error", "issue", "broken", "fix", "debug", "crash", "not working", "fails"),
        "Create bug note in bugs/ before proceeding",
        "bugs",
        "bug",
    ),
    Scenario(
        "FEATURE",
        ("implement", "build feature", "create feature", "add feature", "new feature", "develop"),
        "Create feature note in features/ before proceeding",
        "features",
        "feature-overview",
    ),
    Scenario(
        "SPEC",
        ("define", "spec", "specification", "api", "interface", "contract", "schema"),
        "Create spec note in specs/ before proceeding",
        "specs",
        "spec",
    ),
    Scenario(
        "ANALYSIS",
        ("analyze", "examine", "review", "investigate", "study", "assess", "audit"),
        "Create analysis note in analysis/ before proceeding",
        "analysis",
        "analysis-overview",
    ),
    Scenario(
        "RESEARCH",
        ("research", "explore", "discover", "learn about", "understand", "look into"),
        "Create research note in research/ before proceeding",
        "research",
        "research-overview",
    ),
    Scenario(
        "DECISION",
        # " or " keeps its spaces so it only matches the word
        ("decide", "choose", "vs", " or ", "compare", "evaluate options", "should i", "which"),
        "Create decision note in decisions/ before proceeding",
        "decisions",
        "decision",
    ),
    Scenario(
        "TESTING",
        ("test", "validate", "verify", "check", "qa", "quality assurance"),
        "Create testing note in testing/ before proceeding",
        "testing",
        "testing-overview",
    ),
)

SCENARIO_PRIORITY = tuple(s.name for s in SCENARIOS)


@dataclass
class ScenarioResult:
    detected: bool = False
    scenario: str = ""
    keywords: list[str] = field(default_factory=list)
    recommended: str = ""
    directory: str = ""
    note_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        if not self.detected:
            return {"detected": False}
        return {
            "detected": True,
            "scenario": self.scenario,
            "keywords": list(self.keywords),
            "recommended": self.recommended,
            "directory": self.directory,
            "noteType": self.note_type,
        }


def get_scenario(name: str) -> Scenario | None:
    for scenario in SCENARIOS:
        if scenario.name == name:
            return scenario
    return None


def detect_scenario(prompt: str) -> ScenarioResult:
    """Detect the scenario of a prompt.

    Args:
        prompt: Free text, matched case-insensitively

    Returns:
        ScenarioResult for the first scenario in priority order with at least
        one matching keyword (keywords listed in table order), or
        ``detected=False`` when nothing matches
    """
    lowered = prompt.lower()
    for scenario in SCENARIOS:
        matched = [keyword for keyword in scenario.keywords if keyword in lowered]
        if matched:
            return ScenarioResult(
                detected=True,
                scenario=scenario.name,
                keywords=matched,
                recommended=scenario.recommended,
                directory=scenario.directory,
                note_type=scenario.note_type,
            )
    return ScenarioResult()


def get_scenario_result_errors(result: ScenarioResult | dict[str, Any], registry: SchemaRegistry | None = None) -> list[ValidationError]:
    """Validate a result (or its JSON form) against the scenario-result schema."""
    data = result.to_dict() if isinstance(result, ScenarioResult) else result
    return get_schema("scenario-result", registry).errors(data)


def validate_scenario_result(result: ScenarioResult | dict[str, Any], registry: SchemaRegistry | None = None) -> bool:
    return not get_scenario_result_errors(result, registry)
