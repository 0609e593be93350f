#!/usr/bin/env python3
"""
Brain Validation - Consistency Validator

Checks traceability across the planning artifacts of one feature:

    .agents/roadmap/EPIC-NNN-<feature>.md      epic (success criteria)
    .agents/planning/prd-<feature>.md          PRD (requirements)
    .agents/planning/tasks-<feature>.md        task list
    .agents/planning/*-<feature>-plan.md       implementation plan

Checkpoint 1 runs scope_alignment, requirement_coverage, naming_conventions
and cross_references. Checkpoint 2 and above also run task_completion.

Counting rules (shared by every sub-validation):
    requirement / criterion   a checkbox item "- [ ]" / "- [x]" (or "*")
    task                      a checkbox item; a file without any checkbox
                              items counts "### " headings instead
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import bv_naming
from bv_fsprobe import dir_exists, file_exists, read_text
from bv_validation_common import RuleResult, ValidationResult, compose_remediation, failed_check_names

logger = logging.getLogger(__name__)

# =============================================================================
# Consistency Constants
# =============================================================================

ROADMAP_DIR = Path(".agents") / "roadmap"
PLANNING_DIR = Path(".agents") / "planning"

VALID_CHECKPOINTS = (1, 2, 3, 4)

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.*?)\s*$")
CHECKBOX_PATTERN = re.compile(r"^\s*[-*]\s+\[([ xX])\]\s*(.*)$")
TASK_HEADING_PATTERN = re.compile(r"^###\s+")
PRIORITY_MARKER_PATTERN = re.compile(r"\bP([012])\b")
PRIORITY_LINE_PATTERN = re.compile(r"Priority:\s*P([012])\b")
EPIC_ID_PATTERN = re.compile(r"EPIC-\d{3,}")
MARKDOWN_LINK_PATTERN = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")

SUCCESS_CRITERIA_HEADING = "Success Criteria"
REQUIREMENTS_HEADING = "Requirements"

# (kind in the naming registry, label used in messages)
ARTIFACT_KINDS = (("epic", "Epic"), ("prd", "PRD"), ("tasks", "Tasks"), ("plan", "Plan"))

DEFAULT_PRIORITY = "P2"


# =============================================================================
# Types
# =============================================================================


@dataclass
class FeatureArtifacts:
    """Absolute paths of a feature's artifacts; "" when not found."""

    epic: str = ""
    prd: str = ""
    tasks: str = ""
    plan: str = ""

    def items(self) -> list[tuple[str, str]]:
        return [("epic", self.epic), ("prd", self.prd), ("tasks", self.tasks), ("plan", self.plan)]

    def to_dict(self) -> dict[str, str]:
        return {"epic": self.epic, "prd": self.prd, "tasks": self.tasks, "plan": self.plan}


@dataclass
class ScopeAlignmentResult(RuleResult):
    epic_criteria_count: int = 0
    prd_requirement_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["epicCriteriaCount"] = self.epic_criteria_count
        base["prdRequirementCount"] = self.prd_requirement_count
        return base


@dataclass
class RequirementCoverageResult(RuleResult):
    requirement_count: int = 0
    task_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["requirementCount"] = self.requirement_count
        base["taskCount"] = self.task_count
        return base


@dataclass
class NamingConventionsResult(RuleResult):
    pass


@dataclass
class CrossReferencesResult(RuleResult):
    references: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["references"] = list(self.references)
        return base


@dataclass
class TaskCompletionResult(RuleResult):
    total: int = 0
    completed: int = 0
    p0_incomplete: list[str] = field(default_factory=list)
    p1_incomplete: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["total"] = self.total
        base["completed"] = self.completed
        base["p0Incomplete"] = list(self.p0_incomplete)
        base["p1Incomplete"] = list(self.p1_incomplete)
        return base


@dataclass
class ConsistencyResult(ValidationResult):
    """Validation result for one feature, extends ValidationResult with sub-validation detail."""

    base_path: str = ""
    feature: str = ""
    checkpoint: int = 1
    artifacts: FeatureArtifacts = field(default_factory=FeatureArtifacts)
    scope_alignment: ScopeAlignmentResult | None = None
    requirement_coverage: RequirementCoverageResult | None = None
    naming_conventions: NamingConventionsResult | None = None
    cross_references: CrossReferencesResult | None = None
    task_completion: TaskCompletionResult | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        base = super().to_dict()
        base["basePath"] = self.base_path
        base["feature"] = self.feature
        base["checkpoint"] = self.checkpoint
        base["artifacts"] = self.artifacts.to_dict()
        for key, value in (
            ("scopeAlignment", self.scope_alignment),
            ("requirementCoverage", self.requirement_coverage),
            ("namingConventions", self.naming_conventions),
            ("crossReferences", self.cross_references),
            ("taskCompletion", self.task_completion),
        ):
            if value is not None:
                base[key] = value.to_dict()
        return base


# =============================================================================
# Markdown Helpers
# =============================================================================


def extract_section(content: str, heading: str) -> str:
    """Body of the first heading whose text starts with ``heading``.

    The section ends at the next heading of the same or a higher level, so
    nested subsections are included. Returns "" when the heading is absent.
    """
    lines = content.split("\n")
    for index, line in enumerate(lines):
        match = HEADING_PATTERN.match(line)
        if not match or not match.group(2).startswith(heading):
            continue
        level = len(match.group(1))
        body: list[str] = []
        for following in lines[index + 1 :]:
            next_heading = HEADING_PATTERN.match(following)
            if next_heading and len(next_heading.group(1)) <= level:
                break
            body.append(following)
        return "\n".join(body)
    return ""


def count_checkbox_items(content: str) -> int:
    return sum(1 for line in content.split("\n") if CHECKBOX_PATTERN.match(line))


def count_tasks(content: str) -> int:
    """Checkbox items, or ``### `` headings when the file has no checkbox items."""
    checkboxes = count_checkbox_items(content)
    if checkboxes:
        return checkboxes
    return sum(1 for line in content.split("\n") if TASK_HEADING_PATTERN.match(line))


def count_requirements(prd_content: str) -> int:
    return count_checkbox_items(extract_section(prd_content, REQUIREMENTS_HEADING))


def count_success_criteria(epic_content: str) -> int:
    return count_checkbox_items(extract_section(epic_content, SUCCESS_CRITERIA_HEADING))


def extract_links(content: str) -> list[str]:
    """Local link targets of markdown links, anchors removed; URLs and pure anchors skipped."""
    targets: list[str] = []
    for match in MARKDOWN_LINK_PATTERN.finditer(content):
        target = match.group(2).strip()
        if target.startswith(("http://", "https://", "#")):
            continue
        target = target.split("#", 1)[0]
        if target:
            targets.append(target)
    return targets


# =============================================================================
# Artifact Discovery
# =============================================================================


def _first_match(directory: Path, pattern: str) -> str:
    if not dir_exists(directory):
        return ""
    matches = sorted(p for p in directory.glob(pattern) if p.is_file())
    return str(matches[0].resolve()) if matches else ""


def find_feature_artifacts(base_path: str | Path, feature: str) -> FeatureArtifacts:
    """Locate a feature's artifacts under ``.agents/roadmap`` and ``.agents/planning``."""
    root = Path(base_path)
    roadmap = root / ROADMAP_DIR
    planning = root / PLANNING_DIR
    return FeatureArtifacts(
        epic=_first_match(roadmap, f"EPIC-*-{feature}.md"),
        prd=_first_match(planning, f"prd-{feature}.md"),
        tasks=_first_match(planning, f"tasks-{feature}.md"),
        plan=_first_match(planning, f"*-{feature}-plan.md"),
    )


def get_all_features(base_path: str | Path) -> list[str]:
    """Feature names found as ``prd-<feature>.md`` or ``tasks-<feature>.md``, sorted."""
    planning = Path(base_path) / PLANNING_DIR
    if not dir_exists(planning):
        return []
    features: set[str] = set()
    for prefix in ("prd-", "tasks-"):
        for path in planning.glob(f"{prefix}*.md"):
            name = path.stem[len(prefix) :]
            if name:
                features.add(name)
    return sorted(features)


# =============================================================================
# Sub-validations (content level)
# =============================================================================


def check_scope_alignment(epic_content: str | None, prd_content: str | None, epic_name: str = "") -> ScopeAlignmentResult:
    """PRD must reference its epic and carry at least as many requirements as epic success criteria.

    Args:
        epic_content: Epic text, or None when there is no epic
        prd_content: PRD text, or None when there is no PRD
        epic_name: Epic file name, accepted as a reference besides its EPIC-NNN id
    """
    result = ScopeAlignmentResult()
    if epic_content is None:
        result.issues.append("Epic file not found")
        return result
    if prd_content is None:
        result.fail("PRD file not found")
        return result

    epic_id = EPIC_ID_PATTERN.match(epic_name)
    referenced = (
        (epic_name and epic_name in prd_content)
        or (epic_id is not None and re.search(re.escape(epic_id.group(0)) + r"\b", prd_content) is not None)
        or (not epic_id and EPIC_ID_PATTERN.search(prd_content) is not None)
    )
    if not referenced:
        result.fail("PRD does not reference parent Epic")

    result.epic_criteria_count = count_success_criteria(epic_content)
    result.prd_requirement_count = count_requirements(prd_content)
    if result.prd_requirement_count < result.epic_criteria_count:
        result.fail(
            f"PRD has fewer requirements ({result.prd_requirement_count}) "
            f"than Epic success criteria ({result.epic_criteria_count})"
        )
    return result


def check_requirement_coverage(prd_content: str | None, tasks_content: str | None) -> RequirementCoverageResult:
    """Tasks must be at least as many as PRD requirements. Skipped without a PRD."""
    result = RequirementCoverageResult()
    if prd_content is None:
        return result
    if tasks_content is None:
        result.fail("Tasks file not found for PRD")
        return result

    result.requirement_count = count_requirements(prd_content)
    result.task_count = count_tasks(tasks_content)
    if result.task_count < result.requirement_count:
        result.fail(f"Fewer tasks ({result.task_count}) than requirements ({result.requirement_count})")
    return result


def check_task_completion(tasks_content: str | None) -> TaskCompletionResult:
    """Every P0 task must be checked.

    A level-2 heading sets the current priority from its P0/P1/P2 marker (P2
    when it has none); deeper headings and "Priority: Pn" lines change it only
    when they carry a marker.
    """
    result = TaskCompletionResult()
    if tasks_content is None:
        return result

    priority = DEFAULT_PRIORITY
    for line in tasks_content.split("\n"):
        heading = HEADING_PATTERN.match(line)
        if heading:
            marker = PRIORITY_MARKER_PATTERN.search(heading.group(2))
            if marker:
                priority = f"P{marker.group(1)}"
            elif len(heading.group(1)) <= 2:
                priority = DEFAULT_PRIORITY
            continue

        explicit = PRIORITY_LINE_PATTERN.search(line)
        if explicit:
            priority = f"P{explicit.group(1)}"

        item = CHECKBOX_PATTERN.match(line)
        if not item:
            continue
        result.total += 1
        if item.group(1).lower() == "x":
            result.completed += 1
        elif priority == "P0":
            result.p0_incomplete.append(item.group(2).strip())
        elif priority == "P1":
            result.p1_incomplete.append(item.group(2).strip())

    if result.p0_incomplete:
        result.fail(f"P0 tasks incomplete: {len(result.p0_incomplete)}")
    return result


# =============================================================================
# Sub-validations (file level)
# =============================================================================


def _read_optional(path: str) -> str | None:
    if not path or not file_exists(path):
        return None
    content = read_text(path)
    if content is None:
        logger.warning("Cannot read artifact %s", path)
    return content


def validate_scope_alignment(epic_path: str, prd_path: str) -> ScopeAlignmentResult:
    return check_scope_alignment(_read_optional(epic_path), _read_optional(prd_path), Path(epic_path).name if epic_path else "")


def validate_requirement_coverage(prd_path: str, tasks_path: str) -> RequirementCoverageResult:
    return check_requirement_coverage(_read_optional(prd_path), _read_optional(tasks_path))


def validate_task_completion(tasks_path: str) -> TaskCompletionResult:
    return check_task_completion(_read_optional(tasks_path))


def validate_naming_conventions(artifacts: FeatureArtifacts) -> NamingConventionsResult:
    """Each present artifact must match its kind's pattern in the naming registry."""
    result = NamingConventionsResult()
    paths = dict(artifacts.items())
    for kind, label in ARTIFACT_KINDS:
        path = paths[kind]
        if path and not bv_naming.validate(path, kind):
            result.fail(f"{label} naming violation: {Path(path).name}")
    return result


def validate_cross_references(artifacts: FeatureArtifacts) -> CrossReferencesResult:
    """Local markdown links in every artifact must resolve relative to the artifact's directory."""
    result = CrossReferencesResult()
    for _, path in artifacts.items():
        content = _read_optional(path)
        if content is None:
            continue
        artifact = Path(path)
        for target in extract_links(content):
            result.references.append(target)
            target_path = Path(target)
            resolved = target_path if target_path.is_absolute() else artifact.parent / target_path
            if not file_exists(resolved):
                result.fail(f"Broken reference in {artifact.name}: {target}")
    return result


# =============================================================================
# Main Validation Functions
# =============================================================================


def _record(result: ConsistencyResult, name: str, rule: RuleResult, pass_message: str) -> None:
    """One failing check per issue, or a single passing check."""
    if rule.passed:
        result.add_check(name, True, pass_message)
        return
    for issue in rule.issues:
        result.add_check(name, False, issue)


def _finish(result: ConsistencyResult) -> ConsistencyResult:
    if result.valid:
        result.message = "Consistency validation passed"
    else:
        result.message = "Consistency validation failed"
        result.remediation = compose_remediation(
            failed_check_names(result.checks),
            prefix="Fix the following checks: ",
            suffix=". See naming-conventions.md for requirements.",
            separator=", ",
        )
    return result


def _check_checkpoint(checkpoint: int) -> None:
    if checkpoint not in VALID_CHECKPOINTS:
        raise ValueError(f"checkpoint must be one of {VALID_CHECKPOINTS}, got {checkpoint!r}")


def validate_consistency(base_path: str | Path, feature: str, checkpoint: int = 1) -> ConsistencyResult:
    """Validate one feature's artifacts on disk.

    Args:
        base_path: Repository root containing ``.agents/``
        feature: Feature stem used for artifact discovery
        checkpoint: 1 for planning checks; 2-4 also require P0 tasks complete

    Returns:
        ConsistencyResult; valid is the AND of every sub-validation

    Raises:
        ValueError: If checkpoint is not 1, 2, 3 or 4
    """
    _check_checkpoint(checkpoint)
    artifacts = find_feature_artifacts(base_path, feature)
    result = ConsistencyResult(base_path=str(base_path), feature=feature, checkpoint=checkpoint, artifacts=artifacts)

    result.scope_alignment = validate_scope_alignment(artifacts.epic, artifacts.prd)
    _record(
        result,
        "scope_alignment",
        result.scope_alignment,
        "Epic file not found (scope check skipped)" if not artifacts.epic else "PRD scope aligns with Epic outcomes",
    )

    result.requirement_coverage = validate_requirement_coverage(artifacts.prd, artifacts.tasks)
    _record(result, "requirement_coverage", result.requirement_coverage, "All requirements have corresponding tasks")

    result.naming_conventions = validate_naming_conventions(artifacts)
    _record(result, "naming_conventions", result.naming_conventions, "All artifacts follow naming conventions")

    result.cross_references = validate_cross_references(artifacts)
    _record(result, "cross_references", result.cross_references, "All cross-references point to existing files")

    if checkpoint >= 2:
        result.task_completion = validate_task_completion(artifacts.tasks)
        _record(result, "task_completion", result.task_completion, "All P0 tasks completed")

    return _finish(result)


def validate_consistency_from_content(
    epic_content: str | None,
    prd_content: str | None,
    tasks_content: str | None,
    feature: str = "",
    checkpoint: int = 1,
    epic_name: str = "",
) -> ConsistencyResult:
    """Validate artifact contents without touching the filesystem.

    Naming and cross-reference checks need paths and are not run. Pass None
    for an artifact that does not exist.

    Raises:
        ValueError: If checkpoint is not 1, 2, 3 or 4
    """
    _check_checkpoint(checkpoint)
    result = ConsistencyResult(feature=feature, checkpoint=checkpoint)

    result.scope_alignment = check_scope_alignment(epic_content, prd_content, epic_name)
    _record(
        result,
        "scope_alignment",
        result.scope_alignment,
        "Epic file not found (scope check skipped)" if epic_content is None else "PRD scope aligns with Epic outcomes",
    )

    result.requirement_coverage = check_requirement_coverage(prd_content, tasks_content)
    _record(result, "requirement_coverage", result.requirement_coverage, "All requirements have corresponding tasks")

    if checkpoint >= 2:
        result.task_completion = check_task_completion(tasks_content)
        _record(result, "task_completion", result.task_completion, "All P0 tasks completed")

    return _finish(result)


def validate_all_features(base_path: str | Path, checkpoint: int = 1) -> list[ConsistencyResult]:
    """Validate every feature returned by get_all_features, in name order."""
    return [validate_consistency(base_path, feature, checkpoint) for feature in get_all_features(base_path)]
