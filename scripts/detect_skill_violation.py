#!/usr/bin/env python3
"""
Brain Validation - Skill Violation Scanner

When a repository ships GitHub skill scripts, raw ``gh`` CLI calls in
markdown and PowerShell files should go through those scripts instead.
This scanner finds such calls and reports them as non-blocking warnings.

Reporting discipline:
    scan_content                  every offending line (first pattern per line)
    detect_skill_violations       first offending line per file
    detect_from_content           first offending line per file
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from bv_fsprobe import dir_exists, find_git_root, read_text, staged_targets, walk_targets
from bv_schema import SchemaRegistry, get_schema
from bv_validation_common import ValidationError, ValidationResult

logger = logging.getLogger(__name__)

# =============================================================================
# Scanner Constants
# =============================================================================

GH_COMMAND_PATTERNS = (
    re.compile(r"gh\s+pr\s+(create|merge|close|view|list|diff)"),
    re.compile(r"gh\s+issue\s+(create|close|view|list)"),
    re.compile(r"gh\s+api\s+"),
    re.compile(r"gh\s+repo\s+"),
)

GH_SUBCOMMAND_PATTERN = re.compile(r"gh\s+(\w+)")

DEFAULT_SKILLS_PATH = ".claude/skills/github/scripts"

NO_VIOLATIONS = "No skill violations detected"
VIOLATIONS_FOUND = "Detected raw 'gh' command usage (skill violations)"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class SkillViolation:
    file: str
    line: int
    pattern: str
    command: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"file": self.file, "line": self.line, "pattern": self.pattern}
        if self.command:
            result["command"] = self.command
        return result

    def describe(self) -> str:
        return f"{self.file}:{self.line} - matches '{self.pattern}'"


@dataclass
class SkillViolationResult(ValidationResult):
    """Scan result. Violations are warnings, so ``valid`` stays true."""

    skills_dir: str = ""
    files_checked: int = 0
    violations: list[SkillViolation] = field(default_factory=list)
    capability_gaps: list[str] = field(default_factory=list)

    @property
    def has_violations(self) -> bool:
        return bool(self.violations)

    @property
    def violation_count(self) -> int:
        return len(self.violations)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        base = super().to_dict()
        if self.skills_dir:
            base["skillsDir"] = self.skills_dir
        base["filesChecked"] = self.files_checked
        if self.violations:
            base["violations"] = [v.to_dict() for v in self.violations]
        if self.capability_gaps:
            base["capabilityGaps"] = list(self.capability_gaps)
        return base


# =============================================================================
# Scanning
# =============================================================================


def extract_gh_command(line: str) -> str:
    """The word after ``gh`` (e.g. "pr"), or ""."""
    match = GH_SUBCOMMAND_PATTERN.search(line)
    return match.group(1) if match else ""


def scan_content(file_name: str, content: str) -> list[SkillViolation]:
    """Every offending line of content; only the first matching pattern per line counts."""
    violations: list[SkillViolation] = []
    for number, line in enumerate(content.split("\n"), start=1):
        for pattern in GH_COMMAND_PATTERNS:
            if pattern.search(line):
                violations.append(SkillViolation(file_name, number, pattern.pattern, extract_gh_command(line)))
                break
    return violations


def scan_file(path: str | Path) -> list[SkillViolation]:
    """scan_content for a file on disk.

    Raises:
        OSError: If the file cannot be read
    """
    file_path = Path(path)
    content = file_path.read_text(encoding="utf-8", errors="replace")
    return scan_content(str(file_path), content)


def capability_gaps(violations: Iterable[SkillViolation]) -> list[str]:
    """Sorted unique gh subcommands seen in violations."""
    return sorted({v.command for v in violations if v.command})


def build_skill_violation_remediation(gaps: Iterable[str]) -> str:
    lines = [
        "These commands indicate missing GitHub skill capabilities.",
        "Use .claude/skills/github/ scripts instead, or file an issue to add the capability.",
        "",
    ]
    gaps = list(gaps)
    if gaps:
        lines.append("Missing skill capabilities detected:")
        lines.extend(f"  - gh {gap} (consider adding to .claude/skills/github/)" for gap in gaps)
        lines.append("")
    lines.append("REMINDER: Use GitHub skills for better error handling, consistency, and auditability.")
    lines.append("Before using raw 'gh' commands, check: Get-ChildItem .claude/skills/github/scripts -Recurse")
    lines.append("If the capability you need doesn't exist, create a skill script or file an issue.")
    return "\n".join(lines)


def _record(result: SkillViolationResult, violations: list[SkillViolation]) -> SkillViolationResult:
    result.violations = violations
    result.capability_gaps = capability_gaps(violations)
    if violations:
        for violation in violations:
            result.add_warning("skill_violation", False, violation.describe())
        result.message = VIOLATIONS_FOUND
        result.remediation = build_skill_violation_remediation(result.capability_gaps)
    else:
        result.add_warning("skill_violation", True, NO_VIOLATIONS)
        result.message = NO_VIOLATIONS
    return result


# =============================================================================
# Main Entry Points
# =============================================================================


def detect_skill_violations(
    base_path: str | Path = ".",
    staged_only: bool = False,
    repo_root: str | Path | None = None,
    skills_path: str = DEFAULT_SKILLS_PATH,
) -> SkillViolationResult:
    """Scan a repository for raw gh usage.

    Args:
        base_path: Any directory inside the repository
        staged_only: Only scan staged .md/.ps1/.psm1 files
        repo_root: Repository root; discovered with git from base_path when None
        skills_path: Skills directory relative to the root; absent means skip

    Returns:
        SkillViolationResult. A missing repository or skills directory skips
        the scan with an informational message.
    """
    result = SkillViolationResult()

    if repo_root is None:
        root = find_git_root(Path(base_path).resolve())
        if not root:
            result.message = f"Could not find git repository root from: {Path(base_path).resolve()}"
            logger.info(result.message)
            return result
    else:
        root = str(repo_root)

    skills_dir = Path(root) / skills_path
    result.skills_dir = str(skills_dir)
    if not dir_exists(skills_dir):
        result.message = f"GitHub skills directory not found: {skills_dir}"
        logger.info(result.message)
        return result

    files = staged_targets(root) if staged_only else walk_targets(root)
    if not files:
        result.message = "No files to check for skill violations"
        return result
    result.files_checked = len(files)

    violations: list[SkillViolation] = []
    for rel_path in files:
        content = read_text(Path(root) / rel_path)
        if content is None:
            continue
        found = scan_content(rel_path, content)
        if found:
            violations.append(found[0])
    return _record(result, violations)


def detect_from_content(contents: Mapping[str, str]) -> SkillViolationResult:
    """Scan in-memory files (name -> content) in name order, first violation per file."""
    result = SkillViolationResult(files_checked=len(contents))
    violations: list[SkillViolation] = []
    for file_name in sorted(contents):
        found = scan_content(file_name, contents[file_name])
        if found:
            violations.append(found[0])
    return _record(result, violations)


# =============================================================================
# Schema Validation
# =============================================================================


def get_skill_violation_result_errors(
    result: SkillViolationResult, registry: SchemaRegistry | None = None
) -> list[ValidationError]:
    return get_schema("skill-violation", registry).errors_from_json(result.to_json())


def validate_skill_violation_result(result: SkillViolationResult, registry: SchemaRegistry | None = None) -> bool:
    return not get_skill_violation_result_errors(result, registry)
