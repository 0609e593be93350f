#!/usr/bin/env python3
"""
Brain Validation - Naming Registry

Maps each artifact kind to the anchored regex its file names must match,
and classifies file names against that table. Kinds are consulted in the
order they are declared below.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any

from bv_schema import SchemaRegistry, get_schema
from bv_validation_common import ValidationError

# =============================================================================
# Pattern Tables
# =============================================================================

ARTIFACT_PATTERNS: dict[str, re.Pattern[str]] = {
    "epic": re.compile(r"^EPIC-\d{3,}-[a-z0-9-]+\.md$"),
    "decision": re.compile(r"^ADR-\d{3,}-[a-z0-9-]+\.md$"),
    "requirement": re.compile(r"^REQ-\d{3,}-[a-z0-9-]+\.md$"),
    "design": re.compile(r"^DESIGN-\d{3,}-[a-z0-9-]+\.md$"),
    "task": re.compile(r"^TASK-\d{3,}-[a-z0-9-]+\.md$"),
    "analysis": re.compile(r"^ANALYSIS-\d{3,}-[a-z0-9-]+\.md$"),
    "feature": re.compile(r"^FEATURE-\d{3,}-[a-z0-9-]+\.md$"),
    "critique": re.compile(r"^CRIT-\d{3,}-[a-z0-9-]+\.md$"),
    "test-report": re.compile(r"^QA-\d{3,}-[a-z0-9-]+\.md$"),
    "security": re.compile(r"^SEC-\d{3,}-[a-z0-9-]+\.md$"),
    "session": re.compile(r"^SESSION-\d{4}-\d{2}-\d{2}-\d{2}-[a-z0-9-]+\.md$"),
    "retrospective": re.compile(r"^RETRO-\d{4}-\d{2}-\d{2}-[a-z0-9-]+\.md$"),
    "skill": re.compile(r"^SKILL-\d{3,}-[a-z0-9-]+\.md$"),
    # Planning artifacts discovered by the consistency validator
    "prd": re.compile(r"^prd-[a-z0-9-]+\.md$"),
    "tasks": re.compile(r"^tasks-[a-z0-9-]+\.md$"),
    "plan": re.compile(r"^(?:\d{3}-)?[a-z0-9-]+-plan\.md$|^(?:implementation-plan|plan)-[a-z0-9-]+\.md$"),
}

# Formats that predate the current convention and must be migrated
DEPRECATED_PATTERNS: dict[str, re.Pattern[str]] = {
    "oldSkill": re.compile(r"^Skill-\w+-\d{3}\.md$"),
    "oldSession": re.compile(r"^\d{4}-\d{2}-\d{2}-session-\d+\.md$"),
    "oldThreatModel": re.compile(r"^TM-\d{3}-[\w-]+\.md$"),
    "oldRetro": re.compile(r"^\d{4}-\d{2}-\d{2}-[\w-]+\.md$"),
}

# Single canonical directory (relative to the notes root) per kind
CANONICAL_DIRECTORIES: dict[str, str] = {
    "decision": "decisions",
    "session": "sessions",
    "requirement": "specs/{name}/requirements",
    "design": "specs/{name}/design",
    "task": "specs/{name}/tasks",
    "analysis": "analysis",
    "feature": "planning",
    "epic": "roadmap",
    "critique": "critique",
    "test-report": "qa",
    "security": "security",
    "retrospective": "retrospectives",
    "skill": "skills",
}


@dataclass
class NamingResult:
    """Detailed outcome of checking one file name."""

    valid: bool
    kind: str = ""
    error: str = ""
    deprecated_pattern: str = ""

    @property
    def is_deprecated(self) -> bool:
        return bool(self.deprecated_pattern)

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {"valid": self.valid}
        if self.kind:
            result["patternType"] = self.kind
        if self.error:
            result["error"] = self.error
        if self.deprecated_pattern:
            result["isDeprecated"] = True
            result["deprecatedPattern"] = self.deprecated_pattern
        return result


# =============================================================================
# Lookup Functions
# =============================================================================


def base_name(filename: str) -> str:
    return PurePath(filename.replace("\\", "/")).name


def validate(filename: str, kind: str) -> bool:
    """Check a file name against one kind's pattern. Unknown kinds always pass."""
    pattern = ARTIFACT_PATTERNS.get(kind)
    if pattern is None:
        return True
    return bool(pattern.match(base_name(filename)))


def classify(filename: str) -> tuple[bool, str]:
    """Return (True, kind) for the first kind whose pattern matches, else (False, "")."""
    name = base_name(filename)
    for kind, pattern in ARTIFACT_PATTERNS.items():
        if pattern.match(name):
            return True, kind
    return False, ""


def deprecated_pattern(filename: str) -> str:
    """Name of the first deprecated pattern the file name matches, or ""."""
    name = base_name(filename)
    for label, pattern in DEPRECATED_PATTERNS.items():
        if pattern.match(name):
            return label
    return ""


def has_path_traversal(filename: str) -> bool:
    return ".." in filename or "/" in filename or "\\" in filename


def canonical_directory(kind: str, name: str = "") -> str:
    """Canonical directory for a kind, with ``{name}`` substituted when given."""
    directory = CANONICAL_DIRECTORIES.get(kind, "")
    return directory.replace("{name}", name) if name else directory


def check_file_name(filename: str, kind: str = "") -> NamingResult:
    """Validate a bare file name, reporting why it fails.

    Args:
        filename: Bare file name (no directory components)
        kind: Required kind, or "" to accept any known kind

    Returns:
        NamingResult with the matched kind or an explanatory error
    """
    if not filename:
        return NamingResult(valid=False, error="fileName is required and must be non-empty")
    if has_path_traversal(filename):
        return NamingResult(valid=False, error="Path traversal detected: fileName must not contain .., /, or \\")

    if kind:
        pattern = ARTIFACT_PATTERNS.get(kind)
        if pattern is None:
            return NamingResult(valid=False, error=f"Unknown pattern type: {kind}")
        if pattern.match(filename):
            return NamingResult(valid=True, kind=kind)
        old = deprecated_pattern(filename)
        if old:
            return NamingResult(
                valid=False,
                error=f"File name matches deprecated pattern '{old}'. Use the new {kind} format.",
                deprecated_pattern=old,
            )
        return NamingResult(valid=False, error=f"File name does not match {kind} pattern: {pattern.pattern}")

    matched, found = classify(filename)
    if matched:
        return NamingResult(valid=True, kind=found)
    old = deprecated_pattern(filename)
    if old:
        return NamingResult(
            valid=False,
            error=f"File name matches deprecated pattern '{old}'. Migrate to the new naming convention.",
            deprecated_pattern=old,
        )
    return NamingResult(valid=False, error="File name does not match any known naming pattern")


# =============================================================================
# Schema Validation
# =============================================================================


def naming_input(filename: str, kind: str = "") -> dict[str, Any]:
    data: dict[str, Any] = {"fileName": filename}
    if kind:
        data["patternType"] = kind
    return data


def get_naming_input_errors(filename: str, kind: str = "", registry: SchemaRegistry | None = None) -> list[ValidationError]:
    """Validate a {fileName, patternType} request against the naming-pattern schema."""
    return get_schema("naming-pattern", registry).errors(naming_input(filename, kind))


def validate_naming_input(filename: str, kind: str = "", registry: SchemaRegistry | None = None) -> bool:
    return not get_naming_input_errors(filename, kind, registry)
