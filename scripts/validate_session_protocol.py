#!/usr/bin/env python3
"""
Brain Validation - Session Protocol Validator

Validates a session log against SESSION-PROTOCOL.md: file name, required
sections, the MUST rows of the Session Start and Session End checklists,
and evidence that the Brain notes were read and written, the branch was
recorded, work was committed and markdown lint ran.

Checklist tables look like:

    | Req    | Step                    | Status | Evidence |
    |--------|-------------------------|--------|----------|
    | MUST   | Initialize Brain        | [x]    | tool log |
    | SHOULD | Review open PRs         | [ ]    |          |

Only MUST rows can fail validation; SHOULD rows are counted for reporting.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bv_fsprobe import file_exists, read_text
from bv_schema import SchemaRegistry, get_schema
from bv_validation_common import (
    Check,
    ConfigError,
    ValidationError,
    ValidationResult,
    compose_remediation,
    failed_check_names,
    load_config_file,
)

# =============================================================================
# Configuration
# =============================================================================

DEFAULT_FILENAME_PATTERN = r"^SESSION-\d{4}-\d{2}-\d{2}_\d{2}-.+\.md$"

DEFAULT_REQUIRED_SECTIONS = ("Session Info", "Protocol Compliance", "Session Start", "Session End")

DEFAULT_BRAIN_INITIALIZATION_PATTERNS = (
    "mcp__plugin_brain_brain__build_context",
    "mcp__plugin_brain_brain__bootstrap_context",
    "brain__build_context",
    "brain__bootstrap_context",
    "Brain MCP initialized",
    "Initialize Brain",
)

DEFAULT_BRAIN_UPDATE_PATTERNS = (
    "mcp__plugin_brain_brain__write_note",
    "mcp__plugin_brain_brain__edit_note",
    "brain__write_note",
    "brain__edit_note",
    "Note write confirmed",
    "Brain note updated",
    "Update Brain note",
)

DEFAULT_BRANCH_PATTERNS = ("**Branch**:", "Branch:", "Current Branch:", "- Branch:")

DEFAULT_BRANCH_PLACEHOLDERS = ("[branch name]", "[branch name - REQUIRED]")

DEFAULT_COMMIT_SHA_PATTERNS = (
    r"Commit SHA:\s*[a-f0-9]{7,40}",
    r"`[a-f0-9]{7,40}`\s*-\s*",
    r"SHA:\s*[a-f0-9]{7,40}",
)

DEFAULT_LINT_EVIDENCE_PATTERNS = ("markdownlint", "Lint output", "npx markdownlint-cli2")

# Config key (camelCase, as in session-protocol.schema.json) -> attribute
CONFIG_KEYS = {
    "filenamePattern": "filename_pattern",
    "requiredSections": "required_sections",
    "brainInitializationPatterns": "brain_initialization_patterns",
    "brainUpdatePatterns": "brain_update_patterns",
    "branchPatterns": "branch_patterns",
    "branchPlaceholders": "branch_placeholders",
    "commitShaPatterns": "commit_sha_patterns",
    "lintEvidencePatterns": "lint_evidence_patterns",
}

MISSING_ITEM_PREVIEW = 50

NEXT_SECTION_PATTERN = re.compile(r"\n#{2,3} [A-Z]")


@dataclass
class SessionProtocolConfig:
    filename_pattern: str = DEFAULT_FILENAME_PATTERN
    required_sections: list[str] = field(default_factory=lambda: list(DEFAULT_REQUIRED_SECTIONS))
    brain_initialization_patterns: list[str] = field(
        default_factory=lambda: list(DEFAULT_BRAIN_INITIALIZATION_PATTERNS)
    )
    brain_update_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_BRAIN_UPDATE_PATTERNS))
    branch_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_BRANCH_PATTERNS))
    branch_placeholders: list[str] = field(default_factory=lambda: list(DEFAULT_BRANCH_PLACEHOLDERS))
    commit_sha_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_COMMIT_SHA_PATTERNS))
    lint_evidence_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_LINT_EVIDENCE_PATTERNS))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionProtocolConfig:
        """Override defaults from a mapping with camelCase or snake_case keys.

        Raises:
            ConfigError: If a value has the wrong type or a regex does not compile
        """
        config = cls()
        for key, attr in CONFIG_KEYS.items():
            value = data.get(key, data.get(attr))
            if value is None:
                continue
            if attr == "filename_pattern":
                if not isinstance(value, str):
                    raise ConfigError(f"{key} must be a string")
            elif not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigError(f"{key} must be a list of strings")
            setattr(config, attr, value if isinstance(value, str) else list(value))

        for pattern in [config.filename_pattern, *config.commit_sha_patterns]:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigError(f"Invalid regular expression {pattern!r}: {e}") from e
        return config

    @classmethod
    def from_file(cls, path: str | Path) -> SessionProtocolConfig:
        return cls.from_dict(load_config_file(path))


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class ChecklistValidation:
    total_must_items: int = 0
    completed_must_items: int = 0
    missing_must_items: list[str] = field(default_factory=list)
    total_should_items: int = 0
    completed_should_items: int = 0
    missing_should_items: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalMustItems": self.total_must_items,
            "completedMustItems": self.completed_must_items,
            "missingMustItems": list(self.missing_must_items),
            "totalShouldItems": self.total_should_items,
            "completedShouldItems": self.completed_should_items,
            "missingShouldItems": list(self.missing_should_items),
        }


@dataclass
class SessionProtocolResult(ValidationResult):
    session_log_path: str = ""
    start_checklist: ChecklistValidation = field(default_factory=ChecklistValidation)
    end_checklist: ChecklistValidation = field(default_factory=ChecklistValidation)
    brain_initialized: bool = False
    brain_updated: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        base = super().to_dict()
        base["sessionLogPath"] = self.session_log_path
        base["startChecklist"] = self.start_checklist.to_dict()
        base["endChecklist"] = self.end_checklist.to_dict()
        base["brainInitialized"] = self.brain_initialized
        base["brainUpdated"] = self.brain_updated
        return base


# =============================================================================
# Content Probes
# =============================================================================


def contains_section(content: str, section: str) -> bool:
    return f"## {section}" in content or f"### {section}" in content


def extract_section(content: str, section: str) -> str:
    """Text from a ``### section`` (or ``## section``) heading up to the next level 2-3 heading."""
    start = content.find(f"### {section}")
    if start < 0:
        start = content.find(f"## {section}")
    if start < 0:
        return ""
    body = content[start:]
    match = NEXT_SECTION_PATTERN.search(body, 1)
    return body[: match.start()] if match else body


def _shorten(text: str) -> str:
    if len(text) <= MISSING_ITEM_PREVIEW:
        return text
    return text[: MISSING_ITEM_PREVIEW - 3] + "..."


def validate_checklist(content: str, section: str) -> ChecklistValidation:
    """Count MUST and SHOULD rows of the checklist table in a section."""
    result = ChecklistValidation()
    for raw in extract_section(content, section).split("\n"):
        line = raw.strip()
        if not line.startswith("|"):
            continue
        cells = line.split("|")
        if len(cells) < 4:
            continue
        level = cells[1].strip().upper()
        step = cells[2].strip()
        if not step or step == "Step":
            continue
        status = cells[3].strip()
        completed = "[x]" in status or "[X]" in status

        if level == "MUST":
            result.total_must_items += 1
            if completed:
                result.completed_must_items += 1
            else:
                result.missing_must_items.append(_shorten(step))
        elif level == "SHOULD":
            result.total_should_items += 1
            if completed:
                result.completed_should_items += 1
            else:
                result.missing_should_items.append(_shorten(step))
    return result


def _contains_any(content: str, patterns: list[str]) -> bool:
    lowered = content.lower()
    return any(p.lower() in lowered for p in patterns)


def check_brain_initialization(content: str, config: SessionProtocolConfig | None = None) -> bool:
    return _contains_any(content, (config or SessionProtocolConfig()).brain_initialization_patterns)


def check_brain_update(content: str, config: SessionProtocolConfig | None = None) -> bool:
    return _contains_any(content, (config or SessionProtocolConfig()).brain_update_patterns)


def check_lint_evidence(content: str, config: SessionProtocolConfig | None = None) -> bool:
    return _contains_any(content, (config or SessionProtocolConfig()).lint_evidence_patterns)


def check_commit_evidence(content: str, config: SessionProtocolConfig | None = None) -> bool:
    cfg = config or SessionProtocolConfig()
    return any(re.search(p, content) for p in cfg.commit_sha_patterns)


def check_branch_documented(content: str, config: SessionProtocolConfig | None = None) -> bool:
    """True when a branch marker's first occurrence is followed by a real value on the same line."""
    cfg = config or SessionProtocolConfig()
    for marker in cfg.branch_patterns:
        index = content.find(marker)
        if index < 0:
            continue
        value = content[index + len(marker) :].split("\n", 1)[0].strip()
        if value and value not in cfg.branch_placeholders:
            return True
    return False


# =============================================================================
# Main Validation Functions
# =============================================================================


def _checklist_check(result: SessionProtocolResult, name: str, label: str, checklist: ChecklistValidation) -> None:
    if checklist.total_must_items == 0:
        return
    if checklist.completed_must_items == checklist.total_must_items:
        result.add_check(name, True, f"All {checklist.total_must_items} {label} MUST items completed")
        return
    result.add_check(
        name,
        False,
        f"{label}: {checklist.completed_must_items}/{checklist.total_must_items} MUST items completed. "
        f"Missing: {', '.join(checklist.missing_must_items)}",
    )


def _evidence_check(result: SessionProtocolResult, name: str, found: bool, passed: str, failed: str) -> None:
    result.add_check(name, found, passed if found else failed)


def _finish(result: SessionProtocolResult) -> SessionProtocolResult:
    if result.valid:
        result.message = "Session protocol validation passed"
    else:
        result.message = "Session protocol validation failed"
        result.remediation = compose_remediation(
            failed_check_names(result.checks),
            prefix="Fix the following checks: ",
            suffix=". See SESSION-PROTOCOL.md for requirements.",
            separator=", ",
        )
    return result


def validate_session_protocol_from_content(
    content: str, session_log_path: str = "", config: SessionProtocolConfig | None = None
) -> SessionProtocolResult:
    """Validate session log content.

    Args:
        content: Full session log text
        session_log_path: Path or file name; filename_format runs only when given
        config: Patterns and required sections (defaults when None)

    Returns:
        SessionProtocolResult; every check is blocking
    """
    cfg = config or SessionProtocolConfig()
    result = SessionProtocolResult(session_log_path=session_log_path)

    if session_log_path:
        file_name = Path(session_log_path).name
        if re.search(cfg.filename_pattern, file_name):
            result.add_check("filename_format", True, "Filename matches SESSION-YYYY-MM-DD_NN-topic.md pattern")
        else:
            result.add_check("filename_format", False, f"Filename does not match expected pattern: {file_name}")

    for section in cfg.required_sections:
        key = "section_" + section.replace(" ", "_").lower()
        if contains_section(content, section):
            result.add_check(key, True, f"Section present: {section}")
        else:
            result.add_check(key, False, f"Missing required section: {section}")

    result.start_checklist = validate_checklist(content, "Session Start")
    _checklist_check(result, "start_must_items", "Session Start", result.start_checklist)
    result.end_checklist = validate_checklist(content, "Session End")
    _checklist_check(result, "end_must_items", "Session End", result.end_checklist)

    result.brain_initialized = check_brain_initialization(content, cfg)
    _evidence_check(
        result,
        "brain_initialized",
        result.brain_initialized,
        "Brain MCP initialization evidence found",
        "No Brain MCP initialization evidence (mcp__plugin_brain_brain__build_context or bootstrap_context)",
    )
    result.brain_updated = check_brain_update(content, cfg)
    _evidence_check(
        result,
        "brain_updated",
        result.brain_updated,
        "Brain note update evidence found",
        "No Brain note update evidence (write_note, edit_note, or 'Note write confirmed')",
    )
    _evidence_check(
        result,
        "branch_documented",
        check_branch_documented(content, cfg),
        "Git branch documented in session log",
        "Git branch not documented in Session Info or Branch Verification section",
    )
    _evidence_check(
        result,
        "commit_evidence",
        check_commit_evidence(content, cfg),
        "Commit SHA evidence found in session log",
        "No commit SHA evidence found (expected: Commit SHA: [hash])",
    )
    _evidence_check(
        result,
        "lint_evidence",
        check_lint_evidence(content, cfg),
        "Markdown lint execution evidence found",
        "No markdown lint evidence found",
    )
    return _finish(result)


def validate_session_protocol(
    session_log_path: str | Path, config: SessionProtocolConfig | None = None
) -> SessionProtocolResult:
    """Validate a session log on disk; a missing file fails file_exists and stops."""
    path_str = str(session_log_path)
    if not file_exists(session_log_path):
        result = SessionProtocolResult(session_log_path=path_str)
        result.add_check("file_exists", False, f"File not found: {path_str}")
        result.message = "Session log file not found"
        result.remediation = f"Create session log at: {path_str}"
        return result

    content = read_text(session_log_path)
    if content is None:
        result = SessionProtocolResult(session_log_path=path_str)
        result.add_check("file_exists", True, "Session log file exists")
        result.add_check("file_readable", False, f"Could not read file: {path_str}")
        result.message = "Could not read session log"
        result.remediation = "Ensure file is readable"
        return result

    result = validate_session_protocol_from_content(content, path_str, config)
    result.checks.insert(0, Check("file_exists", True, "Session log file exists"))
    return result


# =============================================================================
# Schema Validation
# =============================================================================


def get_session_protocol_config_errors(data: Any, registry: SchemaRegistry | None = None) -> list[ValidationError]:
    """Validate raw configuration data against the session-protocol schema."""
    return get_schema("session-protocol", registry).errors(data)


def validate_session_protocol_config(data: Any, registry: SchemaRegistry | None = None) -> bool:
    return not get_session_protocol_config_errors(data, registry)
