#!/usr/bin/env python3
"""
Brain Validation - Slash Command Validator

Validates slash command markdown files: frontmatter, argument usage versus
``argument-hint``, the ``allowed-tools`` policy for prompts that run bash
(lines starting with ``!``), and overall length.

Blocking check messages start with "BLOCKING:" and warning-only check
messages with "WARNING:". A command with only warnings is still valid.

Allowed-tools tokens:
    permissive (rejected)   *  **  **/*  *.md  Bash(*)
    scoped (accepted)       Read  Bash(git:*)  mcp__*  mcp__github__*
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from bv_frontmatter import Frontmatter, parse_frontmatter
from bv_fsprobe import read_text, walk_files
from bv_schema import SchemaRegistry, get_schema
from bv_validation_common import ValidationError, ValidationResult, compose_remediation

# =============================================================================
# Command-Specific Constants
# =============================================================================

MAX_SLASH_COMMAND_LINES = 200

DESCRIPTION_ACTION_PATTERN = re.compile(r"^(Use when|Generate|Research|Invoke|Create|Analyze|Review|Search)")

ARGUMENT_USAGE_PATTERN = re.compile(r"\$ARGUMENTS|\$1|\$2|\$3")

# A prompt line that executes bash: "!git status", "! ls", "!./deploy.sh"
BASH_EXECUTION_PATTERN = re.compile(r"^!\s*\S", re.MULTILINE)

BARE_WILDCARDS = frozenset({"*", "**", "**/*"})

# Tool(<args>) call form; an argument of only wildcards and separators is unscoped
TOOL_CALL_PATTERN = re.compile(r"^\w+\((?P<args>.*)\)$")

WILDCARD_CHARS = re.compile(r"[*/:\s]")

MCP_PREFIX = "mcp__"

REMEDIATION_BY_CHECK = {
    "frontmatter_present": "Add YAML frontmatter starting with '---' on line 1",
    "yaml_syntax": "Fix YAML syntax errors in frontmatter",
    "description_required": "Add 'description' field to frontmatter",
    "argument_consistency": "Add 'argument-hint' field or remove $ARGUMENTS usage",
    "security_allowed_tools": "Add 'allowed-tools' field when using bash execution (!)",
    "security_wildcard": "Use scoped wildcards (mcp__*) instead of bare wildcards",
}


# =============================================================================
# Command-Specific Result Class
# =============================================================================


@dataclass
class SlashCommandFieldValidation:
    yaml_syntax_valid: bool = False
    yaml_syntax_error: str = ""
    description_present: bool = False
    description_valid: bool = False
    description_error: str = ""
    argument_hint_valid: bool = False
    argument_hint_error: str = ""
    allowed_tools_valid: bool = False
    allowed_tools_error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "yamlSyntaxValid": self.yaml_syntax_valid,
            "yamlSyntaxError": self.yaml_syntax_error,
            "descriptionPresent": self.description_present,
            "descriptionValid": self.description_valid,
            "descriptionError": self.description_error,
            "argumentHintValid": self.argument_hint_valid,
            "argumentHintError": self.argument_hint_error,
            "allowedToolsValid": self.allowed_tools_valid,
            "allowedToolsError": self.allowed_tools_error,
        }


@dataclass
class SlashCommandResult(ValidationResult):
    """Validation result for a slash command file, extends ValidationResult with summary flags."""

    file_path: str = ""
    frontmatter_present: bool = False
    frontmatter: Frontmatter = field(default_factory=Frontmatter)
    field_validation: SlashCommandFieldValidation = field(default_factory=SlashCommandFieldValidation)
    line_count: int = 0
    length_warning: bool = False
    argument_consistent: bool = False
    security_compliant: bool = False

    @property
    def description_valid(self) -> bool:
        return self.field_validation.description_valid

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        base = super().to_dict()
        base["filePath"] = self.file_path
        base["frontmatterPresent"] = self.frontmatter_present
        base["frontmatter"] = self.frontmatter.to_dict()
        base["fieldValidation"] = self.field_validation.to_dict()
        base["lineCount"] = self.line_count
        base["lengthWarning"] = self.length_warning
        base["argumentConsistent"] = self.argument_consistent
        base["securityCompliant"] = self.security_compliant
        base["descriptionValid"] = self.description_valid
        return base


# =============================================================================
# Policy Helpers
# =============================================================================


def is_overly_permissive(token: str) -> bool:
    """True when an allowed-tools token grants unscoped access."""
    token = token.strip()
    if token.startswith(MCP_PREFIX):
        return False
    if token in BARE_WILDCARDS or token.startswith("*"):
        return True
    call = TOOL_CALL_PATTERN.match(token)
    if call is None:
        return False
    args = call.group("args")
    return "*" in args and not WILDCARD_CHARS.sub("", args)


def frontmatter_as_mapping(frontmatter: Frontmatter) -> dict[str, Any]:
    """Known frontmatter fields as a mapping for schema validation."""
    mapping: dict[str, Any] = {}
    if frontmatter.description:
        mapping["description"] = frontmatter.description
    if frontmatter.argument_hint:
        mapping["argument-hint"] = frontmatter.argument_hint
    if frontmatter.allowed_tools:
        mapping["allowed-tools"] = list(frontmatter.allowed_tools)
    return mapping


def has_description_schema_error(frontmatter: Frontmatter, registry: SchemaRegistry | None) -> bool:
    """True when a loaded slash-command schema rejects the description field.

    An unloaded schema reports a root-level error, which is ignored here.
    """
    schema = get_schema("slash-command-frontmatter", registry)
    if not schema.loaded:
        return False
    for error in schema.errors(frontmatter_as_mapping(frontmatter)):
        if error.field.lstrip("/").startswith("description"):
            return True
        if error.constraint == "required" and "description" in error.message:
            return True
    return False


def build_slash_command_remediation(result: ValidationResult) -> str:
    return compose_remediation(REMEDIATION_BY_CHECK.get(c.name, "") for c in result.failed_checks())


# =============================================================================
# Main Validation Functions
# =============================================================================


def validate_slash_command_from_content(
    content: str, file_name: str, registry: SchemaRegistry | None = None
) -> SlashCommandResult:
    """Validate slash command content.

    Args:
        content: Full markdown text of the command
        file_name: Name reported in the result
        registry: Schema registry holding the slash-command-frontmatter schema
            (process default when None)

    Returns:
        SlashCommandResult; blocking failures make it invalid, warnings do not
    """
    result = SlashCommandResult(file_path=file_name)
    fields = result.field_validation
    result.line_count = len(content.split("\n"))

    # 1. Frontmatter
    frontmatter, yaml_error = parse_frontmatter(content)
    if not frontmatter.present:
        fields.yaml_syntax_error = yaml_error or "Missing YAML frontmatter block"
        result.add_check(
            "frontmatter_present",
            False,
            "BLOCKING: Missing YAML frontmatter block. File must start with '---' on line 1.",
        )
    else:
        result.frontmatter_present = True
        result.frontmatter = frontmatter

        if yaml_error:
            fields.yaml_syntax_error = yaml_error
            result.add_check("yaml_syntax", False, f"BLOCKING: YAML syntax error: {yaml_error}")
        else:
            fields.yaml_syntax_valid = True
            result.add_check("yaml_syntax", True, "YAML syntax is valid")

        if not frontmatter.description or has_description_schema_error(frontmatter, registry):
            fields.description_error = "Missing 'description' in frontmatter"
            result.add_check("description_required", False, "BLOCKING: Missing 'description' in frontmatter")
        else:
            fields.description_present = True
            if DESCRIPTION_ACTION_PATTERN.match(frontmatter.description):
                fields.description_valid = True
                result.add_warning("description_format", True, "Description starts with action verb")
            else:
                fields.description_error = "Description should start with action verb or 'Use when...'"
                result.add_warning(
                    "description_format", False, "WARNING: Description should start with action verb or 'Use when...'"
                )

    # 2. Arguments
    has_hint = bool(frontmatter.argument_hint)
    uses_arguments = bool(ARGUMENT_USAGE_PATTERN.search(content))
    if uses_arguments and not has_hint:
        fields.argument_hint_error = "Prompt uses arguments but no 'argument-hint' in frontmatter"
        result.add_check(
            "argument_consistency",
            False,
            "BLOCKING: Prompt uses arguments ($ARGUMENTS, $1, $2, $3) but no 'argument-hint' in frontmatter",
        )
    elif has_hint and not uses_arguments:
        fields.argument_hint_error = "Frontmatter has 'argument-hint' but prompt doesn't use arguments"
        result.add_warning(
            "argument_consistency", False, "WARNING: Frontmatter has 'argument-hint' but prompt doesn't use arguments"
        )
    else:
        result.argument_consistent = True
        fields.argument_hint_valid = True
        result.add_check("argument_consistency", True, "Argument usage is consistent")

    # 3. Security
    if not BASH_EXECUTION_PATTERN.search(content):
        result.security_compliant = True
        fields.allowed_tools_valid = True
        result.add_check("security_allowed_tools", True, "No bash execution detected (allowed-tools not required)")
    elif not frontmatter.allowed_tools:
        fields.allowed_tools_error = "Prompt uses bash execution (!) but no 'allowed-tools' in frontmatter"
        result.add_check(
            "security_allowed_tools",
            False,
            "BLOCKING: Prompt uses bash execution (!) but no 'allowed-tools' in frontmatter",
        )
    else:
        result.add_check("security_allowed_tools", True, "Security: allowed-tools configured for bash execution")
        permissive = [t for t in frontmatter.allowed_tools if is_overly_permissive(t)]
        if permissive:
            fields.allowed_tools_error = "'allowed-tools' has overly permissive wildcard (use mcp__* for scoped namespaces)"
            result.add_check(
                "security_wildcard",
                False,
                "BLOCKING: 'allowed-tools' has overly permissive wildcard "
                f"(use mcp__* for scoped namespaces): {', '.join(permissive)}",
            )
        else:
            result.security_compliant = True
            fields.allowed_tools_valid = True
            result.add_check("security_wildcard", True, "allowed-tools entries are scoped")

    # 4. Length
    if result.line_count > MAX_SLASH_COMMAND_LINES:
        result.length_warning = True
        result.add_warning(
            "length_check",
            False,
            f"WARNING: File has {result.line_count} lines (>{MAX_SLASH_COMMAND_LINES}). Consider converting to skill.",
        )
    else:
        result.add_warning("length_check", True, f"File length is acceptable ({result.line_count} lines)")

    if not result.valid:
        result.message = "Slash command validation failed"
        result.remediation = build_slash_command_remediation(result)
    elif result.warnings():
        result.message = "Slash command validation passed with warnings"
    else:
        result.message = "Slash command validation passed"
    return result


def validate_slash_command(file_path: str | Path, registry: SchemaRegistry | None = None) -> SlashCommandResult:
    """Validate a slash command file on disk. A missing file fails the file_exists check."""
    path = Path(file_path)
    content = read_text(path)
    if content is None:
        result = SlashCommandResult(file_path=str(path))
        result.add_check("file_exists", False, f"File not found: {path}")
        result.message = "Slash command validation failed"
        result.remediation = "Ensure the file exists at the specified path."
        return result

    result = validate_slash_command_from_content(content, path.name, registry)
    result.file_path = str(path)
    return result


def validate_slash_command_files(
    file_paths: Iterable[str | Path], registry: SchemaRegistry | None = None
) -> list[SlashCommandResult]:
    return [validate_slash_command(p, registry) for p in file_paths if str(p).endswith(".md")]


def validate_slash_command_directory(
    dir_path: str | Path, recursive: bool = False, registry: SchemaRegistry | None = None
) -> list[SlashCommandResult]:
    """Validate every ``.md`` command in a directory, optionally descending into subdirectories."""
    directory = Path(dir_path)
    if not directory.is_dir():
        return []
    if recursive:
        paths = [directory / rel for rel in walk_files(directory, (".md",))]
    else:
        paths = sorted(p for p in directory.glob("*.md") if p.is_file())
    return validate_slash_command_files(paths, registry)


def count_blocking_violations(results: Iterable[SlashCommandResult]) -> int:
    """Number of results that are invalid."""
    return sum(1 for r in results if not r.valid)


def count_warnings(results: Iterable[SlashCommandResult]) -> int:
    """Number of failed warning-only checks across all results."""
    return sum(len(r.warnings()) for r in results)


# =============================================================================
# Schema Validation
# =============================================================================


def get_slash_command_frontmatter_errors(data: Any, registry: SchemaRegistry | None = None) -> list[ValidationError]:
    return get_schema("slash-command-frontmatter", registry).errors(data)


def validate_slash_command_frontmatter(data: Any, registry: SchemaRegistry | None = None) -> bool:
    return get_schema("slash-command-frontmatter", registry).validate(data)
