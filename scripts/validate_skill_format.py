#!/usr/bin/env python3
"""
Brain Validation - Skill Format Validator

Validates atomic skill files: one skill per file, {domain}-{description}
file names, and frontmatter carrying a valid ``name`` and ``description``.

Checks (in order, all blocking):
    filename_prefix       file name must not start with "skill-"
    single_skill          at most one "## Skill-<Domain>-<N>:" header
    frontmatter_present   file starts with a "---" block
    yaml_syntax           the block parses
    name_required / name_format
    description_required / description_length
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from bv_frontmatter import Frontmatter, parse_frontmatter
from bv_fsprobe import read_text
from bv_schema import SchemaRegistry, get_schema
from bv_validation_common import (
    MAX_DESCRIPTION_LENGTH,
    MAX_NAME_LENGTH,
    NAME_PATTERN,
    ValidationError,
    ValidationResult,
    compose_remediation,
)

# =============================================================================
# Skill-Specific Constants
# =============================================================================

BUNDLED_SKILL_PATTERN = re.compile(r"^## Skill-[A-Za-z]+-[0-9]+:", re.MULTILINE)

SKILL_PREFIX_PATTERN = re.compile(r"^skill-")

FRONTMATTER_MISSING = "Frontmatter not found. File must start with '---' on line 1."

# Remediation advice keyed by failing check name
REMEDIATION_BY_CHECK = {
    "filename_prefix": "Rename file to use {domain}-{description} format (e.g., pr-001-reviewer-enumeration.md)",
    "single_skill": "Split bundled skills into separate atomic files",
    "frontmatter_present": "Add YAML frontmatter starting with '---' on line 1",
    "yaml_syntax": "Fix YAML syntax errors in frontmatter",
    "name_required": "Add or fix 'name' field (lowercase letters, numbers, hyphens, 1-64 chars)",
    "name_format": "Add or fix 'name' field (lowercase letters, numbers, hyphens, 1-64 chars)",
    "description_required": "Add or fix 'description' field (max 1024 chars)",
    "description_length": "Add or fix 'description' field (max 1024 chars)",
}


# =============================================================================
# Skill-Specific Result Class
# =============================================================================


@dataclass
class SkillFieldValidation:
    """Per-field flags for the frontmatter of one skill file."""

    yaml_syntax_valid: bool = False
    yaml_syntax_error: str = ""
    name_present: bool = False
    name_valid: bool = False
    name_error: str = ""
    description_present: bool = False
    description_valid: bool = False
    description_error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "yamlSyntaxValid": self.yaml_syntax_valid,
            "yamlSyntaxError": self.yaml_syntax_error,
            "namePresent": self.name_present,
            "nameValid": self.name_valid,
            "nameError": self.name_error,
            "descriptionPresent": self.description_present,
            "descriptionValid": self.description_valid,
            "descriptionError": self.description_error,
        }


@dataclass
class SkillFormatResult(ValidationResult):
    """Validation result for a skill file, extends ValidationResult with field detail."""

    file_path: str = ""
    frontmatter_present: bool = False
    frontmatter: Frontmatter = field(default_factory=Frontmatter)
    field_validation: SkillFieldValidation = field(default_factory=SkillFieldValidation)
    bundled_skills: list[str] = field(default_factory=list)
    prefix_violation: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        base = super().to_dict()
        base["filePath"] = self.file_path
        base["frontmatterPresent"] = self.frontmatter_present
        base["frontmatter"] = self.frontmatter.to_dict()
        base["fieldValidation"] = self.field_validation.to_dict()
        if self.bundled_skills:
            base["bundledSkills"] = list(self.bundled_skills)
        base["prefixViolation"] = self.prefix_violation
        return base


# =============================================================================
# Field Validation Functions
# =============================================================================


def validate_name_field(name: str) -> tuple[bool, bool, str]:
    """Validate the skill name.

    Returns:
        Tuple of (present, valid, error_message)
    """
    if not name:
        return False, False, "Required field 'name' is missing"
    if NAME_PATTERN.match(name):
        return True, True, ""
    if len(name) > MAX_NAME_LENGTH:
        return True, False, f"Name exceeds {MAX_NAME_LENGTH} characters ({len(name)} chars)"
    return True, False, f"Name must match pattern {NAME_PATTERN.pattern}. Found: '{name}'"


def validate_description_field(description: str) -> tuple[bool, bool, str]:
    """Validate the skill description.

    Returns:
        Tuple of (present, valid, error_message)
    """
    if not description:
        return False, False, "Required field 'description' is missing"
    if len(description) > MAX_DESCRIPTION_LENGTH:
        return (
            True,
            False,
            f"Description exceeds {MAX_DESCRIPTION_LENGTH} characters ({len(description)} chars)",
        )
    return True, True, ""


def build_skill_remediation(result: ValidationResult) -> str:
    return compose_remediation(REMEDIATION_BY_CHECK.get(c.name, "") for c in result.failed_checks())


# =============================================================================
# Main Validation Functions
# =============================================================================


def validate_skill_format_from_content(content: str, file_name: str) -> SkillFormatResult:
    """Validate skill content.

    Args:
        content: Full markdown text of the skill
        file_name: Bare file name, used for the prefix rule

    Returns:
        SkillFormatResult with one check per rule
    """
    result = SkillFormatResult(file_path=file_name)
    fields = result.field_validation

    if SKILL_PREFIX_PATTERN.match(file_name):
        result.prefix_violation = True
        result.add_check(
            "filename_prefix", False, "Filename uses invalid 'skill-' prefix. Use {domain}-{description} format."
        )
    else:
        result.add_check("filename_prefix", True, "Filename follows {domain}-{description} convention")

    bundled = [m.group(0) for m in BUNDLED_SKILL_PATTERN.finditer(content)]
    if len(bundled) > 1:
        result.bundled_skills = bundled
        result.add_check(
            "single_skill", False, f"File contains {len(bundled)} bundled skills. One skill per file required."
        )
    else:
        result.add_check("single_skill", True, "File contains at most one skill definition")

    frontmatter, yaml_error = parse_frontmatter(content)
    if not frontmatter.present:
        fields.yaml_syntax_error = yaml_error or FRONTMATTER_MISSING
        result.add_check("frontmatter_present", False, yaml_error or FRONTMATTER_MISSING)
    else:
        result.frontmatter_present = True
        result.frontmatter = frontmatter

        if yaml_error:
            fields.yaml_syntax_error = yaml_error
            result.add_check("yaml_syntax", False, f"YAML syntax error: {yaml_error}")
        else:
            fields.yaml_syntax_valid = True
            result.add_check("yaml_syntax", True, "YAML syntax is valid")

        fields.name_present, fields.name_valid, fields.name_error = validate_name_field(frontmatter.name)
        if not fields.name_present:
            result.add_check("name_required", False, fields.name_error)
        elif not fields.name_valid:
            result.add_check("name_format", False, fields.name_error)
        else:
            result.add_check("name_format", True, f"Name field is valid: {frontmatter.name}")

        (
            fields.description_present,
            fields.description_valid,
            fields.description_error,
        ) = validate_description_field(frontmatter.description)
        if not fields.description_present:
            result.add_check("description_required", False, fields.description_error)
        elif not fields.description_valid:
            result.add_check("description_length", False, fields.description_error)
        else:
            result.add_check(
                "description_length", True, f"Description field is valid ({len(frontmatter.description)} chars)"
            )

    if result.valid:
        result.message = "Skill format validation passed"
    else:
        result.message = "Skill format validation failed"
        result.remediation = build_skill_remediation(result)
    return result


def validate_skill_format(file_path: str | Path) -> SkillFormatResult:
    """Validate a skill file on disk. A missing file fails the file_exists check."""
    path = Path(file_path)
    content = read_text(path)
    if content is None:
        result = SkillFormatResult(file_path=str(path))
        result.add_check("file_exists", False, f"File not found: {path}")
        result.message = "Skill format validation failed"
        result.remediation = "Ensure the file exists at the specified path."
        return result

    result = validate_skill_format_from_content(content, path.name)
    result.file_path = str(path)
    return result


def is_index_file(file_name: str) -> bool:
    """True for domain index files and the root memory index."""
    return (file_name.startswith("skills-") and file_name.endswith("-index.md")) or file_name == "memory-index.md"


def validate_skill_files(file_paths: Iterable[str | Path]) -> list[SkillFormatResult]:
    """Validate specific skill files, skipping non-markdown and index files."""
    results: list[SkillFormatResult] = []
    for file_path in file_paths:
        path = Path(file_path)
        if path.suffix != ".md" or is_index_file(path.name):
            continue
        results.append(validate_skill_format(path))
    return results


def validate_skill_directory(dir_path: str | Path) -> list[SkillFormatResult]:
    """Validate every skill file directly inside a directory, in name order."""
    directory = Path(dir_path)
    if not directory.is_dir():
        return []
    return validate_skill_files(sorted(p for p in directory.iterdir() if p.is_file()))


# =============================================================================
# Schema Validation
# =============================================================================


def get_skill_frontmatter_errors(data: Any, registry: SchemaRegistry | None = None) -> list[ValidationError]:
    """Validate a frontmatter mapping against the skill-frontmatter schema."""
    return get_schema("skill-frontmatter", registry).errors(data)


def validate_skill_frontmatter(data: Any, registry: SchemaRegistry | None = None) -> bool:
    return get_schema("skill-frontmatter", registry).validate(data)
