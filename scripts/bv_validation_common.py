#!/usr/bin/env python3
"""
Brain Validation - Common Module

Shared validation infrastructure for every repository-convention validator.
This module contains:
- Result types (Check, ValidationResult, ValidationError)
- Exceptions raised at the seams (SchemaError, ConfigError)
- Common constants (name and description limits)
- Utility functions (remediation composition, truncation, config loading)

All individual validators import from this module so their results share one
envelope and serialize the same way.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml

logger = logging.getLogger(__name__)

# =============================================================================
# Common Constants
# =============================================================================

# Skill and command names: lowercase letters, digits and hyphens only
NAME_PATTERN = re.compile(r"^[a-z0-9-]{1,64}$")

MAX_NAME_LENGTH = 64
MAX_DESCRIPTION_LENGTH = 1024

# Directory names never descended into during repository walks
SKIP_DIRS = frozenset({".git", "node_modules"})


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class Check:
    """One named rule evaluated by a validator.

    Attributes:
        name: Stable identifier of the rule (e.g. "name_format")
        passed: Whether the rule held
        message: Human-readable outcome
        blocking: False for warning-only rules, which never affect validity
    """

    name: str
    passed: bool
    message: str = ""
    blocking: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"name": self.name, "passed": self.passed, "message": self.message}
        if not self.blocking:
            result["blocking"] = False
        return result


@dataclass
class ValidationResult:
    """Universal result envelope returned by every validator.

    ``valid`` is derived from the checks: it is true exactly when no blocking
    check failed. Validators extend this class with their own detail fields
    and override ``to_dict`` to add them.
    """

    message: str = ""
    remediation: str = ""
    checks: list[Check] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return all(check.passed for check in self.checks if check.blocking)

    def add_check(self, name: str, passed: bool, message: str = "", blocking: bool = True) -> Check:
        """Append a check and return it."""
        check = Check(name=name, passed=passed, message=message, blocking=blocking)
        self.checks.append(check)
        return check

    def add_warning(self, name: str, passed: bool, message: str = "") -> Check:
        """Append a warning-only check and return it."""
        return self.add_check(name, passed, message, blocking=False)

    def failed_checks(self) -> list[Check]:
        """Blocking checks that did not pass, in emission order."""
        return [c for c in self.checks if c.blocking and not c.passed]

    def warnings(self) -> list[Check]:
        """Warning-only checks that did not pass, in emission order."""
        return [c for c in self.checks if not c.blocking and not c.passed]

    def get_check(self, name: str) -> Check | None:
        """Return the first check with the given name, if any."""
        for check in self.checks:
            if check.name == name:
                return check
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "valid": self.valid,
            "message": self.message,
            "remediation": self.remediation,
            "checks": [c.to_dict() for c in self.checks],
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert result to JSON string.

        Args:
            indent: JSON indentation level (default 2)

        Returns:
            JSON string representation of the result
        """
        return json.dumps(self.to_dict(), indent=indent)


@dataclass
class RuleResult:
    """Outcome of one sub-rule: pass flag plus human-readable issues.

    Sub-rule results are detail records; validators turn them into Checks.
    """

    passed: bool = True
    issues: list[str] = field(default_factory=list)

    def fail(self, issue: str) -> None:
        self.passed = False
        self.issues.append(issue)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"passed": self.passed}
        if self.issues:
            result["issues"] = list(self.issues)
        return result


@dataclass
class ValidationError:
    """Normalized shape of a schema or input-decoding failure.

    Attributes:
        field: Slash-delimited path from the document root ("" at the root)
        constraint: Keyword or stage that failed ("required", "marshal", ...)
        message: Human-readable description
    """

    field: str
    constraint: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "constraint": self.constraint, "message": self.message}

    def __str__(self) -> str:
        location = self.field or "(root)"
        return f"{location}: {self.message}"


# =============================================================================
# Exceptions
# =============================================================================


class SchemaError(Exception):
    """Raised when a value cannot be parsed into a typed record by a schema."""

    def __init__(self, schema_name: str, errors: list[ValidationError]) -> None:
        self.schema_name = schema_name
        self.errors = errors
        details = "; ".join(str(e) for e in errors) or "unknown error"
        super().__init__(f"{schema_name} validation failed: {details}")


class ConfigError(ValueError):
    """Raised when a configuration file cannot be read or has the wrong shape."""


# =============================================================================
# Utility Functions
# =============================================================================


def dedupe(items: Iterable[str]) -> list[str]:
    """Remove duplicates while preserving first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result


def compose_remediation(items: Iterable[str], prefix: str = "", suffix: str = "", separator: str = "; ") -> str:
    """Build a deterministic remediation string from failure descriptions.

    Args:
        items: Remediation fragments or failing check names, in emission order
        prefix: Text placed before the joined fragments
        suffix: Text placed after the joined fragments
        separator: Join string between fragments

    Returns:
        The composed remediation, or "" when there is nothing to fix
    """
    unique = dedupe(items)
    if not unique:
        return ""
    return f"{prefix}{separator.join(unique)}{suffix}"


def failed_check_names(checks: Iterable[Check]) -> list[str]:
    """Names of blocking checks that failed, deduplicated in order."""
    return dedupe(c.name for c in checks if c.blocking and not c.passed)


def truncate(text: str, max_len: int, ellipsis: str = "...") -> str:
    """Shorten text to max_len characters followed by an ellipsis."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + ellipsis


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load a YAML or JSON configuration file into a mapping.

    Args:
        path: Path to the configuration file

    Returns:
        Parsed mapping (empty for an empty document)

    Raises:
        ConfigError: If the file cannot be read, does not parse, or is not a mapping
    """
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {config_path}: {e}") from e

    if data is None:
        logger.debug("Config file %s is empty, using defaults", config_path)
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping, got {type(data).__name__}")
    return data
