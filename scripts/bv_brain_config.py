#!/usr/bin/env python3
"""
Brain Validation - Brain Config

Typed record for the Brain configuration file. Raw data is validated by the
brain-config schema, normalized through JSON, then literal defaults are
applied to the optional sections.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from bv_schema import SchemaRegistry, get_schema
from bv_validation_common import ValidationError, load_config_file

DEFAULT_SCHEMA_URL = "https://brain.dev/schemas/config-v2.json"
DEFAULT_VERSION = "2.0.0"
DEFAULT_MEMORIES_LOCATION = "~/memories"
DEFAULT_SYNC_DELAY_MS = 500
DEFAULT_WATCHER_DEBOUNCE_MS = 2000


class MemoriesMode(StrEnum):
    DEFAULT = "DEFAULT"
    CODE = "CODE"
    CUSTOM = "CUSTOM"


class LogLevel(StrEnum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


# =============================================================================
# Records
# =============================================================================


@dataclass
class ProjectConfig:
    code_path: str
    memories_path: str | None = None
    memories_mode: MemoriesMode | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectConfig:
        mode = data.get("memories_mode")
        return cls(
            code_path=data.get("code_path", ""),
            memories_path=data.get("memories_path"),
            memories_mode=MemoriesMode(mode) if mode else None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"code_path": self.code_path}
        if self.memories_path is not None:
            result["memories_path"] = self.memories_path
        if self.memories_mode is not None:
            result["memories_mode"] = str(self.memories_mode)
        return result


@dataclass
class BrainConfig:
    version: str = DEFAULT_VERSION
    schema: str | None = DEFAULT_SCHEMA_URL
    memories_location: str = DEFAULT_MEMORIES_LOCATION
    memories_mode: MemoriesMode | None = MemoriesMode.DEFAULT
    projects: dict[str, ProjectConfig] | None = field(default_factory=dict)
    sync_enabled: bool = True
    sync_delay_ms: int = DEFAULT_SYNC_DELAY_MS
    log_level: LogLevel | None = LogLevel.INFO
    watcher_enabled: bool = True
    watcher_debounce_ms: int = DEFAULT_WATCHER_DEBOUNCE_MS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BrainConfig:
        """Build a record from JSON-shaped data without applying defaults.

        Missing sections become zero values (False, 0, None) so that
        apply_defaults can tell them apart from explicit settings.
        """
        defaults = data.get("defaults") or {}
        sync = data.get("sync") or {}
        logging_section = data.get("logging") or {}
        watcher = data.get("watcher") or {}
        projects = data.get("projects")
        mode = defaults.get("memories_mode")
        level = logging_section.get("level")
        return cls(
            version=data.get("version", ""),
            schema=data.get("$schema"),
            memories_location=defaults.get("memories_location", ""),
            memories_mode=MemoriesMode(mode) if mode else None,
            projects=(
                {name: ProjectConfig.from_dict(p) for name, p in projects.items()} if projects is not None else None
            ),
            sync_enabled=bool(sync.get("enabled", False)),
            sync_delay_ms=int(sync.get("delay_ms", 0)),
            log_level=LogLevel(level) if level else None,
            watcher_enabled=bool(watcher.get("enabled", False)),
            watcher_debounce_ms=int(watcher.get("debounce_ms", 0)),
        )

    def apply_defaults(self) -> BrainConfig:
        """Fill optional sections left at their zero values; returns self."""
        if self.projects is None:
            self.projects = {}
        if self.memories_mode is None:
            self.memories_mode = MemoriesMode.DEFAULT
        if not self.sync_enabled and self.sync_delay_ms == 0:
            self.sync_enabled = True
            self.sync_delay_ms = DEFAULT_SYNC_DELAY_MS
        if self.log_level is None:
            self.log_level = LogLevel.INFO
        if not self.watcher_enabled and self.watcher_debounce_ms == 0:
            self.watcher_enabled = True
            self.watcher_debounce_ms = DEFAULT_WATCHER_DEBOUNCE_MS
        return self

    def to_dict(self) -> dict[str, Any]:
        """Marshal form, with the same keys the schema describes."""
        result: dict[str, Any] = {}
        if self.schema is not None:
            result["$schema"] = self.schema
        result["version"] = self.version
        result["defaults"] = {
            "memories_location": self.memories_location,
            "memories_mode": str(self.memories_mode) if self.memories_mode else "",
        }
        result["projects"] = {name: p.to_dict() for name, p in (self.projects or {}).items()}
        result["sync"] = {"enabled": self.sync_enabled, "delay_ms": self.sync_delay_ms}
        result["logging"] = {"level": str(self.log_level) if self.log_level else ""}
        result["watcher"] = {"enabled": self.watcher_enabled, "debounce_ms": self.watcher_debounce_ms}
        return result

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


def default_brain_config() -> BrainConfig:
    return BrainConfig()


# =============================================================================
# Schema Validation
# =============================================================================


def get_brain_config_errors(data: Any, registry: SchemaRegistry | None = None) -> list[ValidationError]:
    return get_schema("brain-config", registry).errors(data)


def validate_brain_config(data: Any, registry: SchemaRegistry | None = None) -> bool:
    return not get_brain_config_errors(data, registry)


def parse_brain_config(data: Any, registry: SchemaRegistry | None = None) -> BrainConfig:
    """Validate data and build a BrainConfig with defaults applied.

    Raises:
        SchemaError: If data does not match the brain-config schema
    """
    return get_schema("brain-config", registry).parse(data, lambda d: BrainConfig.from_dict(d).apply_defaults())


def load_brain_config(path: str | Path, registry: SchemaRegistry | None = None) -> BrainConfig:
    """Read a JSON (or YAML) config file and parse it.

    Raises:
        ConfigError: If the file cannot be read or is not a mapping
        SchemaError: If the content does not match the schema
    """
    return parse_brain_config(load_config_file(path), registry)
