#!/usr/bin/env python3
"""
Brain Validation - Schema Validator Adapter

Wraps JSON Schema documents (Draft 2020-12 unless the document declares
another ``$schema``) behind a small per-schema interface:

    registry = SchemaRegistry()
    registry.set_data("brain-config", schema_bytes)
    schema = registry.get("brain-config")
    schema.validate(value)          # -> bool
    schema.errors(value)            # -> list[ValidationError]
    schema.parse(value, factory)    # -> typed record or SchemaError

Each schema compiles exactly once, on first use, under a lock. Using a schema
whose data was never provided reports a single ``schema`` error instead of
raising. ``DEFAULT_REGISTRY`` is the process-wide pool used when a validator
is not handed an explicit registry.

Requires: jsonschema >= 4.21.0 (for Draft 2020-12 support)
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, TypeVar

import yaml
from bv_validation_common import SchemaError, ValidationError
from jsonschema import Draft202012Validator
from jsonschema import exceptions as jsonschema_exceptions
from jsonschema.validators import validator_for

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Known schema names, each compiled under "<name>.schema.json"
KNOWN_SCHEMAS = (
    "brain-config",
    "skill-frontmatter",
    "slash-command-frontmatter",
    "memory-index-entry",
    "naming-pattern",
    "scenario-result",
    "skill-violation",
    "session-protocol",
    "pr-maintenance-output",
)

SCHEMA_FILE_SUFFIXES = (".schema.json", ".schema.yaml", ".schema.yml")


# =============================================================================
# Error Normalization
# =============================================================================


def normalize_error(error: jsonschema_exceptions.ValidationError) -> ValidationError:
    """Convert one jsonschema error into the normalized ValidationError shape."""
    path = [str(p) for p in error.absolute_path]
    return ValidationError(
        field="/" + "/".join(path) if path else "",
        constraint=str(error.validator) if error.validator else "unknown",
        message=error.message,
    )


def flatten_errors(errors: Iterable[jsonschema_exceptions.ValidationError]) -> list[ValidationError]:
    """Walk an error tree depth-first, emitting every node including sub-errors.

    Top-level errors are ordered by instance path so output is stable.
    """
    result: list[ValidationError] = []

    def visit(error: jsonschema_exceptions.ValidationError) -> None:
        result.append(normalize_error(error))
        for child in error.context or ():
            visit(child)

    for error in sorted(errors, key=lambda e: [str(p) for p in e.absolute_path]):
        visit(error)
    return result


def load_schema_document(data: bytes | str) -> Any:
    """Decode schema bytes as JSON, falling back to YAML for authored documents."""
    text = data.decode("utf-8") if isinstance(data, bytes) else data
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return yaml.safe_load(text)


# =============================================================================
# Schema
# =============================================================================


class Schema:
    """One named schema: raw data, lazily compiled validator, error adapter."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.display_name = name.replace("-", " ")
        self.resource_name = f"{name}.schema.json"
        self._data: bytes | str | None = None
        self._validator: Any = None
        self._compile_error = ""
        self._compiled = False
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._data is not None

    def set_data(self, data: bytes | str) -> None:
        """Provide the schema document. Ignored once the schema has compiled."""
        with self._lock:
            if self._compiled:
                logger.warning("Schema %s already compiled; new data ignored", self.resource_name)
                return
            self._data = data

    def _get_validator(self) -> tuple[Any, str]:
        with self._lock:
            if self._compiled:
                return self._validator, self._compile_error
            if self._data is None:
                # Not compiled yet: data may still arrive later
                return None, f"{self.display_name} schema data not set"

            self._compiled = True
            try:
                document = load_schema_document(self._data)
                if not isinstance(document, (dict, bool)):
                    raise jsonschema_exceptions.SchemaError(f"schema document must be an object, got {type(document).__name__}")
                cls = validator_for(document, default=Draft202012Validator)
                cls.check_schema(document)
                self._validator = cls(document)
                logger.debug("Compiled schema %s with %s", self.resource_name, cls.__name__)
            except (yaml.YAMLError, UnicodeDecodeError, jsonschema_exceptions.SchemaError) as e:
                self._compile_error = f"failed to compile {self.display_name} schema: {e}"
                logger.warning(self._compile_error)
            return self._validator, self._compile_error

    def errors(self, value: Any) -> list[ValidationError]:
        """Return every normalized error for value; empty when it validates."""
        validator, problem = self._get_validator()
        if problem:
            return [ValidationError(field="", constraint="schema", message=problem)]
        return flatten_errors(validator.iter_errors(value))

    def validate(self, value: Any) -> bool:
        return not self.errors(value)

    def errors_from_json(self, text: str | bytes) -> list[ValidationError]:
        """Decode a JSON document and validate it; decode failures use constraint "unmarshal"."""
        try:
            value = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return [ValidationError(field="", constraint="unmarshal", message=str(e))]
        return self.errors(value)

    def parse(self, value: Any, factory: Callable[[dict[str, Any]], T]) -> T:
        """Validate value, re-serialize it through JSON and build a typed record.

        Args:
            value: Decoded document (mapping)
            factory: Builds the record from the JSON-normalized mapping and
                applies literal defaults

        Returns:
            The record returned by factory

        Raises:
            SchemaError: If the value fails validation or cannot be serialized
        """
        errors = self.errors(value)
        if errors:
            raise SchemaError(self.display_name, errors)
        try:
            normalized = json.loads(json.dumps(value))
        except (TypeError, ValueError) as e:
            raise SchemaError(self.display_name, [ValidationError(field="", constraint="marshal", message=str(e))]) from e
        if not isinstance(normalized, dict):
            raise SchemaError(
                self.display_name,
                [ValidationError(field="", constraint="unmarshal", message="expected a JSON object")],
            )
        return factory(normalized)


# =============================================================================
# Registry
# =============================================================================


class SchemaRegistry:
    """Named collection of schemas. Unknown names are created on first access."""

    def __init__(self, names: Iterable[str] = KNOWN_SCHEMAS) -> None:
        self._schemas: dict[str, Schema] = {name: Schema(name) for name in names}
        self._lock = threading.Lock()

    def get(self, name: str) -> Schema:
        with self._lock:
            schema = self._schemas.get(name)
            if schema is None:
                schema = Schema(name)
                self._schemas[name] = schema
            return schema

    def set_data(self, name: str, data: bytes | str) -> None:
        self.get(name).set_data(data)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._schemas)

    def load_directory(self, directory: str | Path) -> list[str]:
        """Register every ``<name>.schema.json`` (or .yaml) file in a directory.

        Returns:
            Sorted names of the schemas that were registered
        """
        loaded: list[str] = []
        for path in sorted(Path(directory).iterdir()):
            for suffix in SCHEMA_FILE_SUFFIXES:
                if path.is_file() and path.name.endswith(suffix):
                    name = path.name[: -len(suffix)]
                    self.set_data(name, path.read_bytes())
                    loaded.append(name)
                    break
        return loaded


DEFAULT_REGISTRY = SchemaRegistry()


def set_schema_data(name: str, data: bytes | str) -> None:
    """Provide schema bytes to the process-wide registry."""
    DEFAULT_REGISTRY.set_data(name, data)


def get_schema(name: str, registry: SchemaRegistry | None = None) -> Schema:
    return (registry or DEFAULT_REGISTRY).get(name)
