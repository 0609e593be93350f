#!/usr/bin/env python3
"""Tests for bv_schema.py - lazy schema compilation and error normalization."""

import json

import pytest
from bv_schema import KNOWN_SCHEMAS, Schema, SchemaRegistry
from bv_validation_common import SchemaError

PERSON_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["name"],
    "properties": {
        "name": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
}


class TestUnloadedSchema:
    """Schemas without data report a single root error."""

    def test_errors_before_data(self) -> None:
        """Missing data surfaces as constraint 'schema' at the root."""
        errors = Schema("brain-config").errors({})
        assert len(errors) == 1
        assert errors[0].field == ""
        assert errors[0].constraint == "schema"
        assert errors[0].message == "brain config schema data not set"

    def test_data_may_arrive_after_failed_lookup(self) -> None:
        """An early call does not freeze the schema in the unset state."""
        schema = Schema("person")
        assert not schema.validate({"name": "a"})
        schema.set_data(json.dumps(PERSON_SCHEMA))
        assert schema.validate({"name": "a"})

    def test_registry_knows_every_schema(self) -> None:
        """The default registry is seeded with the known names."""
        assert SchemaRegistry().names() == sorted(KNOWN_SCHEMAS)


class TestValidation:
    """validate(x) is true exactly when errors(x) is empty."""

    def test_valid_value(self) -> None:
        """A conforming value has no errors."""
        schema = Schema("person")
        schema.set_data(json.dumps(PERSON_SCHEMA).encode())
        assert schema.errors({"name": "a", "tags": ["x"]}) == []
        assert schema.validate({"name": "a"}) is True

    def test_errors_are_normalized(self) -> None:
        """Field paths are slash-delimited and constraints are keywords."""
        schema = Schema("person")
        schema.set_data(json.dumps(PERSON_SCHEMA))
        errors = schema.errors({"tags": ["ok", 3]})
        by_constraint = {e.constraint: e for e in errors}
        assert set(by_constraint) == {"required", "type"}
        assert by_constraint["required"].field == ""
        assert by_constraint["type"].field == "/tags/1"
        assert schema.validate({"tags": ["ok", 3]}) is False

    def test_yaml_schema_document(self) -> None:
        """Schema data may be YAML."""
        schema = Schema("person")
        schema.set_data("type: object\nrequired: [name]\n")
        assert schema.validate({"name": 1})
        assert not schema.validate({})

    def test_invalid_schema_document(self) -> None:
        """A document that is not a schema reports a compile error."""
        schema = Schema("broken")
        schema.set_data('{"type": 12}')
        errors = schema.errors({})
        assert errors[0].constraint == "schema"
        assert errors[0].message.startswith("failed to compile broken schema")

    def test_errors_from_json_bad_input(self) -> None:
        """Undecodable JSON input uses constraint 'unmarshal'."""
        schema = Schema("person")
        schema.set_data(json.dumps(PERSON_SCHEMA))
        errors = schema.errors_from_json("{not json")
        assert [e.constraint for e in errors] == ["unmarshal"]

    def test_set_data_after_compile_is_ignored(self) -> None:
        """Compiled schemas are immutable."""
        schema = Schema("person")
        schema.set_data(json.dumps(PERSON_SCHEMA))
        assert schema.validate({"name": "a"})
        schema.set_data('{"type": "string"}')
        assert schema.validate({"name": "a"})


class TestParse:
    """Typed parsing through a factory."""

    def test_parse_builds_record(self) -> None:
        """The factory receives the JSON-normalized mapping."""
        schema = Schema("person")
        schema.set_data(json.dumps(PERSON_SCHEMA))
        assert schema.parse({"name": "a", "tags": ["x"]}, lambda d: d["tags"]) == ["x"]

    def test_parse_raises_schema_error(self) -> None:
        """Invalid values raise SchemaError with the normalized errors."""
        schema = Schema("person")
        schema.set_data(json.dumps(PERSON_SCHEMA))
        with pytest.raises(SchemaError) as excinfo:
            schema.parse({}, dict)
        assert excinfo.value.schema_name == "person"
        assert excinfo.value.errors[0].constraint == "required"


class TestRegistry:
    """Per-instance registries are hermetic."""

    def test_registries_are_independent(self, registry: SchemaRegistry, empty_registry: SchemaRegistry) -> None:
        """Loading one registry does not affect another."""
        assert registry.get("skill-frontmatter").loaded
        assert not empty_registry.get("skill-frontmatter").loaded

    def test_load_directory_registers_fixture_schemas(self, registry: SchemaRegistry) -> None:
        """Every fixture schema compiles."""
        for name in ("brain-config", "pr-maintenance-output", "scenario-result", "naming-pattern"):
            assert registry.get(name).loaded
            errors = registry.get(name).errors({})
            assert errors
            assert all(e.constraint != "schema" for e in errors)

    def test_unknown_name_created_on_demand(self) -> None:
        """get() creates schemas for names outside the known set."""
        reg = SchemaRegistry(names=())
        schema = reg.get("custom")
        assert schema.name == "custom"
        assert reg.names() == ["custom"]
