"""Shared pytest fixtures for the validator tests."""

from pathlib import Path

import pytest
from bv_schema import SchemaRegistry

SCHEMA_DIR = Path(__file__).resolve().parent / "fixtures" / "schemas"


@pytest.fixture
def registry() -> SchemaRegistry:
    """A private registry with every fixture schema loaded."""
    reg = SchemaRegistry()
    reg.load_directory(SCHEMA_DIR)
    return reg


@pytest.fixture
def empty_registry() -> SchemaRegistry:
    """A private registry with no schema data."""
    return SchemaRegistry()
