"""Shared test fixtures for codefactory."""

from pathlib import Path

import pytest

from codefactory.factories.registry import FactoryRegistry
from codefactory.manifest.loader import load_manifest

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def registry():
    reg = FactoryRegistry()
    reg.load_directory(FIXTURES / "factories")
    return reg


@pytest.fixture
def manifest():
    return load_manifest(FIXTURES / "manifest-minimal.json")
