"""Factories module — factory definitions, registry, template loading, validation."""

from codefactory.factories.factory import Factory
from codefactory.factories.loader import factory_from_text, load_directory, load_factory
from codefactory.factories.registry import FactoryRegistry
from codefactory.factories.validator import (
    ParamDefinition,
    ValidationResult,
    validate_manifest,
    validate_params,
)

__all__ = [
    "Factory",
    "FactoryRegistry",
    "ParamDefinition",
    "ValidationResult",
    "factory_from_text",
    "load_directory",
    "load_factory",
    "validate_manifest",
    "validate_params",
]
