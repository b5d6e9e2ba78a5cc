"""Project path resolution.

Resolves where the manifest and factory templates live. Uses environment
variables when available, falls back to conventional defaults.

Environment variables:
    CODEFACTORY_ROOT — project root (default: current directory)
    CODEFACTORY_MANIFEST — manifest file (default: <root>/codefactory.manifest.json)
    CODEFACTORY_FACTORIES_DIR — template directory (default: <root>/factories)
    CODEFACTORY_MARKER_ATTR — region tag attribute, "id" or "factory" (default: id)
"""

from __future__ import annotations

import os
from pathlib import Path

MANIFEST_FILENAME = "codefactory.manifest.json"
MARKER_ATTRS = ("id", "factory")


def project_root() -> Path:
    """Return the project root directory."""
    return Path(os.environ.get("CODEFACTORY_ROOT", "."))


def manifest_path() -> Path:
    """Return the path to the manifest file."""
    env = os.environ.get("CODEFACTORY_MANIFEST")
    if env:
        return Path(env)
    return project_root() / MANIFEST_FILENAME


def factories_dir() -> Path:
    """Return the directory holding factory templates."""
    env = os.environ.get("CODEFACTORY_FACTORIES_DIR")
    if env:
        return Path(env)
    return project_root() / "factories"


def marker_attr() -> str:
    """Return the configured region tag attribute."""
    attr = os.environ.get("CODEFACTORY_MARKER_ATTR", "id")
    if attr not in MARKER_ATTRS:
        raise ValueError(f"CODEFACTORY_MARKER_ATTR must be one of {MARKER_ATTRS}, got {attr!r}")
    return attr
