"""Helpers shared by CLI commands."""

import argparse
import json
from pathlib import Path
from typing import Any

from codefactory.factories.registry import FactoryRegistry
from codefactory.manifest.loader import load_manifest
from codefactory.manifest.store import ManifestStore
from codefactory.paths import factories_dir, manifest_path


def resolve_manifest_path(args: argparse.Namespace) -> Path:
    return Path(args.manifest) if getattr(args, "manifest", None) else manifest_path()


def open_manifest(args: argparse.Namespace) -> ManifestStore:
    return load_manifest(resolve_manifest_path(args))


def open_registry(args: argparse.Namespace) -> FactoryRegistry:
    registry = FactoryRegistry()
    directory = Path(args.factories) if getattr(args, "factories", None) else factories_dir()
    registry.load_directory(directory)
    return registry


def parse_value(raw: str) -> Any:
    """JSON when it parses (numbers, booleans, lists), otherwise the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def parse_params(pairs: list[str] | None) -> dict[str, Any]:
    """Turn repeated ``--param key=value`` flags into a dict."""
    params: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --param '{pair}', expected key=value")
        params[key.strip()] = parse_value(raw)
    return params
