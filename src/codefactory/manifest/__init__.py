"""Manifest module — generation calls, dependency ordering, persistence."""

from codefactory.manifest.loader import load_manifest, save_manifest
from codefactory.manifest.store import GenerationCall, ManifestStore, execution_order

__all__ = [
    "GenerationCall",
    "ManifestStore",
    "execution_order",
    "load_manifest",
    "save_manifest",
]
