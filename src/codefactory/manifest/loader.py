"""Load and save codefactory.manifest.json."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from codefactory.errors import ManifestFormatError
from codefactory.manifest.store import ManifestStore
from codefactory.paths import manifest_path

logger = logging.getLogger(__name__)


def load_manifest(path: Path | str | None = None) -> ManifestStore:
    """Load the manifest from disk.

    A missing file is not an error: it yields an empty manifest.

    Args:
        path: Path to the manifest file. Defaults to ``paths.manifest_path()``.

    Returns:
        Populated ManifestStore.

    Raises:
        ManifestFormatError: The file is not a valid manifest document.
    """
    path = Path(path) if path else manifest_path()
    if not path.exists():
        logger.debug("No manifest at %s, starting empty", path)
        return ManifestStore()

    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ManifestFormatError(f"{path}: invalid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("factories", []), list):
        raise ManifestFormatError(f"{path}: expected an object with a 'factories' list")
    try:
        return ManifestStore.from_dict(data)
    except (KeyError, TypeError, AttributeError) as e:
        raise ManifestFormatError(f"{path}: malformed generation call: {e}") from e


def save_manifest(store: ManifestStore, path: Path | str | None = None) -> None:
    """Write the manifest back to disk with consistent formatting.

    Args:
        store: Manifest to write.
        path: Path to write to. Defaults to ``paths.manifest_path()``.
    """
    path = Path(path) if path else manifest_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(store.to_dict(), f, indent=2)
        f.write("\n")
