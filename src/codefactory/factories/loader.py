"""Load factory templates (front-matter + Handlebars body) from disk."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from codefactory.errors import CodeFactoryError, FrontmatterError, UnsupportedTemplateError
from codefactory.factories.factory import Factory
from codefactory.factories.validator import ParamDefinition
from codefactory.template.frontmatter import parse_frontmatter

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".hbs", ".template")

# A template copied out of a generated file may still carry region markers
_MARKER_LINE_RE = re.compile(r"^.*@?codefactory:(?:start|end)\b.*(?:\r?\n)?", re.MULTILINE)


def factory_from_text(content: str, source: str = "<string>") -> Factory:
    """Build a Factory from template text with front-matter.

    Raises:
        FrontmatterError: Malformed front-matter or missing name/description.
        ValidationError: A parameter definition is not allowed.
    """
    content = _MARKER_LINE_RE.sub("", content).lstrip()
    meta, body = parse_frontmatter(content, source)

    for required in ("name", "description"):
        if not meta.get(required):
            raise FrontmatterError(source, f"missing required field: {required}")

    raw_params = meta.get("params") or {}
    if not isinstance(raw_params, dict):
        raise FrontmatterError(source, "params must be a mapping")
    params = {name: ParamDefinition.from_dict(name, data) for name, data in raw_params.items()}

    factory = Factory(
        name=str(meta["name"]),
        description=str(meta["description"]),
        template=body,
        params=params,
        output_path=meta.get("outputPath"),
        examples=list(meta.get("examples") or []),
        header=meta.get("header") or "",
        footer=meta.get("footer") or "",
        source_path=None if source == "<string>" else source,
    )
    try:
        factory.blocks
    except UnsupportedTemplateError as e:
        logger.warning("Factory %s cannot be synced: %s", factory.name, e)
    return factory


def load_factory(path: Path | str) -> Factory:
    """Load a single template file.

    Args:
        path: Path to a template file.

    Returns:
        Factory ready to be registered.
    """
    template_path = Path(path)
    return factory_from_text(template_path.read_text(), str(template_path))


def load_directory(
    path: Path | str,
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
    recursive: bool = False,
) -> list[Factory]:
    """Load every template file in a directory.

    Templates that fail to load are logged and skipped. A missing
    directory yields an empty list.
    """
    directory = Path(path)
    if not directory.is_dir():
        logger.debug("Factory directory %s does not exist", directory)
        return []

    candidates = directory.rglob("*") if recursive else directory.iterdir()
    factories = []
    for entry in sorted(candidates):
        if not entry.is_file() or not entry.name.endswith(extensions):
            continue
        try:
            factories.append(load_factory(entry))
        except (CodeFactoryError, OSError) as e:
            logger.warning("Failed to load template %s: %s", entry.name, e)
    return factories
