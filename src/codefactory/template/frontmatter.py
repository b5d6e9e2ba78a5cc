"""Parse front-matter metadata from template files.

Two formats are supported:

    ---                      /*---
    name: my_factory         {"name": "my_factory"}
    ---                      ---*/
    template body            template body

Content without front-matter yields an empty metadata dict and the
original text as body.
"""

from __future__ import annotations

import json
import re

import yaml

from codefactory.errors import FrontmatterError

_YAML_RE = re.compile(r"^---\r?\n([\s\S]*?)\r?\n---\r?\n([\s\S]*)$")
_JSON_RE = re.compile(r"^/\*---\r?\n([\s\S]*?)\r?\n---\*/\r?\n([\s\S]*)$")


def parse_frontmatter(content: str, source: str = "<string>") -> tuple[dict, str]:
    """Split content into parsed front-matter and body.

    Args:
        content: Full template file text.
        source: Name used in error messages.

    Returns:
        (metadata, body) tuple. The body has leading whitespace removed.

    Raises:
        FrontmatterError: If the metadata block is malformed or not a mapping.
    """
    match = _YAML_RE.match(content)
    if match:
        try:
            data = yaml.safe_load(match.group(1))
        except yaml.YAMLError as e:
            raise FrontmatterError(source, f"Failed to parse YAML front-matter: {e}") from e
        return _as_mapping(data, source), match.group(2).lstrip()

    match = _JSON_RE.match(content)
    if match:
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError as e:
            raise FrontmatterError(source, f"Failed to parse JSON front-matter: {e}") from e
        return _as_mapping(data, source), match.group(2).lstrip()

    return {}, content


def has_frontmatter(content: str) -> bool:
    return content.startswith(("---", "/*---"))


def _as_mapping(data: object, source: str) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise FrontmatterError(source, "front-matter is not a mapping")
    return data
