"""Handlebars rendering for factory templates (pybars3).

Generated code must not be HTML-escaped ("() => void" must not become
"() &#x3D;&gt; void"), so plain ``{{expr}}`` tags are rewritten to the
raw ``{{{expr}}}`` form before compilation. Booleans render as the
``true``/``false`` literals most target languages expect.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Mapping

# {{expr}} that is not a block, closing, partial, comment, or already raw tag
_ESCAPED_TAG_RE = re.compile(r"(?<!\{)\{\{(?![{#/^!>&~])\s*([^{}]+?)\s*\}\}(?!\})")


class _Flag(int):
    """A boolean that keeps truthiness for {{#if}} but prints as true/false."""

    def __str__(self) -> str:
        return "true" if self else "false"

    __repr__ = __str__


def unescape_tags(template: str) -> str:
    """Rewrite escaped ``{{expr}}`` output tags to raw ``{{{expr}}}``."""
    def _raw(m: re.Match) -> str:
        expr = m.group(1)
        if expr == "else":
            return m.group(0)
        return "{{{" + expr + "}}}"

    return _ESCAPED_TAG_RE.sub(_raw, template)


def _context(value: Any) -> Any:
    if isinstance(value, bool):
        return _Flag(value)
    if isinstance(value, Mapping):
        return {k: _context(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_context(v) for v in value]
    return value


@lru_cache(maxsize=256)
def compile_template(template: str):
    """Compile a template once; returns the pybars callable."""
    from pybars import Compiler

    return Compiler().compile(unescape_tags(template))


def render(template: str, params: Mapping[str, Any]) -> str:
    """Render a Handlebars template with the given parameters.

    Args:
        template: Handlebars source.
        params: Parameter values (ParamValue union).

    Returns:
        Rendered text.
    """
    compiled = compile_template(template)
    output = compiled(_context(dict(params)))
    # Older pybars releases return a strlist of fragments
    return output if isinstance(output, str) else "".join(output)
