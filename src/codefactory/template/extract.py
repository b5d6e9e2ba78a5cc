"""Recover a parameter map from generated (and possibly edited) source text."""

from __future__ import annotations

import re
from typing import Any

from codefactory.template.compiler import LOOP_FIELDS, LOOP_LINES, SCALAR, ExtractionRule

_INT_RE = re.compile(r"-?\d+")


def _convert(raw: str, value_type: str) -> Any:
    if value_type == "number":
        return int(raw) if _INT_RE.fullmatch(raw) else float(raw)
    if value_type == "boolean":
        return raw == "true"
    return raw


def _scalar(rule: ExtractionRule, source: str) -> Any:
    match = rule.pattern.search(source)
    if not match:
        return None
    return _convert(match.group(f"p_{rule.param_name}"), rule.value_type)


def _records(rule: ExtractionRule, source: str) -> list[dict[str, Any]]:
    types = dict(rule.field_types)
    return [
        {f: _convert(match.group(f"f_{f}").strip(), types.get(f, "string")) for f in rule.fields}
        for match in rule.pattern.finditer(source)
    ]


def _balanced(source: str, start: int, opener: str, closer: str) -> str | None:
    """Text from ``start`` up to the bracket closing an already-open ``opener``."""
    depth = 1
    for i in range(start, len(source)):
        ch = source[i]
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return source[start:i]
    return None


def _lines(rule: ExtractionRule, source: str) -> list[str]:
    match = rule.pattern.search(source)
    if not match:
        return []
    inner = _balanced(source, match.end(), rule.context[-1], rule.closer)
    if inner is None:
        return []

    prefix, suffix = rule.affixes
    items = []
    for line in inner.split("\n"):
        item = line.strip()
        if not item:
            continue
        if suffix and item.endswith(suffix):
            item = item[: -len(suffix)]
        elif item.endswith((";", ",")):
            item = item[:-1]
        if prefix and item.startswith(prefix):
            item = item[len(prefix):]
        item = item.strip()
        if item:
            items.append(item)
    return items


_APPLY = {
    SCALAR: _scalar,
    LOOP_FIELDS: _records,
    LOOP_LINES: _lines,
}


def extract(source: str, rules: list[ExtractionRule]) -> dict[str, Any]:
    """Apply extraction rules to source text.

    The first rule that yields a value for a parameter wins; later rules
    for the same name are skipped. Scalar rules without a match are left
    out of the result. Loop rules always yield a list, possibly empty,
    in order of appearance in ``source``.

    Args:
        source: Generated text, usually the interior of a marker region.
        rules: Rules in template order, from ``compile_rules``.

    Returns:
        Mapping of parameter name to recovered value.
    """
    result: dict[str, Any] = {}
    for i, rule in enumerate(rules):
        if rule.param_name in result:
            continue
        value = _APPLY[rule.kind](rule, source)
        if value is None:
            continue
        # An empty loop defers to a later rule for the same name, if any
        if value == [] and any(r.param_name == rule.param_name for r in rules[i + 1:]):
            continue
        result[rule.param_name] = value
    return result
