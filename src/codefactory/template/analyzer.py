"""Template analysis — split a Handlebars template into ordered blocks.

Detects:
- Simple placeholders: {{paramName}}
- Loop blocks: {{#each collection}} ... {{/each}}
- Loop item structure: {{this.field}} references, or a bare {{this}}

Only one level of {{#each}} is supported. A nested loop is reported as
UnsupportedTemplateError rather than silently mis-bound.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from codefactory.errors import UnsupportedTemplateError

STRING_LITERAL = "string-literal"
IDENTIFIER = "identifier"
CODE = "code"

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_]\w*)\s*\}\}")
EACH_OPEN_RE = re.compile(r"\{\{#each\s+([A-Za-z_]\w*)\s*\}\}")
EACH_CLOSE = "{{/each}}"
FIELD_RE = re.compile(r"\{\{\s*this\.([A-Za-z_]\w*)\s*\}\}")
THIS_RE = re.compile(r"\{\{\s*this\s*\}\}")

# Handlebars words that look like placeholders but are not parameters
RESERVED = {"this", "else"}

QUOTES = ("'", '"', "`")

# Placeholder forming the whole right-hand side of an assignment or return
_EXPR_BEFORE_RE = re.compile(r"(?:[^=!<>]=>?|\breturn)\s*$")
_EXPR_AFTER_RE = re.compile(r"\s*;?\s*$")


@dataclass(frozen=True)
class LiteralBlock:
    text: str


@dataclass(frozen=True)
class ParamBlock:
    name: str
    line: str
    inferred_type: str = IDENTIFIER
    quote: str | None = None


@dataclass(frozen=True)
class LoopBlock:
    collection: str
    body: str
    fields: tuple[str, ...] = ()
    simple: bool = False
    opener: str = ""


TemplateBlock = LiteralBlock | ParamBlock | LoopBlock


def quote_span(line: str, pos: int) -> tuple[str, int] | None:
    """Return ``(quote, opened_at)`` for the string literal enclosing ``pos``.

    A quote is open when an odd number of unescaped occurrences of it
    precede ``pos``. Quotes of another kind inside an open literal are
    ordinary characters.
    """
    open_quote: str | None = None
    opened_at = -1
    i = 0
    while i < pos:
        ch = line[i]
        if ch == "\\":
            i += 2
            continue
        if open_quote is None and ch in QUOTES:
            open_quote, opened_at = ch, i
        elif ch == open_quote:
            open_quote = None
        i += 1
    return (open_quote, opened_at) if open_quote else None


def enclosing_quote(line: str, pos: int) -> str | None:
    span = quote_span(line, pos)
    return span[0] if span else None


def infer_type(line: str, pos: int) -> tuple[str, str | None]:
    """Infer the value grammar of the placeholder starting at ``pos``."""
    quote = enclosing_quote(line, pos)
    if quote:
        return STRING_LITERAL, quote
    m = PLACEHOLDER_RE.match(line, pos)
    if m and _EXPR_BEFORE_RE.search(line[:pos]) and _EXPR_AFTER_RE.fullmatch(line[m.end():]):
        return CODE, None
    # Type-annotation context (``name: {{type}}``) and bare placeholders
    # are both identifiers.
    return IDENTIFIER, None


def placeholders(line: str) -> list[re.Match]:
    """Parameter placeholders on a line, excluding Handlebars keywords."""
    return [m for m in PLACEHOLDER_RE.finditer(line) if m.group(1) not in RESERVED]


def _loop_fields(body: str) -> tuple[str, ...]:
    seen: list[str] = []
    for m in FIELD_RE.finditer(body):
        if m.group(1) not in seen:
            seen.append(m.group(1))
    return tuple(seen)


def _param_blocks(line: str) -> list[ParamBlock]:
    stripped = line.strip()
    blocks: list[ParamBlock] = []
    seen: set[str] = set()
    for m in placeholders(stripped):
        name = m.group(1)
        if name in seen:
            continue
        seen.add(name)
        inferred, quote = infer_type(stripped, m.start())
        blocks.append(ParamBlock(name=name, line=stripped, inferred_type=inferred, quote=quote))
    return blocks


def analyze(template: str) -> list[TemplateBlock]:
    """Analyze a template and return its blocks in template order.

    Args:
        template: Handlebars template body.

    Returns:
        Ordered list of LiteralBlock, ParamBlock and LoopBlock.

    Raises:
        UnsupportedTemplateError: On nested or unterminated loops.
    """
    blocks: list[TemplateBlock] = []
    lines = template.split("\n")
    previous = ""

    i = 0
    while i < len(lines):
        line = lines[i]
        each = EACH_OPEN_RE.search(line)
        if each:
            collection = each.group(1)
            opener = line[: each.start()].strip() or previous
            rest = line[each.end():]
            if EACH_CLOSE in rest:
                body = rest[: rest.index(EACH_CLOSE)]
            else:
                body_lines = [rest] if rest.strip() else []
                i += 1
                while i < len(lines) and EACH_CLOSE not in lines[i]:
                    if EACH_OPEN_RE.search(lines[i]):
                        raise UnsupportedTemplateError(
                            f"Nested {{{{#each}}}} inside '{collection}' loop (line {i + 1})"
                        )
                    body_lines.append(lines[i])
                    i += 1
                if i >= len(lines):
                    raise UnsupportedTemplateError(f"Unterminated {{{{#each {collection}}}}} loop")
                tail = lines[i][: lines[i].index(EACH_CLOSE)]
                if tail.strip():
                    body_lines.append(tail)
                body = "\n".join(body_lines)
            if EACH_OPEN_RE.search(body):
                raise UnsupportedTemplateError(f"Nested {{{{#each}}}} inside '{collection}' loop")

            body = body.strip()
            fields = _loop_fields(body)
            blocks.append(LoopBlock(
                collection=collection,
                body=body,
                fields=fields,
                simple=not fields and bool(THIS_RE.search(body)),
                opener=opener,
            ))
            previous = lines[i].strip()
            i += 1
            continue

        params = _param_blocks(line)
        if params:
            blocks.extend(params)
        else:
            blocks.append(LiteralBlock(text=line))
        if line.strip():
            previous = line.strip()
        i += 1

    return blocks


def template_params(blocks: list[TemplateBlock]) -> list[str]:
    """Distinct parameter names referenced by the blocks, in first-seen order."""
    names: list[str] = []
    for block in blocks:
        name = block.name if isinstance(block, ParamBlock) else (
            block.collection if isinstance(block, LoopBlock) else None
        )
        if name and name not in names:
            names.append(name)
    return names
