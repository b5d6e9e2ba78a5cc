"""Compile template blocks into extraction rules that reverse rendering.

Each rule is a small grammar fragment: literal anchors taken from the
template (escaped, with whitespace made elastic) around a typed capture
for the parameter being recovered. Parameters whose rule would be
ambiguous or cannot be built are reported in ``RuleSet.unrecoverable``
instead of raising, so callers can degrade to treating the region as
fully custom.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from codefactory.errors import (
    AmbiguousExtractionError,
    CodeFactoryError,
    NotRecoverableError,
)
from codefactory.template.analyzer import (
    CODE,
    FIELD_RE,
    PLACEHOLDER_RE,
    RESERVED,
    STRING_LITERAL,
    THIS_RE,
    LiteralBlock,
    LoopBlock,
    ParamBlock,
    TemplateBlock,
    infer_type,
    quote_span,
)

SCALAR = "scalar"
LOOP_FIELDS = "loop-fields"
LOOP_LINES = "loop-lines"

IDENTIFIER_PATTERN = r"[A-Za-z_$][\w$]*"
NUMBER_PATTERN = r"-?\d+(?:\.\d+)?"
BOOLEAN_PATTERN = r"true|false"
# Loop field values outside quotes stop at statement punctuation
FIELD_PATTERN = r"[^\s;,)]"
# Free-form expressions span at most one line
CODE_PATTERN = r"[^\n]"

BRACKETS = {"{": "}", "(": ")", "[": "]"}


@dataclass(frozen=True)
class ExtractionRule:
    """A compiled matcher for one parameter."""

    param_name: str
    pattern: re.Pattern
    kind: str = SCALAR
    fields: tuple[str, ...] = ()
    field_types: tuple[tuple[str, str], ...] = ()
    value_type: str = "string"
    context: str = ""
    closer: str = ""
    affixes: tuple[str, str] = ("", "")


@dataclass
class RuleSet:
    """Ordered extraction rules plus the parameters that cannot be recovered."""

    rules: list[ExtractionRule] = field(default_factory=list)
    unrecoverable: dict[str, CodeFactoryError] = field(default_factory=dict)

    @property
    def names(self) -> list[str]:
        seen: list[str] = []
        for rule in self.rules:
            if rule.param_name not in seen:
                seen.append(rule.param_name)
        return seen

    def summary(self) -> str:
        lines = [f"Extraction rules: {len(self.rules)} for {len(self.names)} parameter(s)"]
        for name, error in self.unrecoverable.items():
            lines.append(f"  not recoverable: {name}: {error}")
        return "\n".join(lines)


@dataclass
class _Slot:
    key: str
    start: int
    end: int
    grammar: str
    elastic: bool
    span: tuple[str, int] | None = None


# ── Pattern assembly ──────────────────────────────────────────────


def _is_word(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


def _literal(text: str, slot_before: bool, slot_after: bool) -> str:
    """Escape literal text, turning whitespace runs into elastic matchers.

    Whitespace between two word characters must stay (``\\s+``); anywhere
    else it may vanish (``\\s*``). Captures count as word characters.
    """
    parts = re.split(r"(\s+)", text)
    out: list[str] = []
    for i, part in enumerate(parts):
        if not part:
            continue
        if not part.isspace():
            out.append(re.escape(part))
            continue
        left = parts[i - 1][-1:] if i > 0 and parts[i - 1] else ""
        right = parts[i + 1][:1] if i + 1 < len(parts) and parts[i + 1] else ""
        left_word = _is_word(left) if left else slot_before
        right_word = _is_word(right) if right else slot_after
        out.append(r"\s+" if left_word and right_word else r"\s*")
    return "".join(out)


def _group(prefix: str, key: str) -> str:
    return f"{prefix}_{key}"


def _assemble(text: str, slots: list[_Slot], targets: tuple[str, ...], prefix: str) -> str:
    """Build a regex from ``text`` with ``slots`` replaced by captures.

    Target slots become named groups (later repeats become back-references);
    all other slots become non-capturing groups of their own grammar.
    """
    pieces: list[tuple[str, Any]] = []
    pos = 0
    for slot in slots:
        if slot.start > pos:
            pieces.append(("lit", text[pos:slot.start]))
        pieces.append(("slot", slot))
        pos = slot.end
    if pos < len(text):
        pieces.append(("lit", text[pos:]))

    out: list[str] = []
    seen: set[str] = set()
    for i, (kind, value) in enumerate(pieces):
        if kind == "lit":
            before = i > 0 and pieces[i - 1][0] == "slot"
            after = i + 1 < len(pieces) and pieces[i + 1][0] == "slot"
            out.append(_literal(value, before, after))
            continue

        anchored = i + 1 < len(pieces) and pieces[i + 1][0] == "lit"
        grammar = value.grammar
        if value.elastic:
            # Quotes delimit a string literal, so it may be empty
            repeat = "*" if value.span else "+"
            grammar += repeat + "?" if anchored else repeat
        if value.key not in targets:
            out.append(f"(?:{grammar})")
        elif value.key in seen:
            out.append(f"(?P={_group(prefix, value.key)})")
        else:
            seen.add(value.key)
            out.append(f"(?P<{_group(prefix, value.key)}>{grammar})")
    return "".join(out)


def _shape(pattern: str) -> str:
    """Pattern text with group names erased, for comparing literal contexts."""
    shape = re.sub(r"\(\?P<\w+>", "(", pattern)
    return re.sub(r"\(\?P=\w+\)", "(?P=)", shape)


# ── Value grammars ────────────────────────────────────────────────


def _definition_attr(definition: Any, name: str) -> Any:
    if definition is None:
        return None
    if isinstance(definition, Mapping):
        return definition.get(name)
    return getattr(definition, name, None)


def value_grammar(inferred_type: str, quote: str | None, definition: Any = None) -> tuple[str, str, bool]:
    """Return ``(value_type, regex, elastic)`` for a placeholder.

    The parameter definition, when given, refines the inferred type:
    numbers, booleans and enums get exact grammars and a ``pattern``
    constraint is used verbatim (minus anchors).
    """
    ptype = _definition_attr(definition, "type") or ""
    constraint = _definition_attr(definition, "pattern")

    if ptype == "number":
        return "number", NUMBER_PATTERN, False
    if ptype == "boolean":
        return "boolean", BOOLEAN_PATTERN, False
    if ptype.startswith("enum:"):
        values = sorted((v for v in ptype[5:].split("|") if v), key=len, reverse=True)
        return "string", "|".join(re.escape(v) for v in values), False
    if constraint:
        body = constraint[1:] if constraint.startswith("^") else constraint
        body = body[:-1] if body.endswith("$") and not body.endswith("\\$") else body
        return "string", f"(?:{body})", False
    if inferred_type == STRING_LITERAL and quote:
        return "string", f"[^{re.escape(quote)}\\n]", True
    if inferred_type == CODE:
        return "string", CODE_PATTERN, True
    return "string", IDENTIFIER_PATTERN, False


# ── Block compilers ───────────────────────────────────────────────


def _line_slots(line: str, definitions: Mapping[str, Any]) -> list[_Slot]:
    slots = []
    for m in PLACEHOLDER_RE.finditer(line):
        name = m.group(1)
        if name in RESERVED:
            continue
        span = quote_span(line, m.start())
        inferred, quote = infer_type(line, m.start())
        _, grammar, elastic = value_grammar(inferred, quote, definitions.get(name))
        slots.append(_Slot(name, m.start(), m.end(), grammar, elastic, span))
    return slots


def _check_ambiguity(name: str, line: str, slots: list[_Slot]) -> None:
    targets = [s for s in slots if s.key == name]
    for target in targets:
        clashing = []
        for other in slots:
            if other.key == name:
                continue
            if target.span and other.span == target.span:
                clashing.append(other.key)
                continue
            left, right = sorted((target, other), key=lambda s: s.start)
            between = line[left.end:right.start]
            if between == "" or (between.isspace() and (left.elastic or right.elastic)):
                clashing.append(other.key)
        if clashing:
            raise AmbiguousExtractionError([name, *dict.fromkeys(clashing)], line)


def _compile_param(block: ParamBlock, definitions: Mapping[str, Any]) -> ExtractionRule:
    slots = _line_slots(block.line, definitions)
    _check_ambiguity(block.name, block.line, slots)
    value_type, _, _ = value_grammar(block.inferred_type, block.quote, definitions.get(block.name))
    source = _assemble(block.line, slots, (block.name,), "p")
    return ExtractionRule(
        param_name=block.name,
        pattern=re.compile(source),
        kind=SCALAR,
        value_type=value_type,
        context=block.line,
    )


def _field_grammar(field_type: str, span: tuple[str, int] | None) -> tuple[str, bool]:
    if field_type == "number":
        return NUMBER_PATTERN, False
    if field_type == "boolean":
        return BOOLEAN_PATTERN, False
    if span:
        return f"[^{re.escape(span[0])}\\n]", True
    return FIELD_PATTERN, True


def _compile_fields(block: LoopBlock, definitions: Mapping[str, Any]) -> ExtractionRule:
    declared = _definition_attr(definitions.get(block.collection), "fields") or {}
    field_types = {f: declared.get(f, "string") for f in block.fields}
    slots: list[_Slot] = []
    for m in FIELD_RE.finditer(block.body):
        span = quote_span(block.body, m.start())
        grammar, elastic = _field_grammar(field_types[m.group(1)], span)
        slots.append(_Slot(m.group(1), m.start(), m.end(), grammar, elastic, span))
    # Outer-scope placeholders inside the body are matched but not captured
    for slot in _line_slots(block.body, definitions):
        slots.append(slot)
    slots.sort(key=lambda s: s.start)

    for i in range(1, len(slots)):
        if slots[i - 1].end == slots[i].start and slots[i - 1].key != slots[i].key:
            raise AmbiguousExtractionError([block.collection], block.body)

    source = _assemble(block.body, slots, block.fields, "f")
    return ExtractionRule(
        param_name=block.collection,
        pattern=re.compile(source),
        kind=LOOP_FIELDS,
        fields=block.fields,
        field_types=tuple(field_types.items()),
        context=block.body,
    )


def _compile_lines(block: LoopBlock, definitions: Mapping[str, Any]) -> ExtractionRule:
    opener = block.opener
    if not opener or opener[-1] not in BRACKETS:
        raise NotRecoverableError(
            [block.collection],
            "a {{this}} loop must follow a line ending in an opening bracket",
        )
    slots = _line_slots(opener, definitions)
    source = _assemble(opener, slots, (), "o")
    prefix, _, suffix = THIS_RE.sub("\0", block.body).partition("\0")
    return ExtractionRule(
        param_name=block.collection,
        pattern=re.compile(source),
        kind=LOOP_LINES,
        context=opener,
        closer=BRACKETS[opener[-1]],
        affixes=(prefix.strip(), suffix.strip()),
    )


def compile_block(block: TemplateBlock, definition_map: Mapping[str, Any] | None = None) -> ExtractionRule | None:
    """Compile one block into an extraction rule.

    Args:
        block: A block produced by ``analyze``.
        definition_map: Optional parameter definitions by name, used to
            refine value grammars (number, boolean, enum, pattern).

    Returns:
        The rule, or None for a LiteralBlock.

    Raises:
        AmbiguousExtractionError: The parameter shares its literal context
            with another parameter.
        NotRecoverableError: No safe rule can be built for the block.
    """
    definitions = definition_map or {}
    if isinstance(block, LiteralBlock):
        return None
    if isinstance(block, ParamBlock):
        return _compile_param(block, definitions)
    if block.fields:
        return _compile_fields(block, definitions)
    if block.simple:
        return _compile_lines(block, definitions)
    raise NotRecoverableError([block.collection], "loop body references neither {{this}} nor {{this.field}}")


def compile_rules(blocks: list[TemplateBlock], definition_map: Mapping[str, Any] | None = None) -> RuleSet:
    """Compile all blocks, collecting unrecoverable parameters instead of raising."""
    ruleset = RuleSet()
    failures: dict[str, CodeFactoryError] = {}

    for block in blocks:
        try:
            rule = compile_block(block, definition_map)
        except (AmbiguousExtractionError, NotRecoverableError) as e:
            name = block.collection if isinstance(block, LoopBlock) else block.name
            failures.setdefault(name, e)
            continue
        if rule is not None:
            ruleset.rules.append(rule)

    # Different parameters compiled to the same literal context cannot be told apart
    by_shape: dict[tuple[str, str], list[ExtractionRule]] = {}
    for rule in ruleset.rules:
        if rule.kind == SCALAR:
            by_shape.setdefault((rule.kind, _shape(rule.pattern.pattern)), []).append(rule)
    for group in by_shape.values():
        names = list(dict.fromkeys(r.param_name for r in group))
        if len(names) < 2:
            continue
        error = AmbiguousExtractionError(names, group[0].context)
        ruleset.rules = [r for r in ruleset.rules if r not in group]
        for name in names:
            failures.setdefault(name, error)

    recovered = set(ruleset.names)
    for name, error in failures.items():
        if name not in recovered:
            ruleset.unrecoverable[name] = error
    return ruleset
