"""Parameter validation — keep factory parameters data, not code.

Parameter types are restricted to a closed set:

    string, number, boolean, string[], number[], boolean[], record[],
    enum:value1|value2|...

``record[]`` is a list of flat records (string keys, primitive values),
the shape consumed by ``{{#each}}`` loops over ``{{this.field}}``.
Anything else (functions, classes, free-form objects) is rejected.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping

from codefactory.errors import CodeFactoryError, ValidationError

if TYPE_CHECKING:
    from codefactory.factories.registry import FactoryRegistry
    from codefactory.manifest.store import ManifestStore

logger = logging.getLogger(__name__)

ALLOWED_PARAM_TYPES = {
    "string",
    "number",
    "boolean",
    "string[]",
    "number[]",
    "boolean[]",
    "record[]",
}
RECORD_FIELD_TYPES = ("string", "number", "boolean")

# Names that usually mean a code abstraction is being smuggled in
SUSPICIOUS_PARAM_NAMES = [
    "body",
    "content",
    "code",
    "implementation",
    "logic",
    "function",
    "method",
    "callback",
    "handler",
    "template",
    "jsx",
    "html",
    "render",
    "component",
]

# string[] parameters with these names tend to carry "label: string" syntax
CODE_LIKE_ARRAY_NAMES = [
    "props", "properties", "params", "parameters",
    "arguments", "args", "fields", "members",
    "attributes", "signals", "methods", "functions",
]
DATA_SUFFIXES = ("Names", "Types", "Values", "Defaults")

SUSPICIOUS_MAX_LENGTH = 200

PRIMITIVES = (str, int, float, bool)


@dataclass
class ParamDefinition:
    """Schema entry for one factory parameter."""

    type: str = "string"
    description: str = ""
    required: bool = True
    default: Any = None
    max_length: int | None = None
    pattern: str | None = None
    fields: dict[str, str] | None = None

    @property
    def enum_values(self) -> list[str]:
        if not self.type.startswith("enum:"):
            return []
        return [v for v in self.type[5:].split("|") if v]

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any] | None) -> ParamDefinition:
        """Build a definition from front-matter and validate it."""
        data = data or {}
        if not isinstance(data, Mapping):
            raise ValidationError(name, "definition must be a mapping")
        definition = cls(
            type=str(data.get("type", "string")),
            description=str(data.get("description", "")),
            required=bool(data.get("required", "default" not in data)),
            default=data.get("default"),
            max_length=data.get("maxLength", data.get("max_length")),
            pattern=data.get("pattern"),
            fields=data.get("fields"),
        )
        validate_param_definition(name, definition)
        return definition

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, "required": self.required}
        if self.description:
            out["description"] = self.description
        if self.default is not None:
            out["default"] = self.default
        if self.max_length is not None:
            out["maxLength"] = self.max_length
        if self.pattern:
            out["pattern"] = self.pattern
        if self.fields:
            out["fields"] = dict(self.fields)
        return out


@dataclass
class ValidationResult:
    """Result of a manifest validation run."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_calls: int = 0

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        lines = [f"Manifest Validation: {self.total_calls} call(s) checked"]
        if self.errors:
            lines.append(f"ERRORS ({len(self.errors)}):")
            for e in self.errors:
                lines.append(f"  {e}")
        if self.warnings:
            lines.append(f"WARNINGS ({len(self.warnings)}):")
            for w in self.warnings:
                lines.append(f"  {w}")
        if self.passed and not self.warnings:
            lines.append("All checks passed.")
        return "\n".join(lines)


# ── Definitions ───────────────────────────────────────────────────


def is_allowed_param_type(type_: str) -> bool:
    """Check a type string against the closed set.

    >>> is_allowed_param_type("enum:left|center|right")
    True
    >>> is_allowed_param_type("Function")
    False
    """
    if type_ in ALLOWED_PARAM_TYPES:
        return True
    if type_.startswith("enum:"):
        return any(v for v in type_[5:].split("|"))
    return False


def is_suspicious_param_name(name: str) -> bool:
    lower = name.lower()
    return any(lower == s or lower.endswith(s) for s in SUSPICIOUS_PARAM_NAMES)


def validate_param_definition(name: str, definition: ParamDefinition) -> None:
    """Validate one parameter definition.

    Raises ValidationError for a disallowed type, an invalid regex or a
    malformed maxLength. Suspicious configurations are logged, not raised.
    """
    if not is_allowed_param_type(definition.type):
        raise ValidationError(
            name,
            f"Type '{definition.type}' not allowed. Use primitives only: "
            f"{', '.join(sorted(ALLOWED_PARAM_TYPES))}, or enum:value1|value2|...",
        )

    if definition.max_length is not None:
        if isinstance(definition.max_length, bool) or not isinstance(definition.max_length, int):
            raise ValidationError(name, f"maxLength must be an integer, got {definition.max_length!r}")
        if definition.max_length > SUSPICIOUS_MAX_LENGTH:
            logger.warning(
                "Parameter '%s' maxLength=%d is suspiciously large; this might be a code abstraction",
                name, definition.max_length,
            )

    if definition.pattern:
        try:
            re.compile(definition.pattern)
        except re.error as e:
            raise ValidationError(name, f"Invalid regex pattern {definition.pattern!r}: {e}") from e

    if definition.fields is not None:
        if definition.type != "record[]":
            raise ValidationError(name, "fields can only be declared for record[] parameters")
        if not isinstance(definition.fields, Mapping):
            raise ValidationError(name, "fields must map field names to types")
        for field_name, field_type in definition.fields.items():
            if field_type not in RECORD_FIELD_TYPES:
                raise ValidationError(
                    f"{name}.{field_name}",
                    f"field type must be one of {', '.join(RECORD_FIELD_TYPES)}, got {field_type!r}",
                )

    if is_suspicious_param_name(name):
        logger.warning(
            "Parameter '%s' might be a code abstraction; consider boolean flags or enums instead",
            name,
        )

    if definition.type == "string[]":
        lower = name.lower()
        code_like = any(lower == n or lower.endswith(n) for n in CODE_LIKE_ARRAY_NAMES)
        if code_like and not name.endswith(DATA_SUFFIXES):
            logger.warning(
                "Parameter '%s' (string[]) likely carries code syntax; "
                "prefer parallel %sNames / %sTypes arrays",
                name, name, name,
            )

    if definition.default is not None:
        check_value_type(name, definition.default, definition)


# ── Values ────────────────────────────────────────────────────────


def validate_param_value(name: str, value: Any) -> None:
    """Check that a value belongs to the ParamValue union.

    Accepts str, int, float, bool, lists of ParamValue and mappings with
    string keys. Rejects None, callables, bytes and arbitrary objects.
    """
    if isinstance(value, PRIMITIVES):
        return
    if isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            validate_param_value(f"{name}[{i}]", item)
        return
    if isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationError(name, f"mapping keys must be strings, got {key!r}")
            validate_param_value(f"{name}.{key}", item)
        return
    raise ValidationError(name, f"{type(value).__name__} is not an allowed parameter value")


def _is_type(value: Any, base: str) -> bool:
    if base == "string":
        return isinstance(value, str)
    if base == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if base == "boolean":
        return isinstance(value, bool)
    return False


def check_value_type(name: str, value: Any, definition: ParamDefinition) -> None:
    """Check a value against its definition (type, enum, maxLength, pattern)."""
    validate_param_value(name, value)
    ptype = definition.type

    if definition.enum_values:
        if value not in definition.enum_values:
            raise ValidationError(
                name, f"'{value}' is not one of {', '.join(definition.enum_values)}"
            )
        return

    if ptype == "record[]":
        if not isinstance(value, (list, tuple)):
            raise ValidationError(name, f"expected a list of records, got {type(value).__name__}")
        for i, record in enumerate(value):
            if not isinstance(record, Mapping) or not all(
                isinstance(v, PRIMITIVES) for v in record.values()
            ):
                raise ValidationError(f"{name}[{i}]", "records must map names to primitive values")
            for field_name, field_type in (definition.fields or {}).items():
                if field_name in record and not _is_type(record[field_name], field_type):
                    raise ValidationError(
                        f"{name}[{i}].{field_name}",
                        f"expected {field_type}, got {type(record[field_name]).__name__}",
                    )
        return

    if ptype.endswith("[]"):
        base = ptype[:-2]
        if not isinstance(value, (list, tuple)):
            raise ValidationError(name, f"expected {ptype}, got {type(value).__name__}")
        for i, item in enumerate(value):
            if not _is_type(item, base):
                raise ValidationError(f"{name}[{i}]", f"expected {base}, got {type(item).__name__}")
        return

    if not _is_type(value, ptype):
        raise ValidationError(name, f"expected {ptype}, got {type(value).__name__}")

    if ptype == "string":
        if definition.max_length is not None and len(value) > definition.max_length:
            raise ValidationError(name, f"length {len(value)} exceeds maxLength {definition.max_length}")
        if definition.pattern and not re.search(definition.pattern, value):
            raise ValidationError(name, f"'{value}' does not match pattern {definition.pattern!r}")


def coerce_value(value: Any, definition: ParamDefinition | None) -> Any:
    """Convert extracted text back to the declared type where unambiguous."""
    if definition is None:
        return value
    ptype = definition.type
    if ptype.endswith("[]") and ptype != "record[]" and isinstance(value, list):
        item = ParamDefinition(type=ptype[:-2])
        return [coerce_value(v, item) for v in value]
    if not isinstance(value, str):
        return value
    if ptype == "number":
        try:
            return int(value) if re.fullmatch(r"-?\d+", value) else float(value)
        except ValueError:
            return value
    if ptype == "boolean" and value in ("true", "false"):
        return value == "true"
    return value


def validate_params(
    params: Mapping[str, Any],
    definitions: Mapping[str, ParamDefinition],
) -> dict[str, Any]:
    """Validate parameters against a schema and fill in defaults.

    Parameters without a definition are still checked against the
    ParamValue union.

    Returns:
        New dict with defaults applied.

    Raises:
        ValidationError: On the first invalid or missing parameter.
    """
    resolved: dict[str, Any] = {}
    for name, definition in definitions.items():
        if name in params:
            check_value_type(name, params[name], definition)
            resolved[name] = params[name]
        elif definition.default is not None:
            resolved[name] = definition.default
        elif definition.required:
            raise ValidationError(name, "required parameter is missing")

    for name, value in params.items():
        if name not in definitions:
            validate_param_value(name, value)
            resolved[name] = value
    return resolved


# ── Manifest ──────────────────────────────────────────────────────


def validate_manifest(store: ManifestStore, registry: FactoryRegistry) -> ValidationResult:
    """Run full validation of a manifest against a factory registry.

    Checks:
    - Every call names a registered factory
    - Call parameters satisfy the factory's schema
    - Dependencies exist, are not self-references, and form a DAG
    - Output paths shared by several calls (warning)
    - Factories whose templates cannot recover every parameter (warning)

    Args:
        store: Loaded manifest.
        registry: Populated factory registry.

    Returns:
        ValidationResult with errors and warnings.
    """
    result = ValidationResult()
    ids = {call.id for call in store.list()}
    outputs: dict[str, str] = {}

    for call in store.list():
        result.total_calls += 1

        factory = registry.get(call.factory)
        if factory is None:
            result.errors.append(f"{call.id}: unknown factory '{call.factory}'")
        else:
            try:
                validate_params(call.params, factory.params)
            except ValidationError as e:
                result.errors.append(f"{call.id}: {e}")
            try:
                missing = factory.rules.unrecoverable
            except CodeFactoryError as e:
                result.warnings.append(f"{call.id}: factory '{call.factory}' cannot be synced: {e}")
                missing = {}
            if missing:
                result.warnings.append(
                    f"{call.id}: factory '{call.factory}' cannot recover {', '.join(missing)} on sync"
                )

        for dep in call.depends_on:
            if dep == call.id:
                result.errors.append(f"{call.id}: depends on itself")
            elif dep not in ids:
                result.errors.append(f"{call.id}: dependency '{dep}' not found in manifest")

        if call.output_path in outputs:
            result.warnings.append(
                f"{call.id}: output '{call.output_path}' also written by '{outputs[call.output_path]}'"
            )
        outputs.setdefault(call.output_path, call.id)

    if result.passed:
        try:
            store.get_execution_order()
        except CodeFactoryError as e:
            result.errors.append(str(e))

    return result
