"""Error taxonomy for template analysis, extraction, manifests, and builds."""

from __future__ import annotations


class CodeFactoryError(Exception):
    """Base error for all codefactory failures."""


class ValidationError(CodeFactoryError):
    """A parameter value or definition was rejected."""

    def __init__(self, param: str, message: str) -> None:
        super().__init__(f"Parameter '{param}': {message}")
        self.param = param


# ── Manifest ──────────────────────────────────────────────────────


class ManifestError(CodeFactoryError):
    """Structural manifest violation. Raised before any mutation."""


class ManifestFormatError(ManifestError):
    """The persisted manifest document is malformed."""


class DuplicateIdError(ManifestError):
    def __init__(self, call_id: str) -> None:
        super().__init__(f"Generation call '{call_id}' already exists in manifest")
        self.call_id = call_id


class UnknownDependencyError(ManifestError):
    def __init__(self, call_id: str, dependency: str) -> None:
        super().__init__(f"Dependency '{dependency}' of '{call_id}' not found in manifest")
        self.call_id = call_id
        self.dependency = dependency


class SelfDependencyError(ManifestError):
    def __init__(self, call_id: str) -> None:
        super().__init__(f"Generation call '{call_id}' cannot depend on itself")
        self.call_id = call_id


class CircularDependencyError(ManifestError):
    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"Circular dependency: {' -> '.join(cycle)}")
        self.cycle = cycle


class DependentsExistError(ManifestError):
    def __init__(self, call_id: str, dependents: list[str]) -> None:
        super().__init__(
            f"Cannot remove '{call_id}' - other calls depend on it: {', '.join(dependents)}"
        )
        self.call_id = call_id
        self.dependents = dependents


class CallNotFoundError(ManifestError, KeyError):
    def __init__(self, call_id: str) -> None:
        super().__init__(f"Generation call '{call_id}' not found in manifest")
        self.call_id = call_id

    def __str__(self) -> str:
        return self.args[0]


# ── Markers and files ─────────────────────────────────────────────


class MarkerError(CodeFactoryError):
    """A marker region is malformed (unterminated, nested, or orphaned)."""


class MissingMarkerError(CodeFactoryError):
    def __init__(self, path: str, tag: str) -> None:
        super().__init__(
            f"{path} exists but has no codefactory region for '{tag}'; refusing to overwrite"
        )
        self.path = path
        self.tag = tag


class OutputExistsError(CodeFactoryError, FileExistsError):
    def __init__(self, path: str) -> None:
        super().__init__(f"File already exists: {path}. Use sync to update it.")
        self.path = path

    def __str__(self) -> str:
        return self.args[0]


# ── Templates and extraction ──────────────────────────────────────


class UnsupportedTemplateError(CodeFactoryError):
    """The template uses a construct the analyzer cannot reverse."""


class AmbiguousExtractionError(CodeFactoryError):
    def __init__(self, params: list[str], context: str) -> None:
        super().__init__(
            f"Parameters {', '.join(repr(p) for p in params)} share one textual context: {context!r}"
        )
        self.params = params
        self.context = context


class NotRecoverableError(CodeFactoryError):
    def __init__(self, params: list[str], reason: str = "") -> None:
        message = f"Cannot recover parameter(s): {', '.join(params)}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)
        self.params = params
        self.reason = reason


class FrontmatterError(CodeFactoryError):
    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


# ── Factories ─────────────────────────────────────────────────────


class FactoryNotFoundError(CodeFactoryError, LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Factory '{name}' not found in registry")
        self.name = name


class RenderError(CodeFactoryError):
    def __init__(self, factory: str, message: str) -> None:
        super().__init__(f"Factory '{factory}' failed to render: {message}")
        self.factory = factory
