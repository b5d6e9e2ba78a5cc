"""Producer — build manifest calls into files and sync edited files back.

Build renders each call and writes it into the call's marker region.
Sync reads a region back, recovers the parameters that would have
produced it, and re-renders. For an unedited region the two are
inverse: syncing reproduces the file byte for byte.

Errors for one call or file are recorded in the BuildResult and do not
stop the rest of the batch. Structural manifest errors (cycles, unknown
dependencies) still raise before anything is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from codefactory.errors import (
    CallNotFoundError,
    CodeFactoryError,
    MarkerError,
    NotRecoverableError,
    OutputExistsError,
    ValidationError,
)
from codefactory.factories.factory import Factory
from codefactory.factories.registry import FactoryRegistry
from codefactory.factories.validator import coerce_value
from codefactory.manifest.store import GenerationCall, ManifestStore
from codefactory.markers import (
    MarkerRegion,
    compose,
    comment_prefix,
    find_marked_files,
    find_regions,
    inject_region,
    replace_interior,
)
from codefactory.template.extract import extract

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


@dataclass
class FileResult:
    path: str
    status: str
    call_id: str | None = None


@dataclass
class CallError:
    """A failure scoped to one call or file."""

    call_id: str | None
    message: str
    path: str | None = None
    param: str | None = None

    @classmethod
    def from_exception(cls, error: Exception, call_id: str | None = None, path: str | None = None) -> CallError:
        param = None
        if isinstance(error, ValidationError):
            param = error.param
        elif isinstance(error, NotRecoverableError):
            param = ", ".join(error.params)
        return cls(
            call_id=call_id or getattr(error, "call_id", None),
            message=str(error),
            path=path,
            param=param,
        )

    def __str__(self) -> str:
        where = self.call_id or self.path or "?"
        return f"{where}: {self.message}"


@dataclass
class BuildResult:
    """Outcome of a batch build or sync."""

    files: list[FileResult] = field(default_factory=list)
    errors: list[CallError] = field(default_factory=list)
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    @property
    def written(self) -> list[str]:
        return [f.path for f in self.files if f.status in (CREATED, UPDATED)]

    def count(self, status: str) -> int:
        return sum(1 for f in self.files if f.status == status)

    def summary(self) -> str:
        prefix = "[DRY RUN] " if self.dry_run else ""
        lines = [
            f"{prefix}{len(self.files)} file(s): {self.count(CREATED)} created, "
            f"{self.count(UPDATED)} updated, {self.count(UNCHANGED)} unchanged"
        ]
        for f in self.files:
            label = f" ({f.call_id})" if f.call_id else ""
            lines.append(f"  {f.status:<10} {f.path}{label}")
        if self.errors:
            lines.append(f"ERRORS ({len(self.errors)}):")
            for e in self.errors:
                lines.append(f"  {e}")
        return "\n".join(lines)


class Producer:
    """Orchestrates rendering, region merging and parameter recovery.

    Args:
        registry: Factories available to calls.
        manifest: Manifest for ``build_manifest`` and for resolving
            ``id`` tags during sync. Optional for factory-tagged files.
        marker_attr: Tag attribute written into new regions, "id" or "factory".
        dry_run: Compute results without writing files or touching the manifest.
        root: Directory relative output paths are resolved against.
    """

    def __init__(
        self,
        registry: FactoryRegistry,
        manifest: ManifestStore | None = None,
        marker_attr: str = "id",
        dry_run: bool = False,
        root: Path | str | None = None,
    ) -> None:
        if marker_attr not in ("id", "factory"):
            raise ValueError(f"marker_attr must be 'id' or 'factory', got {marker_attr!r}")
        self.registry = registry
        self.manifest = manifest
        self.marker_attr = marker_attr
        self.dry_run = dry_run
        self.root = Path(root) if root else None

    def _path(self, output_path: str) -> Path:
        path = Path(output_path)
        if self.root and not path.is_absolute():
            return self.root / path
        return path

    def _tag(self, call: GenerationCall) -> str:
        return call.id if self.marker_attr == "id" else call.factory

    # ── Build ─────────────────────────────────────────────────────

    def build_call(self, call: GenerationCall) -> FileResult:
        """Render one call into its output file.

        Raises:
            FactoryNotFoundError, ValidationError, RenderError,
            MissingMarkerError, MarkerError: For this call only.
        """
        factory = self.registry.resolve(call.factory)
        content = factory.render(call.params)
        header, footer = factory.render_boilerplate(call.params)
        path = self._path(call.output_path)
        status = inject_region(
            path, content, self._tag(call), self.marker_attr,
            header=header, footer=footer, dry_run=self.dry_run,
        )
        return FileResult(path=str(path), status=status, call_id=call.id)

    def build(self, calls: Iterable[GenerationCall]) -> BuildResult:
        """Build calls in the given order, isolating per-call failures."""
        result = BuildResult(dry_run=self.dry_run)
        for call in calls:
            try:
                result.files.append(self.build_call(call))
            except (CodeFactoryError, OSError) as e:
                logger.warning("Build failed for %s: %s", call.id, e)
                result.errors.append(
                    CallError.from_exception(e, call_id=call.id, path=str(self._path(call.output_path)))
                )
        logger.info(
            "Built %d call(s): %d written, %d error(s)",
            len(result.files) + len(result.errors), len(result.written), len(result.errors),
        )
        return result

    def build_manifest(self) -> BuildResult:
        """Build every manifest call in dependency order.

        Raises:
            UnknownDependencyError, CircularDependencyError: Before any write.
        """
        if self.manifest is None:
            raise ValueError("Producer has no manifest attached")
        result = self.build(self.manifest.get_execution_order())
        if not self.dry_run:
            self.manifest.touch()
        return result

    def create_file(
        self,
        factory_name: str,
        params: Mapping[str, Any],
        output_path: str | None = None,
        tag: str | None = None,
    ) -> str:
        """Create a new file holding one region.

        Without ``tag`` the region is tagged with the factory name;
        with one it is tagged as a call id.

        Returns:
            The path written.

        Raises:
            OutputExistsError: The path already exists; nothing is written.
        """
        factory = self.registry.resolve(factory_name)
        output_path = output_path or factory.render_output_path(params)
        if not output_path:
            raise ValidationError("outputPath", f"no output path given and '{factory_name}' defines none")

        path = self._path(output_path)
        if path.exists():
            raise OutputExistsError(str(path))

        content = factory.render(params)
        header, footer = factory.render_boilerplate(params)
        attr, value = ("id", tag) if tag else ("factory", factory_name)
        text = compose(content, value, attr, comment_prefix(path), header, footer)
        if not self.dry_run:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text)
        logger.info("Created %s from factory '%s'", path, factory_name)
        return str(path)

    # ── Sync ──────────────────────────────────────────────────────

    def _resolve_region(self, region: MarkerRegion) -> tuple[Factory, GenerationCall | None]:
        if region.attr == "factory":
            return self.registry.resolve(region.tag), None
        if self.manifest is None or region.tag not in self.manifest:
            raise CallNotFoundError(region.tag)
        call = self.manifest.get(region.tag)
        return self.registry.resolve(call.factory), call

    def recover_params(
        self,
        factory: Factory,
        source: str,
        fallback: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Recover the parameters that would render ``source``.

        The region text is authoritative for every parameter the template
        body references; those missing from it fall back to schema
        defaults only. Parameters the body never renders (used only in
        outputPath or header, say) are kept from ``fallback``, the
        manifest call when there is one.

        Raises:
            NotRecoverableError: Template parameters still missing.
            UnsupportedTemplateError: The template cannot be reversed at all.
        """
        ruleset = factory.rules
        recovered = {
            name: coerce_value(value, factory.params.get(name))
            for name, value in extract(source, ruleset.rules).items()
        }

        in_body = set(factory.template_params)
        params = {k: v for k, v in (fallback or {}).items() if k not in in_body}
        params.update(recovered)
        for name, definition in factory.params.items():
            if name not in params and definition.default is not None:
                params[name] = definition.default

        missing = [name for name in factory.template_params if name not in params]
        if missing:
            reasons = [str(ruleset.unrecoverable[n]) for n in missing if n in ruleset.unrecoverable]
            raise NotRecoverableError(missing, "; ".join(reasons) or "no match in region")
        return params

    def sync_file(self, path: Path | str) -> FileResult:
        """Re-render every region of a file from its own current text.

        The file is rewritten in one piece, only after every region has
        been recovered; a failure leaves it untouched. Recovered params of
        ``id``-tagged regions are merged into their manifest calls.

        Raises:
            MarkerError: The file has no regions, or malformed ones.
            CallNotFoundError, FactoryNotFoundError, NotRecoverableError,
            ValidationError, RenderError: For the failing region.
        """
        path = Path(path)
        text = path.read_text()
        regions = find_regions(text, str(path))
        if not regions:
            raise MarkerError(f"No codefactory region found in {path}")

        new_text = text
        updates: list[tuple[str, dict[str, Any]]] = []
        # Back to front so earlier offsets stay valid
        for region in reversed(regions):
            factory, call = self._resolve_region(region)
            params = self.recover_params(
                factory, region.interior(text), call.params if call else None,
            )
            new_text = replace_interior(new_text, region, factory.render(params))
            if call is not None:
                updates.append((call.id, params))

        # Manifest changes are checked before the file is touched
        changed = [
            self.manifest.preview_update(call_id, params=params)
            for call_id, params in reversed(updates)
            if params != self.manifest.get(call_id).params
        ]

        tags = ", ".join(r.tag for r in regions)
        status = UNCHANGED if new_text == text else UPDATED
        if not self.dry_run:
            if status == UPDATED:
                path.write_text(new_text)
            for call in changed:
                self.manifest.update(call.id, params=call.params)
        logger.info("Synced %s (%s): %s", path, tags, status)
        return FileResult(path=str(path), status=status, call_id=tags)

    def sync_all(self, paths: Iterable[Path | str]) -> BuildResult:
        """Sync files, expanding directories to the marked files they contain."""
        result = BuildResult(dry_run=self.dry_run)
        for entry in paths:
            entry = Path(entry)
            targets = find_marked_files(entry) if entry.is_dir() else [entry]
            for target in targets:
                try:
                    result.files.append(self.sync_file(target))
                except (CodeFactoryError, OSError) as e:
                    logger.warning("Sync failed for %s: %s", target, e)
                    result.errors.append(CallError.from_exception(e, path=str(target)))
        return result
