"""Factory — a named, parameterized template."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Mapping

from codefactory.errors import CodeFactoryError, RenderError
from codefactory.factories.validator import ParamDefinition, validate_params
from codefactory.template.analyzer import TemplateBlock, analyze, template_params
from codefactory.template.compiler import RuleSet, compile_rules
from codefactory.template.render import render


@dataclass
class Factory:
    name: str
    description: str
    template: str
    params: dict[str, ParamDefinition] = field(default_factory=dict)
    output_path: str | None = None
    examples: list[dict[str, Any]] = field(default_factory=list)
    header: str = ""
    footer: str = ""
    source_path: str | None = None

    @cached_property
    def blocks(self) -> list[TemplateBlock]:
        return analyze(self.template)

    @cached_property
    def rules(self) -> RuleSet:
        """Extraction rules for syncing edited output back to parameters."""
        return compile_rules(self.blocks, self.params)

    @property
    def template_params(self) -> list[str]:
        return template_params(self.blocks)

    def resolve_params(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """Validate params against the schema and apply defaults."""
        return validate_params(params, self.params)

    def render(self, params: Mapping[str, Any]) -> str:
        """Render the template body.

        Raises:
            ValidationError: If params violate the schema.
            RenderError: If the template engine fails.
        """
        resolved = self.resolve_params(params)
        try:
            return render(self.template, resolved)
        except CodeFactoryError:
            raise
        except Exception as e:
            raise RenderError(self.name, str(e)) from e

    def render_boilerplate(self, params: Mapping[str, Any]) -> tuple[str, str]:
        """Rendered (header, footer) written once, outside the region, on creation."""
        resolved = self.resolve_params(params)
        try:
            header = render(self.header, resolved) if self.header else ""
            footer = render(self.footer, resolved) if self.footer else ""
        except Exception as e:
            raise RenderError(self.name, f"header/footer: {e}") from e
        return header, footer

    def render_output_path(self, params: Mapping[str, Any]) -> str | None:
        if not self.output_path:
            return None
        try:
            return render(self.output_path, self.resolve_params(params))
        except CodeFactoryError:
            raise
        except Exception as e:
            raise RenderError(self.name, f"outputPath: {e}") from e

    def catalog_entry(self) -> dict[str, Any]:
        """Metadata for listing and inspection."""
        try:
            unrecoverable = sorted(self.rules.unrecoverable)
        except CodeFactoryError:
            unrecoverable = sorted(self.params)
        return {
            "name": self.name,
            "description": self.description,
            "params": {k: v.to_dict() for k, v in self.params.items()},
            "examples": list(self.examples),
            "outputPath": self.output_path,
            "unrecoverable": unrecoverable,
        }
