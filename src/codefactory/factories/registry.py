"""Registry of available factories.

The registry is an explicit object: construct it, populate it, and pass
it to the Producer. There is no process-wide default instance.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterator

from codefactory.errors import FactoryNotFoundError
from codefactory.factories.factory import Factory
from codefactory.factories.loader import DEFAULT_EXTENSIONS, load_directory

logger = logging.getLogger(__name__)


class FactoryRegistry:
    def __init__(self, factories: list[Factory] | None = None) -> None:
        self._factories: dict[str, Factory] = {}
        for factory in factories or []:
            self.register(factory)

    def register(self, factory: Factory) -> None:
        if factory.name in self._factories:
            raise ValueError(f"Factory '{factory.name}' is already registered")
        self._factories[factory.name] = factory

    def get(self, name: str) -> Factory | None:
        return self._factories.get(name)

    def resolve(self, name: str) -> Factory:
        """Get a factory by name or raise FactoryNotFoundError."""
        factory = self._factories.get(name)
        if factory is None:
            raise FactoryNotFoundError(name)
        return factory

    def list(self) -> list[dict[str, str]]:
        return [{"name": f.name, "description": f.description} for f in self._factories.values()]

    def catalog(self) -> list[dict[str, Any]]:
        return [f.catalog_entry() for f in self._factories.values()]

    def load_directory(
        self,
        path: Path | str,
        extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
        recursive: bool = False,
    ) -> int:
        """Register every template found in a directory; returns the count added."""
        added = 0
        for factory in load_directory(path, extensions, recursive):
            if factory.name in self._factories:
                logger.warning(
                    "Skipping %s: factory '%s' is already registered",
                    factory.source_path, factory.name,
                )
                continue
            self.register(factory)
            added += 1
        logger.debug("Registered %d factories from %s", added, path)
        return added

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def __iter__(self) -> Iterator[Factory]:
        return iter(self._factories.values())

    def __len__(self) -> int:
        return len(self._factories)
