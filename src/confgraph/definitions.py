"""An ordered, name-keyed store of raw definitions."""

import logging
from typing import Iterator

from confgraph.domain import Definition
from confgraph.errors import ConfigurationError

__all__ = ["DefinitionStore"]

logger = logging.getLogger(__name__)


class DefinitionStore:
    """Registry of :class:`Definition` objects keyed by unique name.

    Names are kept in registration order. Re-registering an existing name
    replaces the definition but keeps its original position.

    Example:
        >>> store = DefinitionStore()
        >>> store.register("app", Definition(AppConfig))
        >>> store.names()   # ["app"]
    """

    def __init__(self, allow_overriding: bool = True):
        self._definitions: dict[str, Definition] = {}
        self._aliases: dict[str, str] = {}
        self._allow_overriding = allow_overriding

    def register(self, name: str, definition: Definition):
        """Register a definition under ``name``.

        Raises:
            ConfigurationError: If ``name`` is taken and overriding is disabled.
        """
        existing = self._definitions.get(name)
        if existing is not None:
            if not self._allow_overriding:
                raise ConfigurationError(
                    f"Cannot register definition '{name}': there is already a definition bound"
                )
            logger.debug("Overriding definition '%s' (%s -> %s)", name, existing.origin, definition.origin)
        self._definitions[name] = definition

    def register_alias(self, name: str, alias: str):
        self._aliases[alias] = name

    def remove(self, name: str):
        """Remove the definition bound to ``name`` together with its aliases."""
        del self._definitions[name]
        self._aliases = {alias: target for alias, target in self._aliases.items() if target != name}

    def get(self, name: str) -> Definition:
        return self._definitions[self._aliases.get(name, name)]

    def names(self) -> list[str]:
        return list(self._definitions)

    def count(self) -> int:
        return len(self._definitions)

    def items(self) -> Iterator[tuple[str, Definition]]:
        return iter(list(self._definitions.items()))

    def __contains__(self, name: str) -> bool:
        return name in self._definitions or name in self._aliases

    def __len__(self) -> int:
        return self.count()

    def __repr__(self):
        return f"DefinitionStore({self.names()})"
