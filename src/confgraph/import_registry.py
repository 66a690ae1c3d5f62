"""Tracking which units are being expanded and who imported whom.

The :class:`ImportStack` is both the stack of units currently mid-expansion,
used to detect circular imports, and the ledger of import edges, which
downstream consumers can query to find the class that imported a unit.
"""

from collections import defaultdict
from typing import Optional

from confgraph.domain import UnitMetadata
from confgraph.unit import ConfigurationUnit

__all__ = ["ImportRegistry", "ImportStack"]


class ImportRegistry:
    """Read-side view of recorded import edges."""

    def __init__(self):
        self._imports: dict[str, list[UnitMetadata]] = defaultdict(list)

    def register_import(self, importing: UnitMetadata, imported_identity: str):
        self._imports[imported_identity].append(importing)

    def importing_unit_for(self, imported_identity: str) -> Optional[UnitMetadata]:
        """The most recently recorded importer of ``imported_identity``, if any."""
        importers = self._imports.get(imported_identity)
        return importers[-1] if importers else None

    def remove_imports_from(self, importing_identity: str):
        """Forget the edges recorded from ``importing_identity``."""
        for importers in self._imports.values():
            for index, importer in enumerate(importers):
                if importer.identity == importing_identity:
                    del importers[index]
                    break

    def imported_identities(self) -> list[str]:
        return [identity for identity, importers in self._imports.items() if importers]


class ImportStack(ImportRegistry):
    """Stack of units mid-expansion, doubling as the import ledger."""

    def __init__(self):
        super().__init__()
        self._stack: list[ConfigurationUnit] = []

    def push(self, unit: ConfigurationUnit):
        self._stack.append(unit)

    def pop(self) -> ConfigurationUnit:
        return self._stack.pop()

    def peek(self) -> Optional[ConfigurationUnit]:
        return self._stack[-1] if self._stack else None

    def contains(self, unit: ConfigurationUnit) -> bool:
        return any(entry.identity == unit.identity for entry in self._stack)

    def chain(self) -> tuple[str, ...]:
        return tuple(unit.identity for unit in self._stack)

    def __len__(self) -> int:
        return len(self._stack)

    def __str__(self):
        return "[" + "->".join(unit.simple_name for unit in self._stack) + "]"
