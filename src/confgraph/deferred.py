"""Queue of deferred import selectors for a single pass."""

from dataclasses import dataclass
from typing import Optional

from confgraph.selectors import DeferredImportSelector
from confgraph.unit import ConfigurationUnit

__all__ = ["DeferredImportEntry", "DeferredImportQueue"]


@dataclass(frozen=True)
class DeferredImportEntry:
    """A deferred selector waiting to run on behalf of the unit that imported it."""

    unit: ConfigurationUnit
    selector: DeferredImportSelector
    priority: Optional[int]
    sequence: int


class DeferredImportQueue:
    """Collects deferred selectors during a pass and hands them back in priority order."""

    def __init__(self):
        self._entries: list[DeferredImportEntry] = []

    def enqueue(
        self, unit: ConfigurationUnit, selector: DeferredImportSelector, priority: Optional[int]
    ):
        self._entries.append(DeferredImportEntry(unit, selector, priority, len(self._entries)))

    def drain(self) -> list[DeferredImportEntry]:
        """Remove and return all entries, lowest priority value first.

        Entries without a priority come last; ties keep encounter order.
        """
        entries, self._entries = self._entries, []
        return sorted(
            entries,
            key=lambda entry: (entry.priority is None, entry.priority or 0, entry.sequence),
        )

    def __len__(self) -> int:
        return len(self._entries)
