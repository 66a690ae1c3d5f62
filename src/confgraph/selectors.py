"""Pluggable import collaborators and the import-directive probe.

An imported reference is one of three things, decided once by
:func:`import_directive_for`:

- a :class:`ImportSelector`, which computes further references to import
  (immediately, or at the end of the pass for a :class:`DeferredImportSelector`),
- an :class:`ImportRegistrar`, which registers definitions directly when the
  unit is materialised,
- anything else, which is resolved as a configuration unit in its own right.

Selectors and registrars are constructed with the shared
:class:`~confgraph.environment.ResolutionContext`.
"""

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence, TypeVar, Union

from confgraph.classifier import order_of
from confgraph.definitions import DefinitionStore
from confgraph.domain import Reference, UnitMetadata
from confgraph.environment import ResolutionContext
from confgraph.errors import UnresolvableReferenceError

__all__ = [
    "ImportSelector",
    "DeferredImportSelector",
    "ImportRegistrar",
    "SelectorImport",
    "RegistrarImport",
    "PlainImport",
    "ImportDirective",
    "import_directive_for",
    "instantiate",
    "declared_priority",
]


class ImportSelector(ABC):
    """Computes references to import, based on the importing class's metadata."""

    def __init__(self, context: ResolutionContext):
        self.context = context

    @abstractmethod
    def select_imports(self, importing: UnitMetadata) -> Sequence[Reference]:
        ...


class DeferredImportSelector(ImportSelector):
    """A selector that runs only after every non-deferred import of the pass.

    Deferred selectors run in ascending ``order``; selectors without an order
    run last.
    """

    order: Optional[int] = None


class ImportRegistrar(ABC):
    """Registers definitions directly into the store when its importer is materialised."""

    def __init__(self, context: ResolutionContext):
        self.context = context

    @abstractmethod
    def register_definitions(self, importing: UnitMetadata, store: DefinitionStore) -> None:
        ...


@dataclass(frozen=True)
class SelectorImport:
    metadata: UnitMetadata
    deferred: bool


@dataclass(frozen=True)
class RegistrarImport:
    metadata: UnitMetadata


@dataclass(frozen=True)
class PlainImport:
    metadata: UnitMetadata


ImportDirective = Union[SelectorImport, RegistrarImport, PlainImport]


def import_directive_for(metadata: UnitMetadata) -> ImportDirective:
    """Probe an imported class for the selector and registrar capabilities."""
    target = metadata.target
    if inspect.isclass(target):
        if issubclass(target, ImportSelector):
            return SelectorImport(metadata, issubclass(target, DeferredImportSelector))
        if issubclass(target, ImportRegistrar):
            return RegistrarImport(metadata)
    return PlainImport(metadata)


T = TypeVar("T")


def instantiate(metadata: UnitMetadata, expected: type[T], context: ResolutionContext) -> T:
    """Construct a selector or registrar with the shared context.

    Raises:
        UnresolvableReferenceError: If the class is abstract or its constructor fails.
            The error carries no unit; the caller names the importing unit.
    """
    target = metadata.target
    if target is None or metadata.is_abstract:
        raise UnresolvableReferenceError(
            f"Cannot instantiate {expected.__name__} [{metadata.identity}]: class is not concrete",
        )
    try:
        return target(context)
    except Exception as ex:
        raise UnresolvableReferenceError(
            f"Failed to instantiate {expected.__name__} [{metadata.identity}]: {ex}",
        ) from ex


def declared_priority(metadata: UnitMetadata, selector: ImportSelector) -> Optional[int]:
    """Priority from an ``order`` annotation on the selector class, else its ``order`` attribute."""
    declared = order_of(metadata)
    if declared is not None:
        return declared
    return getattr(selector, "order", None)
