"""Turning resolved units into concrete definitions.

The materializer registers a definition for every imported unit and every
bean method, loads definitions from imported resources, and hands the store
to registrars. Units whose ``REGISTER_BEAN`` conditions fail, or whose
importers were all skipped, contribute nothing.
"""

import logging
from typing import Callable, Mapping, Optional, Protocol, Sequence

from confgraph.classifier import CONFIGURATION_KIND_ATTRIBUTE
from confgraph.conditions import ConditionEvaluator
from confgraph.definitions import DefinitionStore
from confgraph.domain import BeanMethod, ConfigurationPhase, Definition
from confgraph.environment import ResourceLoader
from confgraph.errors import ConfigurationError, MalformedDirectiveError
from confgraph.import_registry import ImportRegistry
from confgraph.unit import ConfigurationUnit

__all__ = ["Materializer", "DefinitionMaterializer", "ResourceDefinitionReader", "MappingDefinitionReader"]

logger = logging.getLogger(__name__)

ResourceDefinitionReader = Callable[[str, DefinitionStore], int]
"""Loads the definitions at a location into a store, returning how many were registered."""


class Materializer(Protocol):
    def materialize(self, units: Sequence[ConfigurationUnit]) -> None:
        ...


class MappingDefinitionReader:
    """Read ``name: pkg.module:Class`` entries from a properties, JSON, TOML or YAML resource."""

    def __init__(self, resource_loader: ResourceLoader):
        self._resource_loader = resource_loader

    def __call__(self, location: str, store: DefinitionStore) -> int:
        entries = self._resource_loader.load(location)
        for name, target in entries.items():
            store.register(name, Definition(str(target), origin="resource"))
        return len(entries)


class DefinitionMaterializer:
    """Register definitions for resolved units.

    Args:
        store: The store definitions are registered in.
        condition_evaluator: Evaluates ``REGISTER_BEAN`` conditions.
        import_registry: Import edges; edges from skipped units are removed.
        resource_readers: Readers for imported resources, keyed by the reader
            name given in :func:`~confgraph.annotations.import_resource`.
            The ``"default"`` reader is used when no name is given.
    """

    def __init__(
        self,
        store: DefinitionStore,
        condition_evaluator: ConditionEvaluator,
        import_registry: ImportRegistry,
        resource_readers: Optional[Mapping[str, ResourceDefinitionReader]] = None,
    ):
        self._store = store
        self._condition_evaluator = condition_evaluator
        self._import_registry = import_registry
        self._resource_readers = dict(resource_readers or {})
        self._known_units: dict[str, ConfigurationUnit] = {}
        self._skipped: dict[str, bool] = {}

    def materialize(self, units: Sequence[ConfigurationUnit]) -> None:
        for unit in units:
            self._known_units[unit.identity] = unit
        for unit in units:
            try:
                self._materialize_unit(unit)
            except ConfigurationError as ex:
                if ex.unit is None:
                    ex.unit = unit.identity
                raise
            except Exception as ex:
                raise ConfigurationError(
                    f"Failed to materialize configuration unit [{unit.identity}]: {ex}", unit.identity
                ) from ex

    def _materialize_unit(self, unit: ConfigurationUnit):
        if self._should_skip(unit):
            if unit.definition_name is not None and unit.definition_name in self._store:
                self._store.remove(unit.definition_name)
            self._import_registry.remove_imports_from(unit.identity)
            logger.debug("Skipping definitions of %s: conditions did not match", unit.identity)
            return

        if unit.is_imported:
            self._register_imported_unit(unit)
        for bean_method in unit.bean_methods:
            self._register_bean_method(unit, bean_method)
        self._load_imported_resources(unit)
        for registrar, importing in unit.registrars:
            registrar.register_definitions(importing, self._store)

    def _should_skip(self, unit: ConfigurationUnit) -> bool:
        skip = self._skipped.get(unit.identity)
        if skip is not None:
            return skip

        self._skipped[unit.identity] = False
        skip = False
        if unit.is_imported:
            importers = [self._known_units.get(identity) for identity in unit.imported_by]
            skip = all(importer is not None and self._should_skip(importer) for importer in importers)
        if not skip:
            skip = self._condition_evaluator.should_skip(unit.metadata, ConfigurationPhase.REGISTER_BEAN)
        self._skipped[unit.identity] = skip
        return skip

    def _register_imported_unit(self, unit: ConfigurationUnit):
        name = unit.identity
        self._store.register(
            name,
            Definition(
                unit.metadata.target if unit.metadata.target is not None else unit.identity,
                origin="import",
                attributes={CONFIGURATION_KIND_ATTRIBUTE: unit.kind},
            ),
        )
        unit.definition_name = name
        logger.debug("Registered definition '%s' for imported unit", name)

    def _register_bean_method(self, unit: ConfigurationUnit, bean_method: BeanMethod):
        method = bean_method.metadata
        if self._condition_evaluator.should_skip(method, ConfigurationPhase.REGISTER_BEAN):
            return

        name = bean_method.bean_name
        if name in self._store and self._is_overridden_by_existing(name, unit):
            logger.debug(
                "Skipping bean method %s.%s: a definition named '%s' already exists",
                unit.simple_name,
                method.name,
                name,
            )
            return

        self._store.register(
            name,
            Definition(
                None,
                factory_method=method.name,
                factory_unit=unit.identity,
                origin="bean-method",
                attributes={"static": method.is_static},
            ),
        )
        for alias in bean_method.aliases:
            self._store.register_alias(name, alias)

    def _is_overridden_by_existing(self, name: str, unit: ConfigurationUnit) -> bool:
        existing = self._store.get(name)
        if existing.origin == "bean-method":
            return existing.factory_unit == unit.identity
        # scanned definitions may be replaced by bean methods, anything else was declared explicitly
        return existing.origin != "scan"

    def _load_imported_resources(self, unit: ConfigurationUnit):
        for location, reader_name in unit.imported_resources.items():
            reader = self._resource_readers.get(reader_name or "default")
            if reader is None:
                raise ConfigurationError(
                    f"No resource reader named '{reader_name or 'default'}' for [{location}]", unit.identity
                )
            try:
                count = reader(location, self._store)
            except (OSError, ValueError) as ex:
                raise MalformedDirectiveError(
                    f"Failed to import definitions from [{location}]: {ex}", unit.identity
                ) from ex
            logger.debug("Loaded %d definitions from %s", count, location)