"""Resolving configuration units into their full closure.

This module provides the core of the framework. Starting from root
candidates, each configuration unit is expanded depth first: nested member
units, property sources, component scans, imports, resource imports, bean
methods and finally its superclasses, which are folded into the same unit.

Imports are expanded through three kinds of reference (see
:mod:`confgraph.selectors`). Deferred selectors are queued and run once the
whole batch of candidates has been expanded. Circular imports are detected
with the import stack before a unit is expanded a second time.

A resolver keeps its registry of units across passes of the
:class:`~confgraph.processor.ConfigurationProcessor`, so a unit resolved in an
earlier pass is still known when later passes import it.
"""

import logging
from typing import Iterable, Optional, Sequence

from confgraph.annotations import (
    BEAN,
    COMPONENT_SCAN,
    IMPORT,
    IMPORT_RESOURCE,
    PROPERTY_SOURCE,
    Annotation,
    is_library_identity,
)
from confgraph.classifier import check_candidate, is_candidate
from confgraph.conditions import ConditionEvaluator
from confgraph.deferred import DeferredImportQueue
from confgraph.domain import (
    BeanMethod,
    ConfigurationPhase,
    Definition,
    MethodMetadata,
    Reference,
    UnitMetadata,
    identity_of,
)
from confgraph.environment import CompositePropertySource, PropertySource, ResolutionContext
from confgraph.errors import ConfigurationError, MalformedDirectiveError, StructuralCycleError
from confgraph.import_registry import ImportStack
from confgraph.metadata import MetadataReader
from confgraph.problems import Problem, ProblemReporter
from confgraph.scanning import ScanDirectiveHandler
from confgraph.selectors import (
    ImportRegistrar,
    ImportSelector,
    PlainImport,
    RegistrarImport,
    SelectorImport,
    declared_priority,
    import_directive_for,
    instantiate,
)
from confgraph.unit import ConfigurationUnit

__all__ = ["ConfigurationGraphResolver"]

logger = logging.getLogger(__name__)


class ConfigurationGraphResolver:
    """Expand candidate definitions into a registry of :class:`ConfigurationUnit`.

    Args:
        reader: Source of class metadata.
        problem_reporter: Receives circular-import and malformed-directive problems.
        context: Shared collaborators handed to selectors and registrars.
        condition_evaluator: Decides which units and scans are skipped.
        scan_handler: Handles :func:`~confgraph.annotations.component_scan` directives.
        deferred_imports: Whether deferred selectors are queued until the end of
            a pass. When False they run as soon as they are imported.
    """

    def __init__(
        self,
        reader: MetadataReader,
        problem_reporter: ProblemReporter,
        context: ResolutionContext,
        condition_evaluator: ConditionEvaluator,
        scan_handler: ScanDirectiveHandler,
        deferred_imports: bool = True,
    ):
        self._reader = reader
        self._problem_reporter = problem_reporter
        self._context = context
        self._condition_evaluator = condition_evaluator
        self._scan_handler = scan_handler
        self._deferred_imports = deferred_imports

        self._units: dict[str, ConfigurationUnit] = {}
        self._known_superclasses: dict[str, str] = {}
        self._property_source_names: list[str] = []
        self._loaded_locations: set[tuple[str, str]] = set()
        self._import_stack = ImportStack()
        self._deferred: Optional[DeferredImportQueue] = None

    @property
    def units(self) -> list[ConfigurationUnit]:
        """Resolved units, in the order their expansion completed."""
        return list(self._units.values())

    @property
    def import_registry(self) -> ImportStack:
        return self._import_stack

    def resolve(self, candidates: Iterable[tuple[str, Definition]]):
        """Resolve a batch of named root candidates, then run their deferred selectors.

        Raises:
            ConfigurationError: If a unit cannot be resolved. The registry may be
                left partially updated and should be discarded.
        """
        self._deferred = DeferredImportQueue() if self._deferred_imports else None
        for name, definition in candidates:
            identity = definition.target_identity
            try:
                self._process_unit(
                    ConfigurationUnit(self._reader.read(definition.target), definition_name=name)
                )
            except ConfigurationError as ex:
                _annotate(ex, identity)
                raise
            except Exception as ex:
                raise ConfigurationError(
                    f"Failed to parse configuration unit [{identity}]: {ex}", identity
                ) from ex

        self._process_deferred_imports()

    def validate(self, units: Optional[Iterable[ConfigurationUnit]] = None):
        """Validate ``units``, or every resolved unit when none are given."""
        for unit in self._units.values() if units is None else units:
            unit.validate(self._problem_reporter)

    def _process_unit(self, unit: ConfigurationUnit):
        if self._condition_evaluator.should_skip(unit.metadata, ConfigurationPhase.PARSE_CONFIGURATION):
            return

        existing = self._units.get(unit.identity)
        if existing is not None:
            if unit.is_imported:
                if existing.is_imported:
                    existing.merge_imported_by(unit)
                # an explicitly declared unit is never replaced by an import
                return

            logger.debug("Replacing %r with explicit declaration '%s'", existing, unit.definition_name)
            del self._units[unit.identity]
            self._known_superclasses = {
                superclass: owner
                for superclass, owner in self._known_superclasses.items()
                if owner != unit.identity
            }
            self._import_stack.remove_imports_from(unit.identity)

        source: Optional[UnitMetadata] = unit.metadata
        while source is not None:
            source = self._process_source(unit, source)

        self._units[unit.identity] = unit

    def _process_source(self, unit: ConfigurationUnit, source: UnitMetadata) -> Optional[UnitMetadata]:
        """Expand one class of the unit's hierarchy, returning the next superclass to expand."""
        self._process_member_classes(unit, source)

        for attributes in source.attributes_for_repeatable(PROPERTY_SOURCE):
            self._process_property_source(attributes, source)

        scans = source.attributes_for_repeatable(COMPONENT_SCAN)
        if scans and not self._condition_evaluator.should_skip(source, ConfigurationPhase.REGISTER_BEAN):
            for attributes in scans:
                for name, definition in self._scan_handler.scan(attributes, source.identity):
                    if check_candidate(definition, self._reader):
                        self._process_unit(
                            ConfigurationUnit(self._reader.read(definition.target), definition_name=name)
                        )

        self._process_imports(unit, source, self._collect_imports(source), check_cycles=True)

        resource = source.attributes(IMPORT_RESOURCE)
        if resource is not None:
            locations = resource.get("locations") or ()
            if not locations:
                self._problem_reporter.error(
                    Problem("At least one resource location is required", source.identity, MalformedDirectiveError)
                )
            for location in locations:
                unit.add_imported_resource(location, resource.get("reader"))

        for method in self._retrieve_bean_methods(source):
            unit.add_bean_method(BeanMethod(method, unit.identity))

        self._process_interfaces(unit, source)

        superclass = source.superclass_identity
        if (
            superclass is not None
            and not is_library_identity(superclass)
            and superclass not in self._known_superclasses
        ):
            self._known_superclasses[superclass] = unit.identity
            return self._reader.read(source.superclass)
        return None

    def _process_member_classes(self, unit: ConfigurationUnit, source: UnitMetadata):
        for member in source.member_classes:
            metadata = self._reader.read(member)
            if not is_candidate(metadata) or metadata.identity == unit.identity:
                continue
            if self._import_stack.contains(unit):
                self._report_circular_import(unit)
                continue
            self._import_stack.push(unit)
            try:
                self._process_unit(ConfigurationUnit(metadata, imported_by=unit.identity))
            finally:
                self._import_stack.pop()

    def _process_interfaces(self, unit: ConfigurationUnit, source: UnitMetadata):
        for interface in source.interfaces:
            if is_library_identity(identity_of(interface)):
                continue
            metadata = self._reader.read(interface)
            for method in self._retrieve_bean_methods(metadata):
                if not method.is_abstract:
                    unit.add_bean_method(BeanMethod(method, unit.identity))
            self._process_interfaces(unit, metadata)

    def _retrieve_bean_methods(self, source: UnitMetadata) -> list[MethodMetadata]:
        bean_methods = source.annotated_methods(BEAN)
        if len(bean_methods) < 2 or source.methods_ordered:
            return bean_methods

        declared_order = self._reader.method_order(source)
        if declared_order is not None and len(declared_order) >= len(bean_methods):
            by_name = {method.name: method for method in bean_methods}
            selected = [by_name[name] for name in declared_order if name in by_name]
            if len(selected) == len(bean_methods):
                return selected
        logger.debug("Could not determine declaration order of bean methods on %s", source.identity)
        return bean_methods

    def _process_property_source(self, attributes, source: UnitMetadata):
        name = attributes.get("name") or None
        locations: Sequence[str] = attributes.get("value") or ()
        if not locations:
            self._problem_reporter.error(
                Problem(
                    "At least one property source location is required", source.identity, MalformedDirectiveError
                )
            )
            return

        for location in locations:
            key = (name or location, location)
            if key in self._loaded_locations:
                continue
            try:
                properties = self._context.resource_loader.load(location, attributes.get("encoding"))
            except FileNotFoundError as ex:
                if attributes.get("ignore_resource_not_found"):
                    logger.info("Properties location [%s] not resolvable: %s", location, ex)
                    continue
                self._report_unreadable(location, source, ex)
                continue
            except (OSError, ValueError) as ex:
                self._report_unreadable(location, source, ex)
                continue
            self._loaded_locations.add(key)
            self._add_property_source(PropertySource(name or location, properties))

    def _report_unreadable(self, location: str, source: UnitMetadata, ex: Exception):
        self._problem_reporter.error(
            Problem(f"Properties location [{location}] not resolvable: {ex}", source.identity, MalformedDirectiveError)
        )

    def _add_property_source(self, property_source: PropertySource):
        name = property_source.name
        property_sources = self._context.environment.property_sources
        if name in self._property_source_names and name in property_sources:
            existing = property_sources.get(name)
            if isinstance(existing, CompositePropertySource):
                existing.add(property_source)
            else:
                property_sources.replace(name, CompositePropertySource(name, [existing, property_source]))
        else:
            property_sources.add_last(property_source)
        self._property_source_names.append(name)

    def _collect_imports(self, source: UnitMetadata) -> list[Reference]:
        """References imported by ``source``, through its annotations and their meta-annotations."""
        imports: dict[str, Reference] = {}
        _collect_imports(source.annotations, imports, set())
        return list(imports.values())

    def _process_imports(
        self,
        unit: ConfigurationUnit,
        source: UnitMetadata,
        candidates: Sequence[Reference],
        check_cycles: bool,
        selecting: tuple[str, ...] = (),
    ):
        if not candidates:
            return

        if check_cycles and self._import_stack.contains(unit):
            self._report_circular_import(unit)
            return

        self._import_stack.push(unit)
        try:
            self._import_candidates(unit, source, candidates, selecting)
        except ConfigurationError as ex:
            _annotate(ex, unit.identity)
            raise
        except Exception as ex:
            raise ConfigurationError(
                f"Failed to process import candidates for configuration unit [{unit.identity}]: {ex}",
                unit.identity,
            ) from ex
        finally:
            self._import_stack.pop()

    def _import_candidates(
        self,
        unit: ConfigurationUnit,
        source: UnitMetadata,
        candidates: Sequence[Reference],
        selecting: tuple[str, ...] = (),
    ):
        # selecting holds the selectors whose results are being expanded for unit
        for reference in candidates:
            metadata = self._reader.read(reference)
            directive = import_directive_for(metadata)

            if isinstance(directive, SelectorImport):
                if metadata.identity in selecting:
                    self._report_selector_cycle(unit, selecting + (metadata.identity,))
                    continue
                selector = instantiate(metadata, ImportSelector, self._context)
                if directive.deferred and self._deferred is not None:
                    logger.debug("Deferring %s imported by %s", metadata.identity, unit.identity)
                    self._deferred.enqueue(unit, selector, declared_priority(metadata, selector))
                else:
                    selected = list(selector.select_imports(source))
                    self._import_candidates(unit, source, selected, selecting + (metadata.identity,))

            elif isinstance(directive, RegistrarImport):
                registrar = instantiate(metadata, ImportRegistrar, self._context)
                unit.add_registrar(registrar, source)

            elif isinstance(directive, PlainImport):
                self._import_stack.register_import(source, metadata.identity)
                self._process_unit(ConfigurationUnit(metadata, imported_by=unit.identity))

    def _process_deferred_imports(self):
        queue, self._deferred = self._deferred, None
        if queue is None:
            return

        for entry in queue.drain():
            unit = entry.unit
            try:
                selected = list(entry.selector.select_imports(unit.metadata))
                self._process_imports(
                    unit,
                    unit.metadata,
                    selected,
                    check_cycles=False,
                    selecting=(identity_of(type(entry.selector)),),
                )
            except ConfigurationError as ex:
                _annotate(ex, unit.identity)
                raise
            except Exception as ex:
                raise ConfigurationError(
                    f"Failed to process deferred import candidates for configuration unit [{unit.identity}]: {ex}",
                    unit.identity,
                ) from ex

    def _report_circular_import(self, unit: ConfigurationUnit):
        importer = self._import_stack.peek()
        importer_name = importer.simple_name if importer is not None else unit.simple_name
        self._problem_reporter.error(
            Problem(
                "A circular import has been detected: "
                f"Illegal attempt by configuration unit '{importer_name}' to import '{unit.simple_name}' "
                f"as '{unit.simple_name}' is already present in the current import stack {self._import_stack}",
                unit.identity,
                StructuralCycleError,
                self._import_stack.chain() + (unit.identity,),
            )
        )

    def _report_selector_cycle(self, unit: ConfigurationUnit, selectors: tuple[str, ...]):
        rendered = "->".join(identity.rsplit(".", 1)[-1] for identity in selectors)
        self._problem_reporter.error(
            Problem(
                "A circular import has been detected: "
                f"selectors imported by configuration unit '{unit.simple_name}' select each other [{rendered}]",
                unit.identity,
                StructuralCycleError,
                self._import_stack.chain() + selectors,
            )
        )


def _collect_imports(annotations: Sequence[Annotation], imports: dict[str, Reference], visited: set[str]):
    for annotation in annotations:
        annotation_type = annotation.type
        if annotation_type is IMPORT or annotation_type.is_library or annotation_type.name in visited:
            continue
        visited.add(annotation_type.name)
        _collect_imports(annotation_type.meta, imports, visited)

    for annotation in annotations:
        if annotation.type is IMPORT:
            for reference in annotation.get("value", ()):
                imports.setdefault(identity_of(reference), reference)


def _annotate(ex: ConfigurationError, identity: Optional[str]):
    if ex.unit is None:
        ex.unit = identity
