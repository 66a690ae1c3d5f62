"""Driving resolution to a fixed point.

Resolving units can register further definitions: imported units, bean
methods, registrar output. Some of those may be configuration units
themselves, so the processor repeats classification, resolution and
materialisation until a pass turns up no new candidates.
"""

import logging
import weakref
from dataclasses import dataclass
from typing import Mapping, Optional

from confgraph.classifier import check_candidate, definition_order, kind_of
from confgraph.conditions import ConditionEvaluator, DefaultConditionEvaluator
from confgraph.definitions import DefinitionStore
from confgraph.domain import Definition
from confgraph.environment import Environment, PropertySourceRegistry, ResolutionContext, ResourceLoader
from confgraph.errors import DuplicateInvocationError
from confgraph.import_registry import ImportRegistry
from confgraph.materializer import (
    DefinitionMaterializer,
    MappingDefinitionReader,
    Materializer,
    ResourceDefinitionReader,
)
from confgraph.metadata import ClassMetadataReader, MetadataReader
from confgraph.problems import CollectingProblemReporter, FailFastProblemReporter, ProblemReporter
from confgraph.resolver import ConfigurationGraphResolver
from confgraph.scanning import PackageScanner, ScanDirectiveHandler
from confgraph.settings import ResolverSettings
from confgraph.unit import ConfigurationUnit

__all__ = ["ResolutionResult", "ConfigurationProcessor"]

logger = logging.getLogger(__name__)

Candidate = tuple[str, Definition]


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of processing a definition store.

    Attributes:
        units: Every resolved unit, in the order resolution completed.
        import_registry: Import edges recorded during resolution.
        passes: Number of resolution passes run.
        property_sources: The environment's property sources after resolution.
    """

    units: list[ConfigurationUnit]
    import_registry: ImportRegistry
    passes: int
    property_sources: PropertySourceRegistry

    def unit(self, identity: str) -> ConfigurationUnit:
        return next(unit for unit in self.units if unit.identity == identity)


class ConfigurationProcessor:
    """Resolve the configuration units found in a :class:`DefinitionStore`.

    Collaborators left as None are created per run from the settings and the
    store being processed.

    Args:
        settings: Defaults for deferral, problem reporting and profiles.
        reader: Metadata reader; its cache is cleared after every run.
        problem_reporter: Receives structural problems.
        environment: Environment exposed to conditions, selectors and registrars.
        resource_loader: Loads property sources and imported resources.
        condition_evaluator: Decides which units, scans and bean methods are skipped.
        scan_handler: Handles component scans.
        materializer: Turns resolved units into definitions.
        resource_readers: Readers for imported resources, by name.
    """

    def __init__(
        self,
        settings: Optional[ResolverSettings] = None,
        reader: Optional[MetadataReader] = None,
        problem_reporter: Optional[ProblemReporter] = None,
        environment: Optional[Environment] = None,
        resource_loader: Optional[ResourceLoader] = None,
        condition_evaluator: Optional[ConditionEvaluator] = None,
        scan_handler: Optional[ScanDirectiveHandler] = None,
        materializer: Optional[Materializer] = None,
        resource_readers: Optional[Mapping[str, ResourceDefinitionReader]] = None,
    ):
        self._settings = settings or ResolverSettings()
        self._reader = reader or ClassMetadataReader()
        self._problem_reporter = problem_reporter or (
            FailFastProblemReporter() if self._settings.fail_fast else CollectingProblemReporter()
        )
        self._environment = environment
        self._resource_loader = resource_loader or ResourceLoader()
        self._condition_evaluator = condition_evaluator
        self._scan_handler = scan_handler
        self._materializer = materializer
        self._resource_readers = resource_readers
        self._processed_stores = weakref.WeakSet()

    @property
    def problem_reporter(self) -> ProblemReporter:
        return self._problem_reporter

    def process(self, store: DefinitionStore) -> ResolutionResult:
        """Resolve every configuration unit in ``store`` until no new candidates appear.

        Raises:
            DuplicateInvocationError: If this processor has already processed ``store``.
            ConfigurationError: If resolution fails. The store may be partially
                updated and should be discarded.
        """
        if store in self._processed_stores:
            raise DuplicateInvocationError(f"process already called on this processor against {store!r}")
        self._processed_stores.add(store)

        environment = self._environment or Environment(self._settings.active_profiles)
        context = ResolutionContext(environment, self._resource_loader, store)
        condition_evaluator = self._condition_evaluator or DefaultConditionEvaluator(context)
        resolver = ConfigurationGraphResolver(
            self._reader,
            self._problem_reporter,
            context,
            condition_evaluator,
            self._scan_handler or PackageScanner(store, self._reader, condition_evaluator),
            deferred_imports=self._settings.deferred_imports,
        )
        materializer = self._materializer or DefinitionMaterializer(
            store,
            condition_evaluator,
            resolver.import_registry,
            self._resource_readers or {"default": MappingDefinitionReader(self._resource_loader)},
        )

        try:
            passes = self._resolve_to_fixed_point(store, resolver, materializer)
        finally:
            self._reader.clear_cache()

        return ResolutionResult(resolver.units, resolver.import_registry, passes, environment.property_sources)

    def _resolve_to_fixed_point(
        self, store: DefinitionStore, resolver: ConfigurationGraphResolver, materializer: Materializer
    ) -> int:
        candidate_names = store.names()
        candidates = self._initial_candidates(store, candidate_names)
        already_resolved: set[str] = set()
        passes = 0

        while candidates:
            passes += 1
            logger.debug("Resolution pass %d over %d candidates", passes, len(candidates))
            resolver.resolve(_ordered(candidates))

            units = [unit for unit in resolver.units if unit.identity not in already_resolved]
            resolver.validate(units)
            materializer.materialize(units)
            already_resolved.update(unit.identity for unit in units)

            # materialization may also remove definitions of skipped units
            candidates = []
            previous_names = set(candidate_names)
            candidate_names = store.names()
            for name in candidate_names:
                if name in previous_names:
                    continue
                definition = store.get(name)
                if (
                    check_candidate(definition, self._reader)
                    and definition.target_identity not in already_resolved
                ):
                    candidates.append((name, definition))

        return passes

    def _initial_candidates(self, store: DefinitionStore, names: list[str]) -> list[Candidate]:
        candidates = []
        for name in names:
            definition = store.get(name)
            if kind_of(definition) is not None:
                logger.debug("Definition '%s' has already been processed as a configuration unit", name)
            elif check_candidate(definition, self._reader):
                candidates.append((name, definition))
        return candidates


def _ordered(candidates: list[Candidate]) -> list[Candidate]:
    """Sort by declared order; undeclared last, ties in discovery order."""

    def key(candidate: Candidate):
        declared = definition_order(candidate[1])
        return declared is None, declared or 0

    return sorted(candidates, key=key)
