"""High level entry points for resolving configuration."""

from typing import Iterable, Mapping, Optional

from confgraph.definitions import DefinitionStore
from confgraph.domain import Definition, Reference, identity_of
from confgraph.environment import Environment, ResourceLoader
from confgraph.materializer import ResourceDefinitionReader
from confgraph.metadata import MetadataReader
from confgraph.problems import Problem, ProblemReporter
from confgraph.processor import ConfigurationProcessor, ResolutionResult
from confgraph.scanning import default_definition_name
from confgraph.settings import ResolverSettings
from confgraph.unit import ConfigurationUnit

__all__ = ["make_store", "resolve_configuration", "validate"]


def make_store(*roots: Reference) -> DefinitionStore:
    """Create a :class:`DefinitionStore` holding one explicit definition per root.

    Classes are named after themselves with a lower-case first letter; dotted
    references keep their full identity as name.

    Example:
        >>> store = make_store(AppConfig, "app.extra:ExtraConfig")
        >>> store.names()   # ["appConfig", "app.extra.ExtraConfig"]
    """
    store = DefinitionStore()
    for root in roots:
        name = identity_of(root) if isinstance(root, str) else default_definition_name(root)
        store.register(name, Definition(root))
    return store


def resolve_configuration(
    store: DefinitionStore,
    profiles: Optional[Iterable[str]] = None,
    settings: Optional[ResolverSettings] = None,
    reader: Optional[MetadataReader] = None,
    problem_reporter: Optional[ProblemReporter] = None,
    environment: Optional[Environment] = None,
    resource_loader: Optional[ResourceLoader] = None,
    resource_readers: Optional[Mapping[str, ResourceDefinitionReader]] = None,
) -> ResolutionResult:
    """Resolve every configuration unit in ``store`` to a fixed point.

    Args:
        store: Definitions to start from; resolution registers further definitions into it.
        profiles: Active profiles. Ignored if ``environment`` is given; defaults
            to the profiles from ``settings``.
        settings: Resolution settings; read from the environment if omitted.
        reader: Metadata reader; a fresh :class:`ClassMetadataReader` if omitted.
        problem_reporter: Receives structural problems; fail-fast unless the
            settings disable it.
        environment: Environment exposed to conditions, selectors and registrars.
        resource_loader: Loads property sources and imported resources.
        resource_readers: Readers for imported resources, by name.

    Returns:
        The resolved units, the import registry and the number of passes run.

    Raises:
        ConfigurationError: If the graph cannot be resolved.

    Example:
        >>> result = resolve_configuration(make_store(AppConfig), profiles={"dev"})
        >>> [unit.identity for unit in result.units]
    """
    settings = settings or ResolverSettings()
    if environment is None:
        environment = Environment(settings.active_profiles if profiles is None else profiles)

    processor = ConfigurationProcessor(
        settings=settings,
        reader=reader,
        problem_reporter=problem_reporter,
        environment=environment,
        resource_loader=resource_loader,
        resource_readers=resource_readers,
    )
    return processor.process(store)


def validate(units: Iterable[ConfigurationUnit]) -> list[Problem]:
    """Problems preventing resolved full units from being extended downstream."""
    return [problem for unit in units for problem in unit.problems()]
