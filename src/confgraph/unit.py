"""The configuration unit: one node of the resolved graph."""

from typing import Any, Optional

from confgraph.classifier import classify
from confgraph.domain import BeanMethod, UnitKind, UnitMetadata
from confgraph.problems import Problem, ProblemReporter

__all__ = ["ConfigurationUnit"]


class ConfigurationUnit:
    """A configuration class together with everything resolved from it.

    Units are identified by the fully-qualified name of their class. A unit
    registered as a root candidate carries the name of its definition; a unit
    reached through imports records the identities of the units importing it.

    Attributes:
        metadata: Metadata of the unit's class.
        definition_name: Name of the root definition, None for imported units.
        kind: Full, lite or none classification of the class.
        imported_by: Identities of importing units, in the order first seen.
        bean_methods: Factory-method directives, in resolution order.
        imported_resources: Resource locations mapped to the reader to load them with.
        registrars: Registrar instances paired with the metadata of the importing class.
    """

    def __init__(
        self,
        metadata: UnitMetadata,
        definition_name: Optional[str] = None,
        imported_by: Optional[str] = None,
    ):
        self.metadata = metadata
        self.definition_name = definition_name
        self.kind: UnitKind = classify(metadata)
        self.imported_by: dict[str, None] = {}
        if imported_by is not None:
            self.imported_by[imported_by] = None
        self.bean_methods: list[BeanMethod] = []
        self.imported_resources: dict[str, Optional[str]] = {}
        self.registrars: list[tuple[Any, UnitMetadata]] = []

    @property
    def identity(self) -> str:
        return self.metadata.identity

    @property
    def simple_name(self) -> str:
        return self.metadata.simple_name

    @property
    def is_imported(self) -> bool:
        return len(self.imported_by) > 0

    def merge_imported_by(self, other: "ConfigurationUnit"):
        self.imported_by.update(other.imported_by)

    def add_bean_method(self, bean_method: BeanMethod):
        if all(existing.metadata.name != bean_method.metadata.name for existing in self.bean_methods):
            self.bean_methods.append(bean_method)

    def add_imported_resource(self, location: str, reader: Optional[str]):
        self.imported_resources[location] = reader

    def add_registrar(self, registrar: Any, importing_metadata: UnitMetadata):
        self.registrars.append((registrar, importing_metadata))

    def bean_method_names(self) -> list[str]:
        return [bean_method.bean_name for bean_method in self.bean_methods]

    def problems(self) -> list[Problem]:
        """Structural problems that prevent a full unit from being subclassed downstream."""
        if self.kind is not UnitKind.FULL:
            return []

        problems = []
        if self.metadata.is_final:
            problems.append(
                Problem(
                    f"Configuration class '{self.simple_name}' may not be final. Remove the final modifier to continue.",
                    self.identity,
                )
            )
        for bean_method in self.bean_methods:
            method = bean_method.metadata
            if not method.is_static and method.is_final:
                problems.append(
                    Problem(
                        f"Bean method '{method.name}' must not be final; "
                        f"remove the final modifier to allow '{self.simple_name}' to be extended.",
                        self.identity,
                    )
                )
        return problems

    def validate(self, problem_reporter: ProblemReporter):
        for problem in self.problems():
            problem_reporter.error(problem)

    def __eq__(self, other):
        return isinstance(other, ConfigurationUnit) and other.identity == self.identity

    def __hash__(self):
        return hash(self.identity)

    def __repr__(self):
        return f"ConfigurationUnit({self.identity!r}, imported_by={list(self.imported_by)})"
