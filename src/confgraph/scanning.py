"""Discovering component classes in packages."""

import importlib
import inspect
import logging
import pkgutil
import sys
from typing import Any, Iterator, Mapping, Optional, Protocol

from confgraph.annotations import COMPONENT
from confgraph.conditions import ConditionEvaluator
from confgraph.definitions import DefinitionStore
from confgraph.domain import ConfigurationPhase, Definition, identity_of
from confgraph.errors import ConfigurationError, MalformedDirectiveError
from confgraph.metadata import MetadataReader

__all__ = ["ScanDirectiveHandler", "PackageScanner", "default_definition_name"]

logger = logging.getLogger(__name__)


class ScanDirectiveHandler(Protocol):
    def scan(self, attributes: Mapping[str, Any], declaring_identity: str) -> list[tuple[str, Definition]]:
        """Register discovered definitions in the store and return them with their names."""
        ...


def default_definition_name(target: type) -> str:
    """Derive a definition name from a class name by lowering its first letter.

    Example:
        >>> default_definition_name(UserService)   # "userService"
        >>> default_definition_name(URLMapper)     # "URLMapper"
    """
    name = target.__name__
    if len(name) > 1 and name[0].isupper() and name[1].isupper():
        return name
    return name[:1].lower() + name[1:]


class PackageScanner:
    """Scan packages for classes annotated (directly or through meta-annotations) as components.

    Args:
        store: Store the discovered definitions are registered in.
        reader: Metadata reader used to inspect discovered classes.
        condition_evaluator: Optional evaluator used to skip classes whose
            conditions do not match.
    """

    def __init__(
        self,
        store: DefinitionStore,
        reader: MetadataReader,
        condition_evaluator: Optional[ConditionEvaluator] = None,
    ):
        self._store = store
        self._reader = reader
        self._condition_evaluator = condition_evaluator

    def scan(self, attributes: Mapping[str, Any], declaring_identity: str) -> list[tuple[str, Definition]]:
        base_packages = list(attributes.get("base_packages") or ()) or [
            _package_of(declaring_identity)
        ]
        discovered = []
        for base_package in base_packages:
            for candidate in self._candidate_classes(base_package):
                identity = identity_of(candidate)
                if identity == declaring_identity:
                    continue
                metadata = self._reader.read(candidate)
                if not metadata.is_annotated(COMPONENT):
                    continue
                if self._condition_evaluator is not None and self._condition_evaluator.should_skip(
                    metadata, ConfigurationPhase.REGISTER_BEAN
                ):
                    continue

                name = (metadata.attributes(COMPONENT) or {}).get("value") or default_definition_name(candidate)
                if self._is_registered(name, identity):
                    continue
                definition = Definition(
                    candidate, origin="scan", attributes={"lazy_init": attributes.get("lazy_init", False)}
                )
                self._store.register(name, definition)
                discovered.append((name, definition))

        logger.debug("Scan from %s discovered %d definitions", declaring_identity, len(discovered))
        return discovered

    def _is_registered(self, name: str, identity: str) -> bool:
        if name not in self._store:
            return False
        existing = self._store.get(name)
        if existing.target_identity == identity:
            return True
        raise ConfigurationError(
            f"Scanned definition name '{name}' for [{identity}] conflicts with "
            f"existing definition for [{existing.target_identity}]"
        )

    def _candidate_classes(self, base_package: str) -> Iterator[type]:
        for module in _walk_modules(base_package):
            for _, value in inspect.getmembers(module, inspect.isclass):
                if value.__module__ == module.__name__:
                    yield value


def _walk_modules(base_package: str):
    try:
        package = importlib.import_module(base_package)
    except ImportError as ex:
        raise MalformedDirectiveError(f"Cannot scan package '{base_package}': {ex}") from ex

    yield package
    if hasattr(package, "__path__"):
        for module_info in pkgutil.walk_packages(package.__path__, prefix=f"{package.__name__}."):
            yield importlib.import_module(module_info.name)


def _package_of(identity: str) -> str:
    parts = identity.split(".")
    for end in range(len(parts) - 1, 0, -1):
        module = sys.modules.get(".".join(parts[:end]))
        if module is not None:
            return module.__package__ or module.__name__
    raise MalformedDirectiveError(
        f"Cannot determine the package of {identity}; declare base packages explicitly", identity
    )
