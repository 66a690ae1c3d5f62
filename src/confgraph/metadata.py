"""Reading annotation and structural metadata from configuration classes.

Metadata is gathered from a class's own namespace: nothing is instantiated,
and annotations are read from where the decorators recorded them. Readers
cache what they read; a cache belongs to a single resolution run and is
cleared when the run completes.
"""

import inspect
import logging
import pkgutil
from typing import Optional, Protocol, Sequence

from confgraph.annotations import annotations_of
from confgraph.domain import MethodMetadata, Reference, UnitMetadata, identity_of
from confgraph.errors import UnresolvableReferenceError

__all__ = ["MetadataReader", "ClassMetadataReader", "load_reference"]

logger = logging.getLogger(__name__)


class MetadataReader(Protocol):
    """Supplies :class:`UnitMetadata` for a reference without executing the unit."""

    def read(self, reference: Reference) -> UnitMetadata:
        ...

    def method_order(self, metadata: UnitMetadata) -> Optional[Sequence[str]]:
        """A secondary, deterministic ordering of method names, if one is available."""
        ...

    def clear_cache(self) -> None:
        ...


def load_reference(reference: Reference) -> type:
    """Load the class a reference points at.

    Raises:
        UnresolvableReferenceError: If the reference cannot be imported or is not a class.
    """
    if not isinstance(reference, str):
        return reference
    try:
        target = pkgutil.resolve_name(reference)
    except (ImportError, AttributeError, ValueError) as ex:
        raise UnresolvableReferenceError(f"Failed to load class [{reference}]: {ex}") from ex
    if not inspect.isclass(target):
        raise UnresolvableReferenceError(f"[{reference}] does not refer to a class")
    return target


class ClassMetadataReader:
    """Read metadata by introspecting loaded Python classes.

    Args:
        ordered: Whether to report methods in declaration order. When False,
            methods are reported alphabetically and flagged as unordered, so
            consumers fall back on :meth:`method_order`.
    """

    def __init__(self, ordered: bool = True):
        self._ordered = ordered
        self._cache: dict[str, UnitMetadata] = {}

    def read(self, reference: Reference) -> UnitMetadata:
        identity = identity_of(reference)
        cached = self._cache.get(identity)
        if cached is not None:
            return cached

        target = load_reference(reference)
        metadata = self._introspect(target, identity_of(target))
        self._cache[identity] = metadata
        return metadata

    def method_order(self, metadata: UnitMetadata) -> Optional[Sequence[str]]:
        if metadata.target is None:
            return None
        lines = {}
        for name, value in vars(metadata.target).items():
            function = _unwrap(value)[0]
            code = getattr(function, "__code__", None)
            if code is not None:
                lines[name] = code.co_firstlineno
        return sorted(lines, key=lines.get)

    def clear_cache(self) -> None:
        logger.debug("Clearing metadata cache of %d entries", len(self._cache))
        self._cache.clear()

    def _introspect(self, cls: type, identity: str) -> UnitMetadata:
        bases = [base for base in cls.__bases__ if base is not object]
        methods = []
        for name, value in vars(cls).items():
            method = _method_metadata(name, value, identity)
            if method is not None:
                methods.append(method)
        if not self._ordered:
            methods.sort(key=lambda m: m.name)

        return UnitMetadata(
            identity=identity,
            annotations=annotations_of(cls),
            methods=tuple(methods),
            superclass=bases[0] if bases else None,
            interfaces=tuple(bases[1:]),
            member_classes=tuple(
                value
                for name, value in vars(cls).items()
                if inspect.isclass(value) and value.__qualname__ == f"{cls.__qualname__}.{name}"
            ),
            is_abstract=inspect.isabstract(cls),
            is_final=bool(vars(cls).get("__final__", False)),
            methods_ordered=self._ordered,
            target=cls,
        )


def _unwrap(value):
    if isinstance(value, (staticmethod, classmethod)):
        return value.__func__, True
    return value, False


def _method_metadata(name: str, value, declaring_identity: str) -> Optional[MethodMetadata]:
    function, is_static = _unwrap(value)
    if not inspect.isfunction(function):
        return None
    annotations = annotations_of(function)
    if function is not value:
        annotations = annotations + annotations_of(value)
    return MethodMetadata(
        name=name,
        declaring_identity=declaring_identity,
        annotations=annotations,
        is_abstract=bool(getattr(function, "__isabstractmethod__", False)),
        is_static=is_static,
        is_final=bool(getattr(function, "__final__", False)),
    )
