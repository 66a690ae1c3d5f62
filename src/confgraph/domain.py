"""Domain models used throughout the framework."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union

from confgraph.annotations import BEAN, Annotation, AnnotationType, find_annotations

__all__ = [
    "Reference",
    "identity_of",
    "UnitKind",
    "ConfigurationPhase",
    "MethodMetadata",
    "UnitMetadata",
    "BeanMethod",
    "Definition",
]


Reference = Union[type, str]
"""A class, or a dotted name (``pkg.module:Name`` or ``pkg.module.Name``) locating one."""


def identity_of(reference: Reference) -> str:
    """Fully-qualified identity of a class or dotted reference.

    Example:
        >>> identity_of(AppConfig)            # "app.config.AppConfig"
        >>> identity_of("app.config:AppConfig")  # "app.config.AppConfig"
    """
    if isinstance(reference, str):
        return reference.replace(":", ".")
    return f"{reference.__module__}.{reference.__qualname__}"


class UnitKind(Enum):
    """Classification of a definition as a configuration unit."""

    NONE = "none"
    LITE = "lite"
    FULL = "full"


class ConfigurationPhase(Enum):
    """Phase in which a condition is evaluated."""

    PARSE_CONFIGURATION = "parse_configuration"
    REGISTER_BEAN = "register_bean"


class _AnnotatedElement:
    """Annotation queries shared by unit and method metadata."""

    annotations: tuple[Annotation, ...]

    def find(self, annotation_type: AnnotationType) -> list[Annotation]:
        return find_annotations(self.annotations, annotation_type)

    def is_annotated(self, annotation_type: AnnotationType) -> bool:
        return len(self.find(annotation_type)) > 0

    def attributes(self, annotation_type: AnnotationType) -> Optional[Mapping[str, Any]]:
        """Attributes of the first (direct or meta) occurrence, or None if absent."""
        found = self.find(annotation_type)
        return found[0].attributes if found else None

    def attributes_for_repeatable(self, annotation_type: AnnotationType) -> list[Mapping[str, Any]]:
        return [annotation.attributes for annotation in self.find(annotation_type)]

    @property
    def annotation_types(self) -> tuple[str, ...]:
        return tuple(annotation.type.name for annotation in self.annotations)


@dataclass(frozen=True, eq=False)
class MethodMetadata(_AnnotatedElement):
    """Structural facts about a method declared on a unit.

    Attributes:
        name: The method name.
        declaring_identity: Identity of the class declaring the method.
        annotations: Annotations declared directly on the method.
        is_abstract: Whether the method is abstract.
        is_static: Whether the method is a staticmethod or classmethod.
        is_final: Whether the method was declared with ``typing.final``.
    """

    name: str
    declaring_identity: str
    annotations: tuple[Annotation, ...] = ()
    is_abstract: bool = False
    is_static: bool = False
    is_final: bool = False


@dataclass(frozen=True, eq=False)
class UnitMetadata(_AnnotatedElement):
    """Annotation and structural facts about a class, gathered without instantiating it.

    Attributes:
        identity: Fully-qualified name of the class.
        annotations: Annotations declared directly on the class, in source order.
        methods: Methods declared on the class.
        superclass: The primary base class, if any.
        interfaces: The remaining base classes.
        member_classes: Classes nested in the class body.
        is_abstract: Whether the class declares abstract methods.
        is_final: Whether the class was declared with ``typing.final``.
        methods_ordered: Whether ``methods`` reflects declaration order.
        target: The class itself, if it has been loaded.
    """

    identity: str
    annotations: tuple[Annotation, ...] = ()
    methods: tuple[MethodMetadata, ...] = ()
    superclass: Optional[Reference] = None
    interfaces: tuple[Reference, ...] = ()
    member_classes: tuple[Reference, ...] = ()
    is_abstract: bool = False
    is_final: bool = False
    methods_ordered: bool = True
    target: Any = None

    @property
    def simple_name(self) -> str:
        return self.identity.rsplit(".", 1)[-1]

    @property
    def has_superclass(self) -> bool:
        return self.superclass is not None

    @property
    def superclass_identity(self) -> Optional[str]:
        return identity_of(self.superclass) if self.superclass is not None else None

    @property
    def interface_identities(self) -> tuple[str, ...]:
        return tuple(identity_of(i) for i in self.interfaces)

    @property
    def member_class_identities(self) -> tuple[str, ...]:
        return tuple(identity_of(m) for m in self.member_classes)

    def annotated_methods(self, annotation_type: AnnotationType) -> list[MethodMetadata]:
        return [method for method in self.methods if method.is_annotated(annotation_type)]

    def __repr__(self):
        return f"UnitMetadata({self.identity!r})"


@dataclass(frozen=True, eq=False)
class BeanMethod:
    """A factory-method directive collected from a configuration unit."""

    metadata: MethodMetadata
    unit: str

    @property
    def bean_name(self) -> str:
        attributes = self.metadata.attributes(BEAN) or {}
        return attributes.get("value") or self.metadata.name

    @property
    def aliases(self) -> tuple[str, ...]:
        attributes = self.metadata.attributes(BEAN) or {}
        return tuple(attributes.get("aliases", ()))


@dataclass(frozen=True, eq=False)
class Definition:
    """A raw entry in a :class:`~confgraph.definitions.DefinitionStore`.

    Attributes:
        target: The class described by the definition, if any.
        factory_method: Name of the factory method producing the component, if any.
        factory_unit: Identity of the unit declaring ``factory_method``.
        origin: How the definition came to be registered.
        attributes: Mutable attributes, used to memoize classification.
    """

    target: Optional[Reference]
    factory_method: Optional[str] = None
    factory_unit: Optional[str] = None
    origin: str = "explicit"
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def target_identity(self) -> Optional[str]:
        return identity_of(self.target) if self.target is not None else None
