"""Declarative markers for configuration units.

Annotations are recorded on the decorated class or function itself, in the
order they appear in source (top-down), and are never inherited by
subclasses. An :class:`AnnotationType` may itself carry annotations, which is
how composed stereotypes are expressed:

    >>> EnableCaching = AnnotationType("app.EnableCaching", imports(CachingConfig))
    >>>
    >>> @configuration()
    ... @EnableCaching()
    ... class AppConfig:
    ...     pass
"""

import sys
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Union

__all__ = [
    "Annotation",
    "AnnotationType",
    "annotations_of",
    "is_library_identity",
    "COMPONENT",
    "CONFIGURATION",
    "IMPORT",
    "IMPORT_RESOURCE",
    "PROPERTY_SOURCE",
    "COMPONENT_SCAN",
    "BEAN",
    "ORDER",
    "CONDITIONAL",
    "PROFILE",
    "component",
    "configuration",
    "imports",
    "import_resource",
    "property_source",
    "component_scan",
    "bean",
    "order",
    "conditional",
    "profile",
]

ANNOTATIONS_ATTRIBUTE = "__confgraph_annotations__"


def is_library_identity(identity: str) -> bool:
    """Whether an identity belongs to the Python standard library.

    Library types are never traversed for meta-annotations and never followed
    as superclasses.

    Example:
        >>> is_library_identity("builtins.object")   # True
        >>> is_library_identity("abc.ABC")           # True
        >>> is_library_identity("app.config.Main")   # False
    """
    top_level = identity.split(".", 1)[0].split(":", 1)[0]
    return top_level in sys.stdlib_module_names or top_level == "builtins"


@dataclass(frozen=True, eq=False)
class Annotation:
    """A single application of an :class:`AnnotationType` with its attributes."""

    type: "AnnotationType"
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.attributes[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)


class Annotator:
    """Decorator recording an :class:`Annotation` on its target."""

    def __init__(self, annotation: Annotation):
        self.annotation = annotation

    def __call__(self, target: Any) -> Any:
        existing = vars(target).get(ANNOTATIONS_ATTRIBUTE, ())
        # decorators apply bottom-up, so prepend to keep source order
        setattr(target, ANNOTATIONS_ATTRIBUTE, (self.annotation,) + tuple(existing))
        return target

    def __repr__(self):
        return f"@{self.annotation.type.name}({dict(self.annotation.attributes)})"


MetaAnnotation = Union[Annotation, Annotator]


class AnnotationType:
    """A named marker that can be applied to classes and functions.

    Args:
        name: Fully-qualified name of the annotation type.
        *meta: Annotations carried by the annotation type itself.
    """

    def __init__(self, name: str, *meta: MetaAnnotation):
        self.name = name
        self.meta: tuple[Annotation, ...] = tuple(
            m.annotation if isinstance(m, Annotator) else m for m in meta
        )

    @property
    def is_library(self) -> bool:
        return is_library_identity(self.name)

    def __call__(self, **attributes: Any) -> Annotator:
        return Annotator(Annotation(self, attributes))

    def __repr__(self):
        return f"AnnotationType({self.name!r})"


def annotations_of(target: Any) -> tuple[Annotation, ...]:
    """Return the annotations declared directly on ``target``."""
    try:
        return tuple(vars(target).get(ANNOTATIONS_ATTRIBUTE, ()))
    except TypeError:
        return ()


def find_annotations(
    annotations: Iterable[Annotation], annotation_type: AnnotationType
) -> list[Annotation]:
    """Find occurrences of ``annotation_type``, falling back to meta-annotations.

    Direct occurrences win; if there are none, the meta-annotation hierarchy is
    searched depth first and the first level declaring the type is returned.
    """
    annotations = list(annotations)
    direct = [a for a in annotations if a.type is annotation_type]
    if direct:
        return direct
    return _find_in_meta(annotations, annotation_type, set())


def _find_in_meta(annotations, annotation_type, visited: set[str]) -> list[Annotation]:
    for annotation in annotations:
        declared = annotation.type
        if declared.is_library or declared.name in visited:
            continue
        visited.add(declared.name)
        found = [m for m in declared.meta if m.type is annotation_type]
        if found:
            return found
        found = _find_in_meta(declared.meta, annotation_type, visited)
        if found:
            return found
    return []


def is_annotated(annotations: Iterable[Annotation], annotation_type: AnnotationType) -> bool:
    return len(find_annotations(annotations, annotation_type)) > 0


COMPONENT = AnnotationType("confgraph.Component")
CONFIGURATION = AnnotationType("confgraph.Configuration", COMPONENT())
IMPORT = AnnotationType("confgraph.Import")
IMPORT_RESOURCE = AnnotationType("confgraph.ImportResource")
PROPERTY_SOURCE = AnnotationType("confgraph.PropertySource")
COMPONENT_SCAN = AnnotationType("confgraph.ComponentScan")
BEAN = AnnotationType("confgraph.Bean")
ORDER = AnnotationType("confgraph.Order")
CONDITIONAL = AnnotationType("confgraph.Conditional")
PROFILE = AnnotationType(
    "confgraph.Profile", CONDITIONAL(value=("confgraph.conditions:ProfileCondition",))
)


def configuration(name: Optional[str] = None) -> Annotator:
    """Mark a class as a full configuration unit."""
    return CONFIGURATION(value=name)


def component(name: Optional[str] = None) -> Annotator:
    return COMPONENT(value=name)


def imports(*references: Union[type, str]) -> Annotator:
    """Import other units, selectors or registrars.

    References may be classes or dotted names (``pkg.module:Name``). Several
    ``imports`` declarations on one unit are additive.
    """
    return IMPORT(value=tuple(references))


def import_resource(*locations: str, reader: Optional[str] = None) -> Annotator:
    return IMPORT_RESOURCE(locations=tuple(locations), reader=reader)


def property_source(
    *locations: str,
    name: Optional[str] = None,
    encoding: Optional[str] = None,
    ignore_resource_not_found: bool = False,
) -> Annotator:
    """Contribute one or more resources to the environment's property sources.

    Sources declared earlier take precedence over sources declared later.
    """
    return PROPERTY_SOURCE(
        value=tuple(locations),
        name=name,
        encoding=encoding,
        ignore_resource_not_found=ignore_resource_not_found,
    )


def component_scan(*base_packages: str, lazy_init: bool = False) -> Annotator:
    return COMPONENT_SCAN(base_packages=tuple(base_packages), lazy_init=lazy_init)


def bean(name: Optional[str] = None, *, aliases: Iterable[str] = ()) -> Annotator:
    """Mark a method as a factory method producing a component definition."""
    return BEAN(value=name, aliases=tuple(aliases))


def order(value: int) -> Annotator:
    return ORDER(value=value)


def conditional(*conditions: Union[type, str]) -> Annotator:
    return CONDITIONAL(value=tuple(conditions))


def profile(*names: str) -> Annotator:
    """Restrict a unit or bean method to the given profiles.

    Names prefixed with ``!`` exclude the unit when that profile is active.
    """
    return PROFILE(value=tuple(names))

