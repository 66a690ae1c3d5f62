"""Conditional inclusion of configuration units and bean methods."""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Protocol, Union

from confgraph.annotations import CONDITIONAL, PROFILE, Annotation
from confgraph.domain import ConfigurationPhase, MethodMetadata, Reference, UnitMetadata
from confgraph.environment import ResolutionContext
from confgraph.errors import UnresolvableReferenceError
from confgraph.metadata import load_reference

__all__ = [
    "Condition",
    "ProfileCondition",
    "ConditionEvaluator",
    "DefaultConditionEvaluator",
]

logger = logging.getLogger(__name__)

AnnotatedMetadata = Union[UnitMetadata, MethodMetadata]


class Condition(ABC):
    """A test deciding whether an annotated element takes part in resolution.

    Attributes:
        phase: The phase the condition applies to, or None for every phase.
    """

    phase: Optional[ConfigurationPhase] = None

    @abstractmethod
    def matches(self, context: ResolutionContext, metadata: AnnotatedMetadata) -> bool:
        ...


class ProfileCondition(Condition):
    """Matches when any :func:`~confgraph.annotations.profile` declaration accepts the active profiles."""

    def matches(self, context: ResolutionContext, metadata: AnnotatedMetadata) -> bool:
        declarations = metadata.attributes_for_repeatable(PROFILE)
        if not declarations:
            return True
        return any(
            context.environment.accepts_profiles(attributes["value"])
            for attributes in declarations
        )


class ConditionEvaluator(Protocol):
    def should_skip(self, metadata: Optional[AnnotatedMetadata], phase: ConfigurationPhase) -> bool:
        ...


class DefaultConditionEvaluator:
    """Evaluate the conditions declared through :func:`~confgraph.annotations.conditional`.

    Conditions are gathered from the element's own annotations and from its
    meta-annotations, instantiated without arguments, and evaluated in
    declaration order. Conditions bound to a phase are only evaluated in
    that phase.
    """

    def __init__(self, context: ResolutionContext):
        self._context = context

    def should_skip(self, metadata: Optional[AnnotatedMetadata], phase: ConfigurationPhase) -> bool:
        if metadata is None:
            return False
        for condition in self._conditions(metadata):
            if condition.phase is not None and condition.phase is not phase:
                continue
            if not condition.matches(self._context, metadata):
                logger.debug(
                    "Skipping %s in phase %s: %s did not match",
                    _describe(metadata),
                    phase.value,
                    type(condition).__name__,
                )
                return True
        return False

    def _conditions(self, metadata: AnnotatedMetadata) -> list[Condition]:
        references: list[Reference] = []
        _collect_condition_references(metadata.annotations, references, set())
        return [_instantiate(reference) for reference in references]


def _collect_condition_references(
    annotations: Iterable[Annotation], references: list[Reference], visited: set[str]
):
    for annotation in annotations:
        if annotation.type is CONDITIONAL:
            references.extend(r for r in annotation.get("value", ()) if r not in references)
        elif not annotation.type.is_library and annotation.type.name not in visited:
            visited.add(annotation.type.name)
            _collect_condition_references(annotation.type.meta, references, visited)


def _instantiate(reference: Reference) -> Condition:
    condition_type = load_reference(reference)
    try:
        return condition_type()
    except Exception as ex:
        raise UnresolvableReferenceError(f"Failed to instantiate condition {condition_type}: {ex}") from ex


def _describe(metadata: AnnotatedMetadata) -> str:
    if isinstance(metadata, MethodMetadata):
        return f"{metadata.declaring_identity}.{metadata.name}"
    return metadata.identity
