"""Deciding which definitions are configuration units.

A definition whose class carries the :func:`~confgraph.annotations.configuration`
marker is a *full* unit. One that carries only a secondary marker (component,
imports, import_resource, component_scan) or declares bean methods is a *lite*
unit. Anything else is not resolved at all.

The outcome is memoized on the definition so later passes skip it.
"""

import logging
from typing import Optional

from confgraph.annotations import (
    BEAN,
    COMPONENT,
    COMPONENT_SCAN,
    CONFIGURATION,
    IMPORT,
    IMPORT_RESOURCE,
    ORDER,
)
from confgraph.domain import Definition, UnitKind, UnitMetadata
from confgraph.errors import UnresolvableReferenceError
from confgraph.metadata import MetadataReader

__all__ = [
    "CONFIGURATION_KIND_ATTRIBUTE",
    "ORDER_ATTRIBUTE",
    "classify",
    "is_candidate",
    "order_of",
    "check_candidate",
    "kind_of",
    "definition_order",
]

logger = logging.getLogger(__name__)

CONFIGURATION_KIND_ATTRIBUTE = "confgraph.configuration_kind"
ORDER_ATTRIBUTE = "confgraph.order"

_LITE_MARKERS = (COMPONENT, IMPORT, IMPORT_RESOURCE, COMPONENT_SCAN)


def classify(metadata: UnitMetadata) -> UnitKind:
    """Classify metadata as a full, lite or non-configuration unit."""
    if metadata.is_annotated(CONFIGURATION):
        return UnitKind.FULL
    if any(metadata.is_annotated(marker) for marker in _LITE_MARKERS):
        return UnitKind.LITE
    if metadata.annotated_methods(BEAN):
        return UnitKind.LITE
    return UnitKind.NONE


def is_candidate(metadata: UnitMetadata) -> bool:
    return classify(metadata) is not UnitKind.NONE


def order_of(metadata: UnitMetadata) -> Optional[int]:
    """The priority declared with :func:`~confgraph.annotations.order`, if any."""
    attributes = metadata.attributes(ORDER)
    if attributes is None:
        return None
    return attributes.get("value")


def check_candidate(definition: Definition, reader: MetadataReader) -> bool:
    """Classify a definition, recording kind and declared order on it.

    Definitions produced by factory methods, or without a target class, are
    never candidates. Targets that cannot be loaded are not candidates either;
    the failure surfaces when something actually imports them.

    Returns:
        True if the definition is a full or lite configuration unit.
    """
    if definition.target is None or definition.factory_method is not None:
        return False

    try:
        metadata = reader.read(definition.target)
    except UnresolvableReferenceError as ex:
        logger.debug(
            "Could not read metadata for %s, not treating it as a configuration candidate: %s",
            definition.target_identity,
            ex,
        )
        return False

    kind = classify(metadata)
    if kind is UnitKind.NONE:
        return False

    definition.attributes[CONFIGURATION_KIND_ATTRIBUTE] = kind
    declared_order = order_of(metadata)
    if declared_order is not None:
        definition.attributes[ORDER_ATTRIBUTE] = declared_order
    return True


def kind_of(definition: Definition) -> Optional[UnitKind]:
    """The memoized classification of a definition, or None if never classified."""
    return definition.attributes.get(CONFIGURATION_KIND_ATTRIBUTE)


def definition_order(definition: Definition) -> Optional[int]:
    return definition.attributes.get(ORDER_ATTRIBUTE)
