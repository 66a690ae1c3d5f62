"""Exceptions raised while resolving configuration units."""

from typing import Optional

__all__ = [
    "ConfigurationError",
    "StructuralCycleError",
    "UnresolvableReferenceError",
    "MalformedDirectiveError",
    "DuplicateInvocationError",
]


class ConfigurationError(Exception):
    """Base class for failures raised while resolving a configuration graph.

    Attributes:
        unit: Identity of the configuration unit being processed when the
            failure happened, if known.
    """

    def __init__(self, message: str, unit: Optional[str] = None):
        super().__init__(message)
        self.unit = unit

    def __str__(self) -> str:
        message = super().__str__()
        if self.unit and self.unit not in message:
            return f"{message} [while processing {self.unit}]"
        return message


class StructuralCycleError(ConfigurationError):
    """Raised when a unit imports itself, directly or transitively."""

    def __init__(self, message: str, unit: Optional[str] = None, chain: tuple[str, ...] = ()):
        super().__init__(message, unit)
        self.chain = chain


class UnresolvableReferenceError(ConfigurationError):
    """Raised when an import, selector or registrar target cannot be loaded or instantiated."""

    pass


class MalformedDirectiveError(ConfigurationError):
    """Raised when a directive is missing required values or points at an unreadable resource."""

    pass


class DuplicateInvocationError(ConfigurationError):
    """Raised when the processor is run twice against the same definition store."""

    pass
