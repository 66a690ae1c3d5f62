"""Reporting problems found while resolving a configuration graph."""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from confgraph.errors import ConfigurationError

__all__ = [
    "Problem",
    "ProblemReporter",
    "FailFastProblemReporter",
    "CollectingProblemReporter",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Problem:
    """A problem detected in the configuration graph.

    Attributes:
        message: Description of the problem.
        unit: Identity of the unit the problem was found on.
        error_type: The exception raised when the problem is treated as fatal.
        chain: Import chain involved, for circular imports.
    """

    message: str
    unit: Optional[str] = None
    error_type: type[ConfigurationError] = ConfigurationError
    chain: tuple[str, ...] = ()

    def as_error(self) -> ConfigurationError:
        if self.chain:
            return self.error_type(self.message, self.unit, self.chain)
        return self.error_type(self.message, self.unit)


class ProblemReporter(Protocol):
    def error(self, problem: Problem) -> None:
        ...

    def warning(self, problem: Problem) -> None:
        ...


class FailFastProblemReporter:
    """Raise on the first error; log warnings."""

    def error(self, problem: Problem) -> None:
        raise problem.as_error()

    def warning(self, problem: Problem) -> None:
        logger.warning(problem.message)


class CollectingProblemReporter:
    """Record every problem and carry on."""

    def __init__(self):
        self.errors: list[Problem] = []
        self.warnings: list[Problem] = []

    def error(self, problem: Problem) -> None:
        logger.error(problem.message)
        self.errors.append(problem)

    def warning(self, problem: Problem) -> None:
        logger.warning(problem.message)
        self.warnings.append(problem)
