"""
Pipeline Outcomes

Every collaborator returns an Outcome instead of raising on the first
problem, so that a long conversion can report all the events and pages it
failed on while still emitting everything that could be decoded.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class ErrorSet:
    """Top-level failure description plus the ordered list of sub-errors."""

    summary: str
    errors: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.errors)

    def __str__(self) -> str:
        return self.summary


@dataclass
class Outcome:
    """
    Result of a transformation pipeline.

    Success carries only a value. Failure additionally carries an ErrorSet
    with one entry per problem, in discovery order.
    """

    value: Any = None
    error_set: Optional[ErrorSet] = None

    @classmethod
    def success(cls, value: Any = None) -> "Outcome":
        return cls(value=value)

    @classmethod
    def failure(cls, summary: str, errors: Optional[List[str]] = None, value: Any = None) -> "Outcome":
        return cls(value=value, error_set=ErrorSet(summary=summary, errors=list(errors or [])))

    @property
    def ok(self) -> bool:
        return self.error_set is None

    @property
    def summary(self) -> Optional[str]:
        return None if self.error_set is None else self.error_set.summary

    @property
    def errors(self) -> List[str]:
        """Constituent error descriptions; empty on success."""
        if self.error_set is None:
            return []
        return list(self.error_set.errors)


class ErrorCollector:
    """
    Accumulates errors while a collaborator streams through a trace.

    Usage:
        errors = ErrorCollector("printing events")
        for event in reader.events(errors):
            ...
        return errors.outcome(value=count)
    """

    def __init__(self, activity: str):
        self.activity = activity
        self._errors: List[str] = []

    def add(self, error: Union[str, Exception]) -> None:
        message = str(error)
        logger.debug(f"Error while {self.activity}: {message}")
        self._errors.append(message)

    def extend(self, errors: List[Union[str, Exception]]) -> None:
        for error in errors:
            self.add(error)

    @property
    def errors(self) -> List[str]:
        return list(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def outcome(self, value: Any = None) -> Outcome:
        """Finalize into a success, or a failure if anything was collected."""
        if not self._errors:
            return Outcome.success(value)

        count = len(self._errors)
        summary = f"{count} error(s) while {self.activity}, first: {self._errors[0]}"
        return Outcome.failure(summary, self._errors, value=value)
