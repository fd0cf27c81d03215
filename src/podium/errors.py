"""Domain exceptions raised by the progression services."""

from __future__ import annotations


class ProgressionError(Exception):
    """Base class for progression engine errors."""


class NotFoundError(ProgressionError):
    """A referenced entity does not exist. Aborts the single operation."""

    entity = "Entity"

    def __init__(self, identifier: object) -> None:
        self.identifier = identifier
        super().__init__(f"{self.entity} {identifier} not found")


class UserNotFoundError(NotFoundError):
    entity = "User"


class AchievementNotFoundError(NotFoundError):
    entity = "Achievement"


class BettingWeekNotFoundError(NotFoundError):
    entity = "Betting week"


class ProgressionValidationError(ProgressionError):
    """Malformed input to a public operation, rejected before any mutation."""
