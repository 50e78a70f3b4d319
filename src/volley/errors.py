"""Exceptions raised by the league manager and store adapters."""

from __future__ import annotations

from typing import Sequence


class LeagueError(Exception):
    """Base class for every league failure."""


class ValidationError(LeagueError):
    """Input rejected before any store call was made."""


class NotFoundError(LeagueError):
    def __init__(self, entity: str, identifier: object):
        super().__init__(f"{entity} {identifier!r} not found")
        self.entity = entity
        self.identifier = identifier


class StoreError(LeagueError):
    """The store adapter reported a failed select/insert/update/delete."""

    def __init__(self, message: str, *, table: str | None = None, action: str | None = None):
        super().__init__(message)
        self.message = message
        self.table = table
        self.action = action


class InconsistentStateError(LeagueError):
    """A multi-step operation stopped after some of its steps were applied."""

    def __init__(self, operation: str, failed_step: str, completed_steps: Sequence[str]):
        completed = ", ".join(completed_steps) or "none"
        super().__init__(
            f"{operation} failed at step {failed_step!r} after completing: {completed}"
        )
        self.operation = operation
        self.failed_step = failed_step
        self.completed_steps = tuple(completed_steps)
