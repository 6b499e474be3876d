"""Error kinds raised by the Listify core.

Every error is scoped to the single operation that raised it. Nothing in the
core retries or recovers; front ends show ``str(exc)`` to the user.
"""

from __future__ import annotations


class ListifyError(Exception):
    """Base class for all rejected Listify actions."""


class ValidationError(ListifyError):
    """Raised when required input is missing or malformed."""


class NotFoundError(ListifyError):
    """Raised for an unknown task, subtask, reward or user id."""


class UnauthorizedError(ListifyError):
    """Raised when a user acts on a record owned by someone else."""


class AlreadyCompletedError(ListifyError):
    """Raised when completing (or editing) a task that is already done."""


class DeadlineLockedError(ListifyError):
    """Raised when a patch touches the deadline of a locked task."""


class InsufficientBalanceError(ListifyError):
    """Raised when a purchase costs more points than the profile holds."""


class AlreadyPurchasedError(ListifyError):
    """Raised when a reward id is already in the profile's purchased items."""


class AlreadyFriendsError(ListifyError):
    """Raised when following a profile that is already followed."""
