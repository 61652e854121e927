"""Exception types shared across the family budget package."""

from __future__ import annotations


class FamilyBudgetError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(FamilyBudgetError):
    """A form value failed validation before reaching persistence.

    ``field`` names the offending input so the UI can show the message
    next to it.
    """

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class PersistenceError(FamilyBudgetError):
    """A database call failed. The message is safe to show to users."""


class NoFamilySelectedError(FamilyBudgetError):
    """An operation needs a current family but none is selected."""


class PendingActionError(FamilyBudgetError):
    """Confirm/cancel was requested without a pending action."""


class PermissionDeniedError(FamilyBudgetError):
    """The current user's role or ownership does not allow the action."""
