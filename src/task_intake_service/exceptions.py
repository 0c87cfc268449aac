"""Errors surfaced to callers of the intake pipeline."""


class TaskIntakeError(Exception):
    """Base class for intake errors that map to an HTTP response."""

    status_code = 500


class InputValidationError(TaskIntakeError):
    """Input was empty or oversized; rejected before any model call."""

    status_code = 400


class TaskNotFoundError(TaskIntakeError):
    """The task does not exist or belongs to another user."""

    status_code = 404


class ConfirmationNotFoundError(TaskIntakeError):
    """Unknown, expired or already-resolved confirmation id."""

    status_code = 404


class ConfirmationForbiddenError(TaskIntakeError):
    """A different user owns the pending deletion."""

    status_code = 403
