from __future__ import annotations


class AppError(RuntimeError):
    """Base application-level error."""


class ValidationError(AppError, ValueError):
    """Input validation failure."""


class NotFoundError(AppError, ValueError):
    """Requested record does not exist."""


class LockedError(AppError):
    """Mutation attempted against a visit whose status does not allow edits."""

    def __init__(self, message: str, *, status: str | None = None) -> None:
        super().__init__(message)
        self.status = status


class InvalidTransitionError(ValidationError):
    """Lifecycle transition not allowed from the current status."""


class InvalidInputError(ValidationError):
    """Non-numeric or out-of-range input to a dosage calculation."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class MissingAgeError(ValidationError):
    """Creatinine clearance requested without the patient's age."""


class SaveFailedError(AppError):
    """Transport or store failure while persisting a visit."""


class ConcurrentCommitConflictError(AppError):
    """Two commits for the same visit overlapped; re-read the current version and retry."""

    def __init__(self, message: str, *, expected_version: int | None, current_version: int | None) -> None:
        super().__init__(message)
        self.expected_version = expected_version
        self.current_version = current_version
