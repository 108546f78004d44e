from typing import Any, Optional


class AppError(Exception):
    """Base error for business-rule failures surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str, details: Any = None, field: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.field = field
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400


class MeasurementTypeError(ValidationError):
    """A line item measures in a different dimension than the item tracks."""


class InsufficientStockError(ValidationError):
    """Applying a line item would drive the tracked stock below zero."""


class UploadError(ValidationError):
    """Malformed upload, disallowed MIME type or oversize file."""


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class StorageError(AppError):
    status_code = 500


class DeadlineExceededError(AppError):
    status_code = 504
