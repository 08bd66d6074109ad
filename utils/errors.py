# utils/errors.py


class IntakeError(Exception):
    """Base class for every error raised by the sales domain."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SaleValidationError(IntakeError):
    """User-correctable input error. Blocks submission, never a system fault."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class RecordLookupError(IntakeError):
    """A query against the record store failed. The user may retry."""


class PersistenceError(IntakeError):
    """A create/update/delete against the record store failed."""


class NotificationError(IntakeError):
    """A notification side effect failed after the record was persisted."""


class ProvisioningError(IntakeError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class IntakeStateError(IntakeError):
    """An intake event arrived in a step that does not accept it."""
