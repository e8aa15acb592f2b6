# Overview: Error taxonomy shared by the service layer and the API routes.

"""
Service errors carry a stable machine code and the HTTP status the routes
answer with. Routes catch LedgerError and render
{"error": str(e), "code": e.code} with e.status_code.
"""


class LedgerError(Exception):
    """Base class for every business error raised by the services."""
    code = "LEDGER_ERROR"
    status_code = 400


class ValidationError(LedgerError):
    code = "VALIDATION_ERROR"
    status_code = 400


class UnauthenticatedError(LedgerError):
    """No caller identity (missing, invalid or inactive account)."""
    code = "UNAUTHENTICATED"
    status_code = 401


class UnauthorizedError(LedgerError):
    """Identity present but lacks the required relationship or role."""
    code = "UNAUTHORIZED"
    status_code = 403


class NotFoundError(LedgerError):
    code = "NOT_FOUND"
    status_code = 404


class RecipientNotFoundError(NotFoundError):
    code = "RECIPIENT_NOT_FOUND"


class InsufficientCreditsError(LedgerError):
    code = "INSUFFICIENT_CREDITS"
    status_code = 402

    def __init__(self, message: str = "Insufficient credits", *, required: int | None = None,
                 available: int | None = None):
        super().__init__(message)
        self.required = required
        self.available = available


class ConflictError(LedgerError):
    code = "CONFLICT"
    status_code = 409


class AlreadyUnlockedError(ConflictError):
    code = "ALREADY_UNLOCKED"


class AlreadyReviewedError(ConflictError):
    code = "ALREADY_REVIEWED"


class StorageError(LedgerError):
    """Underlying database failure; the unit of work was rolled back."""
    code = "STORAGE_ERROR"
    status_code = 500


def error_payload(exc: LedgerError) -> dict:
    payload = {"error": str(exc), "code": exc.code}
    if isinstance(exc, InsufficientCreditsError):
        if exc.required is not None:
            payload["required"] = exc.required
        if exc.available is not None:
            payload["available"] = exc.available
    return payload
