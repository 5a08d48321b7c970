"""
Domain exceptions raised by the service layer.

Each error carries the HTTP status it maps to; ``app.main`` renders them with
the standard error envelope.
"""


class DomainError(Exception):
    """Base class for business rule violations"""
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(DomainError):
    """Raised when a requested record does not exist or is not visible to the caller"""
    status_code = 404

    def __init__(self, entity: str = "Resource"):
        self.entity = entity
        super().__init__(f"{entity} not found")


class PermissionDeniedError(DomainError):
    """Raised when the caller does not own the record it acts on"""
    status_code = 403


class InvalidStateError(DomainError):
    """Raised when an operation is not allowed from the record's current status"""
    status_code = 409


class ConflictError(DomainError):
    """Raised when a uniqueness rule would be violated"""
    status_code = 409


class InsufficientBalanceError(DomainError):
    """Raised when a wallet cannot cover the requested amount"""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient balance. Required: {required}, available: {available}")


class ValidationFailedError(DomainError):
    """Raised when input passes schema validation but breaks a business rule"""


class RateLimitedError(DomainError):
    """Raised when an action is repeated before its cooldown expires"""
    status_code = 429

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Please wait {retry_after_seconds} seconds before requesting a new code")


class ServiceUnavailableError(DomainError):
    """Raised when an optional integration is not configured"""
    status_code = 503


class AuthenticationError(DomainError):
    """Raised when credentials are wrong or the account may not sign in"""
    status_code = 401
