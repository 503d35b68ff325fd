"""
Error taxonomy for the authentication service.

Every error carries the HTTP status it maps to and a stable `code` string
(the class name) that clients can switch on. The exception handlers in
`main.py` turn these into `{"error": code, "message": ...}` bodies.
"""

from fastapi import status


class AuthServiceError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__


class ValidationError(AuthServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class WeakPasswordError(AuthServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = (
        "Password must be at least 8 characters and contain an uppercase letter, a digit and a symbol"
    )


class InvalidCredentialsError(AuthServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password"


class ChallengeMissingError(AuthServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "No active challenge for this wallet. Request a new one."


class InvalidSignatureError(AuthServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Malformed wallet signature"


class AddressMismatchError(AuthServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Signature does not belong to this wallet"


class InvalidTokenError(AuthServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid token"


class ExpiredTokenError(AuthServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Token expired"


class ConflictError(AuthServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class StoreUnavailableError(AuthServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Storage backend unavailable"


class LoggingError(AuthServiceError):
    """Activity write failure. Logged, never returned to the client."""

    default_message = "Activity log write failed"
