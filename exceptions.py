"""Error taxonomy for accounts, tokens, sessions and the store"""

from typing import Optional


class ConfigurationError(Exception):
    """Raised at startup when required configuration is absent or invalid"""
    pass


class AuthError(Exception):
    """
    Base exception for every failure surfaced at the action boundary.
    `message` is safe to show to the caller; internal detail goes to the log only.
    """

    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Bad input, rejected before any storage access"""
    status_code = 400
    default_message = "Invalid input"


class UsernameTaken(AuthError):
    status_code = 409
    default_message = "Username already exists"


class InvalidCredentials(AuthError):
    """Same message for unknown user and wrong password (no username enumeration)"""
    status_code = 401
    default_message = "Invalid username or password"

    def __init__(self):
        super().__init__()


class DecryptionError(AuthError):
    """Envelope malformed, truncated, tampered, or sealed under another key"""
    status_code = 500
    default_message = "Stored record is unreadable"


class TokenInvalid(AuthError):
    status_code = 401
    default_message = "Invalid or expired token"


class SessionNotFound(AuthError):
    status_code = 404
    default_message = "Invalid or expired session"


class NoActiveToken(AuthError):
    status_code = 401
    default_message = "No active token"


class InvalidSession(AuthError):
    status_code = 401
    default_message = "Invalid session"


class StoreUnavailable(AuthError):
    """Infrastructure failure talking to Redis. Never retried here."""
    status_code = 503
    default_message = "Service temporarily unavailable. Please try again."
