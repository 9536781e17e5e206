"""
Maijjd - Error Taxonomy

Domain exceptions raised by the credential-lifecycle core and rendered
by the gateway as {error, message, code, timestamp} envelopes.

Every class fixes an HTTP status, a machine-readable code and a short
title; the message may be overridden per raise site.
"""

from typing import Any, Optional


class AuthError(Exception):
    """Base class for errors mapped to HTTP responses."""

    status_code: int
    code: str
    error: str
    default_message: str

    def __init__(self, message: Optional[str] = None, *, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed input; details lists the failing fields."""
    status_code = 400
    code = "VALIDATION_ERROR"
    error = "Validation Error"
    default_message = "Request validation failed"


class InvalidCredentials(AuthError):
    """Bad identifier or password. Deliberately generic."""
    status_code = 401
    code = "INVALID_CREDENTIALS"
    error = "Authentication Failed"
    default_message = "Invalid credentials"


class AccountInactive(AuthError):
    status_code = 403
    code = "ACCOUNT_INACTIVE"
    error = "Account Inactive"
    default_message = "Your account is not active. Please contact support."


class InvalidResetToken(AuthError):
    status_code = 400
    code = "INVALID_TOKEN"
    error = "Invalid Token"
    default_message = "Invalid or expired reset token. Please request a new password reset."


class ExpiredResetToken(AuthError):
    status_code = 400
    code = "EXPIRED_TOKEN"
    error = "Expired Token"
    default_message = "Reset token has expired. Please request a new password reset."


class ForbiddenScope(AuthError):
    """Reset token redeemed through the wrong scope."""
    status_code = 403
    code = "FORBIDDEN_SCOPE"
    error = "Forbidden Scope"
    default_message = "This reset token cannot be used here."


class InvalidOrExpiredCode(AuthError):
    status_code = 400
    code = "INVALID_OR_EXPIRED_CODE"
    error = "Invalid or expired code"
    default_message = "The verification code is invalid or has expired"


class InvalidRefreshToken(AuthError):
    status_code = 401
    code = "INVALID_REFRESH_TOKEN"
    error = "Invalid Refresh Token"
    default_message = "Refresh token is invalid or expired"


class InvalidTokenType(AuthError):
    status_code = 401
    code = "INVALID_TOKEN_TYPE"
    error = "Invalid Token Type"
    default_message = "Token is not a refresh token"


class AuthenticationRequired(AuthError):
    status_code = 401
    code = "TOKEN_REQUIRED"
    error = "Authentication Required"
    default_message = "Missing authentication token"


class InvalidAccessToken(AuthError):
    status_code = 401
    code = "INVALID_ACCESS_TOKEN"
    error = "Invalid Token"
    default_message = "Invalid or expired token"


class Forbidden(AuthError):
    status_code = 403
    code = "FORBIDDEN"
    error = "Forbidden"
    default_message = "Insufficient privileges"


class InvalidAdminKey(AuthError):
    status_code = 403
    code = "INVALID_ADMIN_KEY"
    error = "Unauthorized"
    default_message = "Invalid admin creation key"


class UserExists(AuthError):
    status_code = 409
    code = "USER_EXISTS"
    error = "User Already Exists"
    default_message = "An account with this email or phone already exists"


class UserNotFound(AuthError):
    status_code = 404
    code = "USER_NOT_FOUND"
    error = "User Not Found"
    default_message = "User account not found"


class TooManyAttempts(AuthError):
    status_code = 429
    code = "TOO_MANY_ATTEMPTS"
    error = "Too Many Attempts"
    default_message = "Too many failed attempts. Please try again later."

    def __init__(self, message: Optional[str] = None, *, retry_after: Optional[int] = None) -> None:
        super().__init__(message, details={"retryAfter": retry_after} if retry_after else None)
        self.retry_after = retry_after


class DatabaseError(AuthError):
    status_code = 500
    code = "DATABASE_ERROR"
    error = "Database Error"
    default_message = "Unable to process the request. Please try again later."


class StoreUnavailable(AuthError):
    status_code = 503
    code = "DATABASE_UNAVAILABLE"
    error = "Service Unavailable"
    default_message = "The service is temporarily unavailable. Please try again later."


class InternalError(AuthError):
    """Catch-all for failures nothing else names; the cause is logged, never shown."""
    status_code = 500
    code = "INTERNAL_ERROR"
    error = "Internal Server Error"
    default_message = "An unexpected error occurred. Please try again later."
