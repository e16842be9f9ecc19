"""
auth/errors.py -- Typed error taxonomy for the auth core.

Every error carries an HTTP-ish status_code and a stable machine-readable
code. Services raise these; api/main.py translates them into the
{"error": {"code", "message", "detail"}} envelope in a single handler, so no
route ever builds an error response by hand.

Messages are written for the caller. Internal context (SQL, stack traces,
user ids of other accounts) belongs in the server log, never in a message.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "An unexpected error occurred."

    def __init__(self, message: str | None = None, *, code: str | None = None, details: list[str] | None = None):
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        self.details = details or []
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed."


class AuthenticationError(AuthError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"
    default_message = "Authentication failed."


class TokenMissingError(AuthenticationError):
    code = "AUTH_TOKEN_MISSING"
    default_message = "No token provided."


# RBAC vocabulary: "no identity" is the same condition as "no token".
UnauthenticatedError = TokenMissingError


class TokenExpiredError(AuthenticationError):
    """The token was valid but has expired. Clients should try a refresh."""

    code = "AUTH_TOKEN_EXPIRED"
    default_message = "Token expired."


class TokenInvalidError(AuthenticationError):
    """Bad signature, malformed, wrong issuer/audience. Clients must log in again."""

    code = "AUTH_TOKEN_INVALID"
    default_message = "Invalid token."


class AuthorizationError(AuthError):
    status_code = 403
    code = "AUTHZ_FORBIDDEN"
    default_message = "Insufficient permissions."


ForbiddenError = AuthorizationError


class NotFoundError(AuthError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found."


class ConflictError(AuthError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource already exists."


class InternalError(AuthError):
    pass


class ServiceUnavailableError(AuthError):
    """A bounded store call timed out or the store is unreachable."""

    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    default_message = "Service temporarily unavailable."
