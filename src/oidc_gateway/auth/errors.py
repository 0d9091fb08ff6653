"""Typed authentication errors.

Every error carries a stable machine-readable ``kind`` and the HTTP status the
transport layer should answer with. Messages are safe to show to clients: they
never include secrets, token material or provider response bodies.
"""

from fastapi import status

from oidc_gateway.auth.models import AuthErrorResponse


class AuthError(Exception):
    """Base class for all authentication errors."""

    kind = "auth_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Authentication failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> AuthErrorResponse:
        return AuthErrorResponse(error=self.kind, error_description=self.message)


class ConfigurationError(AuthError):
    kind = "configuration_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Authentication is misconfigured"


# CSRF state

class InvalidState(AuthError):
    kind = "invalid_state"
    default_message = "Invalid state parameter"


class ExpiredState(AuthError):
    kind = "expired_state"
    default_message = "State parameter expired"


# Provider exchange

class ProviderRejected(AuthError):
    """The provider answered with a non-success status."""

    kind = "provider_rejected"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Identity provider rejected the request"

    def __init__(self, provider_status: int, provider_body: str = "", message: str | None = None):
        self.provider_status = provider_status
        self.provider_body = provider_body
        super().__init__(message or f"Identity provider returned status {provider_status}")


class ProviderNetworkError(AuthError):
    kind = "network_error"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "Identity provider could not be reached"


# Locally issued tokens

class TokenError(AuthError):
    kind = "invalid_token"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Token validation failed"


class TokenMalformed(TokenError):
    kind = "malformed_token"
    default_message = "Token is malformed"


class TokenBadSignature(TokenError):
    kind = "bad_signature"
    default_message = "Token signature is invalid"


class TokenExpired(TokenError):
    kind = "token_expired"
    default_message = "Token has expired"


class TokenWrongMethod(TokenError):
    kind = "wrong_signing_method"
    default_message = "Token uses an unexpected signing method"


class TokenNotYetValid(TokenError):
    kind = "token_not_yet_valid"
    default_message = "Token is not valid yet"


# Provider identity tokens

class IdentityTokenError(AuthError):
    kind = "invalid_id_token"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Provider identity token is invalid"


class InvalidSignature(IdentityTokenError):
    kind = "invalid_signature"
    default_message = "Provider identity token signature could not be verified"


class IssuerMismatch(IdentityTokenError):
    kind = "issuer_mismatch"
    default_message = "Provider identity token issuer does not match"


class IdentityTokenExpired(IdentityTokenError):
    kind = "expired"
    default_message = "Provider identity token has expired"


class IdentityTokenMalformed(IdentityTokenError):
    kind = "malformed"
    default_message = "Provider identity token is malformed"


# User directory

class UserNotFound(AuthError):
    kind = "user_not_found"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "User not found"


class UserInactive(AuthError):
    kind = "account_disabled"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "User account is disabled"


class UserAlreadyExists(AuthError):
    kind = "user_exists"
    status_code = status.HTTP_409_CONFLICT
    default_message = "A user with this email already exists"


class InvalidCredentials(AuthError):
    kind = "invalid_grant"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password"


class SessionNotFound(AuthError):
    """Soft failure: session tracking is advisory."""

    kind = "session_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Session not found or expired"


# Authentication gate

class MissingHeader(AuthError):
    kind = "missing_authorization"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Missing Authorization header"


class MalformedHeader(AuthError):
    kind = "malformed_authorization"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid Authorization header format"
