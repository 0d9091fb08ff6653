"""Authentication core for the OIDC gateway."""

from oidc_gateway.auth.models import (
    AccessClaims,
    Identity,
    IdentityClaims,
    IdentityPatch,
    RefreshClaims,
    SessionData,
    StateEntry,
    TokenSet,
)
from oidc_gateway.auth.signer import Signer
from oidc_gateway.auth.state import StateStore
from oidc_gateway.auth.session import InMemorySessionStore, SessionStore
from oidc_gateway.auth.tokens import TokenService
from oidc_gateway.auth.provider import ProviderClient
from oidc_gateway.auth.directory import InMemoryUserDirectory, UserDirectory
from oidc_gateway.auth.service import AuthService, create_auth_service
from oidc_gateway.auth.middleware import AuthenticationGate, AuthenticatedUser, require_authenticated
from oidc_gateway.auth.routes import router as auth_router

__all__ = [
    # Models
    "AccessClaims",
    "Identity",
    "IdentityClaims",
    "IdentityPatch",
    "RefreshClaims",
    "SessionData",
    "StateEntry",
    "TokenSet",
    # Stores
    "StateStore",
    "SessionStore",
    "InMemorySessionStore",
    # Tokens
    "Signer",
    "TokenService",
    # Provider
    "ProviderClient",
    # Directory
    "UserDirectory",
    "InMemoryUserDirectory",
    # Orchestration
    "AuthService",
    "create_auth_service",
    # Middleware
    "AuthenticationGate",
    "AuthenticatedUser",
    "require_authenticated",
    # Routes
    "auth_router",
]
