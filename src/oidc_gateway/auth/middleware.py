"""Bearer-token authentication gate and FastAPI dependencies."""

import logging
from typing import Annotated

from fastapi import Depends, Request

from oidc_gateway.auth.errors import MalformedHeader, MissingHeader, UserInactive
from oidc_gateway.auth.models import Identity
from oidc_gateway.auth.service import AuthService

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class AuthenticationGate:
    """Turns an Authorization header into an active local identity.

    Token verification and the directory lookup go through
    ``AuthService.introspect``. The account's active flag is re-checked on
    every call so deactivation takes effect while tokens are still unexpired.
    """

    def __init__(self, auth_service: AuthService):
        self.auth_service = auth_service

    async def authenticate(self, authorization: str | None) -> Identity:
        if not authorization:
            logger.warning("Missing Authorization header")
            raise MissingHeader()

        if not authorization.startswith(BEARER_PREFIX):
            logger.warning("Invalid Authorization header format")
            raise MalformedHeader()

        token = authorization[len(BEARER_PREFIX):].strip()
        if not token:
            logger.warning("Empty access token")
            raise MalformedHeader("Empty access token")

        identity = await self.auth_service.introspect(token)

        if not identity.is_active:
            logger.warning(f"Inactive user {identity.id} attempted access")
            raise UserInactive()

        logger.debug(f"Authenticated user {identity.id}")
        return identity


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_auth_gate(request: Request) -> AuthenticationGate:
    return request.app.state.auth_gate


async def require_authenticated(
    request: Request,
    gate: Annotated[AuthenticationGate, Depends(get_auth_gate)],
) -> Identity:
    """Require a valid bearer token for an active user."""
    return await gate.authenticate(request.headers.get("Authorization"))


# Type aliases for dependency injection
AuthenticatedUser = Annotated[Identity, Depends(require_authenticated)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
