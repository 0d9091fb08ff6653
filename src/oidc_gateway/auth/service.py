"""Authentication use cases: login, callback, refresh, logout, introspection, registration."""

import logging
from collections.abc import Callable
from datetime import datetime

import httpx

from oidc_gateway.auth.directory import UserDirectory
from oidc_gateway.auth.errors import (
    IdentityTokenMalformed,
    InvalidCredentials,
    SessionNotFound,
    UserAlreadyExists,
    UserInactive,
    UserNotFound,
)
from oidc_gateway.auth.models import (
    CallbackResult,
    Identity,
    IdentityPatch,
    LoginInitiation,
    LoginResponse,
    ProviderIdentityClaims,
    RegisterResponse,
    TokenSet,
    utcnow,
)
from oidc_gateway.auth.provider import ProviderClient
from oidc_gateway.auth.session import InMemorySessionStore, SessionStore
from oidc_gateway.auth.state import StateStore
from oidc_gateway.auth.tokens import TokenService
from oidc_gateway.config import Settings

logger = logging.getLogger(__name__)


class AuthService:
    """Drives a login attempt from redirect to issued tokens.

    The state store and session store are updated independently; a consumed
    state whose session has vanished still completes the login, because the
    issued tokens, not the session, are the source of truth.
    """

    def __init__(
        self,
        state_store: StateStore,
        session_store: SessionStore,
        provider: ProviderClient,
        tokens: TokenService,
        directory: UserDirectory,
        default_redirect_uri: str,
    ):
        self.state_store = state_store
        self.session_store = session_store
        self.provider = provider
        self.tokens = tokens
        self.directory = directory
        self.default_redirect_uri = default_redirect_uri

    async def initiate_login(
        self,
        redirect_uri: str | None = None,
        ip_address: str = "",
        user_agent: str = "",
    ) -> LoginInitiation:
        redirect_uri = redirect_uri or self.default_redirect_uri
        session = await self.session_store.create(
            ip_address=ip_address,
            user_agent=user_agent,
            redirect_uri=redirect_uri,
        )
        state = await self.state_store.issue(session.session_id)
        auth_url = self.provider.build_authorization_url(redirect_uri=redirect_uri, state=state)

        logger.info(f"Login initiated for session {session.session_id} (state {state[:10]}...)")
        return LoginInitiation(auth_url=auth_url, state=state, session_id=session.session_id)

    async def handle_callback(self, code: str, state: str) -> CallbackResult:
        session_id = await self.state_store.validate(state)

        session = await self.session_store.get(session_id)
        if session is None:
            logger.warning(f"Session {session_id} not found or expired; continuing callback")
            redirect_uri = self.default_redirect_uri
        else:
            redirect_uri = session.redirect_uri or self.default_redirect_uri

        provider_tokens = await self.provider.exchange_code(code, redirect_uri)
        claims = await self.provider.validate_identity_token(provider_tokens.id_token)
        identity = await self.resolve_identity(claims)

        if not identity.is_active:
            logger.warning(f"Inactive user {identity.id} attempted login")
            raise UserInactive()

        try:
            await self.session_store.bind_user(session_id, identity.id)
        except SessionNotFound:
            logger.warning(f"Could not bind user {identity.id} to session {session_id}: session not found")

        tokens = self.tokens.issue(identity)
        logger.info(f"Callback completed for user {identity.id} (session {session_id})")
        return CallbackResult(tokens=tokens, identity=identity, session_id=session_id)

    async def resolve_identity(self, claims: ProviderIdentityClaims) -> Identity:
        """Find the local user by email and sync their profile, or create them."""
        if not claims.email:
            raise IdentityTokenMalformed("ID token carries no email")

        existing = await self.directory.find_by_email(claims.email)
        if existing is not None:
            patch = IdentityPatch(name=claims.name or existing.name, picture=claims.picture)
            updated = await self.directory.update(existing.id, patch)
            if updated is None:
                raise UserNotFound()
            logger.info(f"Updated user {updated.id} from provider subject {claims.sub}")
            return updated

        created = await self.directory.create(
            email=claims.email,
            name=claims.name or claims.email,
            picture=claims.picture,
        )
        logger.info(f"Created user {created.id} from provider subject {claims.sub}")
        return created

    async def refresh(self, refresh_token: str) -> TokenSet:
        claims = self.tokens.verify_refresh(refresh_token)
        identity = await self._load_active_user(claims.subject)
        tokens = self.tokens.issue(identity)
        logger.info(f"Tokens refreshed for user {identity.id}")
        return tokens

    async def logout(self, user_id: str) -> int:
        """End every live session of the user. Issued tokens remain valid until expiry."""
        sessions = await self.session_store.list_by_user(user_id)
        for session in sessions:
            await self.session_store.delete(session.session_id)

        logger.info(f"User {user_id} logged out ({len(sessions)} session(s) ended)")
        return len(sessions)

    async def introspect(self, access_token: str) -> Identity:
        user_id = self.tokens.subject_of(access_token)
        identity = await self.directory.find_by_id(user_id)
        if identity is None:
            raise UserNotFound()
        return identity

    async def register(self, email: str, name: str, password: str) -> RegisterResponse:
        """Create a password account in the user directory."""
        if await self.directory.find_by_email(email) is not None:
            logger.warning(f"Registration rejected: {email} already registered")
            raise UserAlreadyExists()

        try:
            identity = await self.directory.create(email=email, name=name, password=password)
        except ValueError:
            logger.warning(f"Registration rejected: {email} already registered")
            raise UserAlreadyExists() from None

        logger.info(f"User {identity.id} registered")
        return RegisterResponse(user_id=identity.id, email=identity.email, name=identity.name)

    async def password_login(
        self,
        email: str,
        password: str,
        ip_address: str = "",
        user_agent: str = "",
    ) -> LoginResponse:
        identity = await self.directory.validate_credentials(email, password)
        if identity is None:
            raise InvalidCredentials()
        if not identity.is_active:
            raise UserInactive()

        tokens = self.tokens.issue(identity)
        session = await self.session_store.create(
            user_id=identity.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        logger.info(f"User {identity.id} logged in with password")
        return LoginResponse(
            user_id=identity.id,
            email=identity.email,
            name=identity.name,
            session_id=session.session_id,
            tokens=tokens,
        )

    async def _load_active_user(self, user_id: str) -> Identity:
        identity = await self.directory.find_by_id(user_id)
        if identity is None:
            raise UserNotFound()
        if not identity.is_active:
            raise UserInactive()
        return identity


def create_auth_service(
    settings: Settings,
    directory: UserDirectory,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> AuthService:
    """Wire an AuthService and its stores from settings."""
    return AuthService(
        state_store=StateStore(
            ttl_seconds=settings.state_ttl_seconds,
            sweep_interval_seconds=settings.state_sweep_interval_seconds,
            clock=clock,
        ),
        session_store=InMemorySessionStore(
            ttl_seconds=settings.session_ttl_seconds,
            sweep_interval_seconds=settings.session_sweep_interval_seconds,
            clock=clock,
        ),
        provider=ProviderClient(settings, transport=transport, clock=clock),
        tokens=TokenService.from_settings(settings, clock=clock),
        directory=directory,
        default_redirect_uri=settings.oidc_redirect_uri,
    )
