from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from jose import jwt

from oidc_gateway.auth.directory import InMemoryUserDirectory
from oidc_gateway.auth.models import Identity, ProviderIdentityClaims, ProviderTokenResponse
from oidc_gateway.auth.provider import ProviderClient
from oidc_gateway.auth.service import AuthService, create_auth_service
from oidc_gateway.auth.tokens import TokenService
from oidc_gateway.config import Settings

PROVIDER_ISSUER = "https://accounts.example.com"
CLIENT_ID = "client-123"


class FakeClock:
    """Controllable clock. Time claims are always read from it, never from the wall clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class SpyDirectory:
    """Wraps a directory and records every call by method name."""

    def __init__(self, inner: InMemoryUserDirectory):
        self.inner = inner
        self.calls: list[str] = []

    def __getattr__(self, name: str):
        target = getattr(self.inner, name)

        async def record(*args, **kwargs):
            self.calls.append(name)
            return await target(*args, **kwargs)

        return record


class StubProvider:
    """Provider client double that returns canned claims."""

    def __init__(self, claims: ProviderIdentityClaims, authorization_url: str = "https://idp.example.com/auth"):
        self.claims = claims
        self.authorization_url = authorization_url
        self.exchanged: list[tuple[str, str]] = []
        self.exchange_error: Exception | None = None

    def build_authorization_url(self, redirect_uri: str, state: str, scopes: list[str] | None = None) -> str:
        return ProviderClient.build_authorization_url(self, redirect_uri, state, scopes)

    @property
    def client_id(self) -> str:
        return CLIENT_ID

    @property
    def scopes(self) -> list[str]:
        return ["openid", "profile", "email"]

    async def exchange_code(self, code: str, redirect_uri: str) -> ProviderTokenResponse:
        self.exchanged.append((code, redirect_uri))
        if self.exchange_error:
            raise self.exchange_error
        return ProviderTokenResponse(access_token="provider-access", id_token="provider-id-token", expires_in=3600)

    async def validate_identity_token(self, id_token: str | None) -> ProviderIdentityClaims:
        return self.claims


def make_provider_id_token(clock: Callable[[], datetime], **overrides) -> str:
    now = int(clock().timestamp())
    claims = {
        "sub": "u1",
        "email": "a@b.com",
        "name": "Ada Lovelace",
        "picture": "https://img.example.com/ada.png",
        "email_verified": True,
        "iss": PROVIDER_ISSUER,
        "aud": CLIENT_ID,
        "iat": now,
        "exp": now + 3600,
    }
    claims.update(overrides)
    return jwt.encode(claims, "provider-demo-key", algorithm="HS256")


def make_settings(**overrides) -> Settings:
    values = {
        "oidc_client_id": CLIENT_ID,
        "oidc_client_secret": "client-secret",
        "oidc_authorization_url": "https://idp.example.com/auth",
        "oidc_token_url": "https://idp.example.com/token",
        "oidc_userinfo_url": "https://idp.example.com/userinfo",
        "oidc_issuer": PROVIDER_ISSUER,
        "oidc_redirect_uri": "https://app/cb",
        "oidc_allow_unverified_id_tokens": True,
        "access_token_secret": "access-secret-for-tests",
        "id_token_secret": "id-secret-for-tests",
        "refresh_token_secret": "refresh-secret-for-tests",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def token_service(settings: Settings, clock: FakeClock) -> TokenService:
    return TokenService.from_settings(settings, clock=clock)


@pytest.fixture
def identity() -> Identity:
    return Identity(id="u1", email="a@b.com", name="Ada Lovelace")


@pytest.fixture
def directory(identity: Identity) -> InMemoryUserDirectory:
    return InMemoryUserDirectory(users=[identity])


@pytest.fixture
def spy_directory(directory: InMemoryUserDirectory) -> SpyDirectory:
    return SpyDirectory(directory)


@pytest.fixture
def provider_token_handler(clock: FakeClock):
    """Default token endpoint: returns a provider ID token for u1/a@b.com."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            return httpx.Response(
                200,
                json={
                    "access_token": "provider-access-token",
                    "id_token": make_provider_id_token(clock),
                    "token_type": "Bearer",
                    "expires_in": 3600,
                    "scope": "openid profile email",
                },
            )
        return httpx.Response(404)

    return handler


@pytest.fixture
def auth_service(settings, spy_directory, clock, provider_token_handler) -> AuthService:
    transport = httpx.MockTransport(provider_token_handler)
    return create_auth_service(settings, spy_directory, transport=transport, clock=clock)
