"""Authentication data models."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Store entries
# =============================================================================

class StateEntry(BaseModel):
    """Pending CSRF state bound to a login session."""

    token: str
    session_id: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class SessionData(BaseModel):
    """Login session tracked server-side."""

    session_id: str
    user_id: str = ""
    created_at: datetime
    expires_at: datetime
    ip_address: str = ""
    user_agent: str = ""
    redirect_uri: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    @property
    def is_bound(self) -> bool:
        return bool(self.user_id)


# =============================================================================
# Locally issued token claims
# =============================================================================

class BaseClaims(BaseModel):
    """Registered claims shared by every locally issued token."""

    sub: str = Field(..., description="Subject (user ID)")
    iss: str = Field(..., description="Issuer")
    iat: int = Field(..., description="Issued at timestamp")
    exp: int = Field(..., description="Expiration timestamp")
    nbf: int | None = Field(None, description="Not before timestamp")
    jti: str = Field(..., description="Unique token identifier")

    @property
    def subject(self) -> str:
        return self.sub

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)


class AccessClaims(BaseClaims):
    email: str
    name: str
    scope: list[str] = Field(default_factory=list)
    aud: list[str] = Field(default_factory=list)


class IdentityClaims(BaseClaims):
    email: str
    name: str
    picture: str | None = None
    email_verified: bool = False
    auth_time: int
    aud: list[str] = Field(default_factory=list)


class RefreshClaims(BaseClaims):
    token_type: str


class TokenSet(BaseModel):
    """Token triple handed to clients."""

    access_token: str
    id_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    expires_at: datetime
    scope: str


# =============================================================================
# External provider
# =============================================================================

class ProviderTokenResponse(BaseModel):
    """Token endpoint response from the external provider."""

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int = 0
    scope: str | None = None


class ProviderIdentityClaims(BaseModel):
    """Claims read from the provider's ID token."""

    sub: str
    email: str = ""
    name: str = ""
    picture: str | None = None
    email_verified: bool = False
    iss: str = ""
    aud: str | list[str] | None = None
    exp: int
    nbf: int | None = None
    iat: int | None = None

    @property
    def subject(self) -> str:
        return self.sub


class ProviderUserInfo(BaseModel):
    sub: str
    email: str = ""
    name: str = ""
    picture: str | None = None
    email_verified: bool = False


# =============================================================================
# User directory records
# =============================================================================

class Identity(BaseModel):
    """Local user account as owned by the user directory."""

    id: str
    email: str
    name: str
    picture: str | None = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class IdentityPatch(BaseModel):
    """Fields a profile sync may change. Anything else is rejected."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    picture: str | None = None


# =============================================================================
# API payloads
# =============================================================================

class LoginInitiation(BaseModel):
    """Result of starting the authorization code flow."""

    auth_url: str
    state: str
    session_id: str


class CallbackResult(BaseModel):
    tokens: TokenSet
    identity: Identity
    session_id: str


class RefreshRequest(BaseModel):
    refresh_token: str


class PasswordLoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str = Field(..., min_length=2)
    password: str = Field(..., min_length=6)


class RegisterResponse(BaseModel):
    """Response after a password account is created."""

    message: str = "User registered successfully"
    user_id: str
    email: str
    name: str


class LoginResponse(BaseModel):
    """Response after successful password login."""

    message: str = "Login successful"
    user_id: str
    email: str
    name: str
    session_id: str
    tokens: TokenSet


class UserInfoResponse(BaseModel):
    """OIDC-style userinfo payload."""

    sub: str
    email: str
    name: str
    picture: str | None = None
    email_verified: bool = True


class AuthErrorResponse(BaseModel):
    """Authentication error response."""

    error: str
    error_description: str | None = None
