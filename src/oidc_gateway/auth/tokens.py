"""Issuance and validation of the gateway's own access, ID and refresh tokens."""

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta

from pydantic import ValidationError

from oidc_gateway.auth.errors import TokenMalformed
from oidc_gateway.auth.models import (
    AccessClaims,
    Identity,
    IdentityClaims,
    RefreshClaims,
    TokenSet,
    utcnow,
)
from oidc_gateway.auth.signer import Signer
from oidc_gateway.config import Settings

logger = logging.getLogger(__name__)

REFRESH_TOKEN_TYPE = "refresh"


def generate_jti() -> str:
    """128-bit random token identifier."""
    return secrets.token_hex(16)


class TokenService:
    """Issues and verifies locally signed tokens.

    Each token type has its own signer and secret, so a token of one type
    never verifies as another.
    """

    def __init__(
        self,
        access_signer: Signer,
        id_signer: Signer,
        refresh_signer: Signer,
        issuer: str = "oidc-api-server",
        audience: str = "oidc-api-client",
        scopes: list[str] | None = None,
        access_ttl_seconds: int = 3600,
        id_ttl_seconds: int = 3600,
        refresh_ttl_seconds: int = 30 * 24 * 3600,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.access_signer = access_signer
        self.id_signer = id_signer
        self.refresh_signer = refresh_signer
        self.issuer = issuer
        self.audience = audience
        self.scopes = scopes or ["openid", "profile", "email"]
        self.access_ttl = timedelta(seconds=access_ttl_seconds)
        self.id_ttl = timedelta(seconds=id_ttl_seconds)
        self.refresh_ttl = timedelta(seconds=refresh_ttl_seconds)
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], datetime] = utcnow) -> "TokenService":
        return cls(
            access_signer=Signer(settings.access_token_secret, clock=clock),
            id_signer=Signer(settings.id_token_secret, clock=clock),
            refresh_signer=Signer(settings.refresh_token_secret, clock=clock),
            issuer=settings.token_issuer,
            audience=settings.token_audience,
            scopes=settings.token_scopes,
            access_ttl_seconds=settings.access_token_ttl_seconds,
            id_ttl_seconds=settings.id_token_ttl_seconds,
            refresh_ttl_seconds=settings.refresh_token_ttl_seconds,
            clock=clock,
        )

    def issue(self, identity: Identity) -> TokenSet:
        """Issue an access/ID/refresh token triple for a local user."""
        now = self.clock()
        issued_at = int(now.timestamp())
        access_expiry = now + self.access_ttl

        access_claims = AccessClaims(
            sub=identity.id,
            email=identity.email,
            name=identity.name,
            scope=list(self.scopes),
            iss=self.issuer,
            aud=[self.audience],
            iat=issued_at,
            nbf=issued_at,
            exp=int(access_expiry.timestamp()),
            jti=generate_jti(),
        )
        id_claims = IdentityClaims(
            sub=identity.id,
            email=identity.email,
            name=identity.name,
            picture=identity.picture or None,
            email_verified=True,
            auth_time=issued_at,
            iss=self.issuer,
            aud=[self.audience],
            iat=issued_at,
            nbf=issued_at,
            exp=int((now + self.id_ttl).timestamp()),
            jti=generate_jti(),
        )
        refresh_claims = RefreshClaims(
            sub=identity.id,
            token_type=REFRESH_TOKEN_TYPE,
            iss=self.issuer,
            iat=issued_at,
            nbf=issued_at,
            exp=int((now + self.refresh_ttl).timestamp()),
            jti=generate_jti(),
        )

        tokens = TokenSet(
            access_token=self.access_signer.sign(access_claims.model_dump(exclude_none=True)),
            id_token=self.id_signer.sign(id_claims.model_dump(exclude_none=True)),
            refresh_token=self.refresh_signer.sign(refresh_claims.model_dump(exclude_none=True)),
            expires_in=int(self.access_ttl.total_seconds()),
            expires_at=access_expiry,
            scope=" ".join(self.scopes),
        )

        logger.info(f"Issued tokens for user {identity.id}")
        return tokens

    def verify_access(self, token: str) -> AccessClaims:
        payload = self.access_signer.verify(token, audience=self.audience, issuer=self.issuer)
        return _parse(AccessClaims, payload)

    def verify_id(self, token: str) -> IdentityClaims:
        payload = self.id_signer.verify(token, audience=self.audience, issuer=self.issuer)
        return _parse(IdentityClaims, payload)

    def verify_refresh(self, token: str) -> RefreshClaims:
        payload = self.refresh_signer.verify(token, issuer=self.issuer)
        claims = _parse(RefreshClaims, payload)
        if claims.token_type != REFRESH_TOKEN_TYPE:
            raise TokenMalformed(f"Unexpected token type: {claims.token_type}")
        return claims

    def subject_of(self, access_token: str) -> str:
        return self.verify_access(access_token).subject

    def subject_of_id_token(self, id_token: str) -> str:
        return self.verify_id(id_token).subject


def _parse(model, payload: dict):
    try:
        return model.model_validate(payload)
    except ValidationError:
        raise TokenMalformed("Token claims do not match the expected schema") from None
