"""Client for the external OIDC provider."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from urllib.parse import urlencode

import httpx
from jose import jwt, JWTError
from jose.exceptions import JWTClaimsError
from pydantic import ValidationError

from oidc_gateway.auth.errors import (
    IdentityTokenExpired,
    IdentityTokenMalformed,
    InvalidSignature,
    IssuerMismatch,
    ProviderNetworkError,
    ProviderRejected,
)
from oidc_gateway.auth.models import (
    ProviderIdentityClaims,
    ProviderTokenResponse,
    ProviderUserInfo,
    utcnow,
)
from oidc_gateway.config import Settings

logger = logging.getLogger(__name__)

JWKS_CACHE_TTL = timedelta(hours=24)
PROVIDER_ALGORITHMS = ["RS256", "ES256"]


class ProviderClient:
    """Authorization code exchange and identity token validation.

    Every network call is a single attempt: authorization codes are single-use,
    so retrying is left to the caller.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client_id = settings.oidc_client_id
        self.client_secret = settings.oidc_client_secret
        self.authorization_url = settings.oidc_authorization_url
        self.token_url = settings.oidc_token_url
        self.userinfo_url = settings.oidc_userinfo_url
        self.issuer = settings.oidc_issuer
        self.jwks_url = settings.oidc_jwks_url
        self.scopes = settings.oidc_scopes
        self.allow_unverified = settings.oidc_allow_unverified_id_tokens
        self.timeout = settings.oidc_http_timeout_seconds
        self.clock = clock
        self._transport = transport
        self._jwks_cache: dict | None = None
        self._jwks_cache_time: datetime | None = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def build_authorization_url(self, redirect_uri: str, state: str, scopes: list[str] | None = None) -> str:
        """Build the provider authorization URL."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(scopes or self.scopes),
            "response_type": "code",
            "state": state,
        }
        return f"{self.authorization_url}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> ProviderTokenResponse:
        """Exchange an authorization code for provider tokens."""
        logger.info(f"Exchanging authorization code {code[:10]}... (redirect_uri={redirect_uri})")

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

        try:
            async with self._client() as client:
                resp = await client.post(
                    self.token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Token exchange request failed: {e}")
            raise ProviderNetworkError() from None

        if resp.status_code != 200:
            logger.error(f"Token exchange failed with status {resp.status_code}: {resp.text}")
            raise ProviderRejected(resp.status_code, resp.text)

        try:
            tokens = ProviderTokenResponse.model_validate(resp.json())
        except (ValueError, ValidationError):
            logger.error("Token endpoint returned an unreadable response")
            raise ProviderRejected(resp.status_code, resp.text, "Identity provider returned a malformed token response") from None

        logger.info(f"Received provider tokens (type={tokens.token_type}, expires_in={tokens.expires_in})")
        return tokens

    async def get_jwks(self, force_refresh: bool = False) -> dict:
        """Fetch JSON Web Key Set for token validation."""
        cache_valid = (
            self._jwks_cache
            and self._jwks_cache_time
            and (self.clock() - self._jwks_cache_time) < JWKS_CACHE_TTL
        )

        if cache_valid and not force_refresh:
            return self._jwks_cache

        try:
            async with self._client() as client:
                resp = await client.get(self.jwks_url)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch provider JWKS from {self.jwks_url}: {e}")
            raise ProviderNetworkError("Identity provider signing keys could not be fetched") from None

        try:
            jwks = resp.json()
        except ValueError:
            logger.error(f"Provider JWKS at {self.jwks_url} is not valid JSON")
            raise ProviderRejected(resp.status_code, resp.text, "Identity provider returned malformed signing keys") from None

        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
            logger.error(f"Provider JWKS at {self.jwks_url} has no keys list")
            raise ProviderRejected(resp.status_code, resp.text, "Identity provider returned malformed signing keys")

        self._jwks_cache = jwks
        self._jwks_cache_time = self.clock()
        return self._jwks_cache

    async def validate_identity_token(self, id_token: str | None) -> ProviderIdentityClaims:
        """Validate the provider's ID token and return its claims."""
        if not id_token:
            raise IdentityTokenMalformed("Identity provider returned no ID token")

        if self.jwks_url:
            return await self._verify_with_jwks(id_token)

        if self.allow_unverified:
            return self._parse_unverified(id_token)

        raise InvalidSignature("No provider signing keys configured")

    async def _find_key(self, kid: str | None) -> dict | None:
        key = _select_key(await self.get_jwks(), kid)
        if key is not None:
            return key

        # Keys may have rotated since the cache was filled
        return _select_key(await self.get_jwks(force_refresh=True), kid)

    async def _verify_with_jwks(self, id_token: str) -> ProviderIdentityClaims:
        try:
            header = jwt.get_unverified_header(id_token)
        except JWTError:
            raise IdentityTokenMalformed() from None

        if header.get("alg") not in PROVIDER_ALGORITHMS:
            raise InvalidSignature(f"Unexpected signing method: {header.get('alg')}")

        key = await self._find_key(header.get("kid"))
        if key is None:
            raise InvalidSignature("Unable to find matching key for token validation")

        try:
            payload = jwt.decode(
                id_token,
                key,
                algorithms=PROVIDER_ALGORITHMS,
                audience=self.client_id,
                options={
                    "verify_exp": False,
                    "verify_nbf": False,
                    "verify_iat": False,
                    "verify_iss": False,
                    "verify_at_hash": False,
                },
            )
        except JWTClaimsError as e:
            raise IdentityTokenMalformed(f"Invalid ID token claims: {e}") from None
        except JWTError as e:
            logger.warning(f"ID token signature verification failed: {e}")
            raise InvalidSignature() from None

        claims = self._parse_claims(payload)
        if claims.iss != self.issuer:
            logger.warning(f"ID token issuer mismatch: expected {self.issuer}, got {claims.iss}")
            raise IssuerMismatch()
        self._check_time_claims(claims)

        logger.info(f"ID token validated for sub={claims.sub} email={claims.email}")
        return claims

    def _parse_unverified(self, id_token: str) -> ProviderIdentityClaims:
        """Read claims without checking the signature. Demo deployments only."""
        if id_token.count(".") != 2:
            raise IdentityTokenMalformed("Invalid ID token format")

        try:
            payload = jwt.get_unverified_claims(id_token)
        except JWTError:
            raise IdentityTokenMalformed() from None

        claims = self._parse_claims(payload)
        if claims.iss != self.issuer:
            logger.warning(f"ID token issuer mismatch: expected {self.issuer}, got {claims.iss}")
        self._check_time_claims(claims)

        logger.warning(f"Accepted unverified ID token for sub={claims.sub}")
        return claims

    def _parse_claims(self, payload: dict) -> ProviderIdentityClaims:
        try:
            return ProviderIdentityClaims.model_validate(payload)
        except ValidationError:
            raise IdentityTokenMalformed("ID token claims do not match the expected schema") from None

    def _check_time_claims(self, claims: ProviderIdentityClaims) -> None:
        now = self.clock().timestamp()
        if now >= claims.exp:
            raise IdentityTokenExpired()
        if claims.nbf is not None and now < claims.nbf:
            raise IdentityTokenMalformed("Provider identity token is not valid yet")

    async def fetch_user_info(self, access_token: str) -> ProviderUserInfo:
        """Fetch the user's profile from the provider userinfo endpoint."""
        try:
            async with self._client() as client:
                resp = await client.get(
                    self.userinfo_url,
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Userinfo request failed: {e}")
            raise ProviderNetworkError() from None

        if resp.status_code != 200:
            logger.error(f"Userinfo request failed with status {resp.status_code}")
            raise ProviderRejected(resp.status_code, resp.text)

        try:
            return ProviderUserInfo.model_validate(resp.json())
        except (ValueError, ValidationError):
            raise ProviderRejected(resp.status_code, resp.text, "Identity provider returned malformed user info") from None


def _select_key(jwks: dict, kid: str | None) -> dict | None:
    for key in jwks["keys"]:
        if isinstance(key, dict) and key.get("kid") == kid:
            return key
    return None
