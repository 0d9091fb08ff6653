"""HMAC signing and verification of claim sets."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from jose import jwt, JWTError
from jose.exceptions import JWTClaimsError

from oidc_gateway.auth.errors import (
    ConfigurationError,
    TokenBadSignature,
    TokenExpired,
    TokenMalformed,
    TokenNotYetValid,
    TokenWrongMethod,
)
from oidc_gateway.auth.models import utcnow

logger = logging.getLogger(__name__)

HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")


class Signer:
    """Signs claims with one symmetric key and verifies tokens signed with it.

    Verification pins the algorithm: a token whose header declares anything
    other than the configured HMAC algorithm (``none``, RS256, ...) is rejected
    before any key is used. ``exp`` and ``nbf`` are read against ``clock``.
    Expiry is inclusive, so a token is already invalid at the exact ``exp``
    second.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret:
            raise ConfigurationError("Signing secret is empty")
        if algorithm not in HMAC_ALGORITHMS:
            raise ConfigurationError(f"Unsupported signing algorithm: {algorithm}")
        self._secret = secret
        self.algorithm = algorithm
        self.clock = clock

    def sign(self, claims: dict[str, Any]) -> str:
        try:
            return jwt.encode(claims, self._secret, algorithm=self.algorithm)
        except JWTError as e:
            raise ConfigurationError(f"Failed to sign token: {e}") from None

    def verify(
        self,
        token: str,
        audience: str | None = None,
        issuer: str | None = None,
    ) -> dict[str, Any]:
        """Verify signature, algorithm, issuer/audience and expiry; return the payload."""
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise TokenMalformed() from None

        alg = header.get("alg")
        if alg != self.algorithm:
            logger.warning(f"Rejected token with signing method {alg!r}")
            raise TokenWrongMethod(f"Unexpected signing method: {alg}")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                audience=audience,
                issuer=issuer,
                options={
                    "verify_exp": False,
                    "verify_nbf": False,
                    "verify_iat": False,
                    "verify_aud": audience is not None,
                    "verify_iss": issuer is not None,
                },
            )
        except JWTClaimsError as e:
            raise TokenMalformed(f"Invalid token claims: {e}") from None
        except JWTError:
            raise TokenBadSignature() from None

        now = self.clock().timestamp()
        exp = payload.get("exp")
        if not isinstance(exp, int):
            raise TokenMalformed("Token has no expiry")
        if now >= exp:
            raise TokenExpired()

        nbf = payload.get("nbf")
        if nbf is not None:
            if not isinstance(nbf, int):
                raise TokenMalformed("Invalid not-before claim")
            if now < nbf:
                raise TokenNotYetValid()

        return payload
