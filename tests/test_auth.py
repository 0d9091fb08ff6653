import pytest

from oidc_gateway.auth.errors import (
    MalformedHeader,
    MissingHeader,
    TokenBadSignature,
    TokenExpired,
    UserInactive,
    UserNotFound,
)
from oidc_gateway.auth.middleware import AuthenticationGate
from oidc_gateway.auth.models import Identity


@pytest.fixture
def gate(auth_service) -> AuthenticationGate:
    return AuthenticationGate(auth_service)


class TestAuthenticationGate:
    """Tests for bearer token authentication."""

    async def test_valid_token(self, gate, token_service, identity):
        tokens = token_service.issue(identity)

        user = await gate.authenticate(f"Bearer {tokens.access_token}")

        assert user.id == identity.id
        assert user.email == identity.email

    async def test_goes_through_introspection(self, gate, auth_service, token_service, identity, spy_directory):
        """The gate and introspect resolve a token the same way."""
        tokens = token_service.issue(identity)

        user = await gate.authenticate(f"Bearer {tokens.access_token}")

        assert spy_directory.calls == ["find_by_id"]
        assert user == await auth_service.introspect(tokens.access_token)

    @pytest.mark.parametrize("header", [None, ""])
    async def test_missing_header(self, gate, spy_directory, header):
        with pytest.raises(MissingHeader) as exc_info:
            await gate.authenticate(header)
        assert exc_info.value.status_code == 401
        assert spy_directory.calls == []

    @pytest.mark.parametrize("header", ["Basic dXNlcjpwYXNz", "bearer abc", "Token abc", "Bearer "])
    async def test_malformed_header(self, gate, spy_directory, header):
        with pytest.raises(MalformedHeader):
            await gate.authenticate(header)
        assert spy_directory.calls == []

    async def test_refresh_token_is_rejected(self, gate, token_service, identity, spy_directory):
        tokens = token_service.issue(identity)

        with pytest.raises(TokenBadSignature):
            await gate.authenticate(f"Bearer {tokens.refresh_token}")
        assert spy_directory.calls == []

    async def test_expired_token(self, gate, token_service, identity, clock):
        tokens = token_service.issue(identity)
        clock.advance(3600)

        with pytest.raises(TokenExpired):
            await gate.authenticate(f"Bearer {tokens.access_token}")

    async def test_unknown_user(self, gate, token_service):
        tokens = token_service.issue(Identity(id="usr_ghost", email="ghost@b.com", name="Ghost"))

        with pytest.raises(UserNotFound):
            await gate.authenticate(f"Bearer {tokens.access_token}")

    async def test_deactivation_applies_to_live_tokens(self, gate, token_service, identity, directory):
        tokens = token_service.issue(identity)
        await gate.authenticate(f"Bearer {tokens.access_token}")

        await directory.deactivate(identity.id)

        with pytest.raises(UserInactive) as exc_info:
            await gate.authenticate(f"Bearer {tokens.access_token}")
        assert exc_info.value.kind == "account_disabled"
