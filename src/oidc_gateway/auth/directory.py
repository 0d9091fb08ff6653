"""User directory interface and an in-memory implementation."""

import asyncio
import logging
import secrets
from typing import Protocol

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerifyMismatchError

from oidc_gateway.auth.models import Identity, IdentityPatch, utcnow

logger = logging.getLogger(__name__)


class UserDirectory(Protocol):
    """Authoritative store of user accounts, owned outside the auth core."""

    async def find_by_email(self, email: str) -> Identity | None: ...

    async def find_by_id(self, user_id: str) -> Identity | None: ...

    async def create(
        self,
        email: str,
        name: str,
        picture: str | None = None,
        password: str | None = None,
    ) -> Identity: ...

    async def update(self, user_id: str, patch: IdentityPatch) -> Identity | None: ...

    async def search(self, query: str) -> list[Identity]: ...

    async def validate_credentials(self, email: str, password: str) -> Identity | None: ...


def generate_user_id() -> str:
    return "usr_" + secrets.token_hex(16)


class InMemoryUserDirectory:
    """Process-local directory used for development and tests."""

    def __init__(self, users: list[Identity] | None = None):
        self._users: dict[str, Identity] = {user.id: user for user in users or []}
        self._password_hashes: dict[str, str] = {}
        self._hasher = PasswordHasher(type=Type.ID)
        self._lock = asyncio.Lock()

    async def find_by_email(self, email: str) -> Identity | None:
        needle = email.lower()
        async with self._lock:
            for user in self._users.values():
                if user.email.lower() == needle:
                    return user.model_copy()
        return None

    async def find_by_id(self, user_id: str) -> Identity | None:
        async with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    async def create(
        self,
        email: str,
        name: str,
        picture: str | None = None,
        password: str | None = None,
    ) -> Identity:
        user = Identity(id=generate_user_id(), email=email, name=name, picture=picture)
        password_hash = await asyncio.to_thread(self._hasher.hash, password) if password else None

        needle = email.lower()
        async with self._lock:
            if any(existing.email.lower() == needle for existing in self._users.values()):
                raise ValueError(f"user with email {email} already exists")
            self._users[user.id] = user
            if password_hash:
                self._password_hashes[user.id] = password_hash

        logger.info(f"Created user {user.id}")
        return user.model_copy()

    async def update(self, user_id: str, patch: IdentityPatch) -> Identity | None:
        changes = patch.model_dump(exclude_unset=True)
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updated = user.model_copy(update={**changes, "updated_at": utcnow()})
            self._users[user_id] = updated
            return updated.model_copy()

    async def deactivate(self, user_id: str) -> bool:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            self._users[user_id] = user.model_copy(update={"is_active": False, "updated_at": utcnow()})

        logger.info(f"Deactivated user {user_id}")
        return True

    async def search(self, query: str) -> list[Identity]:
        needle = query.lower()
        async with self._lock:
            return [
                user.model_copy()
                for user in self._users.values()
                if user.is_active and (needle in user.name.lower() or needle in user.email.lower())
            ]

    async def validate_credentials(self, email: str, password: str) -> Identity | None:
        user = await self.find_by_email(email)
        if user is None:
            return None

        stored_hash = self._password_hashes.get(user.id)
        if not stored_hash:
            return None

        try:
            await asyncio.to_thread(self._hasher.verify, stored_hash, password)
        except (InvalidHash, VerifyMismatchError):
            return None
        return user
