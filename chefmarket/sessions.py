"""
Server-side session storage.

The session cookie only carries an opaque token; the store maps it to a user
id. An in-memory store covers tests and local runs and a Redis-backed store
is used in production.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

from chefmarket.db import StorageError


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


class SessionStore(Protocol):
    """Maps session tokens to user ids with an expiry."""

    def create(self, user_id: int, max_age_seconds: int) -> str:
        ...

    def get_user_id(self, token: str) -> Optional[int]:
        ...

    def delete(self, token: str) -> None:
        ...


@dataclass
class InMemorySessionStore:
    """Dict-backed session store for testing/dev."""

    sessions: dict[str, tuple[int, float]] = field(default_factory=dict)

    def create(self, user_id: int, max_age_seconds: int) -> str:
        self.purge_expired()
        token = new_session_token()
        self.sessions[token] = (user_id, time.time() + max_age_seconds)
        return token

    def get_user_id(self, token: str) -> Optional[int]:
        entry = self.sessions.get(token)
        if entry is None:
            return None
        user_id, expires_at = entry
        if expires_at <= time.time():
            self.sessions.pop(token, None)
            return None
        return user_id

    def delete(self, token: str) -> None:
        self.sessions.pop(token, None)

    def purge_expired(self) -> int:
        now = time.time()
        expired = [t for t, (_, expires_at) in self.sessions.items() if expires_at <= now]
        for token in expired:
            del self.sessions[token]
        return len(expired)

    def reset(self) -> None:
        self.sessions.clear()


@dataclass
class RedisSessionStore:
    """Redis-backed store; expiry is delegated to key TTLs."""

    url: str
    key_prefix: str = "chefmarket:session:"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{token}"

    def create(self, user_id: int, max_age_seconds: int) -> str:
        token = new_session_token()
        try:
            self.client.setex(self._key(token), max_age_seconds, str(user_id))
        except redis_exceptions.RedisError as exc:
            raise StorageError(f"Failed to store session: {exc}") from exc
        return token

    def get_user_id(self, token: str) -> Optional[int]:
        try:
            value = self.client.get(self._key(token))
        except redis_exceptions.ConnectionError:
            # Managed Redis drops idle connections; reconnect and treat the
            # session as missing for this request.
            self.client = redis.Redis.from_url(self.url)
            return None
        except redis_exceptions.RedisError as exc:
            raise StorageError(f"Failed to read session: {exc}") from exc
        if value is None:
            return None
        return int(value)

    def delete(self, token: str) -> None:
        try:
            self.client.delete(self._key(token))
        except redis_exceptions.RedisError as exc:
            raise StorageError(f"Failed to delete session: {exc}") from exc
