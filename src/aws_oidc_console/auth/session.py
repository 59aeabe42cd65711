"""Durable key-value storage and session management for the OAuth2 flow."""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

from jose import jwt, JWTError
from pydantic import ValidationError

from aws_oidc_console.auth.capabilities import Clock, system_clock
from aws_oidc_console.auth.errors import StorageError
from aws_oidc_console.auth.models import OAuthSession, SessionDebugInfo, UserInfo

logger = logging.getLogger(__name__)

SESSION_KEY = "auth-session"
PKCE_VERIFIER_KEY = "pkce-verifier"
STATE_KEY = "oauth-state"
AUTH_SCOPED_PREFIXES = ("oidc-manifest", "auth-", "oauth-")


class KeyValueStore(ABC):
    """Abstract durable string key-value area."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory store for tests and throwaway processes."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]


class FileKeyValueStore(KeyValueStore):
    """Single JSON file store with atomic temp-file + ``os.replace`` writes."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable store file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed store file {self.path}")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
        os.replace(tmp, self.path)

    def _set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def _delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)

    # File I/O runs in a worker thread.
    async def get(self, key: str) -> str | None:
        return (await asyncio.to_thread(self._load)).get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)

    async def keys(self, prefix: str = "") -> list[str]:
        return [k for k in await asyncio.to_thread(self._load) if k.startswith(prefix)]


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store for deployments that share state between processes."""

    def __init__(self, redis_url: str, namespace: str = "aws-oidc-console:"):
        import redis.asyncio as redis
        self._redis = redis.from_url(redis_url, decode_responses=True)
        self._namespace = namespace

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._namespace}{key}")

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(f"{self._namespace}{key}", value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._namespace}{key}")

    async def keys(self, prefix: str = "") -> list[str]:
        offset = len(self._namespace)
        return [
            key[offset:]
            async for key in self._redis.scan_iter(match=f"{self._namespace}{prefix}*")
        ]


def format_time(ms: int) -> str:
    """Format milliseconds as ``1h 5m``, ``3m 2s`` or ``42s``."""
    if ms <= 0:
        return "0s"
    seconds = ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def id_token_claims(id_token: str | None) -> dict | None:
    """Return the unverified claims of an ID token, or None if it cannot be decoded."""
    if not id_token:
        return None
    try:
        return jwt.get_unverified_claims(id_token)
    except JWTError:
        return None


class SessionManager:
    """Persists the authentication session and the pending PKCE artifacts."""

    def __init__(self, store: KeyValueStore, clock: Clock = system_clock):
        self._store = store
        self._clock = clock

    @property
    def store(self) -> KeyValueStore:
        return self._store

    async def store_session(self, session: OAuthSession) -> None:
        """Persist the whole session under a single key."""
        if not session or not session.access_token:
            raise StorageError("Invalid session: access token is required")
        try:
            await self._store.set(SESSION_KEY, session.model_dump_json())
        except OSError as e:
            raise StorageError(f"Session storage failed: {e}") from e

    async def get_session(self) -> OAuthSession | None:
        """Return the stored session; corrupted data is purged and reported as absent."""
        raw = await self._store.get(SESSION_KEY)
        if not raw:
            return None
        try:
            return OAuthSession.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding corrupted session: {e.error_count()} validation error(s)")
            await self.clear_session()
            return None

    async def is_session_valid(self) -> bool:
        """Check presence and expiry; an expired session is purged."""
        session = await self.get_session()
        if session is None:
            return False
        if session.is_expired(self._clock()):
            logger.info("Session expired, clearing")
            await self.clear_session()
            return False
        return True

    async def get_time_remaining(self) -> int:
        session = await self.get_session()
        if session is None:
            return 0
        return session.time_remaining(self._clock())

    async def clear_session(self) -> None:
        await self._store.delete(SESSION_KEY)

    async def update_session_user(self, user: UserInfo) -> None:
        session = await self.get_session()
        if session is None:
            raise StorageError("No active session to update")
        await self.store_session(session.model_copy(update={"user": user}))

    async def store_pkce_verifier(self, verifier: str) -> None:
        if not verifier:
            raise ValueError("PKCE verifier is required")
        await self._store.set(PKCE_VERIFIER_KEY, verifier)

    async def retrieve_pkce_verifier(self) -> str | None:
        """Return and delete the stored verifier (single use)."""
        verifier = await self._store.get(PKCE_VERIFIER_KEY)
        if verifier:
            await self._store.delete(PKCE_VERIFIER_KEY)
        return verifier

    async def store_oauth_state(self, state: str) -> None:
        if not state:
            raise ValueError("OAuth state is required")
        await self._store.set(STATE_KEY, state)

    async def retrieve_oauth_state(self) -> str | None:
        """Return and delete the stored state (single use)."""
        state = await self._store.get(STATE_KEY)
        if state:
            await self._store.delete(STATE_KEY)
        return state

    async def clear_all_auth_data(self) -> None:
        """Remove the session, pending PKCE artifacts and auth-scoped cache entries."""
        for key in (SESSION_KEY, PKCE_VERIFIER_KEY, STATE_KEY):
            await self._store.delete(key)
        removed = 0
        for prefix in AUTH_SCOPED_PREFIXES:
            for key in await self._store.keys(prefix):
                await self._store.delete(key)
                removed += 1
        logger.info(f"Cleared auth data ({removed} cached entries)")

    async def get_debug_info(self) -> SessionDebugInfo:
        session = await self.get_session()
        if session is None:
            return SessionDebugInfo(has_session=False)

        remaining = session.time_remaining(self._clock())
        claims = id_token_claims(session.id_token)
        id_exp = claims.get("exp") if claims else None

        return SessionDebugInfo(
            has_session=True,
            is_expired=remaining == 0,
            time_remaining=remaining,
            time_remaining_formatted=format_time(remaining),
            created_at=_iso(session.created_at),
            expires_at=_iso(session.expires_at),
            token_type=session.token_type,
            scope=session.scope,
            has_refresh_token=bool(session.refresh_token),
            has_id_token=bool(session.id_token),
            user_id=session.user.sub,
            user_email=session.user.email,
            id_token_expires_at=_iso(int(id_exp) * 1000) if isinstance(id_exp, (int, float)) else None,
        )
