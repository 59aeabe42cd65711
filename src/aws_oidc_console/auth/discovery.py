"""OpenID Connect discovery with a durable 24 hour cache."""

import base64
import json
import logging

import httpx

from aws_oidc_console.auth.capabilities import Clock, system_clock
from aws_oidc_console.auth.errors import DiscoveryError
from aws_oidc_console.auth.models import CacheInfo, OIDCEndpoints
from aws_oidc_console.auth.session import KeyValueStore
from aws_oidc_console.http import DEFAULT_TIMEOUT_S, open_client

logger = logging.getLogger(__name__)

CACHE_KEY = "oidc-manifest"
CACHE_DURATION_MS = 24 * 60 * 60 * 1000
REQUIRED_ENDPOINTS = ("authorization_endpoint", "token_endpoint")


def _cache_key(authority: str) -> str:
    encoded = base64.b64encode(authority.encode("utf-8")).decode("ascii")
    return f"{CACHE_KEY}-{encoded}"


def _authority_from_key(key: str) -> str:
    return base64.b64decode(key[len(CACHE_KEY) + 1:]).decode("utf-8")


def validate_configuration(config: dict) -> None:
    """Raise DiscoveryError unless the required endpoints are present."""
    missing = [name for name in REQUIRED_ENDPOINTS if not config.get(name)]
    if missing:
        raise DiscoveryError(
            f"OIDC configuration missing required endpoints: {', '.join(missing)}"
        )


class OIDCDiscovery:
    """Resolves provider endpoints, caching each authority's document in the store."""

    def __init__(
        self,
        store: KeyValueStore,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock = system_clock,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self._store = store
        self._http_client = http_client
        self._clock = clock
        self._timeout_s = timeout_s

    async def discover(self, authority: str) -> OIDCEndpoints:
        """Return the endpoints for *authority*, fetching at most once per TTL window."""
        if not authority:
            raise DiscoveryError("OAuth authority is required for OIDC discovery")
        authority = authority.rstrip("/")

        config = await self._get_cached(authority)
        if config is None:
            config = await self._fetch(authority)
            await self._set_cached(authority, config)

        return OIDCEndpoints.from_configuration(config)

    async def _fetch(self, authority: str) -> dict:
        discovery_url = f"{authority}/.well-known/openid-configuration"
        logger.info(f"Fetching OIDC configuration from: {discovery_url}")

        try:
            async with open_client(self._http_client, self._timeout_s) as client:
                resp = await client.get(discovery_url, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise DiscoveryError(f"OIDC discovery failed: {e}") from e

        if resp.status_code != 200:
            raise DiscoveryError(
                f"OIDC discovery failed: {resp.status_code} {resp.reason_phrase}"
            )

        try:
            config = resp.json()
        except ValueError as e:
            raise DiscoveryError("OIDC discovery failed: response is not JSON") from e
        if not isinstance(config, dict):
            raise DiscoveryError("OIDC discovery failed: response is not a JSON object")

        validate_configuration(config)
        logger.info(
            f"OIDC configuration loaded (issuer={config.get('issuer')}, "
            f"userinfo={'yes' if config.get('userinfo_endpoint') else 'no'})"
        )
        return config

    async def _get_cached(self, authority: str) -> dict | None:
        key = _cache_key(authority)
        raw = await self._store.get(key)
        if not raw:
            return None

        try:
            entry = json.loads(raw)
            config, timestamp = entry["config"], int(entry["timestamp"])
            validate_configuration(config)
        except (ValueError, KeyError, TypeError, AttributeError, DiscoveryError) as e:
            logger.warning(f"Ignoring unreadable OIDC cache entry: {e}")
            await self._store.delete(key)
            return None

        if self._clock() - timestamp > CACHE_DURATION_MS:
            logger.info("OIDC configuration cache expired, will refetch")
            await self._store.delete(key)
            return None

        logger.debug("Using cached OIDC configuration")
        return config

    async def _set_cached(self, authority: str, config: dict) -> None:
        entry = json.dumps({"config": config, "timestamp": self._clock()})
        try:
            await self._store.set(_cache_key(authority), entry)
        except OSError as e:
            logger.warning(f"Failed to cache OIDC configuration: {e}")

    async def clear_cache(self) -> int:
        """Remove every cached discovery document."""
        keys = await self._store.keys(CACHE_KEY)
        for key in keys:
            await self._store.delete(key)
        logger.info(f"Cleared {len(keys)} cached OIDC configurations")
        return len(keys)

    async def get_cache_info(self) -> list[CacheInfo]:
        infos = []
        now = self._clock()
        for key in await self._store.keys(CACHE_KEY):
            try:
                entry = json.loads(await self._store.get(key) or "{}")
                age = now - int(entry["timestamp"])
                infos.append(
                    CacheInfo(
                        authority=_authority_from_key(key),
                        age=round(age / 1000 / 60),
                        expired=age > CACHE_DURATION_MS,
                        issuer=(entry.get("config") or {}).get("issuer"),
                    )
                )
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                infos.append(CacheInfo(authority=key, expired=True, error=str(e)))
        return infos
