# src/storage/credential_cache.py

"""Three-tier access token cache: process memory, Redis, then network."""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.config.settings import Settings
from src.core.exceptions import AuthenticationError, ConfigurationError
from src.models.raw_record import TokenGrant

logger = logging.getLogger("sourcing.credentials")

TokenFetcher = Callable[[], Awaitable[TokenGrant]]


@dataclass(frozen=True)
class CachedCredential:
    """An access token and the wall-clock time it stops being usable."""

    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        """True while *now* is before the expiry timestamp."""
        return bool(self.token) and now < self.expires_at


class CredentialCache:
    """Per-source token cache shared by every connector in the process.

    Lookups go memory -> Redis -> authentication endpoint.  Expiry is
    checked lazily on read against ``time.time()``; nothing runs in the
    background.  Entries are only ever replaced whole, so concurrent
    readers and writers need no lock.
    """

    def __init__(
        self,
        shared: Redis | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._shared = shared
        self._local: dict[str, CachedCredential] = {}
        self._fetchers: dict[str, TokenFetcher] = {}
        self._secrets: dict[str, CachedCredential] = {}

    def register(self, source: str, fetch_token: TokenFetcher) -> None:
        """Bind the authentication call used when *source* has no token."""
        self._fetchers[source] = fetch_token

    def _shared_key(self, source: str) -> str:
        return f"{self.settings.REDIS_KEY_PREFIX}{source}"

    async def get_token(self, source: str) -> str:
        """Return a valid token for *source*, authenticating if needed.

        Raises:
            ConfigurationError: no authenticator is registered.
            AuthenticationError: the token exchange failed.
        """
        now = time.time()
        cached = self._local.get(source)
        if cached is not None and cached.is_valid(now):
            logger.debug("[%s] Token served from memory", source)
            return cached.token

        shared_token = await self._read_shared(
            self._shared_key(source), source
        )
        if shared_token:
            logger.debug("[%s] Token served from Redis", source)
            self._local[source] = CachedCredential(
                token=shared_token,
                expires_at=now + self.settings.LOCAL_TOKEN_TTL,
            )
            return shared_token

        return await self._authenticate(source)

    async def _read_shared(self, key: str, source: str) -> str | None:
        """Fetch a shared value, treating Redis trouble as a miss."""
        if self._shared is None:
            return None
        try:
            value = await self._shared.get(key)
        except RedisError as exc:
            logger.warning(
                "[%s] Redis read failed, skipping shared tier: %s",
                source,
                exc,
            )
            return None
        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return str(value) or None

    async def _write_shared(
        self, key: str, value: str, ttl: int, source: str,
    ) -> None:
        if self._shared is None:
            return
        try:
            await self._shared.set(key, value, ex=ttl)
        except RedisError as exc:
            logger.warning(
                "[%s] Redis write failed, value cached locally only: %s",
                source,
                exc,
            )

    async def _delete_shared(self, key: str, source: str) -> None:
        if self._shared is None:
            return
        try:
            await self._shared.delete(key)
        except RedisError as exc:
            logger.warning("[%s] Redis delete failed: %s", source, exc)

    async def _authenticate(self, source: str) -> str:
        """Exchange credentials for a new token and store it in both tiers."""
        fetch_token = self._fetchers.get(source)
        if fetch_token is None:
            raise ConfigurationError(
                "No authenticator registered", source
            )

        logger.debug("[%s] Requesting new access token", source)
        try:
            grant = await fetch_token()
        except AuthenticationError:
            logger.error("[%s] Token exchange failed", source)
            raise
        except Exception as exc:
            logger.error(
                "[%s] Token exchange failed: %s",
                source,
                exc,
                exc_info=True,
            )
            raise AuthenticationError(
                f"Failed to authenticate: {exc}", source
            ) from exc

        if not grant.access_token:
            raise AuthenticationError(
                "Authentication returned an empty token", source
            )
        # An already-expired grant is never cached in either tier
        if grant.expires_in <= 0:
            raise AuthenticationError(
                f"Authentication returned an expired token "
                f"(expires_in={grant.expires_in})",
                source,
            )

        ttl = max(grant.expires_in - self.settings.TOKEN_SAFETY_MARGIN, 1)
        await self._write_shared(
            self._shared_key(source), grant.access_token, ttl, source
        )
        self._local[source] = CachedCredential(
            token=grant.access_token,
            expires_at=time.time() + ttl,
        )
        logger.info(
            "[%s] Obtained new access token (ttl=%ds)", source, ttl
        )
        return grant.access_token

    async def clear(self, source: str) -> None:
        """Drop *source*'s access token from both tiers.

        Secrets kept with :meth:`remember` (refresh tokens) survive, so
        the next exchange can still use them.
        """
        self._local.pop(source, None)
        await self._delete_shared(self._shared_key(source), source)
        logger.info("[%s] Token cache cleared", source)

    def cached(self, source: str) -> CachedCredential | None:
        """Return the in-process entry for *source*, expired or not."""
        return self._local.get(source)

    # ── Long-lived secrets (refresh tokens) ──────────────

    def _secret_key(self, source: str, kind: str) -> str:
        return f"{self._shared_key(source)}:{kind}"

    async def remember(
        self, source: str, kind: str, value: str, ttl: int,
    ) -> None:
        """Keep a secondary secret for *source* in both tiers for *ttl*s."""
        if not value or ttl <= 0:
            return
        key = self._secret_key(source, kind)
        self._secrets[key] = CachedCredential(
            token=value, expires_at=time.time() + ttl
        )
        await self._write_shared(key, value, ttl, source)
        logger.debug("[%s] Stored %s (ttl=%ds)", source, kind, ttl)

    async def recall(self, source: str, kind: str) -> str | None:
        """Return the secret stored by :meth:`remember`, if still live."""
        key = self._secret_key(source, kind)
        entry = self._secrets.get(key)
        if entry is not None and entry.is_valid(time.time()):
            return entry.token
        value = await self._read_shared(key, source)
        if value:
            self._secrets[key] = CachedCredential(
                token=value,
                expires_at=time.time() + self.settings.LOCAL_TOKEN_TTL,
            )
        return value

    async def forget(self, source: str, kind: str) -> None:
        """Drop a secret stored by :meth:`remember`."""
        key = self._secret_key(source, kind)
        self._secrets.pop(key, None)
        await self._delete_shared(key, source)
