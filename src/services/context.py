# src/services/context.py

"""Process-wide service objects, built once at startup."""

import asyncio
import importlib
import logging
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any

from curl_cffi.requests import AsyncSession
from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.config.settings import Settings
from src.connectors.base_connector import BaseConnector
from src.services.retry_executor import RetryExecutor
from src.storage.credential_cache import CredentialCache

logger = logging.getLogger("sourcing.context")


def _load_connector_class(dotted_path: str) -> type[Any]:
    """Dynamically import a connector class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


async def connect_redis(url: str) -> Redis | None:
    """Open the shared token store, or return None when unavailable."""
    if not url:
        logger.info("REDIS_URL not set, shared token cache disabled")
        return None
    client = Redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    try:
        await asyncio.wait_for(client.ping(), timeout=5.0)
    except (RedisError, asyncio.TimeoutError, OSError) as exc:
        logger.warning(
            "Redis unreachable at %s, shared token cache disabled: %s",
            url,
            exc,
        )
        await client.aclose()
        return None
    logger.info("Redis connection established")
    return client


@dataclass
class SourcingContext:
    """Everything a search needs, shared by reference.

    One instance per process: one HTTP session, one credential cache
    and one connector per registered source.
    """

    settings: Settings
    session: AsyncSession
    credentials: CredentialCache
    executor: RetryExecutor
    connectors: dict[str, BaseConnector] = field(
        default_factory=lambda: dict[str, BaseConnector]()
    )
    redis: Redis | None = None

    @classmethod
    async def create(
        cls,
        settings: Settings | None = None,
        session: AsyncSession | None = None,
        redis: Redis | None = None,
        executor: RetryExecutor | None = None,
    ) -> "SourcingContext":
        """Build the context; pass *session*/*redis* to inject doubles."""
        settings = settings or Settings()
        if session is None:
            session = AsyncSession(
                impersonate=settings.IMPERSONATE_BROWSER,
                timeout=settings.REQUEST_TIMEOUT,
            )
        if redis is None:
            redis = await connect_redis(settings.REDIS_URL)

        credentials = CredentialCache(shared=redis, settings=settings)
        context = cls(
            settings=settings,
            session=session,
            credentials=credentials,
            executor=executor or RetryExecutor(
                max_attempts=settings.MAX_ATTEMPTS,
                base_delay=settings.BACKOFF_BASE_DELAY,
                max_delay=settings.BACKOFF_MAX_DELAY,
            ),
            redis=redis,
        )
        for source in settings.AVAILABLE_SOURCES:
            connector_cls = _load_connector_class(source["connector"])
            connector: BaseConnector = connector_cls(
                session, credentials, settings
            )
            context.add_connector(connector)
        return context

    def add_connector(self, connector: BaseConnector) -> None:
        """Register *connector* and its authenticator under its source id."""
        self.connectors[connector.source_id] = connector
        if connector.requires_auth:
            self.credentials.register(
                connector.source_id, connector.fetch_token
            )
        if not connector.is_configured():
            logger.warning(
                "[%s] Credentials not fully configured",
                connector.source_id,
            )

    def connector(self, source: str) -> BaseConnector | None:
        return self.connectors.get(source)

    async def aclose(self) -> None:
        """Release the HTTP session and the Redis connection."""
        try:
            await self.session.close()
        except Exception as exc:
            logger.warning("HTTP session close failed: %s", exc)
        if self.redis is not None:
            try:
                await self.redis.aclose()
            except RedisError as exc:
                logger.warning("Redis close failed: %s", exc)
            self.redis = None

    async def __aenter__(self) -> "SourcingContext":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
