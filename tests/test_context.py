# tests/test_context.py

"""Tests for SourcingContext wiring and the Redis connector."""

import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError

from src.config.settings import Settings
from src.connectors.made_in_china_connector import MadeInChinaConnector
from src.services.context import SourcingContext, connect_redis
from tests.fakes import FakeRedis, FakeResponse, FakeSession, make_settings


class TestSourcingContext(unittest.IsolatedAsyncioTestCase):

    async def test_loads_every_registered_connector(self) -> None:
        context = await SourcingContext.create(
            settings=make_settings(),
            session=FakeSession(lambda m, u, k: FakeResponse()),  # type: ignore[arg-type]
        )
        self.assertEqual(list(context.connectors), Settings.source_ids())
        self.assertIsInstance(
            context.connector("made-in-china"), MadeInChinaConnector
        )
        self.assertIsNone(context.connector("ebay"))
        self.assertIsNone(context.redis)

    async def test_only_token_sources_register_authenticators(self) -> None:
        context = await SourcingContext.create(
            settings=make_settings(),
            session=FakeSession(lambda m, u, k: FakeResponse()),  # type: ignore[arg-type]
        )
        fetchers = context.credentials._fetchers
        self.assertEqual(
            set(fetchers),
            {"alibaba", "cj-dropshipping", "shopify-global"},
        )

    async def test_connectors_share_session_and_cache(self) -> None:
        session = FakeSession(lambda m, u, k: FakeResponse())
        context = await SourcingContext.create(
            settings=make_settings(),
            session=session,  # type: ignore[arg-type]
        )
        for connector in context.connectors.values():
            self.assertIs(connector.session, session)
            self.assertIs(connector.credentials, context.credentials)

    async def test_async_context_manager_closes_resources(self) -> None:
        session = FakeSession(lambda m, u, k: FakeResponse())
        redis = FakeRedis()
        async with await SourcingContext.create(
            settings=make_settings(),
            session=session,  # type: ignore[arg-type]
            redis=redis,  # type: ignore[arg-type]
        ) as context:
            self.assertIs(context.redis, redis)
        self.assertTrue(session.closed)
        self.assertTrue(redis.closed)


class TestConnectRedis(unittest.IsolatedAsyncioTestCase):

    async def test_empty_url_disables_shared_cache(self) -> None:
        self.assertIsNone(await connect_redis(""))

    @patch("src.services.context.Redis")
    async def test_unreachable_redis_returns_none(
        self, mock_redis: MagicMock,
    ) -> None:
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        client.aclose = AsyncMock()
        mock_redis.from_url.return_value = client

        self.assertIsNone(await connect_redis("redis://nowhere:6379/0"))
        client.aclose.assert_awaited_once()

    @patch("src.services.context.Redis")
    async def test_reachable_redis_returned(
        self, mock_redis: MagicMock,
    ) -> None:
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)
        mock_redis.from_url.return_value = client

        self.assertIs(await connect_redis("redis://localhost:6379/0"), client)
        _, kwargs = mock_redis.from_url.call_args
        self.assertTrue(kwargs["decode_responses"])


if __name__ == "__main__":
    unittest.main()
