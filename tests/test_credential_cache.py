# tests/test_credential_cache.py

"""Tests for the memory -> Redis -> network credential cache."""

import unittest
from unittest.mock import patch

from src.core.exceptions import AuthenticationError, ConfigurationError
from src.models.raw_record import TokenGrant
from src.storage.credential_cache import CachedCredential, CredentialCache
from tests.fakes import FakeRedis, make_settings


class _Authenticator:
    """Counts token exchanges and hands out numbered tokens."""

    def __init__(self, expires_in: int = 3600) -> None:
        self.calls = 0
        self.expires_in = expires_in

    async def __call__(self) -> TokenGrant:
        self.calls += 1
        return TokenGrant(
            access_token=f"token-{self.calls}",
            expires_in=self.expires_in,
        )


class TestCachedCredential(unittest.TestCase):

    def test_validity_window(self) -> None:
        entry = CachedCredential(token="t", expires_at=100.0)
        self.assertTrue(entry.is_valid(99.9))
        self.assertFalse(entry.is_valid(100.0))

    def test_empty_token_is_never_valid(self) -> None:
        self.assertFalse(CachedCredential("", 1e12).is_valid(0.0))


class TestCredentialCacheMemory(unittest.IsolatedAsyncioTestCase):
    """Behaviour without a shared Redis tier."""

    def setUp(self) -> None:
        self.settings = make_settings()
        self.cache = CredentialCache(settings=self.settings)
        self.auth = _Authenticator()
        self.cache.register("shopify-global", self.auth)

    async def test_reuses_token_within_ttl(self) -> None:
        first = await self.cache.get_token("shopify-global")
        second = await self.cache.get_token("shopify-global")
        self.assertEqual(first, "token-1")
        self.assertEqual(second, "token-1")
        self.assertEqual(self.auth.calls, 1)

    async def test_clear_forces_exactly_one_reauth(self) -> None:
        await self.cache.get_token("shopify-global")
        await self.cache.clear("shopify-global")
        token = await self.cache.get_token("shopify-global")
        await self.cache.get_token("shopify-global")
        self.assertEqual(token, "token-2")
        self.assertEqual(self.auth.calls, 2)

    async def test_expired_entry_reauthenticates(self) -> None:
        with patch(
            "src.storage.credential_cache.time.time", return_value=1000.0
        ):
            await self.cache.get_token("shopify-global")
        # ttl = 3600 - 60
        with patch(
            "src.storage.credential_cache.time.time", return_value=4541.0
        ):
            token = await self.cache.get_token("shopify-global")
        self.assertEqual(token, "token-2")

    async def test_safety_margin_applied(self) -> None:
        with patch(
            "src.storage.credential_cache.time.time", return_value=0.0
        ):
            await self.cache.get_token("shopify-global")
        entry = self.cache.cached("shopify-global")
        assert entry is not None
        self.assertEqual(entry.expires_at, 3540.0)

    async def test_short_lifetime_keeps_positive_ttl(self) -> None:
        cache = CredentialCache(settings=self.settings)
        cache.register("cj-dropshipping", _Authenticator(expires_in=30))
        with patch(
            "src.storage.credential_cache.time.time", return_value=0.0
        ):
            await cache.get_token("cj-dropshipping")
        entry = cache.cached("cj-dropshipping")
        assert entry is not None
        self.assertEqual(entry.expires_at, 1.0)

    async def test_unregistered_source_raises(self) -> None:
        with self.assertRaises(ConfigurationError):
            await self.cache.get_token("alibaba")

    async def test_failed_exchange_raises_authentication_error(self) -> None:
        async def broken() -> TokenGrant:
            raise ConnectionError("refused")

        self.cache.register("alibaba", broken)
        with self.assertRaises(AuthenticationError) as ctx:
            await self.cache.get_token("alibaba")
        self.assertEqual(ctx.exception.source, "alibaba")
        self.assertIsNone(self.cache.cached("alibaba"))

    async def test_empty_token_is_rejected(self) -> None:
        async def empty() -> TokenGrant:
            return TokenGrant(access_token="")

        self.cache.register("alibaba", empty)
        with self.assertRaises(AuthenticationError):
            await self.cache.get_token("alibaba")

    async def test_expired_grant_is_not_cached(self) -> None:
        for expires_in in (0, -120):
            with self.subTest(expires_in=expires_in):
                cache = CredentialCache(settings=self.settings)
                auth = _Authenticator(expires_in=expires_in)
                cache.register("cj-dropshipping", auth)
                with self.assertRaises(AuthenticationError):
                    await cache.get_token("cj-dropshipping")
                self.assertIsNone(cache.cached("cj-dropshipping"))
                # Every later call goes back to the exchange
                with self.assertRaises(AuthenticationError):
                    await cache.get_token("cj-dropshipping")
                self.assertEqual(auth.calls, 2)

    async def test_remembered_secret_survives_clear(self) -> None:
        await self.cache.remember(
            "shopify-global", "refresh_token", "r-1", 60
        )
        await self.cache.get_token("shopify-global")
        await self.cache.clear("shopify-global")
        self.assertEqual(
            await self.cache.recall("shopify-global", "refresh_token"), "r-1"
        )
        await self.cache.forget("shopify-global", "refresh_token")
        self.assertIsNone(
            await self.cache.recall("shopify-global", "refresh_token")
        )

    async def test_remembered_secret_expires(self) -> None:
        with patch(
            "src.storage.credential_cache.time.time", return_value=0.0
        ):
            await self.cache.remember(
                "cj-dropshipping", "refresh_token", "r", 10
            )
        with patch(
            "src.storage.credential_cache.time.time", return_value=10.0
        ):
            self.assertIsNone(
                await self.cache.recall("cj-dropshipping", "refresh_token")
            )

    async def test_sources_are_isolated(self) -> None:
        other = _Authenticator()
        self.cache.register("alibaba", other)
        await self.cache.get_token("shopify-global")
        await self.cache.get_token("alibaba")
        await self.cache.clear("alibaba")
        await self.cache.get_token("shopify-global")
        self.assertEqual(self.auth.calls, 1)
        self.assertEqual(other.calls, 1)


class TestCredentialCacheShared(unittest.IsolatedAsyncioTestCase):
    """Behaviour with the Redis tier present."""

    def setUp(self) -> None:
        self.redis = FakeRedis()
        self.cache = CredentialCache(
            shared=self.redis,  # type: ignore[arg-type]
            settings=make_settings(),
        )
        self.auth = _Authenticator(expires_in=3600)
        self.cache.register("shopify-global", self.auth)

    async def test_new_token_written_with_margin(self) -> None:
        await self.cache.get_token("shopify-global")
        key = "sourcing:token:shopify-global"
        self.assertEqual(self.redis.store[key], "token-1")
        self.assertEqual(self.redis.ttls[key], 3540)

    async def test_shared_hit_skips_authentication(self) -> None:
        self.redis.store["sourcing:token:shopify-global"] = "from-peer"
        token = await self.cache.get_token("shopify-global")
        self.assertEqual(token, "from-peer")
        self.assertEqual(self.auth.calls, 0)

    async def test_shared_hit_kept_locally_for_local_ttl(self) -> None:
        self.redis.store["sourcing:token:shopify-global"] = "from-peer"
        with patch(
            "src.storage.credential_cache.time.time", return_value=1000.0
        ):
            await self.cache.get_token("shopify-global")
        entry = self.cache.cached("shopify-global")
        assert entry is not None
        self.assertEqual(entry.token, "from-peer")
        self.assertEqual(entry.expires_at, 1300.0)
        self.assertEqual(self.redis.reads, 1)

        # Inside the local window Redis is not consulted again
        with patch(
            "src.storage.credential_cache.time.time", return_value=1299.0
        ):
            self.assertEqual(
                await self.cache.get_token("shopify-global"), "from-peer"
            )
        self.assertEqual(self.redis.reads, 1)

        # Past it the local copy is re-read from Redis
        with patch(
            "src.storage.credential_cache.time.time", return_value=1300.0
        ):
            await self.cache.get_token("shopify-global")
        self.assertEqual(self.redis.reads, 2)
        self.assertEqual(self.auth.calls, 0)

    async def test_expired_grant_not_written_to_redis(self) -> None:
        self.cache.register("cj-dropshipping", _Authenticator(expires_in=-5))
        with self.assertRaises(AuthenticationError):
            await self.cache.get_token("cj-dropshipping")
        self.assertNotIn("sourcing:token:cj-dropshipping", self.redis.store)

    async def test_remembered_secret_shared_with_ttl(self) -> None:
        await self.cache.remember(
            "cj-dropshipping", "refresh_token", "r-1", 86400
        )
        key = "sourcing:token:cj-dropshipping:refresh_token"
        self.assertEqual(self.redis.store[key], "r-1")
        self.assertEqual(self.redis.ttls[key], 86400)

        peer = CredentialCache(
            shared=self.redis,  # type: ignore[arg-type]
            settings=make_settings(),
        )
        self.assertEqual(
            await peer.recall("cj-dropshipping", "refresh_token"), "r-1"
        )
        await self.cache.clear("cj-dropshipping")
        self.assertIn(key, self.redis.store)

    async def test_clear_removes_both_tiers(self) -> None:
        await self.cache.get_token("shopify-global")
        await self.cache.clear("shopify-global")
        self.assertNotIn("sourcing:token:shopify-global", self.redis.store)
        self.assertIsNone(self.cache.cached("shopify-global"))

    async def test_redis_failure_treated_as_miss(self) -> None:
        self.redis.fail = True
        with self.assertLogs("sourcing.credentials", level="WARNING"):
            token = await self.cache.get_token("shopify-global")
        self.assertEqual(token, "token-1")
        self.assertEqual(self.auth.calls, 1)
        # Still cached in process memory
        await self.cache.get_token("shopify-global")
        self.assertEqual(self.auth.calls, 1)


if __name__ == "__main__":
    unittest.main()
