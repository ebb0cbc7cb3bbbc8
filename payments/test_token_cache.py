import threading
import time
from unittest.mock import Mock

from django.test import SimpleTestCase

from .integrations.phonepe import AccessToken, AuthError
from .token_cache import TokenCache, get_token_cache, reset_token_cache


class Clock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now


def make_cache(expires_in=3600, clock=None):
    clock = clock or Clock()
    client = Mock()
    client.exchange_token.side_effect = lambda: AccessToken(
        f"tok-{client.exchange_token.call_count}", clock.now, clock.now + expires_in
    )
    return TokenCache(client, clock=clock), client, clock


class TokenCacheTests(SimpleTestCase):
    def test_token_is_reused_while_fresh(self):
        cache, client, clock = make_cache()

        first = cache.get_token()
        clock.now += 1000
        second = cache.get_token()

        self.assertEqual(first, "tok-1")
        self.assertEqual(second, "tok-1")
        self.assertEqual(client.exchange_token.call_count, 1)

    def test_refreshes_inside_skew_window(self):
        cache, client, clock = make_cache(expires_in=3600)
        cache.get_token()

        clock.now += 3600 - 60
        token = cache.get_token()

        self.assertEqual(token, "tok-2")
        self.assertEqual(client.exchange_token.call_count, 2)

    def test_token_just_outside_skew_is_still_used(self):
        cache, client, clock = make_cache(expires_in=3600)
        cache.get_token()

        clock.now += 3600 - 61
        cache.get_token()

        self.assertEqual(client.exchange_token.call_count, 1)

    def test_failed_exchange_clears_cache_and_propagates(self):
        cache, client, clock = make_cache(expires_in=3600)
        cache.get_token()
        clock.now += 4000
        client.exchange_token.side_effect = AuthError("PhonePe token request failed")

        with self.assertRaises(AuthError):
            cache.get_token()

        self.assertIsNone(cache._token)
        self.assertEqual(cache._expires_at, 0)

    def test_clear_forces_new_exchange(self):
        cache, client, _ = make_cache()
        cache.get_token()

        cache.clear()
        cache.get_token()

        self.assertEqual(client.exchange_token.call_count, 2)

    def test_process_wide_cache_is_shared_until_reset(self):
        reset_token_cache()
        self.addCleanup(reset_token_cache)

        first = get_token_cache()
        self.assertIs(get_token_cache(), first)
        self.assertEqual(first.client.client_id, "test-client")

        reset_token_cache()
        self.assertIsNot(get_token_cache(), first)

    def test_concurrent_misses_share_one_exchange(self):
        clock = Clock()
        client = Mock()
        started = threading.Event()

        def slow_exchange():
            started.set()
            time.sleep(0.05)
            return AccessToken("tok", clock.now, clock.now + 3600)

        client.exchange_token.side_effect = slow_exchange
        cache = TokenCache(client, clock=clock)

        results = []
        threads = [threading.Thread(target=lambda: results.append(cache.get_token())) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertTrue(started.is_set())
        self.assertEqual(results, ["tok"] * 8)
        self.assertEqual(client.exchange_token.call_count, 1)
