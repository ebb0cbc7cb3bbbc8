import logging
import threading
import time

from .integrations.phonepe import PhonePeClient

logger = logging.getLogger(__name__)

REFRESH_SKEW = 60  # seconds before expiry a token counts as stale


class TokenCache:
    """Holds one PhonePe access token and refreshes it when absent or stale.

    Refreshes are serialized, so concurrent misses trigger a single exchange.
    """

    def __init__(self, client, *, skew=REFRESH_SKEW, clock=time.time):
        self.client = client
        self.skew = skew
        self._clock = clock
        self._token = None
        self._expires_at = 0
        self._lock = threading.Lock()

    def _fresh(self) -> bool:
        return bool(self._token) and self._clock() < self._expires_at - self.skew

    def get_token(self) -> str:
        if self._fresh():
            return self._token
        with self._lock:
            if self._fresh():
                return self._token
            try:
                access = self.client.exchange_token()
            except Exception:
                self.clear()
                raise
            self._token = access.token
            self._expires_at = access.expires_at
            logger.info("PhonePe token refreshed; expires at %s", access.expires_at)
            return self._token

    def clear(self):
        self._token = None
        self._expires_at = 0


_cache = None
_cache_lock = threading.Lock()


def get_gateway_client() -> PhonePeClient:
    return PhonePeClient.from_settings()


def get_token_cache() -> TokenCache:
    """Process-wide cache, built from settings on first use."""
    global _cache
    with _cache_lock:
        if _cache is None:
            _cache = TokenCache(get_gateway_client())
        return _cache


def reset_token_cache():
    global _cache
    with _cache_lock:
        _cache = None
