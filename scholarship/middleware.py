import logging

from django.conf import settings
from django.core.cache import cache
from django.http import JsonResponse

logger = logging.getLogger(__name__)

PAYMENT_INITIATE_PATH = "/api/payment/initiate"


class RateLimitMiddleware:
    """Per-IP request counting for the public API, backed by the Django cache.

    ``/api/`` shares the general budget; payment initiation has its own,
    tighter budget on top of it.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if getattr(settings, "RATE_LIMITING_ENABLED", False) and request.path.startswith("/api/"):
            ip = self.get_client_ip(request)
            if request.path.rstrip("/") == PAYMENT_INITIATE_PATH and self._exceeded(
                f"ratelimit:payment:{ip}", settings.RATE_LIMIT_PAYMENT
            ):
                logger.warning("Payment rate limit hit for %s", ip)
                return self._too_many("Too many payment requests, please try again later.")
            if self._exceeded(f"ratelimit:general:{ip}", settings.RATE_LIMIT_GENERAL):
                logger.warning("Rate limit hit for %s on %s", ip, request.path)
                return self._too_many("Too many requests from this IP, please try again later.")
        return self.get_response(request)

    def _exceeded(self, key, limit) -> bool:
        max_requests, window = limit
        # add() only sets the key when absent, so the window starts at the first hit
        if cache.add(key, 1, window):
            return 1 > max_requests
        try:
            current = cache.incr(key)
        except ValueError:
            # expired between add() and incr()
            cache.set(key, 1, window)
            current = 1
        return current > max_requests

    @staticmethod
    def _too_many(message):
        return JsonResponse({"success": False, "message": message}, status=429)

    @staticmethod
    def get_client_ip(request):
        forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.META.get("REMOTE_ADDR", "")
