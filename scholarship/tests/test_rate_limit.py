from django.core.cache import cache
from django.test import TestCase, override_settings


@override_settings(RATE_LIMITING_ENABLED=True, RATE_LIMIT_GENERAL=(3, 900), RATE_LIMIT_PAYMENT=(2, 300))
class RateLimitTests(TestCase):
    def setUp(self):
        cache.clear()

    def test_general_budget_applies_to_api(self):
        for _ in range(3):
            self.assertEqual(self.client.get('/api/application/NF_UNKNOWN').status_code, 404)

        response = self.client.get('/api/application/NF_UNKNOWN')

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["success"], False)

    def test_payment_initiation_has_tighter_budget(self):
        for _ in range(2):
            self.assertEqual(
                self.client.post('/api/payment/initiate', data="{}", content_type="application/json").status_code,
                400,
            )

        with self.assertLogs("scholarship.middleware", level="WARNING"):
            response = self.client.post('/api/payment/initiate', data="{}", content_type="application/json")

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["message"], "Too many payment requests, please try again later.")

    def test_budgets_are_per_client_ip(self):
        for _ in range(3):
            self.client.get('/api/application/NF_UNKNOWN', HTTP_X_FORWARDED_FOR="10.0.0.1")

        self.assertEqual(
            self.client.get('/api/application/NF_UNKNOWN', HTTP_X_FORWARDED_FOR="10.0.0.1").status_code, 429
        )
        self.assertEqual(
            self.client.get('/api/application/NF_UNKNOWN', HTTP_X_FORWARDED_FOR="10.0.0.2").status_code, 404
        )

    def test_health_is_not_limited(self):
        for _ in range(5):
            self.assertEqual(self.client.get('/health').status_code, 200)
