from unittest.mock import patch

from django.db import OperationalError
from django.test import TestCase, override_settings


class HealthTests(TestCase):
    def test_reports_dependencies(self):
        response = self.client.get('/health')

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "OK")
        self.assertIn("timestamp", body)
        self.assertEqual(body["database"], "connected")
        self.assertEqual(body["email"], "configured")
        self.assertEqual(body["phonepe"], "configured")
        self.assertEqual(body["phonePeEnv"], "UAT")

    @override_settings(EMAIL_ENABLED=False, PHONEPE_CLIENT_VERSION="")
    def test_reports_missing_configuration(self):
        body = self.client.get('/health').json()
        self.assertEqual(body["email"], "not configured")
        self.assertEqual(body["phonepe"], "not configured")

    def test_database_outage_is_reported_not_raised(self):
        with patch("scholarship.views.connection.ensure_connection", side_effect=OperationalError("gone")):
            response = self.client.get('/health')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["database"], "disconnected")
