from unittest.mock import patch

from django.test import SimpleTestCase
from django.urls import reverse


class HealthViewTests(SimpleTestCase):
    def test_healthz_is_public(self) -> None:
        response = self.client.get(reverse("healthz"))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_readyz_checks_cache(self) -> None:
        response = self.client.get(reverse("readyz"))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["cache"], "ok")

    def test_readyz_reports_cache_failure(self) -> None:
        with patch("core.views_health.cache") as cache:
            cache.set.side_effect = RuntimeError("cache down")
            with self.assertLogs("core.views_health", level="ERROR"):
                response = self.client.get(reverse("readyz"))

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["status"], "not ready")
