import logging

from django.test import SimpleTestCase

from config.logging_filters import HealthEndpointFilter


def _record(message: str) -> logging.LogRecord:
    return logging.LogRecord("gunicorn.access", logging.INFO, __file__, 1, message, None, None)


class HealthEndpointFilterTests(SimpleTestCase):
    def test_successful_health_checks_are_dropped(self) -> None:
        log_filter = HealthEndpointFilter()

        self.assertFalse(log_filter.filter(_record('10.0.0.1 "GET /healthz HTTP/1.1" 200 15')))
        self.assertFalse(log_filter.filter(_record('10.0.0.1 "GET /readyz HTTP/1.1" 200 31')))

    def test_failing_health_checks_and_other_requests_are_kept(self) -> None:
        log_filter = HealthEndpointFilter()

        self.assertTrue(log_filter.filter(_record('10.0.0.1 "GET /readyz HTTP/1.1" 503 60')))
        self.assertTrue(log_filter.filter(_record('10.0.0.1 "GET /classes/c1/people/ HTTP/1.1" 200 900')))
