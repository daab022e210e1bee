import logging


class HealthEndpointFilter(logging.Filter):
    """Drop successful health check lines; failing checks stay visible."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "/healthz" not in message and "/readyz" not in message:
            return True
        return " 200 " not in message
