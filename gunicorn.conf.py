import os

pythonpath = "classroom_app"
wsgi_app = "config.wsgi:application"
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
workers = 1
# Sessions and busy flags live in the process-local cache, so scale with threads.
threads = int(os.getenv("GUNICORN_THREADS", "4"))

accesslog = "-"
errorlog = "-"
capture_output = True
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
forwarded_allow_ips = "*"
access_log_format = '%({x-forwarded-for}i)s %(t)s "%(r)s" %(s)s %(b)s %(L)ss "%(a)s"'

logconfig_dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "health_endpoint": {
            "()": "config.logging_filters.HealthEndpointFilter",
        },
    },
    "formatters": {
        "access": {
            "format": "%(message)s",
        },
        "app": {
            "format": "[{asctime}] {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "access": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "access",
            "filters": ["health_endpoint"],
        },
        "app": {
            "class": "logging.StreamHandler",
            "formatter": "app",
        },
    },
    "loggers": {
        "gunicorn.error": {
            "handlers": ["app"],
            "level": "INFO",
            "propagate": False,
        },
        "gunicorn.access": {
            "handlers": ["access"],
            "level": "INFO",
            "propagate": False,
        },
        "core": {
            "handlers": ["app"],
            "level": os.getenv("CLASSROOM_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["app"],
        "level": "WARNING",
    },
}
