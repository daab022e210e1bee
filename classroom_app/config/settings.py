import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-insecure-secret-key")
DEBUG: bool = _env_bool("DEBUG")
ALLOWED_HOSTS: list[str] = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "core",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "core.middleware.AuthContextMiddleware",
    "core.middleware.LoginRequiredMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.messages.context_processors.messages",
                "core.context_processors.auth_context",
            ],
        },
    },
]

# The application is a client of the LMS backend and owns no tables.
DATABASES: dict[str, dict[str, str]] = {}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "classroom",
    },
}

SESSION_ENGINE = "django.contrib.sessions.backends.cache"
MESSAGE_STORAGE = "django.contrib.messages.storage.session.SessionStorage"

LOGIN_URL = "/login/"

LANGUAGE_CODE = "en-us"
TIME_ZONE: str = os.getenv("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# LMS backend (classes, people, accounts, chat).
LMS_API_BASE_URL: str = os.getenv("LMS_API_BASE_URL", "http://localhost:5000").rstrip("/")
LMS_API_TIMEOUT_SECONDS: float = float(os.getenv("LMS_API_TIMEOUT_SECONDS", "15"))

# Hosted identity provider (sign-in, sign-up, password reset).
IDENTITY_PROVIDER_BASE_URL: str = os.getenv(
    "IDENTITY_PROVIDER_BASE_URL",
    "https://identitytoolkit.googleapis.com/v1",
).rstrip("/")
IDENTITY_PROVIDER_API_KEY: str = os.getenv("IDENTITY_PROVIDER_API_KEY", "")
IDENTITY_PROVIDER_TIMEOUT_SECONDS: float = float(os.getenv("IDENTITY_PROVIDER_TIMEOUT_SECONDS", "10"))

ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "").strip().lower()

# Empty accepts any plausible address for staff bulk uploads; set to e.g.
# "gmail.com" to apply the single-add rule to bulk uploads as well.
ROSTER_BULK_REQUIRED_EMAIL_DOMAIN: str = os.getenv("ROSTER_BULK_REQUIRED_EMAIL_DOMAIN", "").strip().lower()
ROSTER_IMPORT_BUSY_TIMEOUT_SECONDS: int = int(os.getenv("ROSTER_IMPORT_BUSY_TIMEOUT_SECONDS", "120"))

CHAT_POLL_INTERVAL_SECONDS: float = float(os.getenv("CHAT_POLL_INTERVAL_SECONDS", "5"))

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "health_endpoint": {
            "()": "config.logging_filters.HealthEndpointFilter",
        },
    },
    "formatters": {
        "default": {
            "format": "[{asctime}] {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
        "server": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "filters": ["health_endpoint"],
        },
    },
    "loggers": {
        "django.server": {
            "handlers": ["server"],
            "level": "INFO",
            "propagate": False,
        },
        "core": {
            "handlers": ["console"],
            "level": os.getenv("CLASSROOM_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
}
