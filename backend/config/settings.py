"""
Django settings for the delta notifier service.

Every deployment-tunable value is read from the environment.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_json(name: str, default):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = _env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [h.strip() for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "deltas",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DJANGO_SQLITE_PATH", ":memory:"),
    }
}

USE_TZ = True
TIME_ZONE = "UTC"
APPEND_SLASH = True

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_RENDERER_CLASSES": ["config.renderers.EnvelopeJSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser"],
    "EXCEPTION_HANDLER": "config.exception_handler.custom_exception_handler",
}

DELTA_NOTIFIER = {
    "rules_path": os.environ.get("DELTA_RULES_PATH", "config/delta/rules.json"),
    "malformed_rule_policy": os.environ.get("DELTA_MALFORMED_RULE_POLICY", "fail"),
    "origin_header": os.environ.get("DELTA_ORIGIN_HEADER", "mu-call-id"),
    "scope_header": os.environ.get("DELTA_SCOPE_HEADER", "mu-auth-scope"),
    "origin_retention_ms": _env_int("DELTA_ORIGIN_RETENTION_MS", 300_000),
    "origin_max_entries": _env_int("DELTA_ORIGIN_MAX_ENTRIES", 10_000),
    "retry_attempts": _env_int("DELTA_RETRY_ATTEMPTS", 3),
    "retry_backoff_ms": _env_json("DELTA_RETRY_BACKOFF_MS", [500, 2000, 5000]),
    "request_timeout_seconds": _env_float("DELTA_REQUEST_TIMEOUT_SECONDS", 10.0),
    "log_matches": _env_bool("DELTA_LOG_MATCHES", False),
    "log_sends": _env_bool("DELTA_LOG_SENDS", False),
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "default"},
    },
    "root": {"handlers": ["console"], "level": os.environ.get("DJANGO_LOG_LEVEL", "INFO")},
    "loggers": {
        "deltas": {
            "handlers": ["console"],
            "level": os.environ.get("DELTA_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
