"""
PATH: backend/settings/base.py

BASE SETTINGS (shared by dev + prod)

Operational maturity:
- Throttling (public write / poll / webhook scopes)
- Payments (M-Pesa Daraja) configuration block
- Checkout configuration block (payment timeout ceiling, manual paybill)
- Sentry (optional): error visibility in production
- Console logging for project loggers
"""

from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import environ
from corsheaders.defaults import default_headers, default_methods

# -----------------------------------------
# BASE DIRECTORY
# -----------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# -----------------------------------------
# TEST MODE DETECTION
# -----------------------------------------
TESTING = "test" in sys.argv or "pytest" in sys.modules

# -----------------------------------------
# ENV (django-environ)
# -----------------------------------------
env = environ.Env(
    DEBUG=(bool, True),
    SECRET_KEY=(str, ""),
    TIME_ZONE=(str, "Africa/Nairobi"),
    ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1"]),
    CORS_ALLOWED_ORIGINS=(list, ["http://localhost:5173"]),
    CSRF_TRUSTED_ORIGINS=(list, ["http://localhost:5173"]),
    DATABASE_URL=(str, f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
    LOG_LEVEL=(str, "INFO"),
    # M-Pesa (Daraja)
    MPESA_ENVIRONMENT=(str, "sandbox"),
    MPESA_CONSUMER_KEY=(str, ""),
    MPESA_CONSUMER_SECRET=(str, ""),
    MPESA_SHORTCODE=(str, ""),
    MPESA_PASSKEY=(str, ""),
    MPESA_CALLBACK_URL=(str, ""),
    MPESA_CALLBACK_TOKEN=(str, ""),
    MPESA_TIMEOUT_SECONDS=(int, 25),
    # Checkout
    CHECKOUT_PAYMENT_TIMEOUT_SECONDS=(int, 300),
    CHECKOUT_CURRENCY=(str, "KES"),
    CHECKOUT_MANUAL_PAYBILL_NUMBER=(str, "4168319"),
    CHECKOUT_MANUAL_REFERENCE_PREFIX=(str, "NAKS"),
    CHECKOUT_SUBSCRIPTION_POLL_SECONDS=(float, 2.0),
    CHECKOUT_SUBSCRIPTION_MAX_SECONDS=(int, 330),
    # Throttling
    THROTTLE_ANON_RATE=(str, "60/min"),
    THROTTLE_USER_RATE=(str, "600/min"),
    THROTTLE_PUBLIC_POLL_RATE=(str, "120/min"),
    THROTTLE_PUBLIC_WRITE_RATE=(str, "10/min"),
    THROTTLE_WEBHOOK_RATE=(str, "600/min"),
    FRONTEND_BASE_URL=(str, "http://localhost:5173"),
    # Sentry (optional; enable by setting SENTRY_DSN)
    SENTRY_DSN=(str, ""),
    SENTRY_ENVIRONMENT=(str, "development"),
    SENTRY_TRACES_SAMPLE_RATE=(float, 0.0),
    SENTRY_SEND_PII=(bool, False),
)

# -----------------------------------------
# LOAD .env
# -----------------------------------------
env_file_1 = BASE_DIR / ".env"
env_file_2 = BASE_DIR.parent / ".env"

if env_file_1.exists():
    env.read_env(str(env_file_1))
elif env_file_2.exists():
    env.read_env(str(env_file_2))

# -----------------------------------------
# CORE SECURITY
# -----------------------------------------
SECRET_KEY = (env("SECRET_KEY") or "dev-insecure-change-me").strip()
DEBUG = env.bool("DEBUG")
ALLOWED_HOSTS = env.list("ALLOWED_HOSTS")

# -----------------------------------------
# I18N / TZ
# -----------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = (env("TIME_ZONE") or "UTC").strip()
USE_I18N = True
USE_TZ = True

# -----------------------------------------
# INSTALLED APPS
# -----------------------------------------
INSTALLED_APPS = [
    "corsheaders",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework_simplejwt",
    "drf_spectacular",
    "django_filters",
    "events.apps.EventsConfig",
    "carts.apps.CartsConfig",
    "coupons.apps.CouponsConfig",
    "orders.apps.OrdersConfig",
    "public.apps.PublicConfig",
]

# -----------------------------------------
# MIDDLEWARE
# -----------------------------------------
MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "backend.urls"
WSGI_APPLICATION = "backend.wsgi.application"
APPEND_SLASH = True

# -----------------------------------------
# TEMPLATES (required for Django admin)
# -----------------------------------------
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

# -----------------------------------------
# REST FRAMEWORK
# -----------------------------------------
_relaxed_rate = "100000/min"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.IsAuthenticated",),
    "DEFAULT_FILTER_BACKENDS": ("django_filters.rest_framework.DjangoFilterBackend",),
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 20,
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_THROTTLE_CLASSES": (
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
    ),
    "DEFAULT_THROTTLE_RATES": {
        "anon": _relaxed_rate if TESTING else env("THROTTLE_ANON_RATE"),
        "user": _relaxed_rate if TESTING else env("THROTTLE_USER_RATE"),
        "public_poll": _relaxed_rate if TESTING else env("THROTTLE_PUBLIC_POLL_RATE"),
        "public_write": _relaxed_rate if TESTING else env("THROTTLE_PUBLIC_WRITE_RATE"),
        "webhook": _relaxed_rate if TESTING else env("THROTTLE_WEBHOOK_RATE"),
    },
}

# -----------------------------------------
# SIMPLE JWT
# -----------------------------------------
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=30),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=1),
    "ROTATE_REFRESH_TOKENS": True,
    "BLACKLIST_AFTER_ROTATION": False,
}

# -----------------------------------------
# DATABASE
# -----------------------------------------
DATABASES = {
    "default": env.db("DATABASE_URL"),
}

# -----------------------------------------
# FRONTEND BASE URL
# -----------------------------------------
FRONTEND_BASE_URL = (env("FRONTEND_BASE_URL") or "http://localhost:5173").strip()

# -----------------------------------------
# PAYMENTS
# -----------------------------------------
PAYMENTS = {
    "MPESA": {
        "ENVIRONMENT": (env("MPESA_ENVIRONMENT") or "sandbox").strip().lower(),
        "CONSUMER_KEY": (env("MPESA_CONSUMER_KEY") or "").strip(),
        "CONSUMER_SECRET": (env("MPESA_CONSUMER_SECRET") or "").strip(),
        "SHORTCODE": (env("MPESA_SHORTCODE") or "").strip(),
        "PASSKEY": (env("MPESA_PASSKEY") or "").strip(),
        "CALLBACK_URL": (env("MPESA_CALLBACK_URL") or "").strip(),
        "CALLBACK_TOKEN": (env("MPESA_CALLBACK_TOKEN") or "").strip(),
        "TIMEOUT_SECONDS": env.int("MPESA_TIMEOUT_SECONDS"),
    }
}

# -----------------------------------------
# CHECKOUT
# -----------------------------------------
CHECKOUT = {
    "PAYMENT_TIMEOUT_SECONDS": env.int("CHECKOUT_PAYMENT_TIMEOUT_SECONDS"),
    "CURRENCY": (env("CHECKOUT_CURRENCY") or "KES").strip().upper(),
    "MANUAL_PAYBILL_NUMBER": (env("CHECKOUT_MANUAL_PAYBILL_NUMBER") or "").strip(),
    "MANUAL_REFERENCE_PREFIX": (env("CHECKOUT_MANUAL_REFERENCE_PREFIX") or "NAKS").strip().upper(),
    "SUBSCRIPTION_POLL_SECONDS": env.float("CHECKOUT_SUBSCRIPTION_POLL_SECONDS"),
    "SUBSCRIPTION_MAX_SECONDS": env.int("CHECKOUT_SUBSCRIPTION_MAX_SECONDS"),
}

# -----------------------------------------
# LOGGING
# -----------------------------------------
LOG_LEVEL = (env("LOG_LEVEL") or "INFO").strip().upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "plain",
        },
    },
    "loggers": {
        app: {
            "handlers": ["console"],
            "level": "WARNING" if TESTING else LOG_LEVEL,
            "propagate": False,
        }
        for app in ("events", "carts", "coupons", "orders", "public")
    },
}

# -----------------------------------------
# SENTRY (optional)
# -----------------------------------------
SENTRY_DSN = (env("SENTRY_DSN") or "").strip()
SENTRY_ENVIRONMENT = (env("SENTRY_ENVIRONMENT") or "development").strip()
SENTRY_TRACES_SAMPLE_RATE = float(env("SENTRY_TRACES_SAMPLE_RATE"))
SENTRY_SEND_PII = env.bool("SENTRY_SEND_PII")

if SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.django import DjangoIntegration

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        integrations=[DjangoIntegration()],
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=SENTRY_SEND_PII,
    )

# -----------------------------------------
# CORS / CSRF
# -----------------------------------------
CORS_ALLOWED_ORIGINS = env.list("CORS_ALLOWED_ORIGINS")
CORS_ALLOW_CREDENTIALS = True
CORS_ALLOW_METHODS = list(default_methods)
CORS_ALLOW_HEADERS = list(default_headers)

CSRF_TRUSTED_ORIGINS = env.list("CSRF_TRUSTED_ORIGINS")

# -----------------------------------------
# STATIC FILES
# -----------------------------------------
STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------
# SWAGGER
# -----------------------------------------
SPECTACULAR_SETTINGS = {
    "TITLE": "Ticketing Checkout API",
    "DESCRIPTION": "Cart, order, M-Pesa payment and ticket issuance API",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}
