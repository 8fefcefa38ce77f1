"""Django settings for the storefront gateway.

Every deploy-specific value is read from the environment so the same
module serves local development, tests and the containerised deploy.
"""

import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-key-change-me")
DEBUG = _bool("DJANGO_DEBUG")
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "rest_framework",
    "apps.catalog",
    "apps.cart",
    "apps.coupons",
    "apps.orders",
    "apps.notifications",
    "apps.audit",
    "apps.monitoring",
]

MIDDLEWARE = [
    "gateway.middleware.RequestIdMiddleware",
    "gateway.middleware.ApiSizeLimitMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "storefront.urls"
WSGI_APPLICATION = "storefront.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

if os.getenv("DB_ENGINE", "sqlite") == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("DB_NAME", "storefront"),
            "USER": os.getenv("DB_USER", "storefront_user"),
            "PASSWORD": os.getenv("DB_PASSWORD", "storefront-pass"),
            "HOST": os.getenv("DB_HOST", "storefront-db"),
            "PORT": os.getenv("DB_PORT", "5432"),
            "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "storefront",
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "Asia/Kolkata")
USE_I18N = True
USE_TZ = True

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "DEFAULT_THROTTLE_RATES": {
        "orders_create": os.getenv("THROTTLE_ORDERS_CREATE", "30/min"),
        "orders_list": os.getenv("THROTTLE_ORDERS_LIST", "120/min"),
        "orders_detail": os.getenv("THROTTLE_ORDERS_DETAIL", "240/min"),
        "orders_lookup": os.getenv("THROTTLE_ORDERS_LOOKUP", "20/min"),
        "cart": os.getenv("THROTTLE_CART", "240/min"),
        "coupons": os.getenv("THROTTLE_COUPONS", "60/min"),
    },
}

# ---- Pricing ----
TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.18"))
FREE_SHIPPING_THRESHOLD = Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "2000"))
STANDARD_SHIPPING_FEE = Decimal(os.getenv("STANDARD_SHIPPING_FEE", "100"))
COUPON_CACHE_TTL = float(os.getenv("COUPON_CACHE_TTL", "30"))
CART_TTL_DAYS_REGISTERED = int(os.getenv("CART_TTL_DAYS_REGISTERED", "30"))
CART_TTL_DAYS_GUEST = int(os.getenv("CART_TTL_DAYS_GUEST", "7"))
GUEST_ID_SECRET = os.getenv("GUEST_ID_SECRET", SECRET_KEY)

# ---- Downstream services ----
USE_HTTP_ADAPTERS = _bool("USE_HTTP_ADAPTERS", "1")
INVENTORY_BASE_URL = os.getenv("INVENTORY_BASE_URL", "http://inventory:9001")
HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "3.0"))
HTTP_RETRY_MAX = int(os.getenv("HTTP_RETRY_MAX", "3"))
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "0.15"))
HTTP_RETRY_MAX_SLEEP = float(os.getenv("HTTP_RETRY_MAX_SLEEP", "0.5"))
HTTP_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5"))
HTTP_CIRCUIT_RESET_TIMEOUT = float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30"))

# ---- Notifications ----
EMAIL_API_URL = os.getenv("EMAIL_API_URL", "https://mail.example.invalid/v1")
EMAIL_API_KEY = os.getenv("EMAIL_API_KEY", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "Silver Mangalsutra Store <noreply@silvermangalsutra.in>")
SMS_API_URL = os.getenv("SMS_API_URL", "https://sms.example.invalid/api/v5/flow/")
SMS_API_KEY = os.getenv("SMS_API_KEY", "")
SMS_SENDER_ID = os.getenv("SMS_SENDER_ID", "SLVRMS")
SMS_COUNTRY_CODE = os.getenv("SMS_COUNTRY_CODE", "91")
NOTIFICATION_TIMEOUT_SECS = float(os.getenv("NOTIFICATION_TIMEOUT_SECS", "5.0"))

# ---- Payments ----
PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET", "")

# ---- Invoice header ----
STORE_DETAILS = {
    "name": os.getenv("STORE_NAME", "Silver Mangalsutra Store"),
    "address_lines": [
        "123 Jewelry Street, Commercial Complex",
        "Mumbai, Maharashtra 400001",
    ],
    "gstin": os.getenv("STORE_GSTIN", "27AABCS1234F1Z5"),
    "phone": os.getenv("STORE_PHONE", "+91 98765 43210"),
    "email": os.getenv("STORE_EMAIL", "orders@silvermangalsutra.in"),
}

# ---- Audit ----
AUDIT_FAILED_ACTION_THRESHOLD = int(os.getenv("AUDIT_FAILED_ACTION_THRESHOLD", "5"))
AUDIT_OFF_HOURS_THRESHOLD = int(os.getenv("AUDIT_OFF_HOURS_THRESHOLD", "10"))

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "gateway.logging_filters.RequestIdFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_id"],
        },
    },
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
    "loggers": {
        "django.request": {"level": "WARNING"},
    },
}
