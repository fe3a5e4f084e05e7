from datetime import timedelta
from pathlib import Path

from django.core.exceptions import ImproperlyConfigured
from dotenv import load_dotenv

from config.env import database_config, django_env, env_bool, env_int, env_list, env_str

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DJANGO_ENV = django_env()
IS_LOCAL = DJANGO_ENV in {"dev", "test"}
IS_PRODUCTION_LIKE = not IS_LOCAL

DEBUG = env_bool("DEBUG", default=DJANGO_ENV == "dev")

SECRET_KEY = env_str("SECRET_KEY", "django-insecure-dev-only-key" if IS_LOCAL else None)
if not SECRET_KEY:
    raise ImproperlyConfigured("SECRET_KEY must be set when DJANGO_ENV is staging or prod.")

ALLOWED_HOSTS = env_list("ALLOWED_HOSTS", default=["localhost", "127.0.0.1", "testserver"] if IS_LOCAL else [])
if IS_PRODUCTION_LIKE and not ALLOWED_HOSTS:
    raise ImproperlyConfigured("ALLOWED_HOSTS must be configured when DJANGO_ENV is staging or prod.")

CORS_ALLOW_ALL_ORIGINS = env_bool("CORS_ALLOW_ALL_ORIGINS", default=IS_LOCAL)
CORS_ALLOWED_ORIGINS = env_list("CORS_ALLOWED_ORIGINS")
CSRF_TRUSTED_ORIGINS = env_list("CSRF_TRUSTED_ORIGINS")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework_simplejwt",
    "corsheaders",
    "core",
    "inventory",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "common.logging.RequestLogMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
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
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

DATABASES = {"default": database_config(DJANGO_ENV, BASE_DIR)}

AUTH_USER_MODEL = "core.User"

LANGUAGE_CODE = "en-us"
TIME_ZONE = env_str("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "EXCEPTION_HANDLER": "common.exceptions.custom_exception_handler",
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": env_str("DRF_THROTTLE_ANON", "100/hour"),
        "user": env_str("DRF_THROTTLE_USER", "1000/hour"),
        "auth": env_str("DRF_THROTTLE_AUTH", "30/minute"),
    },
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=env_int("JWT_ACCESS_MINUTES", 60 * 24, minimum=1)),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=env_int("JWT_REFRESH_DAYS", 7, minimum=1)),
}

# Stock ledger
INVENTORY_DEFAULT_MIN_STOCK_LEVEL = env_int("INVENTORY_DEFAULT_MIN_STOCK_LEVEL", 5, minimum=0)
INVENTORY_DEFAULT_MAX_STOCK_LEVEL = env_int("INVENTORY_DEFAULT_MAX_STOCK_LEVEL", 1000, minimum=0)
INVENTORY_PRODUCT_LOW_STOCK_THRESHOLD = env_int("INVENTORY_PRODUCT_LOW_STOCK_THRESHOLD", 5, minimum=0)
INVENTORY_TRANSACTION_LIST_LIMIT = env_int("INVENTORY_TRANSACTION_LIST_LIMIT", 50, minimum=1)
INVENTORY_TRANSACTION_LIST_MAX = env_int("INVENTORY_TRANSACTION_LIST_MAX", 500, minimum=1)

if INVENTORY_DEFAULT_MAX_STOCK_LEVEL < INVENTORY_DEFAULT_MIN_STOCK_LEVEL:
    raise ImproperlyConfigured("INVENTORY_DEFAULT_MAX_STOCK_LEVEL must be >= INVENTORY_DEFAULT_MIN_STOCK_LEVEL.")
if INVENTORY_TRANSACTION_LIST_LIMIT > INVENTORY_TRANSACTION_LIST_MAX:
    raise ImproperlyConfigured("INVENTORY_TRANSACTION_LIST_LIMIT must not exceed INVENTORY_TRANSACTION_LIST_MAX.")

# Security defaults: strict in staging/prod, relaxed locally.
SECURE_SSL_REDIRECT = env_bool("SECURE_SSL_REDIRECT", default=IS_PRODUCTION_LIKE)
SESSION_COOKIE_SECURE = env_bool("SESSION_COOKIE_SECURE", default=IS_PRODUCTION_LIKE)
CSRF_COOKIE_SECURE = env_bool("CSRF_COOKIE_SECURE", default=IS_PRODUCTION_LIKE)
SECURE_HSTS_SECONDS = env_int("SECURE_HSTS_SECONDS", 31536000 if IS_PRODUCTION_LIKE else 0, minimum=0)
SECURE_HSTS_INCLUDE_SUBDOMAINS = env_bool("SECURE_HSTS_INCLUDE_SUBDOMAINS", default=IS_PRODUCTION_LIKE)
SECURE_HSTS_PRELOAD = env_bool("SECURE_HSTS_PRELOAD", default=False)
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = env_str("X_FRAME_OPTIONS", "DENY")
REFERRER_POLICY = env_str("REFERRER_POLICY", "same-origin")
if env_bool("SECURE_PROXY_SSL_HEADER_ENABLED", default=IS_PRODUCTION_LIKE):
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

LOG_LEVEL = env_str("LOG_LEVEL", "INFO")
INVENTORY_LOG_LEVEL = env_str("INVENTORY_LOG_LEVEL", LOG_LEVEL)


def _logger(level):
    return {"handlers": ["console"], "level": level, "propagate": False}


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "common.logging.RequestIdFilter"},
    },
    "formatters": {
        "json": {"()": "common.logging.JsonFormatter"},
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_id"],
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": _logger(LOG_LEVEL),
        "api.request": _logger(LOG_LEVEL),
        "security.authorization": _logger(LOG_LEVEL),
        "inventory": _logger(INVENTORY_LOG_LEVEL),
    },
}
