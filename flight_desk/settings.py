import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_list(name: str, default: str = "") -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


REDIS_URL = os.getenv("REDIS_URL", "").strip()

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-unsafe-secret-key")
DEBUG = env_bool("DJANGO_DEBUG", default=not bool(REDIS_URL))

ALLOWED_HOSTS = env_list("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver,.onrender.com")

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "rest_framework",
    "offers.apps.OffersConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "offers.middleware.RequestContextMiddleware",
]

ROOT_URLCONF = "flight_desk.urls"

WSGI_APPLICATION = "flight_desk.wsgi.application"
ASGI_APPLICATION = "flight_desk.asgi.application"

# No persistent storage: offers and content only ever live in the cache.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

if REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": REDIS_URL,
            "KEY_PREFIX": "flightdesk",
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "flightdesk-local",
        }
    }

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SECURE_CONTENT_TYPE_NOSNIFF = True
SECURE_REFERRER_POLICY = "same-origin"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny"
    ],
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": "600/hour",
        "flight_search": "240/hour",
    },
    "UNAUTHENTICATED_USER": None,
}

CELERY_BROKER_URL = (os.getenv("CELERY_BROKER_URL") or REDIS_URL).strip()
CELERY_RESULT_BACKEND = (os.getenv("CELERY_RESULT_BACKEND") or REDIS_URL or "cache+memory://").strip()
CELERY_TASK_ALWAYS_EAGER = not bool(CELERY_BROKER_URL)
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_TASK_ACKS_LATE = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_BROKER_CONNECTION_RETRY_ON_STARTUP = True
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {} if CELERY_TASK_ALWAYS_EAGER else {
    "warm-layout-cache": {
        "task": "offers.tasks.warm_layout_cache",
        "schedule": 6 * 3600,
    }
}

# Upstream pricing sources
TEQUILA_API_KEY = os.getenv("TEQUILA_API_KEY", "").strip()
TEQUILA_BASE_URL = os.getenv("TEQUILA_BASE_URL", "https://api.tequila.kiwi.com/v2/search").strip()
PARTNER_PRICING_URL = os.getenv("PARTNER_PRICING_URL", "").strip()
PARTNER_PRICING_TOKEN = os.getenv("PARTNER_PRICING_TOKEN", "").strip()
WIDGET_URL_TEMPLATE = os.getenv("WIDGET_URL_TEMPLATE", "https://search.triposia.com/flights/{code}").strip()
WIDGET_FALLBACK_ENABLED = env_bool("WIDGET_FALLBACK_ENABLED", True)

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD").strip().upper() or "USD"
SEARCH_RESULT_LIMIT = env_int("SEARCH_RESULT_LIMIT", 30)
STRUCTURED_TIMEOUT_SECONDS = env_int("STRUCTURED_TIMEOUT_SECONDS", 8)
SEARCH_BUDGET_SECONDS = env_int("SEARCH_BUDGET_SECONDS", 15)
WIDGET_DEADLINE_SECONDS = env_int("WIDGET_DEADLINE_SECONDS", 13)
WIDGET_RETRY_SCHEDULE = env_list("WIDGET_RETRY_SCHEDULE", "1,3,6,10")

# Content APIs
CONTENT_API_BASE = os.getenv("CONTENT_API_BASE", "https://api.triposia.com").rstrip("/")
REAL_API_BASE = os.getenv("REAL_API_BASE", "https://api.triposia.com").rstrip("/")
WARM_LAYOUT_TARGETS = env_list("WARM_LAYOUT_TARGETS", "1:1,2:1")

CACHE_ADMIN_TOKEN = os.getenv("CACHE_ADMIN_TOKEN", "").strip()

# Site flags; request-scoped copies are built by offers.services.config.SiteFlags
FLIGHT_POPUP_ENABLED = env_bool("FLIGHT_POPUP_ENABLED", True)
BOOKING_POPUP_ENABLED = env_bool("BOOKING_POPUP_ENABLED", True)
OVERLAY_ENABLED = env_bool("OVERLAY_ENABLED", True)
LEAD_PAGE_ENABLED = env_bool("LEAD_PAGE_ENABLED", False)
SUPPORT_PHONE_NUMBER = os.getenv("SUPPORT_PHONE_NUMBER", "(888) 319-6206")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {"request_context": {"()": "flight_desk.logging.RequestContextFilter"}},
    "formatters": {
        "context": {
            "format": "%(asctime)s %(levelname)s [%(name)s] [req=%(request_id)s code=%(search_code)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "filters": ["request_context"],
            "formatter": "context",
        },
    },
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
}
