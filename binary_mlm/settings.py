# binary_mlm/settings.py

import os
from decimal import Decimal
from pathlib import Path

from celery.schedules import crontab

# Base directory of the project
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production!
SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "django-insecure-change-me")

DEBUG = os.environ.get("DJANGO_DEBUG", "0").lower() in ("1", "true", "yes")

ALLOWED_HOSTS = [
    h.strip()
    for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "127.0.0.1,localhost").split(",")
    if h.strip()
]

# Application definition
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # ✅ Compensation engine (loads signals in apps.py)
    "compensation.apps.CompensationConfig",

    # ✅ Celery results + beat
    "django_celery_results",
    "django_celery_beat",

    # ✅ Optional dev tools
    "django_extensions",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "binary_mlm.urls"

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
    },
]

WSGI_APPLICATION = "binary_mlm.wsgi.application"

# =========================
# ✅ PostgreSQL Database
# =========================
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ.get("POSTGRES_DB", "binary_mlm"),
        "USER": os.environ.get("POSTGRES_USER", "binary_mlm"),
        "PASSWORD": os.environ.get("POSTGRES_PASSWORD", ""),
        "HOST": os.environ.get("POSTGRES_HOST", "localhost"),
        "PORT": os.environ.get("POSTGRES_PORT", "5432"),
    }
}

REDIS_URL = os.environ.get("REDIS_URL", "redis://127.0.0.1:6379")

# =========================
# ✅ Celery + Redis
# =========================
CELERY_BROKER_URL = f"{REDIS_URL}/0"
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_BACKEND = "django-db"
CELERY_TIMEZONE = os.environ.get("TIME_ZONE", "UTC")
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 60 * 30  # 30 mins

# =========================
# ✅ Cache (Redis)
# =========================
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.redis.RedisCache",
        "LOCATION": f"{REDIS_URL}/1",
    }
}

# ==========================================================
# ✅ Celery Beat schedule (periodic compensation jobs)
# ==========================================================
CELERY_BEAT_SCHEDULE = {
    "compensation-credit-due": {
        "task": "compensation.tasks.credit_due_transactions_task",
        "schedule": crontab(minute="*/15"),
    },
    "compensation-close-capping-periods": {
        "task": "compensation.tasks.close_capping_periods_task",
        "schedule": crontab(minute=5),  # hourly, tenants close on their own midnight
    },
    "compensation-daily-matching": {
        "task": "compensation.tasks.run_matching_sweep_task",
        "schedule": crontab(hour=0, minute=30),
    },
    "compensation-cleanup-job-locks": {
        "task": "compensation.tasks.cleanup_job_locks_task",
        "schedule": crontab(hour=3, minute=0, day_of_week=0),
    },
    "compensation-evaluate-ranks": {
        "task": "compensation.tasks.evaluate_ranks_task",
        "schedule": crontab(hour=1, minute=0),
    },
}

# ==========================================================
# ✅ Compensation engine knobs
# ==========================================================
COMPENSATION = {
    "RETRY_ATTEMPTS": 3,
    "RETRY_BASE_DELAY": 0.05,  # seconds, doubled per attempt
    "MAX_VOLUME": Decimal("9999999999999999.99"),
    "DEFAULT_CURRENCY": "USD",
    "LOCK_TIMEOUT_MINUTES": 5,
    "CONFIG_CACHE_SECONDS": 300,
}

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "django.request": {
            "handlers": ["console"],
            "level": "ERROR",
            "propagate": False,
        },
        "django": {
            "handlers": ["console"],
            "level": "INFO",
        },
        "compensation": {
            "handlers": ["console"],
            "level": os.environ.get("COMPENSATION_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
