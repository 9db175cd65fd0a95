"""Django settings for the Zidwell wallet settlement service.


This project runs the wallet debit/settle/reconcile flow:
- Reserve funds on the wallet ledger -> call the bill/transfer provider
- Finalize on success, refund on explicit failure, park ambiguous outcomes
  as processing until a webhook or the reconciliation sweep resolves them


Every value below can be overridden from the environment.
"""

import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.getenv("DEBUG", "1") in ("1", "true", "True", "yes")
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")
CSRF_TRUSTED_ORIGINS = os.getenv("CSRF_TRUSTED_ORIGINS", "").split(",") if os.getenv("CSRF_TRUSTED_ORIGINS") else []

def env_int(name, default):
    v = os.getenv(name)
    return int(v) if v not in (None, "") else default

#######################
# Settlement provider (bill payments / transfers)
# "stub" keeps everything in-process (provider_stub app), "http" calls PROVIDER_BASE_URL
PROVIDER_BACKEND = os.getenv("PROVIDER_BACKEND", "stub")
PROVIDER_BASE_URL = os.getenv("PROVIDER_BASE_URL", "http://localhost:8000/stub/provider")
PROVIDER_ACCOUNT_ID = os.getenv("PROVIDER_ACCOUNT_ID", "")
PROVIDER_API_TOKEN = os.getenv("PROVIDER_API_TOKEN", "")
# A request that outlives this is classified as ambiguous, never as failed
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "15"))

# HMAC secret for the provider status webhook (set in env)
PROVIDER_WEBHOOK_SECRET = os.getenv("PROVIDER_WEBHOOK_SECRET", "dev-secret-change-me")
# Webhooks whose X-Provider-Timestamp is further off than this are rejected
PROVIDER_WEBHOOK_TOLERANCE_SECONDS = env_int("PROVIDER_WEBHOOK_TOLERANCE_SECONDS", 300)

# Shared token for /api/admin/* (empty => open, dev only)
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", "")

# Reconciliation sweep picks up processing records older than this
RECONCILE_PROCESSING_AFTER_MINUTES = env_int("RECONCILE_PROCESSING_AFTER_MINUTES", 10)

# Staleness bound for cached wallet balances shown on read endpoints
WALLET_CACHE_TTL_SECONDS = env_int("WALLET_CACHE_TTL_SECONDS", 120)

# Smallest airtime/data/electricity purchase, in kobo (NGN 100)
MIN_PURCHASE_MINOR = env_int("MIN_PURCHASE_MINOR", 10000)

# Bank withdrawal fee in basis points of the amount, rounded up to whole kobo
WITHDRAWAL_FEE_BPS = env_int("WITHDRAWAL_FEE_BPS", 75)
#######################


INSTALLED_APPS = [
	"django.contrib.admin",
	"django.contrib.auth",
	"django.contrib.contenttypes",
	"django.contrib.sessions",
	"django.contrib.messages",
	"django.contrib.staticfiles",
	# local apps
	"core",
	"api",
	"provider_stub",
]


MIDDLEWARE = [
	"django.middleware.security.SecurityMiddleware",
	"django.contrib.sessions.middleware.SessionMiddleware",
	"django.middleware.common.CommonMiddleware",
	"django.middleware.csrf.CsrfViewMiddleware",
	"django.contrib.auth.middleware.AuthenticationMiddleware",
	"django.contrib.messages.middleware.MessageMiddleware",
]


ROOT_URLCONF = "zidwell.urls"
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


DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB", "zidwell"),
            "USER": os.getenv("POSTGRES_USER", "zidwell"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "zidwell"),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
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
		"BACKEND": os.getenv("CACHE_BACKEND", "django.core.cache.backends.locmem.LocMemCache"),
		"LOCATION": os.getenv("CACHE_LOCATION", "zidwell-wallets"),
	}
}


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
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
		"core": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": True},
		"api": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": True},
		"provider_stub": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": True},
	},
}


AUTH_PASSWORD_VALIDATORS = []


LANGUAGE_CODE = "en-us"
TIME_ZONE = "Africa/Lagos"
USE_I18N = True
USE_TZ = True


STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Wallet currency is NGN held in kobo; one demo user is seeded by /api/demo/seed
CURRENCY = "NGN"
MINOR_UNITS_PER_MAJOR = 100
DEMO_USER_EMAIL = os.getenv("DEMO_USER_EMAIL", "demo@zidwell.test")
