"""Django settings for the VSPAY payment gateway.


The gateway sits between merchants and upstream payment channels:
- Merchants create pay-in / payout orders through the signed merchant API
- Upstream channels report settlement through per-channel webhooks
- The reconciliation engine moves merchant balances exactly once per settlement


Everything environment-specific (channel credentials, rates, timeouts) is read
from the environment so the same settings module serves dev, test and prod.
"""

import os
from pathlib import Path
from decimal import Decimal


BASE_DIR = Path(__file__).resolve().parent.parent
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.getenv("DEBUG", "1") in ("1", "true", "True", "yes")
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")
CSRF_TRUSTED_ORIGINS = os.getenv("CSRF_TRUSTED_ORIGINS", "").split(",") if os.getenv("CSRF_TRUSTED_ORIGINS") else []

def env_bool(name, default=""):
    v = os.getenv(name, default)
    return v.lower() in ("1", "true", "yes", "on")

def env_decimal(name, default):
    return Decimal(os.getenv(name, default))

#######################
# Public base URL, used to build our own notify/return URLs handed to channels
APP_URL = os.getenv("APP_URL", "http://localhost:8000").rstrip("/")

# Channel a merchant routes through when its profile doesn't name one
DEFAULT_CHANNEL = os.getenv("DEFAULT_CHANNEL", "silkpay")

# Production credentials per channel (set in env)
CHANNEL_CREDENTIALS = {
    "silkpay": {
        "base_url": os.getenv("SILKPAY_BASE_URL", "https://api.dev.silkpay.ai"),
        "merchant_id": os.getenv("SILKPAY_MID", "TEST"),
        "secret": os.getenv("SILKPAY_SECRET", "SIb3DQEBAQ"),
    },
    "hdpay": {
        "base_url": os.getenv("HDPAY_BASE_URL", "https://dd1688.cc"),
        "merchant_id": os.getenv("HDPAY_MERCHANT_ID", ""),
        "secret": os.getenv("HDPAY_SECRET_KEY", ""),
    },
    "f2pay": {
        "base_url": os.getenv("F2PAY_BASE_URL", "https://api.dev.f2pay.com"),
        "merchant_id": os.getenv("F2PAY_MERCHANT_ID", "F2PAY_TEST"),
        "public_key": os.getenv("F2PAY_PLATFORM_PUBLIC_KEY", ""),
        "private_key": os.getenv("F2PAY_MERCHANT_PRIVATE_KEY", ""),
    },
    # Yellow orders are created through the F2PAY API; only the notify path differs
    "yellow": {
        "base_url": os.getenv("YELLOW_BASE_URL", os.getenv("F2PAY_BASE_URL", "https://api.dev.f2pay.com")),
        "merchant_id": os.getenv("YELLOW_MERCHANT_ID", os.getenv("F2PAY_MERCHANT_ID", "F2PAY_TEST")),
        "public_key": os.getenv("YELLOW_PLATFORM_PUBLIC_KEY", os.getenv("F2PAY_PLATFORM_PUBLIC_KEY", "")),
        "private_key": os.getenv("YELLOW_MERCHANT_PRIVATE_KEY", os.getenv("F2PAY_MERCHANT_PRIVATE_KEY", "")),
    },
    # Pay-ins and payouts are encrypted and signed with separate keys
    "gtpay": {
        "base_url": os.getenv("GTPAY_BASE_URL", "https://interface.payp.vip"),
        "merchant_id": os.getenv("GTPAY_PLATFORM_NO", ""),
        "secret": os.getenv("GTPAY_PAYIN_KEY", ""),
        "payout_secret": os.getenv("GTPAY_PAYOUT_KEY", ""),
    },
}

# The sandbox merchant always talks to these, never to production
SANDBOX_MERCHANT_USERNAME = os.getenv("SANDBOX_MERCHANT_USERNAME", "demo")
CHANNEL_SANDBOX_CREDENTIALS = {
    "silkpay": {
        "base_url": "https://api.dev.silkpay.ai",
        "merchant_id": "TEST",
        "secret": "SIb3DQEBAQ",
    },
}

# Rate defaults, overridable at runtime through core.GatewaySetting rows
DEFAULT_PAYIN_RATE = env_decimal("DEFAULT_PAYIN_RATE", "0.05")
DEFAULT_PAYOUT_RATE = env_decimal("DEFAULT_PAYOUT_RATE", "0.03")
DEFAULT_PAYOUT_FIXED_FEE = env_decimal("DEFAULT_PAYOUT_FIXED_FEE", "6")
DEFAULT_ADMIN_PAYIN_COST = env_decimal("DEFAULT_ADMIN_PAYIN_COST", "0.05")

# 1 USDT in INR, used for the USDT payout minimum
USDT_RATE = env_decimal("USDT_RATE", "103")

# Auto-success simulator for the yellow channel (percent, 0 disables)
YELLOW_AUTO_SUCCESS_RATE = int(os.getenv("YELLOW_AUTO_SUCCESS_RATE", "30"))
AUTO_SUCCESS_DELAY_SECONDS = int(os.getenv("AUTO_SUCCESS_DELAY_SECONDS", "60"))

# Outbound timeouts (seconds)
UPSTREAM_TIMEOUT = int(os.getenv("UPSTREAM_TIMEOUT", "30"))
MERCHANT_CALLBACK_TIMEOUT = int(os.getenv("MERCHANT_CALLBACK_TIMEOUT", "10"))

# Merchant notifications go to a background pool unless disabled (tests)
MERCHANT_NOTIFY_ASYNC = env_bool("MERCHANT_NOTIFY_ASYNC", "1")
MERCHANT_NOTIFY_WORKERS = int(os.getenv("MERCHANT_NOTIFY_WORKERS", "4"))
#######################


INSTALLED_APPS = [
	"django.contrib.contenttypes",
	"django.contrib.auth",
	# local apps
	"core",
	"api",
]


MIDDLEWARE = [
	"django.middleware.security.SecurityMiddleware",
	"django.middleware.common.CommonMiddleware",
]


ROOT_URLCONF = "vspay_gateway.urls"


WSGI_APPLICATION = "vspay_gateway.wsgi.application"


DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB", "vspay"),
            "USER": os.getenv("POSTGRES_USER", "vspay"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "vspay"),
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


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOGGING = {
	"version": 1,
	"disable_existing_loggers": False,
	"formatters": {
		"plain": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
	},
	"handlers": {
		"console": {"class": "logging.StreamHandler", "formatter": "plain"},
	},
	"loggers": {
		"core": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
		"api": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
	},
}


LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True


DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
