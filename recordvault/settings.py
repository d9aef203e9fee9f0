"""
Django settings for the record vault.

Values can be overridden through the environment or a ``.env`` file at the
project root.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "record-vault-dev-only-secret-key")

DEBUG = os.environ.get("DJANGO_DEBUG", "false").strip().lower() in {"1", "true", "yes", "on"}

ALLOWED_HOSTS: list[str] = []

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "vault",
]

# Store connection: path of the SQLite database holding the record collection.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("VAULT_DATABASE") or str(BASE_DIR / "vault.sqlite3"),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# Vault files
VAULT_BACKUP_DIR = os.environ.get("VAULT_BACKUP_DIR") or str(BASE_DIR / "backups")
VAULT_EXPORT_PATH = os.environ.get("VAULT_EXPORT_PATH") or str(BASE_DIR / "export.txt")

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
        "django.dispatch": {
            "handlers": ["console"],
            "level": "ERROR",
            "propagate": False,
        },
        "vault": {
            "handlers": ["console"],
            "level": os.environ.get("VAULT_LOG_LEVEL", "INFO").upper(),
            "propagate": False,
        },
    },
}
