import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")


def env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "django-insecure-local-development-key")
DEBUG = env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [h for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",") if h]

INSTALLED_APPS = [
    "corsheaders",
    "gitflow_app",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "promoter_core.urls"
WSGI_APPLICATION = "promoter_core.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DATABASE_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"

CORS_ALLOW_ALL_ORIGINS = env_bool("CORS_ALLOW_ALL_ORIGINS", True)

# Upload sizes above this are streamed to a temp file by Django
FILE_UPLOAD_MAX_MEMORY_SIZE = 5 * 1024 * 1024

# Remote graph store
GITHUB_API_URL = os.environ.get("GITHUB_API_URL", "https://api.github.com")
GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN", "")
GITHUB_OWNER = os.environ.get("GITHUB_OWNER", "")
GITHUB_REPO = os.environ.get("GITHUB_REPO", "")
GITHUB_TIMEOUT = float(os.environ.get("GITHUB_TIMEOUT", "30"))

PROMOTION_STAGES = {
    "dev": os.environ.get("PROMOTION_DEV_BRANCH", "dev"),
    "uat": os.environ.get("PROMOTION_UAT_BRANCH", "uat"),
    "main": os.environ.get("PROMOTION_MAIN_BRANCH", "main"),
}

UPLOAD_DIR = os.environ.get("UPLOAD_DIR", str(BASE_DIR / "Files"))
UPLOAD_PREFIX = os.environ.get("UPLOAD_PREFIX", "Files")

AUDIT_SINK = os.environ.get("AUDIT_SINK", "database")
AUDIT_LOG_PATH = os.environ.get("AUDIT_LOG_PATH", str(BASE_DIR / "audit_log.json"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "gitflow_app": {"level": LOG_LEVEL},
    },
}
