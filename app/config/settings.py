"""
Django settings for the preview worker.

This is the single settings file for all environments. Configuration is driven
by environment variables using django-environ, following the 12-factor app
methodology.

Environment files:
    - .env.development: Development settings (DEBUG=True, local MinIO endpoint)
    - .env.production: Production settings

The worker serves no HTTP traffic and keeps no database; Django provides the
settings object and the app registry that Celery discovers tasks from.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/topics/settings/
"""

import os
from pathlib import Path

import environ

# =============================================================================
# Path Configuration
# =============================================================================
BASE_DIR = Path(__file__).resolve().parent.parent

# =============================================================================
# Environment Configuration
# =============================================================================
env = environ.Env(
    DEBUG=(bool, False),
    LOG_LEVEL=(str, "INFO"),
    PREVIEW_THUMBNAIL_SIZES=(list, [128, 512]),
)

# Note: In Docker, env vars are passed directly; .env files are for local dev
env_file = os.environ.get("ENV_FILE", BASE_DIR.parent / ".env.development")
if Path(env_file).exists():
    environ.Env.read_env(env_file)

# =============================================================================
# Core Settings
# =============================================================================
# Nothing is signed by the worker; the key only satisfies Django's checks
SECRET_KEY = env("SECRET_KEY", default="preview-worker-insecure-key")

DEBUG = env("DEBUG")

ALLOWED_HOSTS: list[str] = []

# =============================================================================
# Application Definition
# =============================================================================
INSTALLED_APPS = [
    # Local apps
    "core",
    "previews",
]

DATABASES: dict = {}

TIME_ZONE = "UTC"
USE_TZ = True

# =============================================================================
# Preview Configuration
# =============================================================================
# Thumbnails are written under this key prefix in the source bucket
PREVIEW_THUMBNAIL_PREFIX = env("THUMBNAIL_DESTINATION_PREFIX", default="thumbnails")

# Thumbnail sizes (pixels) rendered in addition to the base image
PREVIEW_THUMBNAIL_SIZES = [int(size) for size in env("PREVIEW_THUMBNAIL_SIZES")]

# Downloads and rendered images are materialized here
PREVIEW_TMP_DIR = env("PREVIEW_TMP_DIR", default="/tmp")

# External tools (convert, identify, gs, pdfinfo) are killed after this
PREVIEW_COMMAND_TIMEOUT = env.int("PREVIEW_COMMAND_TIMEOUT", default=300)

# Thread pool width for concurrent thumbnail rendering
PREVIEW_MAX_WORKERS = env.int("PREVIEW_MAX_WORKERS", default=4)

# Passed to `convert -limit memory`
IMAGEMAGICK_MEMORY_LIMIT = env("IMAGEMAGICK_MEMORY_LIMIT", default="2880MB")

# Ghostscript rasterization resolution
PDF_PREVIEW_DPI = env.int("PDF_PREVIEW_DPI", default=300)

# =============================================================================
# S3 Configuration
# =============================================================================
# Credentials come from the standard AWS chain (env vars, profile, IAM role)
AWS_S3_REGION_NAME = env("AWS_S3_REGION_NAME", default=None)

# Override for S3-compatible storage (MinIO, LocalStack)
AWS_S3_ENDPOINT_URL = env("AWS_S3_ENDPOINT_URL", default=None)

AWS_S3_CONNECT_TIMEOUT = env.int("AWS_S3_CONNECT_TIMEOUT", default=30)
AWS_S3_READ_TIMEOUT = env.int("AWS_S3_READ_TIMEOUT", default=30)

# =============================================================================
# Celery Configuration
# =============================================================================
CELERY_BROKER_URL = env("CELERY_BROKER_URL", default="redis://redis:6379/1")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", default="redis://redis:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = "UTC"
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 30 * 60  # 30 minutes
# One notification at a time per worker process; rendering is CPU bound
CELERY_WORKER_PREFETCH_MULTIPLIER = 1

# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL = env("LOG_LEVEL")

# Log file name determined by service (celery-worker, local runs)
LOG_FILE_NAME = env("LOG_FILE_NAME", default="previews.log")
LOG_DIR = env("LOG_DIR", default="")

LOG_HANDLERS = ["console"]

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "file": {
            # Detailed format for persistent logs with timestamp, level, logger name, and location
            "format": "[{asctime}] {levelname} {name} {module}:{lineno} - {message}",
            "style": "{",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": LOG_HANDLERS,
        "level": LOG_LEVEL,
    },
    "loggers": {
        "celery": {
            "handlers": LOG_HANDLERS,
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "botocore": {
            "handlers": LOG_HANDLERS,
            "level": "WARNING",
            "propagate": False,
        },
    },
}

if LOG_DIR:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    LOGGING["handlers"]["file"] = {
        # Max 10MB per file, keeps 5 backups
        "level": "DEBUG",
        "class": "logging.handlers.RotatingFileHandler",
        "filename": Path(LOG_DIR) / LOG_FILE_NAME,
        "maxBytes": 10 * 1024 * 1024,  # 10MB
        "backupCount": 5,
        "formatter": "file",
        "encoding": "utf-8",
    }
    LOG_HANDLERS.append("file")
