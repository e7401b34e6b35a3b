"""
Celery configuration for the preview worker.

The worker consumes object-storage notifications and turns them into preview
images:
- previews.tasks.generate_pdf_preview: first-page JPEG of an uploaded PDF
- previews.tasks.generate_thumbnails: base image and thumbnails of an image

Redis is used as both the message broker and result backend. Tasks are
auto-discovered from all installed Django apps.

Usage:
    # Start a worker
    celery -A config worker -l info

    # Enqueue a notification
    from previews.tasks import generate_thumbnails
    generate_thumbnails.delay(sns_message)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Looks for a tasks.py module in each installed app
app.autodiscover_tasks()
