# =============================================================================
# Django Project Configuration Package
# =============================================================================
# Settings and the Celery application of the preview worker.
#
# Import Celery app to ensure it's loaded when Django starts, so that
# @shared_task handlers bind to it.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
