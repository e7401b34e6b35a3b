"""
Celery tasks handling object-storage upload notifications.

This module provides two entry points, each consuming one notification:
- generate_pdf_preview: render a JPEG preview of an uploaded PDF
- generate_thumbnails: render the base image and thumbnails of an uploaded image

Both tasks:
- Decode the notification (InvalidParameter if it is not JSON)
- Return None for notifications without records (s3:TestEvent)
- Fetch the object and skip content they do not handle (return None)
- Raise only ApplicationError; anything unclassified becomes
  InternalServerError
- Work in a private temp directory, deleting it and every file created
  during the call at the end, logging (never raising) cleanup failures

Usage:
    from previews.tasks import generate_pdf_preview, generate_thumbnails

    # From the queue consumer
    generate_thumbnails.delay(sns_message)

    # Synchronously
    url = generate_pdf_preview(sns_message)  # "bucket://dir/file.jpeg" or None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from celery import shared_task

from core.exceptions import ApplicationError
from previews.events import parse_notification
from previews.filesystem import TempFileRegistry
from previews.services import PreviewService
from previews.storage import ContentKind, StorageObject

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# PDF Preview Task
# =============================================================================


@shared_task(acks_late=True)
def generate_pdf_preview(message: str | dict[str, Any]) -> str | None:
    """
    Generate and store the preview image of an uploaded PDF.

    Args:
        message: The notification payload.

    Returns:
        URL of the stored preview, or None when no preview was generated
        (test event or the object is not a PDF).

    Raises:
        ApplicationError: On any failure.
    """
    location = parse_notification(message)
    if location is None:
        return None

    registry = TempFileRegistry.create()
    try:
        storage_object = StorageObject.fetch(location.bucket, location.key, registry)

        if not storage_object.is_document:
            logger.info(
                "Skipping this event because the file is not PDF",
                extra={"url": location.url, "content_type": storage_object.content_type},
            )
            return None

        preview_object = PreviewService(registry).create_pdf_preview(storage_object)
        return preview_object.url

    except ApplicationError as e:
        _log_failure(e, location.url)
        raise
    except Exception as e:
        logger.exception(
            "Unexpected error while generating previews", extra={"url": location.url}
        )
        raise ApplicationError.wrap(e) from e
    finally:
        _clear(registry)


# =============================================================================
# Thumbnail Task
# =============================================================================


@shared_task(acks_late=True)
def generate_thumbnails(message: str | dict[str, Any]) -> dict[int, str] | None:
    """
    Generate and store the thumbnails of an uploaded image.

    Args:
        message: The notification payload.

    Returns:
        Mapping of thumbnail size to URL, always including 0 for the base
        image, or None when no thumbnails were generated (test event, PDF,
        or an unsupported content type).

    Raises:
        ApplicationError: On any failure.
    """
    location = parse_notification(message)
    if location is None:
        return None

    registry = TempFileRegistry.create()
    try:
        storage_object = StorageObject.fetch(location.bucket, location.key, registry)

        if storage_object.kind == ContentKind.DOCUMENT:
            logger.info(
                "Skipping this event because the file is PDF",
                extra={"url": location.url},
            )
            return None

        if storage_object.kind == ContentKind.OTHER:
            logger.info(
                "Skipping this event because the file is not a supported image",
                extra={"url": location.url, "content_type": storage_object.content_type},
            )
            return None

        thumbnails = PreviewService(registry).create_thumbnails(storage_object)
        return {size: thumbnail.url for size, thumbnail in thumbnails}

    except ApplicationError as e:
        _log_failure(e, location.url)
        raise
    except Exception as e:
        logger.exception(
            "Unexpected error while generating previews", extra={"url": location.url}
        )
        raise ApplicationError.wrap(e) from e
    finally:
        _clear(registry)


# =============================================================================
# Helpers
# =============================================================================


def _log_failure(error: ApplicationError, url: str) -> None:
    logger.error(
        f"[{error.error_code}] {error.message}",
        extra={"url": url, "details": error.details},
    )


def _clear(registry: TempFileRegistry) -> None:
    """Delete the run's temp files and directory; failures are logged, not raised."""
    try:
        registry.clear()
        registry.remove_work_dir()
    except Exception:
        logger.exception(
            "Failed to remove temporary files",
            extra={"paths": registry.files, "work_dir": registry.work_dir},
        )
