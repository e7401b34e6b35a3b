"""
Preview orchestration.

PreviewService turns a fetched StorageObject into derived artifacts and
uploads them:
- create_pdf_preview: one JPEG of the first page of a PDF, stored next to it
- create_thumbnails: a base image plus one thumbnail per requested size,
  stored under the thumbnail prefix

Thumbnail sizes are rendered concurrently from the base image. The first
failure observed is raised; renders still running are allowed to finish so
that every file they produce is registered before the registry is cleared.

Usage:
    from previews.services import PreviewService

    service = PreviewService(registry)
    preview = service.create_pdf_preview(storage_object)
    thumbnails = service.create_thumbnails(storage_object)  # [(0, obj), (128, obj), ...]
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from django.conf import settings

from core.exceptions import ApplicationError
from previews.processors import document, image
from previews.processors.base import FILL_THRESHOLD, ResizeType
from previews.processors.image import AnimationOptions, ResizeOptions
from previews.storage import GIF_MIME_TYPE, JPEG_MIME_TYPE, StorageObject

if TYPE_CHECKING:
    from collections.abc import Sequence

    from previews.filesystem import TempFileRegistry

logger = logging.getLogger(__name__)

PDF_EXTENSION_PATTERN = re.compile(r"\.pdf$", re.IGNORECASE)


def get_pdf_preview_key(key: str) -> str:
    """
    Derive the preview key of a PDF.

    A trailing ".pdf" (any case) is replaced by ".jpeg"; any other key gets
    ".jpeg" appended.

    Example:
        >>> get_pdf_preview_key("a/b/c.PDF")
        'a/b/c.jpeg'
        >>> get_pdf_preview_key("a/b/c.jpeg")
        'a/b/c.jpeg.jpeg'
    """
    if PDF_EXTENSION_PATTERN.search(key):
        return PDF_EXTENSION_PATTERN.sub(".jpeg", key, count=1)
    return f"{key}.jpeg"


def get_resize_type(size: int) -> ResizeType:
    """Small tiles are cropped to cover the square, larger ones keep all content."""
    return ResizeType.FILL if size <= FILL_THRESHOLD else ResizeType.FIT


class PreviewService:
    """Creates and uploads previews for one run."""

    def __init__(
        self,
        registry: TempFileRegistry,
        thumbnail_prefix: str | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.registry = registry
        self.thumbnail_prefix = (
            thumbnail_prefix
            if thumbnail_prefix is not None
            else settings.PREVIEW_THUMBNAIL_PREFIX
        )
        self.max_workers = max_workers or settings.PREVIEW_MAX_WORKERS

    # =========================================================================
    # PDF Preview
    # =========================================================================

    def create_pdf_preview(self, storage_object: StorageObject) -> StorageObject:
        """
        Render, upload and return the preview image of a PDF.

        Raises:
            ApplicationError: Any failure, passed through if already
                classified, otherwise as InternalServerError.
        """
        preview_path = self._local_path(f"{storage_object.base_name}.jpg")

        logger.info(
            "Creating PDF preview",
            extra={"url": storage_object.url, "preview_path": preview_path},
        )

        try:
            document.convert(self.registry, storage_object.file_path, preview_path)

            preview_object = StorageObject(
                storage_object.bucket,
                get_pdf_preview_key(storage_object.key),
                preview_path,
                self.registry,
                JPEG_MIME_TYPE,
            )
            preview_object.save()
        except ApplicationError:
            raise
        except Exception as e:
            raise ApplicationError.wrap(e) from e

        logger.info("Created PDF preview", extra={"url": preview_object.url})
        return preview_object

    # =========================================================================
    # Thumbnails
    # =========================================================================

    def create_thumbnails(
        self,
        storage_object: StorageObject,
        sizes: Sequence[int] | None = None,
    ) -> list[tuple[int, StorageObject]]:
        """
        Create and upload the base image and one thumbnail per size.

        Args:
            storage_object: A JPEG, PNG or GIF image.
            sizes: Thumbnail sizes. Defaults to settings.PREVIEW_THUMBNAIL_SIZES.

        Returns:
            (size, object) pairs ordered as [0, *sizes]; size 0 is the base image.

        Raises:
            ApplicationError: The first failure observed.
        """
        if sizes is None:
            sizes = settings.PREVIEW_THUMBNAIL_SIZES
        sizes = list(sizes)

        try:
            base_image = self._create_base_image(storage_object)
        except ApplicationError:
            raise
        except Exception as e:
            raise ApplicationError.wrap(e) from e

        if not sizes:
            return [(0, base_image)]

        logger.info(
            "Creating thumbnails",
            extra={"url": storage_object.url, "sizes": sizes},
        )

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(sizes)),
            thread_name_prefix="thumbnail",
        )
        try:
            futures = [
                executor.submit(
                    self._create_thumbnail, storage_object, base_image.file_path, size
                )
                for size in sizes
            ]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)

            failed = [f for f in futures if f in done and f.exception() is not None]
            if failed:
                error = failed[0].exception()
                logger.error(
                    "Failed to create a thumbnail",
                    extra={"url": storage_object.url, "error": str(error)},
                )
                if isinstance(error, ApplicationError):
                    raise error
                raise ApplicationError.wrap(error) from error

            thumbnails = [f.result() for f in futures]
        finally:
            # Let running renders finish so their outputs are registered
            executor.shutdown(wait=True, cancel_futures=True)

        logger.info(
            "Created thumbnails",
            extra={"url": storage_object.url, "count": len(thumbnails) + 1},
        )
        return [(0, base_image), *thumbnails]

    def get_thumbnail_key(self, storage_object: StorageObject, size: int) -> str:
        """
        Destination key of a thumbnail.

        `<prefix>/<directory>/<base_name>[-<size>].<jpg|gif>`, without the
        size suffix for the base image (size 0).
        """
        base_name = (
            f"{storage_object.base_name}-{size}" if size else storage_object.base_name
        )
        file_name = f"{base_name}.{self._extension(storage_object)}"
        parts = [self.thumbnail_prefix, storage_object.directory, file_name]
        return "/".join(part for part in parts if part)

    def get_local_thumbnail_path(self, storage_object: StorageObject, size: int) -> str:
        return self._local_path(
            f"{storage_object.base_name}-{size}.{self._extension(storage_object)}"
        )

    def _create_base_image(self, storage_object: StorageObject) -> StorageObject:
        output_path = self.get_local_thumbnail_path(storage_object, 0)

        if storage_object.is_animated:
            image.resize_animation(self.registry, storage_object.file_path, output_path)
        else:
            image.resize(
                self.registry,
                storage_object.file_path,
                output_path,
                ResizeOptions(auto_orient=True, strip=True),
            )

        return self._save(storage_object, 0, output_path)

    def _create_thumbnail(
        self,
        storage_object: StorageObject,
        base_image_path: str,
        size: int,
    ) -> tuple[int, StorageObject]:
        output_path = self.get_local_thumbnail_path(storage_object, size)
        resize_type = get_resize_type(size)

        if storage_object.is_animated:
            image.resize_animation(
                self.registry,
                base_image_path,
                output_path,
                AnimationOptions(size=size, type=resize_type),
            )
        else:
            image.resize(
                self.registry,
                base_image_path,
                output_path,
                ResizeOptions(size=size, type=resize_type),
            )

        return size, self._save(storage_object, size, output_path)

    def _save(
        self, storage_object: StorageObject, size: int, output_path: str
    ) -> StorageObject:
        content_type = GIF_MIME_TYPE if storage_object.is_animated else JPEG_MIME_TYPE
        thumbnail = StorageObject(
            storage_object.bucket,
            self.get_thumbnail_key(storage_object, size),
            output_path,
            self.registry,
            content_type,
        )
        thumbnail.save()
        return thumbnail

    @staticmethod
    def _extension(storage_object: StorageObject) -> str:
        return "gif" if storage_object.is_animated else "jpg"

    def _local_path(self, file_name: str) -> str:
        return self.registry.path(file_name)
