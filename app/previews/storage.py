"""
S3 storage objects.

S3Bucket wraps the boto3 client calls used by the pipeline and maps their
failures to application error codes. StorageObject binds a bucket, a key,
the local file holding the object's bytes and its content type.

Keys have the form `<prefix>/<directory>/<filename>`. Shorter keys are
accepted: missing leading segments decompose to empty strings, so
`dir/file.pdf` has an empty prefix and `file.pdf` has an empty prefix and
directory. For longer keys the last directory is `directory` and everything
before it is `prefix`.

Usage:
    from previews.storage import StorageObject

    obj = StorageObject.fetch("uploads", "files/abc/report.pdf", registry)
    if obj.is_document:
        ...
    preview = StorageObject(obj.bucket, "files/abc/report.jpeg",
                            registry.path("report.jpg"), registry, "image/jpeg")
    preview.save()
"""

from __future__ import annotations

import logging
import posixpath
from enum import Enum
from typing import TYPE_CHECKING

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from core.exceptions import ApplicationError, ErrorCode

if TYPE_CHECKING:
    from typing import Any

    from previews.filesystem import TempFileRegistry

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
GIF_MIME_TYPE = "image/gif"
JPEG_MIME_TYPE = "image/jpeg"
STATIC_IMAGE_MIME_TYPES = {JPEG_MIME_TYPE, "image/png"}

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class ContentKind(str, Enum):
    """Content classification computed once per object."""

    DOCUMENT = "document"
    ANIMATED_IMAGE = "animated_image"
    STATIC_IMAGE = "static_image"
    OTHER = "other"

    @classmethod
    def from_content_type(cls, content_type: str | None) -> ContentKind:
        """Classify a MIME type, ignoring parameters such as charset."""
        mime_type = (content_type or "").split(";")[0].strip().lower()
        if mime_type == PDF_MIME_TYPE:
            return cls.DOCUMENT
        if mime_type == GIF_MIME_TYPE:
            return cls.ANIMATED_IMAGE
        if mime_type in STATIC_IMAGE_MIME_TYPES:
            return cls.STATIC_IMAGE
        return cls.OTHER


def get_s3_client():
    """Create an S3 client from settings."""
    return boto3.client(
        "s3",
        region_name=settings.AWS_S3_REGION_NAME or None,
        endpoint_url=settings.AWS_S3_ENDPOINT_URL or None,
        config=Config(
            connect_timeout=settings.AWS_S3_CONNECT_TIMEOUT,
            read_timeout=settings.AWS_S3_READ_TIMEOUT,
        ),
    )


class S3Bucket:
    """A named bucket and the client used to reach it."""

    def __init__(self, name: str, client=None) -> None:
        self.name = name
        self._s3_client = client

    @property
    def s3_client(self):
        """Get or create S3 client."""
        if self._s3_client is None:
            self._s3_client = get_s3_client()
        return self._s3_client

    def url(self, key: str) -> str:
        return f"{self.name}://{key}"

    def get_object(self, key: str) -> dict[str, Any]:
        """
        Fetch an object.

        Returns:
            The GetObject response; its "Body" is guaranteed to be present.

        Raises:
            ApplicationError: FailedToGetS3Object on any client error,
                S3ObjectBodyEmpty if the response carries no body.
        """
        url = self.url(key)
        logger.debug("Fetching S3 Object", extra={"url": url})

        try:
            response = self.s3_client.get_object(Bucket=self.name, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to fetch S3 Object",
                extra={"url": url, "error": str(e)},
            )
            raise ApplicationError(
                ErrorCode.FAILED_TO_GET_S3_OBJECT,
                f"Failed to fetch S3 Object (url={url})",
                details={"bucket": self.name, "key": key},
                cause=e,
            ) from e

        logger.info("Fetched S3 Object", extra={"url": url})

        if response.get("Body") is None:
            raise ApplicationError(
                ErrorCode.S3_OBJECT_BODY_EMPTY,
                f"S3 object body is empty (url={url})",
                details={"bucket": self.name, "key": key},
            )

        return response

    def put_object(
        self,
        key: str,
        file_path: str,
        registry: TempFileRegistry,
        content_type: str | None = None,
    ) -> dict[str, Any]:
        """
        Upload a registered local file.

        Raises:
            ApplicationError: IOError if file_path is not registered,
                FailedToPutS3Object if reading the file or the upload fails.
        """
        url = self.url(key)
        logger.debug("Putting S3 Object", extra={"url": url, "file_path": file_path})

        params: dict[str, Any] = {"Bucket": self.name, "Key": key}
        if content_type:
            params["ContentType"] = content_type

        try:
            stream = registry.open_for_read(file_path)
        except OSError as e:
            logger.error(
                "Failed to open file stream",
                extra={"url": url, "file_path": file_path, "error": str(e)},
            )
            raise ApplicationError(
                ErrorCode.FAILED_TO_PUT_S3_OBJECT,
                f"Failed to read file stream (path={file_path}, error={e})",
                details={"bucket": self.name, "key": key, "path": file_path},
                cause=e,
            ) from e

        with stream as body:
            try:
                response = self.s3_client.put_object(Body=body, **params)
            except (ClientError, BotoCoreError) as e:
                logger.error(
                    "Failed to put S3 Object",
                    extra={"url": url, "error": str(e)},
                )
                raise ApplicationError(
                    ErrorCode.FAILED_TO_PUT_S3_OBJECT,
                    f"Failed to put S3 Object (url={url})",
                    details={"bucket": self.name, "key": key},
                    cause=e,
                ) from e
            except OSError as e:
                logger.error(
                    "Failed to read file stream",
                    extra={"url": url, "file_path": file_path, "error": str(e)},
                )
                raise ApplicationError(
                    ErrorCode.FAILED_TO_PUT_S3_OBJECT,
                    f"Failed to read file stream (path={file_path}, error={e})",
                    details={"bucket": self.name, "key": key, "path": file_path},
                    cause=e,
                ) from e

        logger.info("Put S3 Object", extra={"url": url})
        return response


class StorageObject:
    """
    One artifact in storage and its materialized local copy.

    The key-derived attributes (prefix, directory, file_name, base_name,
    extension) and the content kind are computed at construction and not
    changed afterwards.
    """

    def __init__(
        self,
        bucket: S3Bucket,
        key: str,
        file_path: str,
        registry: TempFileRegistry,
        content_type: str | None = None,
    ) -> None:
        self.bucket = bucket
        self.key = key
        self.file_path = str(file_path)
        self.registry = registry
        self.content_type = content_type
        self.kind = ContentKind.from_content_type(content_type)

        dir_name, self.file_name = posixpath.split(key)
        self.base_name, self.extension = posixpath.splitext(self.file_name)
        self.directory = posixpath.basename(dir_name)
        self.prefix = posixpath.dirname(dir_name)

    def __repr__(self) -> str:
        return (
            f"StorageObject(url={self.url!r}, file_path={self.file_path!r}, "
            f"content_type={self.content_type!r})"
        )

    @property
    def url(self) -> str:
        return self.bucket.url(self.key)

    @property
    def is_document(self) -> bool:
        return self.kind == ContentKind.DOCUMENT

    @property
    def is_animated(self) -> bool:
        return self.kind == ContentKind.ANIMATED_IMAGE

    @classmethod
    def fetch(
        cls,
        bucket_name: str,
        key: str,
        registry: TempFileRegistry,
        client=None,
    ) -> StorageObject:
        """
        Download an object to the local temp directory.

        The local path is `<registry working directory>/<basename of key>`
        and is registered before this returns.

        Raises:
            ApplicationError: FailedToGetS3Object, S3ObjectBodyEmpty or IOError.
        """
        bucket = S3Bucket(bucket_name, client=client)
        response = bucket.get_object(key)
        file_path = registry.path(posixpath.basename(key))

        cls._save_locally(bucket, key, file_path, response["Body"], registry)

        return cls(bucket, key, file_path, registry, response.get("ContentType"))

    @staticmethod
    def _save_locally(
        bucket: S3Bucket,
        key: str,
        file_path: str,
        body: Any,
        registry: TempFileRegistry,
    ) -> None:
        logger.debug("Saving the s3 object", extra={"file_path": file_path})

        if isinstance(body, (bytes, bytearray, memoryview, str)):
            registry.write_file(file_path, body)
        else:
            with registry.open_for_write(file_path) as stream:
                while True:
                    try:
                        chunk = body.read(DOWNLOAD_CHUNK_SIZE)
                    except (BotoCoreError, OSError) as e:
                        logger.error(
                            "Failed to download the s3 object",
                            extra={"url": bucket.url(key), "error": str(e)},
                        )
                        raise ApplicationError(
                            ErrorCode.FAILED_TO_GET_S3_OBJECT,
                            f"Failed to download S3 Object (url={bucket.url(key)})",
                            details={"bucket": bucket.name, "key": key},
                            cause=e,
                        ) from e
                    if not chunk:
                        break
                    stream.write(chunk)

        logger.info("Saved the s3 object", extra={"file_path": file_path})

    def save(self) -> None:
        """
        Upload the local file to the object's key.

        Raises:
            ApplicationError: FailedToPutS3Object or IOError.
        """
        self.bucket.put_object(
            self.key,
            self.file_path,
            self.registry,
            content_type=self.content_type,
        )
