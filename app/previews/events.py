"""
Decoding of object-storage notifications.

A notification is an S3 event record set, delivered either as a JSON string
or as an already-decoded dict, optionally wrapped in an SNS envelope. S3
also sends connectivity checks (`"Event": "s3:TestEvent"`) which carry no
records; those decode to None.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import unquote_plus

from core.exceptions import ApplicationError, ErrorCode

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObjectLocation:
    """Bucket and key named by a notification."""

    bucket: str
    key: str

    @property
    def url(self) -> str:
        return f"{self.bucket}://{self.key}"


def parse_notification(message: str | bytes | dict[str, Any]) -> ObjectLocation | None:
    """
    Extract the bucket and key from a notification.

    Args:
        message: JSON text or decoded payload.

    Returns:
        The object location, or None when the payload has no records
        (such as an s3:TestEvent).

    Raises:
        ApplicationError: InvalidParameter if the payload is not a JSON
            object, or its first record lacks a bucket name or object key.
    """
    payload = _decode(message)

    records = payload.get("Records")
    if not records:
        logger.info(
            "Skipping this event because it has no records",
            extra={"event_type": payload.get("Event")},
        )
        return None

    record = records[0] if isinstance(records, list) else None
    if not isinstance(record, dict):
        raise ApplicationError(
            ErrorCode.INVALID_PARAMETER,
            f"Malformed notification record ({records!r})",
        )

    # SNS envelope: the S3 event is the JSON string in Sns.Message
    sns = record.get("Sns")
    if isinstance(sns, dict) and "Message" in sns:
        return parse_notification(sns["Message"])

    try:
        bucket = record["s3"]["bucket"]["name"]
        raw_key = record["s3"]["object"]["key"]
    except (KeyError, TypeError) as e:
        raise ApplicationError(
            ErrorCode.INVALID_PARAMETER,
            f"Notification record has no bucket or key ({record!r})",
            cause=e,
        ) from e

    if not bucket or not raw_key:
        raise ApplicationError(
            ErrorCode.INVALID_PARAMETER,
            f"Notification record has no bucket or key ({record!r})",
        )

    return ObjectLocation(bucket=str(bucket), key=unquote_plus(str(raw_key)))


def _decode(message: str | bytes | dict[str, Any]) -> dict[str, Any]:
    if isinstance(message, dict):
        return message

    try:
        payload = json.loads(message)
    except (TypeError, ValueError) as e:
        raise ApplicationError(
            ErrorCode.INVALID_PARAMETER,
            str(message),
            cause=e,
        ) from e

    if not isinstance(payload, dict):
        raise ApplicationError(ErrorCode.INVALID_PARAMETER, str(message))

    return payload
