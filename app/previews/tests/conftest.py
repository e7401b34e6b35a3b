"""
Test fixtures for previews app.

Provides fixtures for:
- Per-test temp directory and preview settings
- A fake subprocess.run standing in for convert/identify/gs/pdfinfo
- A fake S3 client backed by an in-memory object map
- Sample images (JPEG, PNG, GIF) and a sample PDF
- S3 / SNS notification payloads
"""

from __future__ import annotations

import io
import json
import shutil
import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError
from PIL import Image

from previews.filesystem import TempFileRegistry

A4_PDFINFO_OUTPUT = (
    "Producer:       Test\n"
    "Pages:          1\n"
    "Page size:      595 x 842 pts (A4)\n"
    "PDF version:    1.4\n"
)


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def preview_settings(settings, tmp_path):
    """Point every preview path at a per-test directory."""
    settings.PREVIEW_TMP_DIR = str(tmp_path)
    settings.PREVIEW_THUMBNAIL_PREFIX = "thumbnails"
    settings.PREVIEW_THUMBNAIL_SIZES = [128, 512]
    settings.PREVIEW_COMMAND_TIMEOUT = 30
    settings.PREVIEW_MAX_WORKERS = 4
    settings.IMAGEMAGICK_MEMORY_LIMIT = "2880MB"
    settings.PDF_PREVIEW_DPI = 300
    settings.AWS_S3_REGION_NAME = "us-east-1"
    settings.AWS_S3_ENDPOINT_URL = None
    return settings


@pytest.fixture
def registry() -> TempFileRegistry:
    """Return an empty temp-file registry."""
    return TempFileRegistry()


# =============================================================================
# External Command Fixtures
# =============================================================================


class FakeCommands:
    """
    Stand-in for subprocess.run.

    convert and gs write a small file at their output path (convert copies
    its input instead when copy_input is set); identify and pdfinfo print
    canned output. Commands matching a failure rule exit non-zero without
    writing anything.
    """

    def __init__(self):
        self.calls: list[list[str]] = []
        self.identify_output = "1000x800\n"
        self.pdfinfo_output = A4_PDFINFO_OUTPUT
        self.failures: list[tuple[str, str, int]] = []
        self.delays: dict[str, float] = {}
        self.copy_input = False
        self._lock = threading.Lock()

    def fail(self, program: str, containing: str = "", returncode: int = 1):
        """Make `program` exit with returncode when an argument contains `containing`."""
        self.failures.append((program, containing, returncode))

    def delay(self, containing: str, seconds: float):
        """Make any command with an argument containing `containing` take longer."""
        self.delays[containing] = seconds

    def commands(self, program: str) -> list[list[str]]:
        return [call for call in self.calls if call[0] == program]

    def __call__(self, cmd, **kwargs):
        cmd = list(cmd)
        with self._lock:
            self.calls.append(cmd)

        result = MagicMock()
        result.stdout = ""
        result.stderr = ""
        result.returncode = 0

        for containing, seconds in self.delays.items():
            if any(containing in arg for arg in cmd):
                time.sleep(seconds)

        for program, containing, returncode in self.failures:
            if cmd[0] == program and any(containing in arg for arg in cmd):
                result.returncode = returncode
                result.stderr = f"{program}: failed\n"
                return result

        if cmd[0] == "identify":
            result.stdout = self.identify_output
        elif cmd[0] == "pdfinfo":
            result.stdout = self.pdfinfo_output
        elif cmd[0] == "convert":
            if self.copy_input:
                shutil.copyfile(cmd[1], cmd[-1])
            else:
                _touch(cmd[-1])
        elif cmd[0] == "gs":
            _touch(cmd[cmd.index("-o") + 1])

        return result


def _touch(path: str) -> None:
    with open(path, "wb") as f:
        f.write(b"\xff\xd8rendered\xff\xd9")


@pytest.fixture
def fake_commands():
    """Patch subprocess.run with a FakeCommands instance."""
    commands = FakeCommands()
    with patch("subprocess.run", side_effect=commands):
        yield commands


# =============================================================================
# S3 Fixtures
# =============================================================================


class FakeS3:
    """In-memory objects keyed by (bucket, key)."""

    def __init__(self):
        self.objects: dict[tuple[str, str], dict] = {}
        self.uploads: dict[tuple[str, str], dict] = {}
        self.rejected_keys: set[str] = set()
        self._lock = threading.Lock()

    def add(self, bucket: str, key: str, body: bytes, content_type: str | None):
        self.objects[(bucket, key)] = {"Body": body, "ContentType": content_type}

    def get_object(self, Bucket, Key):
        stored = self.objects.get((Bucket, Key))
        if stored is None:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "Not Found"}},
                "GetObject",
            )
        response = {"Body": io.BytesIO(stored["Body"])}
        if stored["ContentType"] is not None:
            response["ContentType"] = stored["ContentType"]
        return response

    def put_object(self, Bucket, Key, Body, **kwargs):
        if Key in self.rejected_keys:
            raise ClientError(
                {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}},
                "PutObject",
            )
        with self._lock:
            self.uploads[(Bucket, Key)] = {"Body": Body.read(), **kwargs}
        return {"ETag": '"etag"'}


@pytest.fixture
def fake_s3():
    """Return an empty in-memory S3."""
    return FakeS3()


@pytest.fixture
def mock_s3_client(fake_s3):
    """Create a mock boto3 S3 client backed by fake_s3."""
    client = MagicMock()
    client.get_object.side_effect = fake_s3.get_object
    client.put_object.side_effect = fake_s3.put_object
    return client


@pytest.fixture
def patched_boto3(mock_s3_client):
    """Make get_s3_client() return mock_s3_client."""
    with patch("previews.storage.boto3") as mock_boto3:
        mock_boto3.client.return_value = mock_s3_client
        yield mock_boto3


# =============================================================================
# Sample File Fixtures
# =============================================================================


def _image_bytes(mode: str, size: tuple[int, int], color, format: str) -> bytes:
    image = Image.new(mode, size, color=color)
    buffer = io.BytesIO()
    image.save(buffer, format=format)
    return buffer.getvalue()


@pytest.fixture
def sample_jpeg() -> bytes:
    """Generate a valid JPEG image."""
    return _image_bytes("RGB", (1000, 800), "red", "JPEG")


@pytest.fixture
def sample_png() -> bytes:
    """Generate a valid PNG image with transparency."""
    return _image_bytes("RGBA", (600, 400), (0, 0, 255, 128), "PNG")


@pytest.fixture
def sample_gif() -> bytes:
    """Generate a two-frame animated GIF."""
    frames = [Image.new("P", (300, 200), color=i) for i in (1, 2)]
    buffer = io.BytesIO()
    frames[0].save(buffer, format="GIF", save_all=True, append_images=frames[1:])
    return buffer.getvalue()


@pytest.fixture
def sample_pdf() -> bytes:
    """Return a minimal single-page PDF."""
    return (
        b"%PDF-1.4\n"
        b"1 0 obj<</Type/Catalog/Pages 2 0 R>>endobj\n"
        b"2 0 obj<</Type/Pages/Kids[3 0 R]/Count 1>>endobj\n"
        b"3 0 obj<</Type/Page/MediaBox[0 0 595 842]/Parent 2 0 R>>endobj\n"
        b"trailer<</Root 1 0 R>>\n"
        b"%%EOF\n"
    )


# =============================================================================
# Notification Fixtures
# =============================================================================


def _s3_event(bucket: str, key: str) -> str:
    return json.dumps(
        {
            "Records": [
                {
                    "eventSource": "aws:s3",
                    "eventName": "ObjectCreated:Put",
                    "s3": {
                        "bucket": {"name": bucket},
                        "object": {"key": key, "size": 1024},
                    },
                }
            ]
        }
    )


def _sns_event(bucket: str, key: str) -> str:
    return json.dumps(
        {
            "Records": [
                {
                    "EventSource": "aws:sns",
                    "Sns": {"Type": "Notification", "Message": _s3_event(bucket, key)},
                }
            ]
        }
    )


@pytest.fixture
def s3_event():
    """Return a builder of S3 put-event notifications (JSON text)."""
    return _s3_event


@pytest.fixture
def sns_event():
    """Return a builder of S3 events wrapped in an SNS envelope."""
    return _sns_event


@pytest.fixture
def connectivity_event() -> str:
    """Return the s3:TestEvent S3 sends when a notification is configured."""
    return json.dumps(
        {
            "Service": "Amazon S3",
            "Event": "s3:TestEvent",
            "Time": "2026-01-01T00:00:00.000Z",
            "Bucket": "container-x",
        }
    )
