"""
Shared types and constants for the conversion processors.

Types:
    Dimension   - pixel width/height of a raster image
    PageSize    - document page geometry (points, or pixels after DPI scaling)
    ResizeType  - 'fit' (bound the longer side) or 'fill' (bound the shorter side)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# =============================================================================
# Constants
# =============================================================================

# 1 inch = 72 points
INCH_TO_POINT = 72

# Longest page side (in points) rendered for a document preview, roughly A4
MAX_PAGE_SIDE_POINTS = 842

# Default sizes of the image resizers
DEFAULT_IMAGE_SIZE = 3840
DEFAULT_ANIMATION_SIZE = 960
DEFAULT_ANIMATION_BACKGROUND = "White"

# JPEG output caps, chosen by target size
LARGE_IMAGE_THRESHOLD = 512
LARGE_IMAGE_EXTENT = "5MB"
SMALL_IMAGE_EXTENT = "500KB"

# Thumbnails at or below this size are cropped to cover the square
FILL_THRESHOLD = 128


# =============================================================================
# Types
# =============================================================================


class ResizeType(str, Enum):
    """How a target size constrains the image."""

    FIT = "fit"
    FILL = "fill"


@dataclass(frozen=True)
class Dimension:
    """Pixel dimensions of an image."""

    width: int
    height: int


@dataclass(frozen=True)
class PageSize:
    """Page geometry, in points or in pixels depending on context."""

    width: float
    height: float
