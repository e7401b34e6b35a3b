"""
Image conversion with ImageMagick.

Builds `convert` command lines for static images (JPEG output) and animated
GIFs, and probes image dimensions with `identify`.

Resizing never enlarges an image:
- 'fit' bounds the longer side and relies on ImageMagick's '>' geometry flag
  (only shrink larger images)
- 'fill' bounds the shorter side with the '^' flag, which has no shrink-only
  form, so the image is probed first and the resize is skipped when the
  shorter side is already within the target size

Functions:
    resize: Convert a static image to (progressive) JPEG, optionally resized
    resize_animation: Coalesce, normalize and resize an animated GIF
    detect_dimension: Largest frame width/height of an image
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings

from core.exceptions import ApplicationError, ErrorCode
from previews.commands import run_command
from previews.processors.base import (
    DEFAULT_ANIMATION_BACKGROUND,
    DEFAULT_ANIMATION_SIZE,
    DEFAULT_IMAGE_SIZE,
    LARGE_IMAGE_EXTENT,
    LARGE_IMAGE_THRESHOLD,
    SMALL_IMAGE_EXTENT,
    Dimension,
    ResizeType,
)

if TYPE_CHECKING:
    from previews.filesystem import TempFileRegistry

logger = logging.getLogger(__name__)

DIMENSION_PATTERN = re.compile(r"(\d+)x(\d+)")


# =============================================================================
# Options
# =============================================================================


@dataclass(frozen=True)
class ResizeOptions:
    """
    Options for resize().

    Attributes:
        auto_orient: Rotate according to the EXIF Orientation tag.
        progressive: Emit a progressive (interlaced) JPEG.
        strip: Remove metadata profiles except ICC.
        quality: JPEG quality; ImageMagick's default when None.
        size: Target side length in pixels; no resize when None or 0.
        type: 'fit' bounds the longer side, 'fill' the shorter side.
    """

    auto_orient: bool = False
    progressive: bool = True
    strip: bool = False
    quality: int | None = None
    size: int | None = DEFAULT_IMAGE_SIZE
    type: ResizeType = ResizeType.FIT


@dataclass(frozen=True)
class AnimationOptions:
    """Options for resize_animation()."""

    background_color: str = DEFAULT_ANIMATION_BACKGROUND
    size: int | None = DEFAULT_ANIMATION_SIZE
    type: ResizeType = ResizeType.FIT


# =============================================================================
# Conversion
# =============================================================================


def resize(
    registry: TempFileRegistry,
    input_path: str,
    output_path: str,
    options: ResizeOptions | None = None,
) -> None:
    """
    Convert an image to JPEG, shrinking it to the requested size.

    When the requested geometry would enlarge the image, the image is
    converted without resizing.

    Args:
        registry: Registry tracking output_path.
        input_path: Source image.
        output_path: Destination JPEG.
        options: Conversion options.

    Raises:
        ApplicationError: CommandError if convert fails, DimensionUnidentified
            if a 'fill' probe cannot be parsed.
    """
    options = options or ResizeOptions()
    size = options.size or 0

    args = [
        "convert",
        input_path,
        "-limit",
        "memory",
        settings.IMAGEMAGICK_MEMORY_LIMIT,
        "-format",
        "JPEG",
    ]

    if options.quality:
        args += ["-quality", str(options.quality)]

    extent = LARGE_IMAGE_EXTENT if size > LARGE_IMAGE_THRESHOLD else SMALL_IMAGE_EXTENT
    args += ["-define", f"jpeg:extent={extent}"]

    if options.auto_orient:
        args.append("-auto-orient")

    if options.progressive:
        args += ["-interlace", "JPEG"]

    if options.strip:
        # Drop EXIF and friends, keep the color profile
        args += ["+profile", "!icc,*"]

    if size:
        resize_option = build_resize_option(input_path, size, ResizeType(options.type))
        if resize_option:
            args += resize_option

    args.append(output_path)

    logger.info(
        "Resizing image",
        extra={"input_path": input_path, "output_path": output_path, "size": size},
    )
    registry.write_by(args, [output_path])


def resize_animation(
    registry: TempFileRegistry,
    input_path: str,
    output_path: str,
    options: AnimationOptions | None = None,
) -> None:
    """
    Resize an animated GIF.

    Frames are coalesced first so every frame is a full image, then the
    optimizer re-minimizes the layers after resizing.

    Raises:
        ApplicationError: CommandError if convert fails, DimensionUnidentified
            if a 'fill' probe cannot be parsed.
    """
    options = options or AnimationOptions()
    size = options.size or 0

    args = [
        "convert",
        input_path,
        "-limit",
        "memory",
        settings.IMAGEMAGICK_MEMORY_LIMIT,
        "-coalesce",
        "-bordercolor",
        options.background_color,
        "-border",
        "0",
    ]

    if size:
        resize_option = build_resize_option(input_path, size, ResizeType(options.type))
        if resize_option:
            args += resize_option

    args += ["-layers", "OptimizePlus", output_path]

    logger.info(
        "Resizing animation",
        extra={"input_path": input_path, "output_path": output_path, "size": size},
    )
    registry.write_by(args, [output_path])


def build_resize_option(
    input_path: str, size: int, resize_type: ResizeType
) -> list[str] | None:
    """
    Build the -resize clause for a target size.

    Returns:
        The clause as arguments, or None when resizing would enlarge the image.
    """
    if resize_type == ResizeType.FIT:
        return ["-resize", f"{size}x{size}>"]

    dimension = detect_dimension(input_path)

    logger.debug(
        f"The image size is {dimension.width}x{dimension.height}",
        extra={"input_path": input_path},
    )

    # '^' scales the shorter side to size, which would enlarge it here
    if dimension.width <= size or dimension.height <= size:
        return None

    return ["-resize", f"{size}x{size}^"]


# =============================================================================
# Dimension Probe
# =============================================================================


def detect_dimension(input_path: str) -> Dimension:
    """
    Return the width and height of an image.

    Animated images report one line per frame; the result is the largest
    width and height over all frames. EXIF orientation is not applied.

    Raises:
        ApplicationError: CommandError if identify fails, DimensionUnidentified
            if its output cannot be parsed.
    """
    args = ["identify", "-format", "%[fx:w]x%[fx:h]\n", input_path]
    return run_command(args, parser=parse_dimension)


def parse_dimension(output: str) -> Dimension:
    """
    Parse `identify -format "%[fx:w]x%[fx:h]\\n"` output.

    Raises:
        ApplicationError: DimensionUnidentified if any line is not WxH or
            the output has no lines.
    """
    lines = [line for line in output.split("\n") if line.strip()]
    if not lines:
        raise ApplicationError(
            ErrorCode.DIMENSION_UNIDENTIFIED,
            f"Failed to parse dimension ({output!r})",
        )

    width = 0
    height = 0
    for line in lines:
        matched = DIMENSION_PATTERN.search(line)
        if not matched:
            raise ApplicationError(
                ErrorCode.DIMENSION_UNIDENTIFIED,
                f"Failed to parse dimension ({output!r})",
            )

        frame_width = int(matched.group(1))
        frame_height = int(matched.group(2))
        logger.debug(f"The dimension of the frame is {frame_width}x{frame_height}")

        width = max(width, frame_width)
        height = max(height, frame_height)

    return Dimension(width=width, height=height)
