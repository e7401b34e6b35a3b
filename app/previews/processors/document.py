"""
Document (PDF) preview rendering.

Uses:
- poppler `pdfinfo` to read the page geometry
- Ghostscript `gs` to rasterize the first page to JPEG

The render is constrained to a pixel geometry derived from the page size,
capped at roughly an A4 long edge. Reading the page size is best-effort: if
it fails the page is rendered at Ghostscript's default size instead of
failing the conversion.

Functions:
    convert: Render page 1 of a PDF to a JPEG
    get_preview_size: Pixel geometry of the rendered preview
    parse_page_size: Extract the page size from pdfinfo output
"""

from __future__ import annotations

import logging
import math
import re
from typing import TYPE_CHECKING

from django.conf import settings

from previews.commands import run_command
from previews.processors.base import INCH_TO_POINT, MAX_PAGE_SIDE_POINTS, PageSize

if TYPE_CHECKING:
    from previews.filesystem import TempFileRegistry

logger = logging.getLogger(__name__)

# e.g. "Page size:      595.22 x 842 pts (A4)"
PAGE_SIZE_PREFIX = "Page size"
PAGE_SIZE_PATTERN = re.compile(r":\s*([\d.]+) x ([\d.]+) pts")


def convert(
    registry: TempFileRegistry,
    pdf_path: str,
    jpeg_path: str,
    dpi: int | None = None,
) -> None:
    """
    Render the first page of a PDF to a maximum-quality JPEG.

    Args:
        registry: Registry tracking jpeg_path.
        pdf_path: Source document.
        jpeg_path: Destination image.
        dpi: Rendering resolution. Defaults to settings.PDF_PREVIEW_DPI.

    Raises:
        ApplicationError: CommandError if Ghostscript fails.
    """
    dpi = dpi or settings.PDF_PREVIEW_DPI

    args = [
        "gs",
        "-dQUIET",
        "-dBATCH",
        "-dNOPAUSE",
        "-dJPEGQ=100",
        f"-r{dpi}",
        "-sDEVICE=jpeg",
        "-sPageList=1",
        "-dPDFFitPage",
    ]

    page_size = None
    try:
        page_size = get_preview_size(pdf_path, dpi)
    except Exception as e:
        logger.error(
            "Failed to detect the preview size, rendering without a geometry",
            extra={"pdf_path": pdf_path, "error": str(e)},
        )

    if page_size is not None:
        args.append(f"-g{page_size.width}x{page_size.height}")

    args += ["-o", jpeg_path, pdf_path]

    logger.info(
        "Rendering PDF preview",
        extra={"pdf_path": pdf_path, "jpeg_path": jpeg_path},
    )
    registry.write_by(args, [jpeg_path])


def get_preview_size(pdf_path: str, dpi: int) -> PageSize | None:
    """
    Compute the pixel geometry of the preview for a PDF.

    Returns:
        Pixel size, or None when the page size cannot be read from pdfinfo.

    Raises:
        ApplicationError: CommandError if pdfinfo fails.
    """
    page_size = get_page_size(pdf_path)
    if page_size is None:
        return None
    return compute_preview_size(page_size, dpi)


def compute_preview_size(page_size: PageSize, dpi: int) -> PageSize:
    """
    Scale a page size in points to pixels at dpi.

    The longer side is capped at MAX_PAGE_SIDE_POINTS (never enlarged). The
    smaller pixel dimension is rounded up and the larger one down.

    Example:
        >>> compute_preview_size(PageSize(595, 842), 300)
        PageSize(width=2480, height=3508)
    """
    max_side = max(page_size.width, page_size.height)
    ratio = min(1, MAX_PAGE_SIDE_POINTS / max_side) if max_side > 0 else 1
    width_px = page_size.width * ratio * dpi / INCH_TO_POINT
    height_px = page_size.height * ratio * dpi / INCH_TO_POINT

    if width_px < height_px:
        return PageSize(width=math.ceil(width_px), height=math.floor(height_px))
    return PageSize(width=math.floor(width_px), height=math.ceil(height_px))


def get_page_size(pdf_path: str) -> PageSize | None:
    """Read the first page size in points with pdfinfo."""
    page_size = run_command(["pdfinfo", pdf_path], parser=parse_page_size)

    if page_size is None:
        logger.warning(
            "Failed to detect the page size",
            extra={"pdf_path": pdf_path},
        )
    else:
        logger.debug(f"Page size = {page_size.width}x{page_size.height} pts")

    return page_size


def parse_page_size(output: str) -> PageSize | None:
    """
    Extract the page size from pdfinfo output.

    Only the first line starting with "Page size" is considered; anything
    after "pts" (such as "(A4)") is ignored.
    """
    line = next(
        (x for x in output.split("\n") if x.startswith(PAGE_SIZE_PREFIX)),
        "",
    )
    matched = PAGE_SIZE_PATTERN.search(line)
    if not matched:
        logger.debug(f"pdfinfo output: {output}")
        return None

    try:
        return PageSize(width=float(matched.group(1)), height=float(matched.group(2)))
    except ValueError:
        # "[\d.]+" also matches things like "1.2.3"
        return None
