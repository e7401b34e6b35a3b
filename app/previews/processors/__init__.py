"""
Conversion processors.

Each processor builds command lines for an external tool and runs them
through the temp-file registry so every produced file is cleaned up:
- Image conversion (ImageMagick convert/identify)
- Document rendering (Ghostscript gs, poppler pdfinfo)

Usage:
    from previews.processors import ResizeOptions, ResizeType, image

    image.resize(
        registry,
        "/tmp/photo.jpg",
        "/tmp/photo-0.jpg",
        ResizeOptions(auto_orient=True, strip=True),
    )
"""

from previews.processors import document, image
from previews.processors.base import Dimension, PageSize, ResizeType
from previews.processors.image import AnimationOptions, ResizeOptions

__all__ = [
    "AnimationOptions",
    "Dimension",
    "PageSize",
    "ResizeOptions",
    "ResizeType",
    "document",
    "image",
]
