"""
Previews app: derived images for uploaded objects.

This app provides:
- Celery tasks consuming object-storage upload notifications
- PDF first-page previews rendered with Ghostscript
- Base images and thumbnails rendered with ImageMagick
- A per-run temp-file registry that cleans up every local file
"""
