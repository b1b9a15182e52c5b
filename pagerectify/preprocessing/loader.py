"""Image loading with EXIF orientation, returning uint8 RGBA rasters.

Corner coordinates are picked on the image as displayed, so the raster must
be upright before corners are applied to it.
"""

import logging
from pathlib import Path
from typing import Tuple

import numpy as np
from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

STANDARD_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.tiff', '.tif', '.webp', '.bmp')
HEIC_EXTENSIONS = ('.heic', '.heif')


class ImageMetadata:
    """Metadata extracted from a loaded image."""

    def __init__(
        self,
        original_size: Tuple[int, int],
        format: str,
        mode: str,
    ) -> None:
        self.original_size = original_size  # (width, height), after orientation
        self.format = format
        self.mode = mode


def _to_rgba_array(img: Image.Image) -> np.ndarray:
    """Apply EXIF orientation and convert to a (H, W, 4) uint8 array."""
    try:
        img = ImageOps.exif_transpose(img)
    except (AttributeError, KeyError, ValueError) as e:
        logger.debug(f"Could not apply EXIF orientation: {e}")

    return np.array(img.convert("RGBA"), dtype=np.uint8)


def _register_heif_opener() -> None:
    try:
        from pillow_heif import register_heif_opener
    except ImportError as e:
        raise ImportError(
            "pillow-heif is required for HEIC support. "
            "Install with: pip install pagerectify[heic]"
        ) from e
    register_heif_opener()


def load_image(path: str) -> Tuple[np.ndarray, ImageMetadata]:
    """Load an image file as an upright RGBA raster.

    Supports JPEG, PNG, TIFF, WEBP and BMP, plus HEIC when pillow-heif is
    installed.

    Args:
        path: Path to image file

    Returns:
        Tuple of (uint8 RGBA array with shape (H, W, 4), metadata)

    Raises:
        ValueError: If file format is not supported
        FileNotFoundError: If file does not exist
    """
    path_obj = Path(path)

    if not path_obj.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    ext = path_obj.suffix.lower()

    if ext in HEIC_EXTENSIONS:
        _register_heif_opener()
        format_name = "HEIC"
    elif ext in STANDARD_EXTENSIONS:
        format_name = ext.lstrip('.').upper()
    else:
        raise ValueError(f"Unsupported image format: {ext}")

    with Image.open(path_obj) as img:
        mode = img.mode
        arr = _to_rgba_array(img)

    metadata = ImageMetadata(
        original_size=(arr.shape[1], arr.shape[0]),
        format=format_name,
        mode=mode,
    )

    logger.info(f"Loaded {format_name}: {path} ({arr.shape[1]}x{arr.shape[0]})")

    return arr, metadata
