"""Output encoding and debug visualization."""

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

import cv2
import numpy as np

from pagerectify.geometry.points import CORNER_NAMES, as_quadrilateral

logger = logging.getLogger(__name__)


def _to_uint8(image: np.ndarray) -> np.ndarray:
    if image.dtype == np.float32 or image.dtype == np.float64:
        return (np.clip(image, 0.0, 1.0) * 255).astype(np.uint8)
    return image


def _flatten_alpha(image: np.ndarray) -> np.ndarray:
    """Composite an RGBA raster onto black, returning BGR for OpenCV."""
    img = _to_uint8(image)

    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.shape[2] == 3:
        return cv2.cvtColor(img, cv2.COLOR_RGB2BGR)
    if img.shape[2] == 4:
        alpha = img[:, :, 3:4].astype(np.float32) / 255.0
        rgb = np.rint(img[:, :, :3].astype(np.float32) * alpha).astype(np.uint8)
        return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)

    raise ValueError(f"Unsupported number of channels: {img.shape[2]}")


def encode_jpeg(image: np.ndarray, quality: int = 95) -> bytes:
    """Encode a raster as JPEG bytes.

    Transparent pixels come out black, as a canvas JPEG export does.

    Args:
        image: RGBA or RGB raster, uint8 or float32 [0, 1]
        quality: JPEG quality (0-100)

    Returns:
        Encoded JPEG bytes
    """
    ok, buffer = cv2.imencode('.jpg', _flatten_alpha(image), [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()


def save_image(
    image: np.ndarray,
    output_path: Union[str, Path],
    description: Optional[str] = None,
    quality: int = 95
) -> Path:
    """Save a raster as JPEG, or as PNG (keeping alpha) for a .png path.

    Args:
        image: RGBA or RGB raster, uint8 or float32 [0, 1]
        output_path: Destination path; other extensions are saved as .jpg
        description: Optional description to log
        quality: JPEG quality (0-100)

    Returns:
        The path actually written
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    suffix = output_path.suffix.lower()

    if suffix == '.png':
        img = _to_uint8(image)
        if img.ndim == 3 and img.shape[2] == 4:
            img_bgr = cv2.cvtColor(img, cv2.COLOR_RGBA2BGRA)
        else:
            img_bgr = _flatten_alpha(img)
        ok = cv2.imwrite(str(output_path), img_bgr)
    else:
        if suffix not in ('.jpg', '.jpeg'):
            output_path = output_path.with_suffix('.jpg')
        ok = cv2.imwrite(
            str(output_path),
            _flatten_alpha(image),
            [cv2.IMWRITE_JPEG_QUALITY, quality]
        )

    if not ok:
        raise ValueError(f"Could not write image: {output_path}")

    if description:
        logger.debug(f"Saved image: {output_path} - {description}")
    else:
        logger.debug(f"Saved image: {output_path}")

    return output_path


def draw_quadrilateral(
    image: np.ndarray,
    corners: Iterable,
    line_thickness: int = 3
) -> np.ndarray:
    """Draw the picked quadrilateral and its labelled corners on a copy of the image.

    Args:
        image: RGBA or RGB raster, uint8 or float32 [0, 1]
        corners: Ordered corners [TL, TR, BR, BL]
        line_thickness: Thickness of the outline

    Returns:
        Overlay as uint8 RGB, same width and height as the input
    """
    quad = as_quadrilateral(corners)
    img_bgr = _flatten_alpha(image)

    pts = np.array([[round(p.x), round(p.y)] for p in quad], dtype=np.int32)
    cv2.polylines(img_bgr, [pts.reshape(-1, 1, 2)], True, (0, 200, 0), line_thickness)

    for (x, y), name in zip(pts, CORNER_NAMES):
        cv2.circle(img_bgr, (int(x), int(y)), line_thickness * 3, (0, 0, 255), -1)
        cv2.putText(
            img_bgr,
            name,
            (int(x) + 8, int(y) - 8),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            (0, 0, 255),
            1,
        )

    return cv2.cvtColor(img_bgr, cv2.COLOR_BGR2RGB)
