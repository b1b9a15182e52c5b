"""Perspective rectification by backward mapping and bilinear interpolation.

Every output pixel is mapped back into the source through the
destination-to-source homography, so the output has no gaps. Pixels that
land outside the source sample grid stay fully transparent.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import numpy as np

from pagerectify.errors import InvalidInputError
from pagerectify.geometry.homography import HomographyMatrix, solve_homography
from pagerectify.geometry.points import (
    Point,
    Quadrilateral,
    as_quadrilateral,
    check_quadrilateral,
    distance,
)

logger = logging.getLogger(__name__)

# Slack on the source bounds so exact border coordinates survive float error
BOUNDS_TOLERANCE = 1e-6


@dataclass
class RectifyConfig:
    """Limits and tuning for a rectify call."""

    # Near-collinear corners can ask for absurd outputs; reject those
    max_output_pixels: int = 64_000_000
    max_output_side: int = 32768

    # Row-band threading; 1 keeps everything on the calling thread
    workers: int = 1
    parallel_min_rows: int = 256

    collinearity_tolerance: float = 1e-9


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_output_dimensions(corners: Iterable) -> Tuple[int, int]:
    """Compute the rectified size from the quadrilateral's edge lengths.

    Uses the longer of each pair of opposite edges so the most stretched
    edge is never under-sampled.

    Args:
        corners: Ordered corners [TL, TR, BR, BL].

    Returns:
        (width, height) in pixels, each at least 1.

    Raises:
        InvalidInputError: If an edge length overflows to infinity.
    """
    tl, tr, br, bl = as_quadrilateral(corners)

    width = max(distance(tl, tr), distance(bl, br))
    height = max(distance(tl, bl), distance(tr, br))

    if not (math.isfinite(width) and math.isfinite(height)):
        raise InvalidInputError("Corners are too far apart to give a finite output size")

    return max(1, _round_half_up(width)), max(1, _round_half_up(height))


def _prepare_source(source: np.ndarray) -> np.ndarray:
    """Validate the source raster and return its RGB samples as float64 [0, 255].

    The caller's array is only read; the returned array is a new copy.
    """
    if not isinstance(source, np.ndarray):
        raise InvalidInputError(f"Source raster must be a numpy array, got {type(source).__name__}")

    if source.ndim == 2:
        source = source[:, :, np.newaxis]
    if source.ndim != 3 or source.shape[2] not in (1, 3, 4):
        raise InvalidInputError(f"Unsupported source raster shape: {source.shape}")

    height, width = source.shape[:2]
    if width == 0 or height == 0:
        raise InvalidInputError(f"Source raster has zero size: {width}x{height}")

    if source.dtype == np.uint8:
        samples = source.astype(np.float64)
    elif np.issubdtype(source.dtype, np.floating):
        if not np.all(np.isfinite(source)) or source.min() < 0.0 or source.max() > 1.0:
            raise InvalidInputError("Float source raster must hold finite values in [0, 1]")
        samples = source.astype(np.float64) * 255.0
    else:
        raise InvalidInputError(f"Unsupported source raster dtype: {source.dtype}")

    if samples.shape[2] == 1:
        return np.repeat(samples, 3, axis=2)
    return samples[:, :, :3]


def _resample_rows(
    samples: np.ndarray,
    matrix: HomographyMatrix,
    output: np.ndarray,
    row_start: int,
    row_end: int,
) -> None:
    """Fill output rows [row_start, row_end) from the source samples."""
    src_h, src_w = samples.shape[:2]
    out_w = output.shape[1]

    ys = np.arange(row_start, row_end, dtype=np.float64)[:, np.newaxis]
    xs = np.arange(out_w, dtype=np.float64)[np.newaxis, :]
    sx, sy, w = matrix.apply_grid(xs, ys)

    with np.errstate(invalid='ignore'):
        inside = (
            (w > 0)
            & (sx >= -BOUNDS_TOLERANCE)
            & (sx <= src_w - 1 + BOUNDS_TOLERANCE)
            & (sy >= -BOUNDS_TOLERANCE)
            & (sy <= src_h - 1 + BOUNDS_TOLERANCE)
        )

    if not inside.any():
        return

    px = np.clip(sx[inside], 0.0, src_w - 1)
    py = np.clip(sy[inside], 0.0, src_h - 1)

    x0 = np.floor(px).astype(np.intp)
    y0 = np.floor(py).astype(np.intp)
    x1 = np.minimum(x0 + 1, src_w - 1)
    y1 = np.minimum(y0 + 1, src_h - 1)

    fx = (px - x0)[:, np.newaxis]
    fy = (py - y0)[:, np.newaxis]

    value = (
        samples[y0, x0] * (1.0 - fx) * (1.0 - fy)
        + samples[y0, x1] * fx * (1.0 - fy)
        + samples[y1, x0] * (1.0 - fx) * fy
        + samples[y1, x1] * fx * fy
    )

    band = output[row_start:row_end]
    band[inside, :3] = np.clip(np.rint(value), 0, 255).astype(np.uint8)
    band[inside, 3] = 255


def _row_bands(height: int, count: int) -> List[Tuple[int, int]]:
    edges = np.linspace(0, height, count + 1).astype(int)
    return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]


def rectify(
    source: np.ndarray,
    corners: Iterable,
    config: Optional[RectifyConfig] = None,
) -> np.ndarray:
    """Warp the quadrilateral ``corners`` of ``source`` to an upright rectangle.

    Args:
        source: Raster of shape (H, W, 4) or (H, W, 3), uint8 or float in
            [0, 1]. Never modified.
        corners: Ordered corners [TL, TR, BR, BL] in source pixel space.
        config: Size limits and threading. Defaults to RectifyConfig().

    Returns:
        New uint8 RGBA raster of shape (height, width, 4). Pixels that map
        outside the source are (0, 0, 0, 0); every other pixel is opaque.

    Raises:
        InvalidInputError: Malformed raster or corners, or an output larger
            than the configured limits.
        DegenerateGeometryError: The corners do not define a perspective
            transform.
    """
    config = config or RectifyConfig()

    samples = _prepare_source(source)
    quad: Quadrilateral = as_quadrilateral(corners)

    width, height = compute_output_dimensions(quad)
    if (
        width > config.max_output_side
        or height > config.max_output_side
        or width * height > config.max_output_pixels
    ):
        raise InvalidInputError(
            f"Output size {width}x{height} exceeds the limit "
            f"({config.max_output_pixels} pixels, {config.max_output_side} per side)"
        )

    check_quadrilateral(quad, config.collinearity_tolerance)

    dst_rect = (Point(0, 0), Point(width, 0), Point(width, height), Point(0, height))

    # Destination -> source, so every output pixel gets looked up
    matrix = solve_homography(dst_rect, quad)

    output = np.zeros((height, width, 4), dtype=np.uint8)

    if config.workers > 1 and height >= config.parallel_min_rows:
        bands = _row_bands(height, config.workers * 4)
        with ThreadPoolExecutor(max_workers=config.workers) as executor:
            futures = [
                executor.submit(_resample_rows, samples, matrix, output, start, end)
                for start, end in bands
            ]
            for future in futures:
                future.result()
    else:
        _resample_rows(samples, matrix, output, 0, height)

    src_h, src_w = samples.shape[:2]
    logger.info(f"Rectified: {src_w}x{src_h} -> {width}x{height}")

    return output
