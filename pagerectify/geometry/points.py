"""Corner points and quadrilateral helpers.

A quadrilateral is always four points ordered [TL, TR, BR, BL]. The order
decides which source edge lands on which edge of the output rectangle.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple

import numpy as np

from pagerectify.errors import DegenerateGeometryError, InvalidInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Point:
    """A position in raster pixel space."""

    x: float
    y: float

    def __iter__(self):
        yield self.x
        yield self.y


Quadrilateral = Tuple[Point, Point, Point, Point]

CORNER_NAMES = ('top-left', 'top-right', 'bottom-right', 'bottom-left')


def _as_point(value, index: int) -> Point:
    if isinstance(value, Point):
        x, y = value.x, value.y
    else:
        try:
            x, y = value
            x, y = float(x), float(y)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Point {index} is not an (x, y) pair: {value!r}") from e

    if not (math.isfinite(x) and math.isfinite(y)):
        raise InvalidInputError(f"Point {index} has non-finite coordinates: ({x}, {y})")

    return Point(float(x), float(y))


def as_points(values: Iterable, count: int = 4) -> Tuple[Point, ...]:
    """Convert a sequence of point-likes to exactly ``count`` Points.

    Accepts Point objects, (x, y) pairs or an (N, 2) numpy array.

    Raises:
        InvalidInputError: On a wrong point count, a malformed point or
            non-finite coordinates.
    """
    if isinstance(values, np.ndarray):
        if values.ndim != 2 or values.shape[1] != 2:
            raise InvalidInputError(f"Expected an (N, 2) point array, got shape {values.shape}")
        values = values.tolist()

    try:
        values = list(values)
    except TypeError as e:
        raise InvalidInputError(f"Expected a sequence of points, got {type(values).__name__}") from e

    if len(values) != count:
        raise InvalidInputError(f"Expected exactly {count} points, got {len(values)}")

    return tuple(_as_point(v, i) for i, v in enumerate(values))


def as_quadrilateral(corners: Iterable) -> Quadrilateral:
    """Validate and convert corners to a Quadrilateral [TL, TR, BR, BL]."""
    return as_points(corners, count=4)  # type: ignore[return-value]


def distance(p: Point, q: Point) -> float:
    """Euclidean distance between two points."""
    return math.hypot(p.x - q.x, p.y - q.y)


def _cross(o: Point, a: Point, b: Point) -> float:
    return (a.x - o.x) * (b.y - o.y) - (a.y - o.y) * (b.x - o.x)


def check_quadrilateral(quad: Quadrilateral, tolerance: float = 1e-9) -> None:
    """Reject quadrilaterals that cannot define a projective transform.

    Two corners coinciding, or any three corners lying on one line, leave the
    8x8 system without a unique solution. Collinearity is measured by the
    cross product relative to the squared size of the quad, so the check does
    not depend on the pixel scale.

    Args:
        quad: Ordered corners [TL, TR, BR, BL].
        tolerance: Relative threshold below which three points count as
            collinear.

    Raises:
        DegenerateGeometryError: If the quad is degenerate.
        InvalidInputError: If the coordinates are too large to measure.
    """
    for i in range(4):
        for j in range(i + 1, 4):
            if quad[i] == quad[j]:
                raise DegenerateGeometryError(
                    f"Corners {CORNER_NAMES[i]} and {CORNER_NAMES[j]} coincide"
                )

    scale = max(distance(quad[i], quad[j]) for i in range(4) for j in range(i + 1, 4))
    limit = tolerance * scale * scale
    if not math.isfinite(limit):
        raise InvalidInputError("Corner coordinates are too large to check")

    for i, j, k in ((0, 1, 2), (0, 1, 3), (0, 2, 3), (1, 2, 3)):
        if abs(_cross(quad[i], quad[j], quad[k])) <= limit:
            raise DegenerateGeometryError(
                f"Corners {CORNER_NAMES[i]}, {CORNER_NAMES[j]} and "
                f"{CORNER_NAMES[k]} are collinear"
            )


def default_corners(width: int, height: int, padding: float = 20) -> Quadrilateral:
    """Initial corners for a freshly loaded image, inset by ``padding`` pixels.

    Images too small to hold the inset get the full frame instead.
    """
    if width <= 2 * padding or height <= 2 * padding:
        padding = 0

    return (
        Point(padding, padding),
        Point(width - padding, padding),
        Point(width - padding, height - padding),
        Point(padding, height - padding),
    )


def scale_corners(
    corners: Iterable,
    display_size: Tuple[float, float],
    natural_size: Tuple[float, float],
) -> Quadrilateral:
    """Map corners picked on a scaled display to natural pixel coordinates.

    Args:
        corners: Corners in display coordinates.
        display_size: (width, height) the image was shown at.
        natural_size: (width, height) of the image itself.

    Returns:
        Corners in natural image coordinates.
    """
    display_w, display_h = display_size
    natural_w, natural_h = natural_size
    if display_w <= 0 or display_h <= 0:
        raise InvalidInputError(f"Display size must be positive, got {display_w}x{display_h}")

    scale_x = natural_w / display_w
    scale_y = natural_h / display_h
    quad = as_quadrilateral(corners)

    logger.debug(f"Scaling corners by ({scale_x:.4f}, {scale_y:.4f})")
    return tuple(Point(p.x * scale_x, p.y * scale_y) for p in quad)  # type: ignore[return-value]


def clamp_corners(corners: Iterable, width: float, height: float) -> Quadrilateral:
    """Constrain corners to the image bounds [0, width] x [0, height]."""
    quad = as_quadrilateral(corners)
    return tuple(  # type: ignore[return-value]
        Point(min(max(p.x, 0.0), width), min(max(p.y, 0.0), height)) for p in quad
    )


def order_corners(points: Sequence) -> Quadrilateral:
    """Order 4 unordered points clockwise from top-left.

    Args:
        points: Any 4 point-likes.

    Returns:
        Corners ordered [top-left, top-right, bottom-right, bottom-left].
    """
    pts = sorted(as_points(points), key=lambda p: (p.y, p.x))
    top_left, top_right = sorted(pts[:2], key=lambda p: p.x)
    bottom_left, bottom_right = sorted(pts[2:], key=lambda p: p.x)

    return (top_left, top_right, bottom_right, bottom_left)
