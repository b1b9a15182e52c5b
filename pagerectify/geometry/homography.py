"""Projective transform (homography) from four point correspondences.

Solves the 8x8 linear system with Gaussian elimination and partial
pivoting, fixing h8 = 1 so four correspondences determine the matrix.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Tuple

import numpy as np

from pagerectify.errors import DegenerateGeometryError
from pagerectify.geometry.points import as_points

logger = logging.getLogger(__name__)

# Smallest pivot accepted during elimination, relative to the largest
# coefficient (never less than 1) so pixel-scale inputs behave alike
PIVOT_EPSILON = 1e-10


@dataclass(frozen=True)
class HomographyMatrix:
    """Coefficients h0..h8 of a 3x3 projective matrix, row-major, h8 == 1.

    A point (x, y) maps to::

        w  = h6*x + h7*y + h8
        x' = (h0*x + h1*y + h2) / w
        y' = (h3*x + h4*y + h5) / w
    """

    coefficients: Tuple[float, ...]

    def __post_init__(self) -> None:
        if len(self.coefficients) != 9:
            raise ValueError(f"Homography needs 9 coefficients, got {len(self.coefficients)}")

    def __getitem__(self, index: int) -> float:
        return self.coefficients[index]

    def as_array(self) -> np.ndarray:
        """The matrix as a (3, 3) float64 array."""
        return np.array(self.coefficients, dtype=np.float64).reshape(3, 3)

    def apply(self, x: float, y: float) -> Tuple[float, float]:
        """Map a single point. Returns (inf, inf) when it maps to infinity."""
        h = self.coefficients
        w = h[6] * x + h[7] * y + h[8]
        if w == 0:
            return math.inf, math.inf
        return (h[0] * x + h[1] * y + h[2]) / w, (h[3] * x + h[4] * y + h[5]) / w

    def apply_grid(
        self, xs: np.ndarray, ys: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Map arrays of coordinates.

        Args:
            xs: x coordinates, any shape.
            ys: y coordinates, broadcastable against ``xs``.

        Returns:
            (mapped_x, mapped_y, w). Where w == 0 the mapped coordinates are
            non-finite; callers decide what to do with them.
        """
        h = self.coefficients
        w = h[6] * xs + h[7] * ys + h[8]
        with np.errstate(divide='ignore', invalid='ignore'):
            mx = (h[0] * xs + h[1] * ys + h[2]) / w
            my = (h[3] * xs + h[4] * ys + h[5]) / w
        return mx, my, w


def _build_system(src, dst) -> Tuple[List[List[float]], List[float]]:
    """Two equations per correspondence (x, y) -> (x', y')."""
    a: List[List[float]] = []
    b: List[float] = []

    for (x, y), (xp, yp) in zip(src, dst):
        a.append([x, y, 1.0, 0.0, 0.0, 0.0, -x * xp, -y * xp])
        a.append([0.0, 0.0, 0.0, x, y, 1.0, -x * yp, -y * yp])
        b.append(xp)
        b.append(yp)

    return a, b


def _solve_linear_system(a: List[List[float]], b: List[float]) -> List[float]:
    """Solve a·h = b in place by Gaussian elimination with partial pivoting.

    Raises:
        DegenerateGeometryError: If some column has no pivot above the
            threshold.
    """
    n = len(b)
    threshold = PIVOT_EPSILON * max(1.0, max(abs(v) for row in a for v in row))

    for col in range(n):
        # Largest magnitude in this column moves to the pivot row
        pivot = max(range(col, n), key=lambda r: abs(a[r][col]))
        pivot_val = a[pivot][col]

        if abs(pivot_val) < threshold:
            raise DegenerateGeometryError(
                f"Singular system at column {col} (pivot {abs(pivot_val):.3e}); "
                f"corners do not define a unique perspective transform"
            )

        if pivot != col:
            a[col], a[pivot] = a[pivot], a[col]
            b[col], b[pivot] = b[pivot], b[col]

        for r in range(col + 1, n):
            factor = a[r][col] / pivot_val
            if factor == 0.0:
                continue
            row, pivot_row = a[r], a[col]
            for c in range(col, n):
                row[c] -= factor * pivot_row[c]
            b[r] -= factor * b[col]

    # Back-substitution on the upper-triangular system
    h = [0.0] * n
    for i in range(n - 1, -1, -1):
        acc = b[i]
        for j in range(i + 1, n):
            acc -= a[i][j] * h[j]
        h[i] = acc / a[i][i]

    return h


def solve_homography(src: Iterable, dst: Iterable) -> HomographyMatrix:
    """Compute the homography mapping ``src`` points onto ``dst`` points.

    Args:
        src: 4 source points (Point, (x, y) pairs or a (4, 2) array).
        dst: 4 destination points, in the same order.

    Returns:
        HomographyMatrix with h8 fixed at 1.

    Raises:
        InvalidInputError: Wrong point count or non-finite coordinates.
        DegenerateGeometryError: The correspondences are collinear, duplicated
            or otherwise do not determine a unique transform.
    """
    src_pts = as_points(src)
    dst_pts = as_points(dst)

    a, b = _build_system(src_pts, dst_pts)
    h = _solve_linear_system(a, b)

    if not all(math.isfinite(v) for v in h):
        raise DegenerateGeometryError("Homography has non-finite coefficients")

    matrix = HomographyMatrix(tuple(h) + (1.0,))
    logger.debug(f"Solved homography: {[round(v, 6) for v in matrix.coefficients]}")

    return matrix
