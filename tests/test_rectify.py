"""Tests for perspective rectification."""

import math

import cv2
import numpy as np
import pytest

from pagerectify.errors import DegenerateGeometryError, InvalidInputError
from pagerectify.geometry.homography import solve_homography
from pagerectify.geometry.resample import RectifyConfig, compute_output_dimensions, rectify


RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)
TRAPEZOID = [(10, 10), (90, 20), (85, 95), (15, 90)]


def _create_banded_raster() -> np.ndarray:
    """4x4 RGBA raster: red in rows 0-1, blue in rows 2-3."""
    raster = np.zeros((4, 4, 4), dtype=np.uint8)
    raster[:2] = RED
    raster[2:] = BLUE
    return raster


def _create_random_raster(width: int, height: int, seed: int = 0) -> np.ndarray:
    """Opaque RGBA noise."""
    rng = np.random.RandomState(seed)
    raster = rng.randint(0, 256, (height, width, 4)).astype(np.uint8)
    raster[:, :, 3] = 255
    return raster


def _checker_value(u: np.ndarray, v: np.ndarray, square: int) -> np.ndarray:
    return ((np.floor(u / square) + np.floor(v / square)) % 2) * 255


def _create_checkerboard(width: int, height: int, square: int = 10) -> np.ndarray:
    """RGB checkerboard, black square at the origin."""
    v, u = np.mgrid[0:height, 0:width].astype(np.float64)
    gray = _checker_value(u, v, square).astype(np.uint8)
    return np.stack([gray, gray, gray], axis=-1)


def _expected_size(corners) -> tuple:
    p0, p1, p2, p3 = corners

    def dist(a, b):
        return math.hypot(a[0] - b[0], a[1] - b[1])

    width = math.floor(max(dist(p0, p1), dist(p3, p2)) + 0.5)
    height = math.floor(max(dist(p0, p3), dist(p1, p2)) + 0.5)
    return max(1, width), max(1, height)


class TestComputeOutputDimensions:
    """Test output dimension computation from corners."""

    def test_rectangle(self) -> None:
        assert compute_output_dimensions([(0, 0), (100, 0), (100, 50), (0, 50)]) == (100, 50)

    def test_trapezoid(self) -> None:
        # top 80.62, bottom 70.18, left 80.16, right 75.17
        assert compute_output_dimensions(TRAPEZOID) == (81, 80)

    @pytest.mark.parametrize("corners", [
        [(5, 0), (105, 5), (100, 55), (0, 50)],
        [(0, 0), (30.4, 0), (30.4, 10.6), (0, 10.6)],
        [(3.3, 7.1), (250.9, 40.2), (230.0, 300.5), (12.0, 280.8)],
        [(100, 100), (400, 80), (420, 500), (90, 470)],
    ])
    def test_dimension_law(self, corners) -> None:
        assert compute_output_dimensions(corners) == _expected_size(corners)

    def test_rounds_half_up(self) -> None:
        assert compute_output_dimensions([(0, 0), (2.5, 0), (2.5, 1.5), (0, 1.5)]) == (3, 2)

    def test_tiny_quad_is_at_least_one_pixel(self) -> None:
        assert compute_output_dimensions([(0, 0), (0.2, 0), (0.2, 0.2), (0, 0.2)]) == (1, 1)

    def test_overflowing_edges(self) -> None:
        with pytest.raises(InvalidInputError):
            compute_output_dimensions([(-1e308, 0), (1e308, 0), (1e308, 1), (-1e308, 1)])


class TestRectify:
    """Test the backward-mapping resampler."""

    def test_banded_identity(self) -> None:
        """Exact image bounds reproduce the 4x4 red/blue bands."""
        source = _create_banded_raster()
        result = rectify(source, [(0, 0), (4, 0), (4, 4), (0, 4)])

        assert result.shape == (4, 4, 4)
        assert result.dtype == np.uint8
        np.testing.assert_array_equal(result, source)

    def test_identity_random_image(self) -> None:
        source = _create_random_raster(30, 20)
        result = rectify(source, [(0, 0), (30, 0), (30, 20), (0, 20)])

        assert result.shape == source.shape
        diff = np.abs(result.astype(int) - source.astype(int))
        assert diff.max() <= 1
        assert np.all(result[:, :, 3] == 255)

    def test_rgb_source_gets_opaque_alpha(self) -> None:
        source = _create_random_raster(16, 12)[:, :, :3]
        result = rectify(source, [(0, 0), (16, 0), (16, 12), (0, 12)])

        assert result.shape == (12, 16, 4)
        assert np.all(result[:, :, 3] == 255)

    def test_float_source(self) -> None:
        source = np.full((10, 10, 3), 0.6, dtype=np.float32)
        result = rectify(source, [(1, 1), (8, 1), (8, 8), (1, 8)])

        assert result.dtype == np.uint8
        assert np.all(result[:, :, :3] == 153)

    def test_trapezoid_scenario(self) -> None:
        source = _create_random_raster(100, 100)
        result = rectify(source, TRAPEZOID)

        assert result.shape == (80, 81, 4)
        assert np.all(result[:, :, 3] == 255)

    def test_crop_region(self) -> None:
        """An axis-aligned sub-rectangle is a plain crop."""
        source = _create_random_raster(60, 40)
        result = rectify(source, [(10, 5), (50, 5), (50, 35), (10, 35)])

        assert result.shape == (30, 40, 4)
        np.testing.assert_array_equal(result, source[5:35, 10:50])

    def test_source_not_modified(self) -> None:
        source = _create_random_raster(50, 50)
        before = source.copy()
        rectify(source, [(2, 3), (45, 6), (48, 47), (4, 44)])
        np.testing.assert_array_equal(source, before)

    def test_interpolates_between_samples(self) -> None:
        """A half-pixel shift averages neighbouring columns."""
        source = np.zeros((2, 3, 4), dtype=np.uint8)
        source[:, 0] = (0, 0, 0, 255)
        source[:, 1] = (100, 100, 100, 255)
        source[:, 2] = (200, 200, 200, 255)

        result = rectify(source, [(0.5, 0), (2.5, 0), (2.5, 1), (0.5, 1)])

        assert result.shape == (1, 2, 4)
        np.testing.assert_array_equal(result[0, :, 0], [50, 150])
        np.testing.assert_array_equal(result[0, :, 3], [255, 255])

    def test_checkerboard_round_trip(self) -> None:
        """Rectifying a perspective-warped checkerboard recovers the board."""
        board_w, board_h, square = 80, 60, 10
        board = _create_checkerboard(board_w, board_h, square)
        quad = [(20, 15), (180, 30), (170, 150), (30, 140)]

        warp = cv2.getPerspectiveTransform(
            np.array([(0, 0), (board_w, 0), (board_w, board_h), (0, board_h)], dtype=np.float32),
            np.array(quad, dtype=np.float32),
        )
        photo = cv2.warpPerspective(board, warp, (200, 180), flags=cv2.INTER_LINEAR)

        result = rectify(photo, quad)
        out_h, out_w = result.shape[:2]
        assert (out_w, out_h) == _expected_size(quad)

        # Output pixel (x, y) corresponds to board point (x * W / out_w, y * H / out_h)
        ys, xs = np.mgrid[0:out_h, 0:out_w].astype(np.float64)
        u = xs * board_w / out_w
        v = ys * board_h / out_h
        expected = _checker_value(u, v, square)

        # Compare away from square edges, where interpolation blends colours
        interior = (u % square >= 2) & (u % square <= 7) & (v % square >= 2) & (v % square <= 7)
        assert interior.sum() > 1000

        assert np.all(result[interior, 3] == 255)
        diff = np.abs(result[interior, 0].astype(int) - expected[interior])
        assert diff.max() <= 3

    def test_parallel_matches_serial(self) -> None:
        source = _create_random_raster(120, 90, seed=3)
        corners = [(4, 6), (115, 2), (110, 88), (9, 80)]

        serial = rectify(source, corners, RectifyConfig(workers=1))
        parallel = rectify(source, corners, RectifyConfig(workers=4, parallel_min_rows=1))

        np.testing.assert_array_equal(serial, parallel)


class TestOutOfBounds:
    """Pixels that map outside the source stay transparent."""

    def test_corner_outside_source(self) -> None:
        source = _create_random_raster(100, 100)
        corners = [(-5, -5), (99, 0), (99, 99), (0, 99)]

        result = rectify(source, corners)

        out_h, out_w = result.shape[:2]
        assert (out_w, out_h) == _expected_size(corners)
        assert result[0, 0, 3] == 0
        np.testing.assert_array_equal(result[0, 0], [0, 0, 0, 0])

        matrix = solve_homography(
            [(0, 0), (out_w, 0), (out_w, out_h), (0, out_h)], corners
        )
        ys, xs = np.mgrid[0:out_h, 0:out_w].astype(np.float64)
        sx, sy, _ = matrix.apply_grid(xs, ys)

        clearly_outside = (sx < -0.01) | (sy < -0.01) | (sx > 99.01) | (sy > 99.01)
        clearly_inside = (sx > 0.01) & (sy > 0.01) & (sx < 98.99) & (sy < 98.99)

        assert clearly_outside.any()
        assert np.all(result[clearly_outside] == 0)
        assert np.all(result[clearly_inside, 3] == 255)

    def test_quad_entirely_outside(self) -> None:
        source = _create_random_raster(20, 20)
        result = rectify(source, [(30, 30), (50, 30), (50, 50), (30, 50)])

        assert result.shape == (20, 20, 4)
        assert not result.any()

    def test_self_intersecting_quad_does_not_crash(self) -> None:
        source = _create_random_raster(60, 60)
        bow_tie = [(0, 0), (50, 0), (0, 50), (50, 50)]

        try:
            result = rectify(source, bow_tie)
        except DegenerateGeometryError:
            return

        assert result.dtype == np.uint8
        assert result.shape[2] == 4


class TestRectifyErrors:
    """Invalid and degenerate input is reported, never half-processed."""

    def test_collinear_corners(self) -> None:
        source = _create_random_raster(40, 40)
        with pytest.raises(DegenerateGeometryError):
            rectify(source, [(0, 0), (10, 0), (20, 0), (30, 0)])

    def test_three_collinear_corners(self) -> None:
        source = _create_random_raster(40, 40)
        with pytest.raises(DegenerateGeometryError):
            rectify(source, [(0, 0), (10, 10), (20, 20), (0, 30)])

    def test_duplicate_corners(self) -> None:
        source = _create_random_raster(40, 40)
        with pytest.raises(DegenerateGeometryError):
            rectify(source, [(0, 0), (0, 0), (30, 30), (0, 30)])

    def test_wrong_corner_count(self) -> None:
        source = _create_random_raster(40, 40)
        with pytest.raises(InvalidInputError):
            rectify(source, [(0, 0), (30, 0), (30, 30)])

    def test_non_finite_corner(self) -> None:
        source = _create_random_raster(40, 40)
        with pytest.raises(InvalidInputError):
            rectify(source, [(0, 0), (30, 0), (30, float('nan')), (0, 30)])

    def test_zero_size_source(self) -> None:
        source = np.zeros((0, 10, 4), dtype=np.uint8)
        with pytest.raises(InvalidInputError):
            rectify(source, [(0, 0), (10, 0), (10, 10), (0, 10)])

    def test_float_source_out_of_range(self) -> None:
        source = np.full((10, 10, 3), 2.0, dtype=np.float32)
        with pytest.raises(InvalidInputError):
            rectify(source, [(0, 0), (9, 0), (9, 9), (0, 9)])

    def test_unsupported_shape(self) -> None:
        source = np.zeros((10, 10, 2), dtype=np.uint8)
        with pytest.raises(InvalidInputError):
            rectify(source, [(0, 0), (9, 0), (9, 9), (0, 9)])

    def test_not_an_array(self) -> None:
        with pytest.raises(InvalidInputError):
            rectify([[0, 0], [0, 0]], [(0, 0), (9, 0), (9, 9), (0, 9)])

    def test_output_too_large(self) -> None:
        source = _create_random_raster(40, 40)
        config = RectifyConfig(max_output_pixels=100)
        with pytest.raises(InvalidInputError):
            rectify(source, [(0, 0), (30, 0), (30, 30), (0, 30)], config)

    def test_output_side_too_long(self) -> None:
        source = _create_random_raster(40, 40)
        config = RectifyConfig(max_output_side=20)
        with pytest.raises(InvalidInputError):
            rectify(source, [(0, 0), (30, 0), (30, 10), (0, 10)], config)

    @pytest.mark.parametrize("corners", [
        [(-1e308, 0), (1e308, 0), (1e308, 1), (-1e308, 1)],
        [(-1e200, 0), (1e200, 0), (1e200, 1e200), (-1e200, 1e200)],
    ])
    def test_huge_coordinates(self, corners) -> None:
        source = _create_random_raster(40, 40)
        with pytest.raises(InvalidInputError):
            rectify(source, corners)
