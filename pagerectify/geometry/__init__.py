"""Geometry for perspective rectification."""

from pagerectify.geometry.homography import HomographyMatrix, solve_homography
from pagerectify.geometry.points import (
    Point,
    Quadrilateral,
    as_quadrilateral,
    clamp_corners,
    default_corners,
    order_corners,
    scale_corners,
)
from pagerectify.geometry.resample import RectifyConfig, compute_output_dimensions, rectify

__all__ = [
    'HomographyMatrix',
    'Point',
    'Quadrilateral',
    'RectifyConfig',
    'as_quadrilateral',
    'clamp_corners',
    'compute_output_dimensions',
    'default_corners',
    'order_corners',
    'rectify',
    'scale_corners',
    'solve_homography',
]
