"""Image loading for the rectification tool."""

from pagerectify.preprocessing.loader import ImageMetadata, load_image

__all__ = [
    "ImageMetadata",
    "load_image",
]
