"""Tests for image loading functionality."""

import numpy as np
import pytest
from PIL import Image

from pagerectify.preprocessing.loader import ImageMetadata, load_image


def _write_image(path, width: int = 40, height: int = 20, mode: str = "RGB", **save_kwargs):
    """Write a gradient test image and return its pixels."""
    rng = np.random.RandomState(7)
    channels = len(mode)
    arr = rng.randint(0, 256, (height, width, channels)).astype(np.uint8)
    Image.fromarray(arr).save(path, **save_kwargs)
    return arr


def test_load_png_rgb(tmp_path):
    """RGB PNG loads as opaque RGBA."""
    path = tmp_path / "page.png"
    pixels = _write_image(path)

    image, metadata = load_image(str(path))

    assert isinstance(image, np.ndarray), "Image should be numpy array"
    assert image.dtype == np.uint8, "Image should be uint8"
    assert image.shape == (20, 40, 4), "Image should be (H, W, 4)"
    assert np.all(image[:, :, 3] == 255), "Alpha should be opaque"
    np.testing.assert_array_equal(image[:, :, :3], pixels)

    assert isinstance(metadata, ImageMetadata)
    assert metadata.format == "PNG"
    assert metadata.original_size == (40, 20)
    assert metadata.mode == "RGB"


def test_load_png_keeps_alpha(tmp_path):
    path = tmp_path / "page.png"
    pixels = _write_image(path, mode="RGBA")

    image, metadata = load_image(str(path))

    np.testing.assert_array_equal(image, pixels)
    assert metadata.mode == "RGBA"


def test_load_jpeg_applies_exif_orientation(tmp_path):
    """Orientation 6 (rotate 90 CW) swaps width and height."""
    path = tmp_path / "page.jpg"
    exif = Image.Exif()
    exif[0x0112] = 6
    _write_image(path, width=40, height=20, exif=exif)

    image, metadata = load_image(str(path))

    assert image.shape == (40, 20, 4)
    assert metadata.original_size == (20, 40)
    assert metadata.format == "JPG"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_image(str(tmp_path / "missing.png"))


def test_unsupported_format(tmp_path):
    path = tmp_path / "page.gif"
    path.write_bytes(b"GIF89a")

    with pytest.raises(ValueError):
        load_image(str(path))
