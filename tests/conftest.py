"""Pytest configuration and fixtures."""

import numpy as np
import pytest
from PIL import Image

from layervec.types import Point, RasterMask, RgbColor, ShapeLayer


@pytest.fixture
def rect_layer():
    """Factory for rectangular shape layers inside a fixed-size mask."""

    def _make(layer_id, x, y, w, h, mask_w, mask_h, color=(10, 20, 30)):
        bits = np.zeros((mask_h, mask_w), dtype=bool)
        bits[y:y + h, x:x + w] = True
        x1 = min(x + w, mask_w)
        y1 = min(y + h, mask_h)
        boundary = (Point(x, y), Point(x1, y), Point(x1, y1), Point(x, y1))
        return ShapeLayer(
            id=layer_id,
            color=RgbColor(*color),
            mask=RasterMask(mask_w, mask_h, bits),
            boundary=boundary,
            area=int(bits.sum()),
        )

    return _make


@pytest.fixture
def two_color_palette():
    """Palette used by most segmentation tests."""
    return [RgbColor(10, 20, 30), RgbColor(200, 210, 220)]


@pytest.fixture
def square_image():
    """20x20 white image with an 8x8 red square at (6, 6)."""
    image = np.full((20, 20, 3), 255, dtype=np.uint8)
    image[6:14, 6:14] = [255, 0, 0]
    return image


@pytest.fixture
def square_image_path(tmp_path, square_image):
    """PNG file of the square image."""
    path = tmp_path / "square.png"
    Image.fromarray(square_image).save(path)
    return path
