"""Tests for canvas compositing."""

import pytest
import numpy as np

from mosaic_render.render.painter import CanvasPainter, create_canvas, rgb_to_bgr


def bgra(shape, grey, alpha):
    height, width = shape
    image = np.empty((height, width, 4), dtype=np.uint8)
    image[:, :, :3] = grey
    image[:, :, 3] = alpha
    return image


class TestCreateCanvas:
    """Tests for create_canvas."""

    def test_transparent(self):
        """Test new canvases are transparent black."""
        canvas = create_canvas(5, 3)
        assert canvas.shape == (3, 5, 4)
        assert canvas.dtype == np.uint8
        assert not canvas.any()

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            create_canvas(0, 10)


class TestCanvasPainter:
    """Tests for CanvasPainter."""

    def test_rgb_to_bgr(self):
        assert rgb_to_bgr(0x102030) == (0x30, 0x20, 0x10)

    def test_rejects_bad_canvas(self):
        """Test the canvas must be BGRA uint8."""
        with pytest.raises(ValueError):
            CanvasPainter(np.zeros((4, 4, 3), dtype=np.uint8))
        with pytest.raises(ValueError):
            CanvasPainter(np.zeros((4, 4, 4), dtype=np.float32))

    def test_fill_background(self):
        """Test background fill is opaque."""
        canvas = create_canvas(2, 2)
        CanvasPainter(canvas).fill_background(0xFF8000)
        assert canvas[0, 0].tolist() == [0x00, 0x80, 0xFF, 255]

    def test_later_opaque_tile_wins(self):
        """Test painting order decides overlapping pixels."""
        first = bgra((4, 4), 50, 255)
        second = bgra((4, 4), 200, 255)

        canvas_ab = create_canvas(4, 4)
        painter = CanvasPainter(canvas_ab)
        painter.paint(first)
        painter.paint(second)

        canvas_ba = create_canvas(4, 4)
        painter = CanvasPainter(canvas_ba)
        painter.paint(second)
        painter.paint(first)

        assert canvas_ab[0, 0, 0] == 200
        assert canvas_ba[0, 0, 0] == 50
        assert painter.painted == 2

    def test_transparent_pixels_untouched(self):
        """Test zero alpha leaves the canvas as is."""
        canvas = create_canvas(2, 1)
        painter = CanvasPainter(canvas)
        painter.fill_background(0x000000)
        image = bgra((1, 2), 200, 0)
        image[0, 1, 3] = 255
        painter.paint(image)

        assert canvas[0, 0].tolist() == [0, 0, 0, 255]
        assert canvas[0, 1].tolist() == [200, 200, 200, 255]

    def test_partial_alpha_blends(self):
        """Test partial alpha blends over an opaque canvas."""
        canvas = create_canvas(1, 1)
        painter = CanvasPainter(canvas)
        painter.fill_background(0x000000)
        painter.paint(bgra((1, 1), 200, 128))

        assert canvas[0, 0, 0] == pytest.approx(100, abs=1)
        assert canvas[0, 0, 3] == 255

    def test_partial_alpha_on_empty_canvas(self):
        """Test partial alpha over transparency keeps colour and alpha."""
        canvas = create_canvas(1, 1)
        CanvasPainter(canvas).paint(bgra((1, 1), 200, 128))
        assert canvas[0, 0].tolist() == [200, 200, 200, 128]

    def test_shape_mismatch(self):
        """Test tile images must match the canvas."""
        painter = CanvasPainter(create_canvas(4, 4))
        with pytest.raises(ValueError):
            painter.paint(bgra((2, 2), 0, 255))
