"""
Painter's algorithm compositing onto the output canvas.
"""

from typing import Tuple
import numpy as np


def create_canvas(width: int, height: int) -> np.ndarray:
    """Allocate a fully transparent (height, width, 4) BGRA canvas."""
    if width <= 0 or height <= 0:
        raise ValueError(f"canvas size must be positive, got {width}x{height}")
    return np.zeros((height, width, 4), dtype=np.uint8)


def rgb_to_bgr(rgb: int) -> Tuple[int, int, int]:
    """Split 0xRRGGBB into (b, g, r)."""
    return (rgb & 0xFF, (rgb >> 8) & 0xFF, (rgb >> 16) & 0xFF)


class CanvasPainter:
    """
    Draws tile images onto a shared BGRA canvas with source-over blending.

    Tiles must be painted in list order; a later tile covers earlier ones
    wherever it is opaque.

    Example:
        >>> painter = CanvasPainter(canvas)
        >>> painter.fill_background(0x000000)
        >>> for tile_image in tile_images:
        ...     painter.paint(tile_image)
    """

    def __init__(self, canvas: np.ndarray):
        if canvas.ndim != 3 or canvas.shape[2] != 4 or canvas.dtype != np.uint8:
            raise ValueError(
                f"canvas must be an (H, W, 4) uint8 array, got {canvas.shape} {canvas.dtype}"
            )
        self.canvas = canvas
        self.painted = 0

    @property
    def shape(self) -> Tuple[int, int]:
        return self.canvas.shape[:2]

    def fill_background(self, rgb: int) -> None:
        """Fill the whole canvas with an opaque colour."""
        b, g, r = rgb_to_bgr(rgb)
        self.canvas[:, :] = (b, g, r, 255)

    def paint(self, image: np.ndarray) -> None:
        """
        Composite a BGRA image over the canvas at the origin.

        Colours are not premultiplied. Opaque source pixels replace the
        canvas, transparent ones leave it untouched, anything in between
        blends.
        """
        if image.shape != self.canvas.shape:
            raise ValueError(f"image shape {image.shape} does not match canvas {self.canvas.shape}")

        src_alpha = image[:, :, 3]
        opaque = src_alpha == 255
        partial = (src_alpha > 0) & ~opaque

        self.canvas[opaque] = image[opaque]

        if partial.any():
            src = image[partial].astype(np.float32)
            dst = self.canvas[partial].astype(np.float32)

            sa = src[:, 3:4] / 255.0
            da = dst[:, 3:4] / 255.0
            out_alpha = sa + da * (1.0 - sa)
            out_color = (src[:, :3] * sa + dst[:, :3] * da * (1.0 - sa)) / np.maximum(out_alpha, 1e-12)

            blended = np.empty_like(src)
            blended[:, :3] = out_color
            blended[:, 3:4] = out_alpha * 255.0
            self.canvas[partial] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)

        self.painted += 1
