"""
Intensity rescaling and alpha composition of mapped tiles.
"""

from typing import Optional
import numpy as np
import cv2


def rescale_intensity(
    raster: np.ndarray,
    min_intensity: float,
    max_intensity: float,
) -> np.ndarray:
    """
    Linearly map [min_intensity, max_intensity] to [0, 255].

    Values outside the range are clamped. A collapsed range maps values
    >= max_intensity to 255 and everything else to 0.

    Returns:
        uint8 raster
    """
    values = raster.astype(np.float32, copy=False)
    span = float(max_intensity) - float(min_intensity)
    if span <= 0:
        return np.where(values >= max_intensity, 255, 0).astype(np.uint8)

    scaled = (values - float(min_intensity)) * (255.0 / span)
    return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)


def alpha_from(
    mask: Optional[np.ndarray],
    outside: np.ndarray,
    binary_mask: bool = False,
) -> np.ndarray:
    """
    Alpha channel for a mapped tile.

    The mapped mask is used when present, otherwise the coverage raster.
    In binary mode only 255 stays opaque; every other value is transparent.
    """
    alpha = mask if mask is not None else outside
    if alpha.shape != outside.shape:
        raise ValueError(f"alpha source shape {alpha.shape} does not match target {outside.shape}")
    alpha = alpha.astype(np.uint8, copy=False)
    if binary_mask:
        return np.where(alpha == 255, 255, 0).astype(np.uint8)
    return alpha


def to_bgra(
    raster: np.ndarray,
    min_intensity: float,
    max_intensity: float,
    mask: Optional[np.ndarray],
    outside: np.ndarray,
    binary_mask: bool = False,
) -> np.ndarray:
    """
    Convert a mapped grey raster into a BGRA tile image.

    Args:
        raster: Mapped intensity raster
        min_intensity: Intensity shown as black
        max_intensity: Intensity shown as white
        mask: Mapped mask, or None
        outside: Coverage raster from the mesh mapper
        binary_mask: Threshold alpha instead of using it as a weight

    Returns:
        (H, W, 4) uint8 BGRA image (not premultiplied)
    """
    grey = rescale_intensity(raster, min_intensity, max_intensity)
    bgra = cv2.cvtColor(grey, cv2.COLOR_GRAY2BGRA)
    bgra[:, :, 3] = alpha_from(mask, outside, binary_mask)
    return bgra
