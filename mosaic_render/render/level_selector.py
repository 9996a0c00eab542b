"""
Pyramid level selection.

The render chain is sampled to estimate how many output pixels one source
pixel covers; that scale picks the coarsest pyramid level that still has at
least one source pixel per output pixel.
"""

import math
from dataclasses import dataclass
from typing import Dict, Any
import numpy as np

from ..tiling.models import ImageAndMask, TileSpec
from ..transforms.models import CoordinateTransform


@dataclass
class LevelSelection:
    """
    Result of resolving a desired level against a tile's pyramid.

    Attributes:
        level: Effective level of the raster after downsampling
        source_level: Stored pyramid level that is loaded
        downsample_levels: Extra 2x software downsampling steps
        image_and_mask: Locators of the stored level
    """
    level: int
    source_level: int
    downsample_levels: int
    image_and_mask: ImageAndMask

    @property
    def scale(self) -> float:
        """Scale of the effective level relative to full resolution."""
        return 1.0 / (1 << self.level)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "level": self.level,
            "source_level": self.source_level,
            "downsample_levels": self.downsample_levels,
            "image_url": self.image_and_mask.image_url,
            "mask_url": self.image_and_mask.mask_url,
        }


def sample_average_scale(
    transform: CoordinateTransform,
    width: float,
    height: float,
    dx: float,
) -> float:
    """
    Estimate the average local scale of a transform over a tile.

    The transform is sampled on a grid spaced by `dx` over [0, width) x
    [0, height). At each sample the images of two orthogonal steps of length
    `dx` are measured; their mean length divided by `dx` is the local scale.

    Args:
        transform: Transform from source pixels to output pixels
        width: Source width in pixels
        height: Source height in pixels
        dx: Sample spacing in source pixels

    Returns:
        Mean output pixel spacing per input pixel spacing
    """
    if dx <= 0:
        raise ValueError(f"sample spacing must be > 0, got {dx}")

    xs = np.arange(0.0, max(width, 1e-9), dx)
    ys = np.arange(0.0, max(height, 1e-9), dx)
    grid_x, grid_y = np.meshgrid(xs, ys)
    points = np.stack([grid_x.ravel(), grid_y.ravel()], axis=1)

    origin = transform.apply(points)
    step_x = transform.apply(points + np.array([dx, 0.0]))
    step_y = transform.apply(points + np.array([0.0, dx]))

    lengths = (
        np.linalg.norm(step_x - origin, axis=1) + np.linalg.norm(step_y - origin, axis=1)
    ) * 0.5
    return float(np.mean(lengths) / dx)


def best_mipmap_level(scale: float) -> int:
    """
    Desired pyramid level for a local scale: floor(log2(1/scale)), >= 0.

    Example:
        >>> best_mipmap_level(0.25)
        2
        >>> best_mipmap_level(3.0)
        0
    """
    if not math.isfinite(scale) or scale <= 0:
        raise ValueError(f"scale must be a positive number, got {scale}")
    if scale >= 1.0:
        return 0
    level = int(math.floor(math.log2(1.0 / scale)))
    # guard against log2 rounding just below an exact power of two
    while (1 << (level + 1)) * scale <= 1.0:
        level += 1
    while level > 0 and (1 << level) * scale > 1.0:
        level -= 1
    return level


def select_mipmap_level(tile: TileSpec, desired_level: int) -> LevelSelection:
    """
    Resolve a desired level against the tile's sparse pyramid.

    The greatest stored level <= desired is loaded and downsampled the rest
    of the way in software. If every stored level is coarser than desired,
    the smallest one is used as is; sources are never upsampled.

    Example:
        levels {0, 2, 4}, desired 3 -> source 2, downsample 1, level 3
        levels {3, 4}, desired 1 -> source 3, downsample 0, level 3
    """
    if desired_level < 0:
        raise ValueError(f"desired level must be >= 0, got {desired_level}")

    entry = tile.floor_mipmap_entry(desired_level)
    if entry is None:
        source_level, image_and_mask = tile.first_mipmap_entry()
        return LevelSelection(
            level=source_level,
            source_level=source_level,
            downsample_levels=0,
            image_and_mask=image_and_mask,
        )

    source_level, image_and_mask = entry
    return LevelSelection(
        level=desired_level,
        source_level=source_level,
        downsample_levels=desired_level - source_level,
        image_and_mask=image_and_mask,
    )


def choose_mipmap_level(
    tile: TileSpec,
    render_chain: CoordinateTransform,
    width: int,
    height: int,
    mesh_cell_size: float,
) -> LevelSelection:
    """Estimate the output scale of a tile and resolve it to a pyramid level."""
    scale = sample_average_scale(render_chain, width, height, mesh_cell_size)
    return select_mipmap_level(tile, best_mipmap_level(scale))
