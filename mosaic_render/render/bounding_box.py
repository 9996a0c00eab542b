"""
World bounding boxes for tiles whose size may be unknown.
"""

import logging
from typing import Optional, Tuple

from ..processing.cache import ImageLoader, load_image
from ..tiling.models import TileSpec

logger = logging.getLogger(__name__)


def probe_tile_size(tile: TileSpec, loader: ImageLoader) -> Tuple[int, int]:
    """
    Full resolution (width, height) from the lowest stored pyramid image.

    A tile whose lowest stored level is L > 0 has full resolution
    dimensions 2**L times those of that image.
    """
    level, image_and_mask = tile.first_mipmap_entry()
    raster = loader(image_and_mask.image_url, 0, False)
    height, width = raster.shape[:2]
    return (width << level, height << level)


def derive_bounding_box(
    tile: TileSpec,
    mesh_cell_size: float,
    force: bool = False,
    loader: Optional[ImageLoader] = None,
) -> TileSpec:
    """
    Make sure a tile knows its size and world bounding box.

    If width/height are not declared the lowest pyramid image is decoded,
    bypassing any cache, and its dimensions are stored on the tile. The
    bounding box is then derived (or re-derived when `force` is set).

    Args:
        tile: Tile to update in place
        mesh_cell_size: Mesh cell size used to sample the transform chain
        force: Recompute an existing bounding box
        loader: Non-cached image loader

    Returns:
        The same tile
    """
    if not tile.has_width_and_height_defined():
        tile.width, tile.height = probe_tile_size(tile, loader or load_image)
        logger.debug(f"Probed size of tile {tile.tile_id}: {tile.width}x{tile.height}")

    tile.derive_bounding_box(mesh_cell_size, force=force)
    return tile
