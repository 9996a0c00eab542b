"""
Tile specs and resolved tile collections.
"""

from .models import ImageAndMask, TileSpec
from .collection import ResolvedTileCollection, apply_transform_to_collection

__all__ = [
    # Models
    "ImageAndMask",
    "TileSpec",
    # Collection
    "ResolvedTileCollection",
    "apply_transform_to_collection",
]
