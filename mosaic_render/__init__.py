"""
Mosaic Render Package

Renders ordered lists of transformed, multi-resolution image tiles into a
single composited canvas for an arbitrary world viewport and output scale.
"""

from .config.render_config import RenderRequest
from .processing import ImageCache, ImageLoadError, load_image
from .tiling import ImageAndMask, TileSpec, ResolvedTileCollection, apply_transform_to_collection
from .render import (
    MosaicRenderer,
    RenderSummary,
    render_mosaic,
    create_canvas,
    derive_bounding_box,
    FilterPipeline,
    default_filter_pipeline,
)

__all__ = [
    "RenderRequest",
    "ImageCache",
    "ImageLoadError",
    "load_image",
    "ImageAndMask",
    "TileSpec",
    "ResolvedTileCollection",
    "apply_transform_to_collection",
    "MosaicRenderer",
    "RenderSummary",
    "render_mosaic",
    "create_canvas",
    "derive_bounding_box",
    "FilterPipeline",
    "default_filter_pipeline",
]
