"""
Mosaic rendering: level selection, mesh resampling and compositing.
"""

from .level_selector import (
    LevelSelection,
    sample_average_scale,
    best_mipmap_level,
    select_mipmap_level,
    choose_mipmap_level,
)
from .filters import FilterStage, FilterPipeline, ValueToNoise, NormalizeLocalContrast, default_filter_pipeline
from .mesh import (
    TransformMesh,
    MappingResult,
    MeshMapper,
    NearestMeshMapper,
    InterpolatedMeshMapper,
    create_mesh_mapper,
)
from .compositor import rescale_intensity, alpha_from, to_bgra
from .painter import CanvasPainter, create_canvas
from .bounding_box import derive_bounding_box, probe_tile_size
from .renderer import MosaicRenderer, RenderProgress, RenderSummary, render_mosaic

__all__ = [
    # Level selection
    "LevelSelection",
    "sample_average_scale",
    "best_mipmap_level",
    "select_mipmap_level",
    "choose_mipmap_level",
    # Filters
    "FilterStage",
    "FilterPipeline",
    "ValueToNoise",
    "NormalizeLocalContrast",
    "default_filter_pipeline",
    # Mesh
    "TransformMesh",
    "MappingResult",
    "MeshMapper",
    "NearestMeshMapper",
    "InterpolatedMeshMapper",
    "create_mesh_mapper",
    # Compositing
    "rescale_intensity",
    "alpha_from",
    "to_bgra",
    "CanvasPainter",
    "create_canvas",
    # Bounding boxes
    "derive_bounding_box",
    "probe_tile_size",
    # Renderer
    "MosaicRenderer",
    "RenderProgress",
    "RenderSummary",
    "render_mosaic",
]
