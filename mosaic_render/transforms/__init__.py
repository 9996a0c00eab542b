"""
Coordinate transforms, transform specs and render chain construction.
"""

from .models import (
    CoordinateTransform,
    AffineTransform2D,
    TranslationTransform2D,
    PolynomialTransform2D,
    CoordinateTransformList,
    create_transform,
)
from .specs import (
    TransformSpec,
    LeafTransformSpec,
    ReferenceTransformSpec,
    ListTransformSpec,
    transform_spec_from_dict,
)
from .chain import (
    create_scale_and_offset,
    build_render_chain,
    create_scale_level_transform,
    attach_level_transform,
)
from .grid import mesh_resolution, create_mesh_grid, grid_triangles

__all__ = [
    # Models
    "CoordinateTransform",
    "AffineTransform2D",
    "TranslationTransform2D",
    "PolynomialTransform2D",
    "CoordinateTransformList",
    "create_transform",
    # Specs
    "TransformSpec",
    "LeafTransformSpec",
    "ReferenceTransformSpec",
    "ListTransformSpec",
    "transform_spec_from_dict",
    # Chain
    "create_scale_and_offset",
    "build_render_chain",
    "create_scale_level_transform",
    "attach_level_transform",
    # Grid
    "mesh_resolution",
    "create_mesh_grid",
    "grid_triangles",
]
