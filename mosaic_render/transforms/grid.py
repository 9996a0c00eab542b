"""
Regular vertex grids used for meshes and bounding boxes.
"""

from typing import Tuple
import numpy as np


def mesh_resolution(width: float, mesh_cell_size: float) -> int:
    """Number of mesh cells across `width`, at least 1."""
    if mesh_cell_size <= 0:
        raise ValueError(f"mesh_cell_size must be > 0, got {mesh_cell_size}")
    return max(1, int(width / mesh_cell_size + 0.5))


def create_mesh_grid(
    num_x: int,
    width: float,
    height: float,
) -> Tuple[np.ndarray, int, int]:
    """
    Create grid vertices spanning [0, width] x [0, height].

    Cells are as close to square as the requested column count allows.

    Args:
        num_x: Number of cells across the width
        width: Extent in x
        height: Extent in y

    Returns:
        (vertices, num_x, num_y) where vertices is a ((num_y+1)*(num_x+1), 2)
        array in row-major order
    """
    num_x = max(1, int(num_x))
    cell = width / num_x if width > 0 else 1.0
    num_y = max(1, int(height / cell + 0.5))

    xs = np.linspace(0.0, width, num_x + 1)
    ys = np.linspace(0.0, height, num_y + 1)
    grid_x, grid_y = np.meshgrid(xs, ys)
    vertices = np.stack([grid_x.ravel(), grid_y.ravel()], axis=1)
    return vertices, num_x, num_y


def grid_triangles(num_x: int, num_y: int) -> np.ndarray:
    """
    Split every grid cell into two triangles.

    Returns:
        (2*num_x*num_y, 3) array of vertex indices
    """
    cols = num_x + 1
    rows_idx, cols_idx = np.meshgrid(np.arange(num_y), np.arange(num_x), indexing="ij")
    top_left = (rows_idx * cols + cols_idx).ravel()
    top_right = top_left + 1
    bottom_left = top_left + cols
    bottom_right = bottom_left + 1

    upper = np.stack([top_left, top_right, bottom_left], axis=1)
    lower = np.stack([top_right, bottom_right, bottom_left], axis=1)
    return np.concatenate([upper, lower], axis=0)
