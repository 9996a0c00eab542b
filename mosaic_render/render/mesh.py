"""
Piecewise affine mesh transforms and mesh based resampling.

A TransformMesh triangulates the source raster extent and maps every vertex
through a (possibly non-affine) transform chain; inside each triangle the
mapping is affine. A MeshMapper walks the destination raster triangle by
triangle, inverts each triangle's affine and samples the source.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Tuple
import numpy as np
import cv2

from ..transforms.grid import create_mesh_grid, grid_triangles
from ..transforms.models import CoordinateTransform

logger = logging.getLogger(__name__)

# Barycentric slack so pixels exactly on a shared edge are not lost
_EDGE_EPSILON = 1e-7


class TransformMesh:
    """
    Triangulated approximation of a transform over [0, width] x [0, height].

    Attributes:
        source_vertices: (N, 2) vertex positions in source pixels
        target_vertices: (N, 2) vertex positions after the transform
        triangles: (M, 3) vertex indices
        inverse_affines: (M, 2, 3) target -> source affine per triangle
        degenerate: (M,) True for triangles with zero target area
    """

    def __init__(
        self,
        transform: CoordinateTransform,
        num_x: int,
        width: float,
        height: float,
    ):
        """
        Build the mesh.

        Args:
            transform: Source -> target transform
            num_x: Number of cells across the width
            width: Source width in pixels
            height: Source height in pixels

        Raises:
            ValueError: If the transform maps a vertex to a non-finite position
        """
        self.width = width
        self.height = height

        vertices, self.num_x, self.num_y = create_mesh_grid(num_x, width, height)
        self.source_vertices = vertices
        self.target_vertices = transform.apply(vertices)
        if not np.all(np.isfinite(self.target_vertices)):
            raise ValueError("transform mapped mesh vertices to non-finite coordinates")

        self.triangles = grid_triangles(self.num_x, self.num_y)
        self.inverse_affines, self.degenerate = self._solve_inverse_affines()

    def __len__(self) -> int:
        return len(self.triangles)

    def target_triangle(self, index: int) -> np.ndarray:
        """(3, 2) target vertices of one triangle."""
        return self.target_vertices[self.triangles[index]]

    def target_bounds(self) -> Tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y) of the mapped mesh."""
        min_x, min_y = self.target_vertices.min(axis=0)
        max_x, max_y = self.target_vertices.max(axis=0)
        return (float(min_x), float(min_y), float(max_x), float(max_y))

    def _solve_inverse_affines(self) -> Tuple[np.ndarray, np.ndarray]:
        src = self.source_vertices[self.triangles]  # (M, 3, 2)
        dst = self.target_vertices[self.triangles]  # (M, 3, 2)

        homogeneous = np.concatenate([dst, np.ones(dst.shape[:2] + (1,))], axis=2)  # (M, 3, 3)
        det = np.linalg.det(homogeneous)
        degenerate = np.abs(det) < 1e-12

        safe = homogeneous.copy()
        safe[degenerate] = np.eye(3)
        # rows [x y 1] @ A^T = [sx sy]
        solution = np.linalg.solve(safe, src)  # (M, 3, 2)
        affines = np.transpose(solution, (0, 2, 1))  # (M, 2, 3)
        return affines, degenerate


@dataclass
class MappingResult:
    """
    Output of a mesh mapping.

    Attributes:
        raster: float32 destination raster
        mask: uint8 destination mask, or None if no usable source mask
        outside: uint8 raster, 255 where the mesh covers a pixel, 0 elsewhere
    """
    raster: np.ndarray
    mask: Optional[np.ndarray]
    outside: np.ndarray

    @property
    def covered_pixels(self) -> int:
        return int(np.count_nonzero(self.outside))


class MeshMapper(ABC):
    """
    Resamples a source raster (and mask) through a TransformMesh.

    Destination rows are split into contiguous bands, one per worker, so
    every destination pixel is owned by exactly one worker. Each band builds
    float32 source coordinate maps from the triangles' inverse affines and
    samples them with a single cv2.remap call.

    Only destination pixels whose source position falls on the source raster
    (pixel centres within half a pixel of the border) are covered.
    """

    name = "mesh"

    @property
    @abstractmethod
    def interpolation(self) -> int:
        """OpenCV interpolation flag used with cv2.remap."""

    def map(
        self,
        mesh: TransformMesh,
        source: np.ndarray,
        target_shape: Tuple[int, int],
        source_mask: Optional[np.ndarray] = None,
        num_threads: int = 1,
    ) -> MappingResult:
        """
        Map `source` into a new destination raster.

        A source mask whose shape differs from the source raster is dropped
        and the result mask is None.

        Args:
            mesh: Mesh from source pixels to destination pixels
            source: 2D source raster
            target_shape: (height, width) of the destination
            source_mask: Optional 2D uint8 mask with the source's shape
            num_threads: Number of worker threads

        Returns:
            MappingResult
        """
        if source.ndim != 2:
            raise ValueError(f"source must be 2D, got shape {source.shape}")
        if source_mask is not None and source_mask.shape != source.shape:
            source_mask = None

        height, width = int(target_shape[0]), int(target_shape[1])
        target = np.zeros((height, width), dtype=np.float32)
        target_mask = np.zeros((height, width), dtype=np.uint8) if source_mask is not None else None
        outside = np.zeros((height, width), dtype=np.uint8)

        if height == 0 or width == 0 or source.size == 0:
            return MappingResult(target, target_mask, outside)

        source = source.astype(np.float32, copy=False)
        if source_mask is not None:
            source_mask = source_mask.astype(np.uint8, copy=False)

        bands = self._row_bands(height, num_threads)
        if len(bands) == 1:
            self._map_band(mesh, source, source_mask, target, target_mask, outside, *bands[0])
        else:
            with ThreadPoolExecutor(max_workers=len(bands)) as executor:
                futures = [
                    executor.submit(
                        self._map_band, mesh, source, source_mask, target, target_mask, outside, start, stop
                    )
                    for start, stop in bands
                ]
                for future in futures:
                    # re-raises worker exceptions
                    future.result()

        return MappingResult(target, target_mask, outside)

    @staticmethod
    def _row_bands(height: int, num_threads: int) -> List[Tuple[int, int]]:
        count = max(1, min(int(num_threads), height))
        edges = np.linspace(0, height, count + 1).astype(int)
        return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]

    def _map_band(
        self,
        mesh: TransformMesh,
        source: np.ndarray,
        source_mask: Optional[np.ndarray],
        target: np.ndarray,
        target_mask: Optional[np.ndarray],
        outside: np.ndarray,
        row_start: int,
        row_stop: int,
    ) -> None:
        """Map every triangle into destination rows [row_start, row_stop)."""
        width = target.shape[1]
        source_height, source_width = source.shape
        band_shape = (row_stop - row_start, width)
        map_x = np.full(band_shape, -1.0, dtype=np.float32)
        map_y = np.full(band_shape, -1.0, dtype=np.float32)
        covered = np.zeros(band_shape, dtype=bool)

        triangles = mesh.target_vertices[mesh.triangles]  # (M, 3, 2)
        lows = triangles.min(axis=1)
        highs = triangles.max(axis=1)

        candidates = np.nonzero(
            ~mesh.degenerate
            & (highs[:, 1] >= row_start - 1)
            & (lows[:, 1] <= row_stop)
            & (highs[:, 0] >= -1)
            & (lows[:, 0] <= width)
        )[0]

        for index in candidates:
            x0 = max(int(np.ceil(lows[index, 0] - _EDGE_EPSILON)), 0)
            x1 = min(int(np.floor(highs[index, 0] + _EDGE_EPSILON)), width - 1)
            y0 = max(int(np.ceil(lows[index, 1] - _EDGE_EPSILON)), row_start)
            y1 = min(int(np.floor(highs[index, 1] + _EDGE_EPSILON)), row_stop - 1)
            if x1 < x0 or y1 < y0:
                continue

            grid_x, grid_y = np.meshgrid(
                np.arange(x0, x1 + 1),
                np.arange(y0, y1 + 1),
            )
            inside = _inside_triangle(triangles[index], grid_x, grid_y)
            # pixels on shared edges belong to the first triangle that claims them
            inside &= ~covered[y0 - row_start:y1 - row_start + 1, x0:x1 + 1]
            if not inside.any():
                continue

            px = grid_x[inside]
            py = grid_y[inside]
            affine = mesh.inverse_affines[index]
            sx = affine[0, 0] * px + affine[0, 1] * py + affine[0, 2]
            sy = affine[1, 0] * px + affine[1, 1] * py + affine[1, 2]

            on_source = (
                (sx >= -0.5) & (sx < source_width - 0.5)
                & (sy >= -0.5) & (sy < source_height - 0.5)
            )
            if not on_source.any():
                continue

            rows = py[on_source] - row_start
            cols = px[on_source]
            map_x[rows, cols] = sx[on_source]
            map_y[rows, cols] = sy[on_source]
            covered[rows, cols] = True

        if not covered.any():
            return

        sampled = cv2.remap(source, map_x, map_y, self.interpolation, borderMode=cv2.BORDER_REPLICATE)
        band = slice(row_start, row_stop)
        target[band][covered] = sampled[covered]
        outside[band][covered] = 255
        if target_mask is not None:
            sampled_mask = cv2.remap(
                source_mask, map_x, map_y, self.interpolation, borderMode=cv2.BORDER_REPLICATE
            )
            target_mask[band][covered] = sampled_mask[covered]


class NearestMeshMapper(MeshMapper):
    """Nearest neighbour sampling."""

    name = "nearest"

    @property
    def interpolation(self) -> int:
        return cv2.INTER_NEAREST


class InterpolatedMeshMapper(MeshMapper):
    """
    Bilinear sampling.

    Samples are taken from the whole source raster, not just the triangle's
    footprint, so neighbouring triangles blend without seams. Positions
    within half a pixel of the border replicate the edge pixels.
    """

    name = "interpolated"

    @property
    def interpolation(self) -> int:
        return cv2.INTER_LINEAR


def create_mesh_mapper(skip_interpolation: bool) -> MeshMapper:
    """Nearest mapper when skipping interpolation, bilinear otherwise."""
    return NearestMeshMapper() if skip_interpolation else InterpolatedMeshMapper()


def _inside_triangle(triangle: np.ndarray, grid_x: np.ndarray, grid_y: np.ndarray) -> np.ndarray:
    """Barycentric point-in-triangle test, inclusive of edges."""
    (ax, ay), (bx, by), (cx, cy) = triangle
    v0x, v0y = cx - ax, cy - ay
    v1x, v1y = bx - ax, by - ay
    v2x = grid_x - ax
    v2y = grid_y - ay

    dot00 = v0x * v0x + v0y * v0y
    dot01 = v0x * v1x + v0y * v1y
    dot11 = v1x * v1x + v1y * v1y
    dot02 = v0x * v2x + v0y * v2y
    dot12 = v1x * v2x + v1y * v2y

    denom = dot00 * dot11 - dot01 * dot01
    u = (dot11 * dot02 - dot01 * dot12) / denom
    v = (dot00 * dot12 - dot01 * dot02) / denom
    return (u >= -_EDGE_EPSILON) & (v >= -_EDGE_EPSILON) & (u + v <= 1 + _EDGE_EPSILON)
