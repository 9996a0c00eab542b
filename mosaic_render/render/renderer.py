"""
MosaicRenderer: renders an ordered list of tiles into one canvas.

Each tile is placed with its own transform chain, loaded at the pyramid
level that matches the output scale, resampled through a triangle mesh and
alpha-composited onto the canvas. Tiles are processed strictly in order;
only the mesh mapping inside a tile uses worker threads.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import numpy as np

from ..config.render_config import RenderRequest
from ..processing.cache import ImageCache
from ..tiling.models import TileSpec
from ..transforms.chain import attach_level_transform, build_render_chain
from ..transforms.grid import mesh_resolution
from .compositor import to_bgra
from .filters import FilterPipeline, default_filter_pipeline
from .level_selector import choose_mipmap_level
from .mesh import MeshMapper, TransformMesh, create_mesh_mapper
from .painter import CanvasPainter, create_canvas

logger = logging.getLogger(__name__)


@dataclass
class RenderProgress:
    """Progress information for a render call."""
    total_tiles: int
    completed_tiles: int
    current_tile: Optional[str] = None
    status: str = "pending"  # pending, rendering, complete, error
    error_message: Optional[str] = None

    @property
    def progress_percent(self) -> float:
        """Get completion percentage."""
        if self.total_tiles == 0:
            return 100.0
        return (self.completed_tiles / self.total_tiles) * 100

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_tiles": self.total_tiles,
            "completed_tiles": self.completed_tiles,
            "current_tile": self.current_tile,
            "status": self.status,
            "progress_percent": self.progress_percent,
            "error_message": self.error_message,
        }


@dataclass
class RenderSummary:
    """Outcome of a successful render call."""
    total_tiles: int
    rendered_tiles: int
    skipped_tiles: List[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
    tile_reports: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_tiles": self.total_tiles,
            "rendered_tiles": self.rendered_tiles,
            "skipped_tiles": self.skipped_tiles,
            "elapsed_ms": self.elapsed_ms,
            "tile_reports": self.tile_reports,
        }


class MosaicRenderer:
    """
    Renders tiles onto a caller supplied BGRA canvas.

    Any failure other than a zero sized tile aborts the whole render; the
    canvas contents are then undefined.

    Example:
        >>> renderer = MosaicRenderer(image_cache=ImageCache())
        >>> canvas = create_canvas(request.width, request.height)
        >>> summary = renderer.render(request, tiles, canvas)
    """

    def __init__(
        self,
        image_cache: Optional[ImageCache] = None,
        filter_pipeline: Optional[FilterPipeline] = None,
        progress_callback: Optional[Callable[[RenderProgress], None]] = None,
    ):
        """
        Initialize the renderer.

        Args:
            image_cache: Shared raster cache (a non-caching loader if None)
            filter_pipeline: Filters run when a request sets do_filter
            progress_callback: Optional callback for progress updates
        """
        self.image_cache = image_cache or ImageCache.disabled()
        self.filter_pipeline = filter_pipeline
        self.progress_callback = progress_callback
        self._progress = RenderProgress(total_tiles=0, completed_tiles=0)

    @property
    def progress(self) -> RenderProgress:
        """Get current render progress."""
        return self._progress

    def render(
        self,
        request: RenderRequest,
        tiles: Sequence[TileSpec],
        canvas: np.ndarray,
    ) -> RenderSummary:
        """
        Render `tiles`, in order, into `canvas`.

        Args:
            request: Viewport, scale and rendering options
            tiles: Tiles with fully resolved transform chains
            canvas: (height, width, 4) uint8 BGRA array matching the request

        Returns:
            RenderSummary

        Raises:
            ValueError: If the canvas does not match the request, or a tile
                has an unresolved chain or maps to non-finite coordinates
            ImageLoadError: If a source image or mask cannot be read
        """
        if canvas.shape != request.canvas_shape or canvas.dtype != np.uint8:
            raise ValueError(
                f"canvas {canvas.shape} {canvas.dtype} does not match request {request.canvas_shape} uint8"
            )

        start = time.time()
        painter = CanvasPainter(canvas)
        if request.background_color is not None:
            painter.fill_background(request.background_color)

        mapper = create_mesh_mapper(request.skip_interpolation)
        filters = None
        if request.do_filter:
            filters = self.filter_pipeline if self.filter_pipeline is not None else default_filter_pipeline()

        logger.debug(
            f"render: entry, processing {len(tiles)} tile specs, num_threads={request.num_threads}"
        )

        summary = RenderSummary(total_tiles=len(tiles), rendered_tiles=0)
        self._update_progress(len(tiles), 0, "rendering")

        for index, tile in enumerate(tiles):
            self._update_progress(len(tiles), index, "rendering", tile.tile_id)
            try:
                report = self._render_tile(request, tile, painter, mapper, filters)
            except Exception as e:
                self._update_progress(len(tiles), index, "error", tile.tile_id, str(e))
                logger.error(f"render: tile {index} ({tile.tile_id}) failed: {e}")
                raise

            if report is None:
                summary.skipped_tiles.append(tile.tile_id)
            else:
                report["index"] = index
                summary.tile_reports.append(report)
                summary.rendered_tiles += 1

        summary.elapsed_ms = (time.time() - start) * 1000
        self._update_progress(len(tiles), len(tiles), "complete")

        logger.debug(
            f"render: exit, {len(tiles)} tiles processed in {summary.elapsed_ms:.0f} milliseconds"
        )
        return summary

    def _render_tile(
        self,
        request: RenderRequest,
        tile: TileSpec,
        painter: CanvasPainter,
        mapper: MeshMapper,
        filters: Optional[FilterPipeline],
    ) -> Optional[Dict[str, Any]]:
        """Render one tile; returns None when the tile is skipped."""
        tile_start = time.time()

        chain = build_render_chain(
            tile.get_transform_list(),
            request.x,
            request.y,
            request.scale,
            request.area_offset,
        )

        width, height = tile.width, tile.height
        probe_level = None
        probe = None
        if not tile.has_width_and_height_defined():
            probe_level, probe_source = tile.first_mipmap_entry()
            probe = self.image_cache.get(probe_source.image_url, 0, False)
            height, width = probe.shape[0] << probe_level, probe.shape[1] << probe_level

        if width == 0 or height == 0:
            logger.debug(f"Skipping tile {tile.tile_id} with zero size {width}x{height}")
            return None

        selection = choose_mipmap_level(tile, chain, width, height, request.mesh_cell_size)
        image_and_mask = selection.image_and_mask

        if probe is not None and selection.source_level == probe_level and selection.downsample_levels == 0:
            loaded = probe
        else:
            loaded = self.image_cache.get(image_and_mask.image_url, selection.downsample_levels, False)
        load_stop = time.time()

        if loaded.shape[0] == 0 or loaded.shape[1] == 0:
            logger.debug(f"Skipping zero pixel size mipmap {image_and_mask.image_url}")
            return None

        # private float copy; cached rasters are shared between tiles and renders
        source = loaded.astype(np.float32)
        if filters is not None:
            filters.apply(source, selection.scale)
        filter_stop = time.time()

        source_mask = None
        if image_and_mask.mask_url is not None:
            source_mask = self.image_cache.get(image_and_mask.mask_url, selection.downsample_levels, True)
        mask_stop = time.time()

        mesh = TransformMesh(
            attach_level_transform(chain, selection.level),
            mesh_resolution(width, request.mesh_cell_size),
            source.shape[1],
            source.shape[0],
        )
        mesh_stop = time.time()

        result = mapper.map(
            mesh,
            source,
            (request.height, request.width),
            source_mask=source_mask,
            num_threads=request.num_threads,
        )
        if source_mask is not None and result.mask is None:
            logger.warning(
                f"render: removing mask because image and mask differ in size, "
                f"image: {source.shape[1]}x{source.shape[0]}, "
                f"mask: {source_mask.shape[1]}x{source_mask.shape[0]}"
            )
        map_stop = time.time()

        image = to_bgra(
            result.raster,
            tile.min_intensity,
            tile.max_intensity,
            result.mask,
            result.outside,
            binary_mask=request.binary_mask,
        )
        painter.paint(image)
        draw_stop = time.time()

        report = {
            "tile_id": tile.tile_id,
            "level": selection.level,
            "source_level": selection.source_level,
            "downsample_levels": selection.downsample_levels,
            "covered_pixels": result.covered_pixels,
            "used_mask": result.mask is not None,
            "timings_ms": {
                "load": (load_stop - tile_start) * 1000,
                "filter": (filter_stop - load_stop) * 1000,
                "load_mask": (mask_stop - filter_stop) * 1000,
                "mesh": (mesh_stop - mask_stop) * 1000,
                "map": (map_stop - mesh_stop) * 1000,
                "draw": (draw_stop - map_stop) * 1000,
            },
        }
        logger.debug(
            f"render: tile {tile.tile_id} took {(draw_stop - tile_start) * 1000:.0f} ms "
            f"(level:{selection.level}, downsample_levels:{selection.downsample_levels}, "
            f"map {mapper.name}:{(map_stop - mesh_stop) * 1000:.0f} ms), "
            f"cache_size:{self.image_cache.size()}"
        )
        return report

    def _update_progress(
        self,
        total: int,
        completed: int,
        status: str,
        current_tile: Optional[str] = None,
        error: Optional[str] = None,
    ):
        """Update progress and notify callback."""
        self._progress = RenderProgress(
            total_tiles=total,
            completed_tiles=completed,
            current_tile=current_tile,
            status=status,
            error_message=error,
        )

        if self.progress_callback:
            self.progress_callback(self._progress)


def render_mosaic(
    request: RenderRequest,
    tiles: Sequence[TileSpec],
    canvas: Optional[np.ndarray] = None,
    image_cache: Optional[ImageCache] = None,
    filter_pipeline: Optional[FilterPipeline] = None,
) -> Tuple[np.ndarray, RenderSummary]:
    """
    Render tiles into a canvas, allocating one if needed.

    Returns:
        (canvas, summary)
    """
    if canvas is None:
        canvas = create_canvas(request.width, request.height)
    renderer = MosaicRenderer(image_cache=image_cache, filter_pipeline=filter_pipeline)
    summary = renderer.render(request, tiles, canvas)
    return canvas, summary
