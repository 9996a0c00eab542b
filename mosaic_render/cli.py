"""
Command-line interface for mosaic rendering.

Usage:
    python -m mosaic_render render <tiles.json> --out <image> [--request request.yaml] [--x 0 --y 0 ...]
    python -m mosaic_render bbox <tiles.json> [--mesh-cell-size 64] [--force]
    python -m mosaic_render apply-transform <tiles.json> --id <id> --class affine --data "1,0,0,1,10,0" --out <out.json>
    python -m mosaic_render --help
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional
import cv2

from .config.render_config import RenderRequest
from .processing.cache import ImageCache
from .render.bounding_box import derive_bounding_box
from .render.renderer import MosaicRenderer
from .render.painter import create_canvas
from .tiling.collection import ResolvedTileCollection, apply_transform_to_collection
from .transforms.specs import LeafTransformSpec

logger = logging.getLogger(__name__)


def setup_argparse() -> argparse.ArgumentParser:
    """Set up argument parser."""
    parser = argparse.ArgumentParser(
        prog="mosaic-render",
        description="Render tile mosaics from transformed image pyramids",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # render command
    render_parser = subparsers.add_parser(
        "render",
        help="Render tiles into an image",
    )
    render_parser.add_argument(
        "tiles",
        type=str,
        help="Path to a tile collection or tile spec list (JSON)",
    )
    render_parser.add_argument(
        "--out",
        type=str,
        required=True,
        help="Output image path (format from extension)",
    )
    render_parser.add_argument(
        "--request",
        type=str,
        help="YAML file with render parameters",
    )
    render_parser.add_argument("--x", type=float, help="Viewport left coordinate")
    render_parser.add_argument("--y", type=float, help="Viewport top coordinate")
    render_parser.add_argument("--width", type=int, help="Target image width")
    render_parser.add_argument("--height", type=int, help="Target image height")
    render_parser.add_argument("--scale", type=float, help="Output scale")
    render_parser.add_argument(
        "--res",
        dest="mesh_cell_size",
        type=float,
        help="Mesh resolution, specified by the desired size of a triangle in pixels",
    )
    render_parser.add_argument("--threads", dest="num_threads", type=int, help="Mesh mapping threads")
    render_parser.add_argument(
        "--cache-pixels",
        type=int,
        default=ImageCache.DEFAULT_MAX_PIXELS,
        help="Pixel budget of the image cache (0 disables caching)",
    )

    # bbox command
    bbox_parser = subparsers.add_parser(
        "bbox",
        help="Derive world bounding boxes of tiles",
    )
    bbox_parser.add_argument("tiles", type=str, help="Path to a tile collection or tile spec list (JSON)")
    bbox_parser.add_argument("--mesh-cell-size", type=float, default=64.0, help="Mesh cell size (default: 64)")
    bbox_parser.add_argument("--force", action="store_true", help="Recompute existing bounding boxes")

    # apply-transform command
    apply_parser = subparsers.add_parser(
        "apply-transform",
        help="Append a shared transform to every tile of a collection",
    )
    apply_parser.add_argument("tiles", type=str, help="Path to a tile collection (JSON)")
    apply_parser.add_argument("--id", dest="transform_id", required=True, help="Identifier for the transform")
    apply_parser.add_argument("--class", dest="transform_class", required=True, help="Transform class name")
    apply_parser.add_argument(
        "--data",
        required=True,
        help="Transform parameters, separated by ',' or spaces",
    )
    apply_parser.add_argument("--replace-last", action="store_true", help="Replace each tile's last transform")
    apply_parser.add_argument("--out", type=str, required=True, help="Output collection path (JSON)")

    return parser


def cmd_render(args) -> int:
    """Handle render command."""
    tiles_path = Path(args.tiles)
    if not tiles_path.exists():
        print(f"Error: Tile file not found: {tiles_path}", file=sys.stderr)
        return 1

    request = RenderRequest.from_yaml(args.request) if args.request else RenderRequest()
    request = request.with_overrides(
        x=args.x,
        y=args.y,
        width=args.width,
        height=args.height,
        scale=args.scale,
        mesh_cell_size=args.mesh_cell_size,
        num_threads=args.num_threads,
    )
    logger.info(f"render: entry, request={request.to_dict()}")

    collection = ResolvedTileCollection.from_json_file(str(tiles_path))
    tiles = collection.resolve_tile_specs()

    cache = ImageCache(max_pixels=args.cache_pixels)
    canvas = create_canvas(request.width, request.height)
    summary = MosaicRenderer(image_cache=cache).render(request, tiles, canvas)

    if not cv2.imwrite(args.out, canvas):
        print(f"Error: Could not write image: {args.out}", file=sys.stderr)
        return 1

    print(json.dumps({
        "output": args.out,
        "rendered_tiles": summary.rendered_tiles,
        "skipped_tiles": summary.skipped_tiles,
        "elapsed_ms": round(summary.elapsed_ms, 1),
        "cache": cache.stats(),
    }, indent=2))
    return 0


def cmd_bbox(args) -> int:
    """Handle bbox command."""
    collection = ResolvedTileCollection.from_json_file(args.tiles)
    boxes = {}
    for tile in collection.resolve_tile_specs():
        derive_bounding_box(tile, args.mesh_cell_size, force=args.force)
        boxes[tile.tile_id] = {
            "width": tile.width,
            "height": tile.height,
            "bounding_box": list(tile.bounding_box),
        }
    print(json.dumps(boxes, indent=2))
    return 0


def cmd_apply_transform(args) -> int:
    """Handle apply-transform command."""
    collection = ResolvedTileCollection.from_json_file(args.tiles)
    spec = LeafTransformSpec(
        class_name=args.transform_class,
        data_string=args.data.replace(",", " "),
        spec_id=args.transform_id,
    )
    # fail before touching the collection if the parameters are malformed
    spec.build()

    count = apply_transform_to_collection(collection, spec, replace_last=args.replace_last)
    with open(args.out, "w") as f:
        json.dump(collection.to_dict(), f, indent=2)
    print(f"Saved {count} tiles and transforms to {args.out}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (uses sys.argv if not provided)

    Returns:
        Exit code (0 for success)
    """
    parser = setup_argparse()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 1

    handlers = {
        "render": cmd_render,
        "bbox": cmd_bbox,
        "apply-transform": cmd_apply_transform,
    }
    try:
        return handlers[args.command](args)
    except (ValueError, IOError, KeyError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
