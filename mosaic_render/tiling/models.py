"""
Data structures for render tiles.

A tile is one source image with a sparse pyramid of downsampled versions,
an optional mask per level, and the transform chain that places it in
world coordinates.
"""

from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import numpy as np

from ..transforms.grid import create_mesh_grid, mesh_resolution
from ..transforms.models import CoordinateTransformList
from ..transforms.specs import ListTransformSpec, TransformSpec, transform_spec_from_dict


@dataclass
class ImageAndMask:
    """
    Image locator plus optional mask locator for one pyramid level.

    Attributes:
        image_url: Path or file:// URL of the image
        mask_url: Path or file:// URL of a mask with the image's geometry
    """
    image_url: str
    mask_url: Optional[str] = None

    @property
    def has_mask(self) -> bool:
        return self.mask_url is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = {"imageUrl": self.image_url}
        if self.mask_url is not None:
            result["maskUrl"] = self.mask_url
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageAndMask":
        """Create from dictionary."""
        if "imageUrl" not in data:
            raise ValueError(f"mipmap level is missing 'imageUrl': {data}")
        return cls(image_url=data["imageUrl"], mask_url=data.get("maskUrl"))


@dataclass
class TileSpec:
    """
    One tile contributing to a render.

    Attributes:
        tile_id: Unique identifier of the tile
        mipmap_levels: Sparse map of pyramid level -> ImageAndMask
        transforms: Ordered transform chain (source pixels -> world)
        width: Full resolution width in pixels, negative if unknown
        height: Full resolution height in pixels, negative if unknown
        min_intensity: Intensity mapped to black
        max_intensity: Intensity mapped to white
        z: Optional section coordinate
    """
    tile_id: str
    mipmap_levels: Dict[int, ImageAndMask]
    transforms: ListTransformSpec = field(default_factory=ListTransformSpec)
    width: int = -1
    height: int = -1
    min_intensity: float = 0.0
    max_intensity: float = 255.0
    z: Optional[float] = None
    min_x: Optional[float] = None
    min_y: Optional[float] = None
    max_x: Optional[float] = None
    max_y: Optional[float] = None

    def __post_init__(self):
        """Validate the pyramid and normalize level keys."""
        if not self.mipmap_levels:
            raise ValueError(f"tile {self.tile_id} has no mipmap levels")
        levels = {}
        for level, image_and_mask in self.mipmap_levels.items():
            level = int(level)
            if level < 0:
                raise ValueError(f"tile {self.tile_id}: mipmap level must be >= 0, got {level}")
            levels[level] = image_and_mask
        self.mipmap_levels = dict(sorted(levels.items()))
        self._sorted_levels: List[int] = list(self.mipmap_levels)

    @property
    def levels(self) -> List[int]:
        """Stored pyramid levels in ascending order."""
        return list(self._sorted_levels)

    def first_mipmap_entry(self) -> Tuple[int, ImageAndMask]:
        """Lowest stored level (highest resolution)."""
        level = self._sorted_levels[0]
        return level, self.mipmap_levels[level]

    def floor_mipmap_entry(self, level: int) -> Optional[Tuple[int, ImageAndMask]]:
        """
        Greatest stored level <= `level`.

        Returns:
            (level, ImageAndMask), or None if every stored level is larger
        """
        index = bisect_right(self._sorted_levels, level)
        if index == 0:
            return None
        found = self._sorted_levels[index - 1]
        return found, self.mipmap_levels[found]

    def has_width_and_height_defined(self) -> bool:
        return self.width >= 0 and self.height >= 0

    @property
    def has_bounding_box(self) -> bool:
        return self.min_x is not None

    @property
    def bounding_box(self) -> Optional[Tuple[float, float, float, float]]:
        """(min_x, min_y, max_x, max_y) in world coordinates."""
        if not self.has_bounding_box:
            return None
        return (self.min_x, self.min_y, self.max_x, self.max_y)

    def get_transform_list(self) -> CoordinateTransformList:
        """
        Build the tile's coordinate transform chain.

        Raises:
            ValueError: If the chain still contains unresolved references
        """
        if not self.transforms.is_fully_resolved():
            unresolved = sorted(self.transforms.referenced_ids())
            raise ValueError(f"tile {self.tile_id} has unresolved transform references: {unresolved}")
        return self.transforms.build()

    def add_transform_spec(self, spec: TransformSpec, replace_last: bool = False) -> None:
        """Append a spec to the chain, or replace its last entry."""
        if replace_last:
            self.transforms.replace_last(spec)
        else:
            self.transforms.add(spec)

    def derive_bounding_box(self, mesh_cell_size: float, force: bool = False) -> None:
        """
        Compute the world bounding box of the tile.

        The full resolution extent is sampled on a mesh grid of the given
        cell size and mapped through the transform chain. An existing box is
        kept unless `force` is set.

        Raises:
            ValueError: If width/height are unknown or the chain is unresolved
        """
        if self.has_bounding_box and not force:
            return
        if not self.has_width_and_height_defined():
            raise ValueError(f"tile {self.tile_id}: width and height must be known to derive a bounding box")

        vertices, _, _ = create_mesh_grid(
            mesh_resolution(self.width, mesh_cell_size),
            self.width,
            self.height,
        )
        world = self.get_transform_list().apply(vertices)
        if not np.all(np.isfinite(world)):
            raise ValueError(f"tile {self.tile_id}: transform chain produced non-finite coordinates")

        self.min_x, self.min_y = (float(v) for v in world.min(axis=0))
        self.max_x, self.max_y = (float(v) for v in world.max(axis=0))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result: Dict[str, Any] = {
            "tileId": self.tile_id,
            "width": self.width,
            "height": self.height,
            "minIntensity": self.min_intensity,
            "maxIntensity": self.max_intensity,
            "mipmapLevels": {str(k): v.to_dict() for k, v in self.mipmap_levels.items()},
            "transforms": self.transforms.to_dict(),
        }
        if self.z is not None:
            result["z"] = self.z
        if self.has_bounding_box:
            result["minX"] = self.min_x
            result["minY"] = self.min_y
            result["maxX"] = self.max_x
            result["maxY"] = self.max_y
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TileSpec":
        """Create from dictionary."""
        transforms = transform_spec_from_dict(data.get("transforms", {"type": "list"}))
        if not isinstance(transforms, ListTransformSpec):
            transforms = ListTransformSpec(specs=[transforms])

        return cls(
            tile_id=data["tileId"],
            mipmap_levels={
                int(k): ImageAndMask.from_dict(v)
                for k, v in data.get("mipmapLevels", {}).items()
            },
            transforms=transforms,
            width=int(data.get("width", -1)),
            height=int(data.get("height", -1)),
            min_intensity=float(data.get("minIntensity", 0.0)),
            max_intensity=float(data.get("maxIntensity", 255.0)),
            z=data.get("z"),
            min_x=data.get("minX"),
            min_y=data.get("minY"),
            max_x=data.get("maxX"),
            max_y=data.get("maxY"),
        )
