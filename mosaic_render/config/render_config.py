"""
Render request configuration.
"""

import math
from dataclasses import dataclass
from typing import Dict, Any, Optional

_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0"}


def _as_bool(value: Any, name: str) -> bool:
    """Interpret a config flag; strings such as "false" are parsed, not truth-tested."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class RenderRequest:
    """
    Parameters of a single render call.

    Attributes:
        width: Output canvas width in pixels
        height: Output canvas height in pixels
        x: Viewport left edge in world units
        y: Viewport top edge in world units
        scale: Output scale (canvas pixels per world unit)
        mesh_cell_size: Desired mesh triangle edge length in pixels
        area_offset: Align pixel centres instead of pixel corners
        skip_interpolation: Use nearest neighbour sampling
        do_filter: Run the filter pipeline on loaded sources
        binary_mask: Threshold alpha to fully opaque/fully transparent
        background_color: Optional 0xRRGGBB fill applied before the first tile
        num_threads: Worker threads for mesh resampling
    """
    width: int = 256
    height: int = 256
    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0
    mesh_cell_size: float = 64.0
    area_offset: bool = False
    skip_interpolation: bool = False
    do_filter: bool = False
    binary_mask: bool = False
    background_color: Optional[int] = None
    num_threads: int = 1

    def __post_init__(self):
        """Validate configuration values."""
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"canvas size must be positive, got {self.width}x{self.height}")
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError(f"viewport origin must be finite, got ({self.x}, {self.y})")
        if not math.isfinite(self.scale) or self.scale <= 0:
            raise ValueError(f"scale must be > 0, got {self.scale}")
        if not math.isfinite(self.mesh_cell_size) or self.mesh_cell_size <= 0:
            raise ValueError(f"mesh_cell_size must be > 0, got {self.mesh_cell_size}")
        if self.num_threads < 1:
            raise ValueError(f"num_threads must be >= 1, got {self.num_threads}")
        if self.background_color is not None and not (0 <= self.background_color <= 0xFFFFFF):
            raise ValueError(f"background_color must be 0x000000-0xFFFFFF, got {self.background_color}")

    @property
    def canvas_shape(self):
        """Shape of the BGRA canvas array."""
        return (self.height, self.width, 4)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "width": self.width,
            "height": self.height,
            "x": self.x,
            "y": self.y,
            "scale": self.scale,
            "mesh_cell_size": self.mesh_cell_size,
            "area_offset": self.area_offset,
            "skip_interpolation": self.skip_interpolation,
            "do_filter": self.do_filter,
            "binary_mask": self.binary_mask,
            "background_color": self.background_color,
            "num_threads": self.num_threads,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RenderRequest":
        """Create from dictionary (e.g., from YAML config)."""
        background = data.get("background_color")
        if isinstance(background, str):
            background = int(background.lstrip("#").replace("0x", ""), 16)

        return cls(
            width=int(data.get("width", 256)),
            height=int(data.get("height", 256)),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            scale=float(data.get("scale", 1.0)),
            mesh_cell_size=float(data.get("mesh_cell_size", 64.0)),
            area_offset=_as_bool(data.get("area_offset", False), "area_offset"),
            skip_interpolation=_as_bool(data.get("skip_interpolation", False), "skip_interpolation"),
            do_filter=_as_bool(data.get("do_filter", False), "do_filter"),
            binary_mask=_as_bool(data.get("binary_mask", False), "binary_mask"),
            background_color=background,
            num_threads=int(data.get("num_threads", 1)),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "RenderRequest":
        """Load configuration from YAML file."""
        import yaml

        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data.get("render", data))

    def with_overrides(self, **overrides: Any) -> "RenderRequest":
        """Copy with some fields replaced; None values are ignored."""
        data = self.to_dict()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return RenderRequest.from_dict(data)
