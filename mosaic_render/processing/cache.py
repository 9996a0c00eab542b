"""
Source image loading and caching.

Rasters are decoded with OpenCV, downsampled by whole pyramid levels and
cached in memory under an LRU policy bounded by a total pixel budget.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from collections import OrderedDict
import numpy as np
import cv2

logger = logging.getLogger(__name__)


class ImageLoadError(IOError):
    """Raised when a source image or mask cannot be read."""


def url_to_path(url: str) -> str:
    """Strip a file:// scheme from a URL."""
    if url.startswith("file://"):
        return url[len("file://"):]
    return url


def downsample(raster: np.ndarray, levels: int) -> np.ndarray:
    """
    Halve width and height `levels` times using area averaging.

    A dimension that reaches zero yields an empty raster.
    """
    result = raster
    for _ in range(levels):
        height, width = result.shape[:2]
        new_width, new_height = width // 2, height // 2
        if new_width == 0 or new_height == 0:
            return np.zeros((new_height, new_width), dtype=raster.dtype)
        result = cv2.resize(result, (new_width, new_height), interpolation=cv2.INTER_AREA)
    return result


def load_image(url: str, downsample_levels: int = 0, is_mask: bool = False) -> np.ndarray:
    """
    Decode an image without caching.

    Masks are read as 8-bit grey. Images keep their bit depth; colour
    images are converted to grey.

    Args:
        url: Path or file:// URL
        downsample_levels: Number of 2x downsampling steps to apply
        is_mask: Whether the image is a mask

    Returns:
        2D numpy array

    Raises:
        ImageLoadError: If the file cannot be decoded
    """
    path = url_to_path(url)
    flags = cv2.IMREAD_GRAYSCALE if is_mask else cv2.IMREAD_UNCHANGED
    raster = cv2.imread(path, flags)
    if raster is None:
        raise ImageLoadError(f"failed to load {'mask' if is_mask else 'image'} {url}")

    if raster.ndim == 3:
        code = cv2.COLOR_BGRA2GRAY if raster.shape[2] == 4 else cv2.COLOR_BGR2GRAY
        raster = cv2.cvtColor(raster, code)

    if downsample_levels > 0:
        raster = downsample(raster, downsample_levels)
    return raster


ImageLoader = Callable[[str, int, bool], np.ndarray]


@dataclass(frozen=True)
class CacheKey:
    """Unique key for a decoded raster."""
    url: str
    downsample_levels: int = 0
    is_mask: bool = False

    def __str__(self) -> str:
        kind = "mask" if self.is_mask else "image"
        return f"{kind}:{self.url}@{self.downsample_levels}"


class ImageCache:
    """
    Thread-safe LRU cache of decoded rasters.

    The cache is shared across tiles and across concurrent renders.
    Cached arrays are returned directly; callers must copy before mutating.

    Example:
        >>> cache = ImageCache(max_pixels=256 * 1024 * 1024)
        >>> raster = cache.get("file:///data/tile.png", 2, False)
        >>> cache.size()
        1
    """

    DEFAULT_MAX_PIXELS = 1024 * 1024 * 1024

    def __init__(
        self,
        max_pixels: int = DEFAULT_MAX_PIXELS,
        loader: Optional[ImageLoader] = None,
    ):
        """
        Initialize cache.

        Args:
            max_pixels: Total pixel budget; 0 disables caching
            loader: Function (url, downsample_levels, is_mask) -> raster
        """
        if max_pixels < 0:
            raise ValueError(f"max_pixels must be >= 0, got {max_pixels}")
        self.max_pixels = max_pixels
        self.loader = loader or load_image

        self._entries: "OrderedDict[CacheKey, np.ndarray]" = OrderedDict()
        self._pixel_count = 0
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    @classmethod
    def disabled(cls, loader: Optional[ImageLoader] = None) -> "ImageCache":
        """Create a cache that never keeps anything."""
        return cls(max_pixels=0, loader=loader)

    def get(self, url: str, downsample_levels: int = 0, is_mask: bool = False) -> np.ndarray:
        """
        Get a raster, loading it on a miss.

        Raises:
            ImageLoadError: If the raster cannot be loaded
        """
        key = CacheKey(url, downsample_levels, is_mask)

        with self._lock:
            raster = self._entries.get(key)
            if raster is not None:
                self._entries.move_to_end(key)
                self._hits += 1
                return raster
            self._misses += 1

        # decode outside the lock so other readers are not blocked
        raster = self.loader(url, downsample_levels, is_mask)

        if self.max_pixels > 0:
            with self._lock:
                self._add(key, raster)
        return raster

    def get_non_cached(self, url: str, downsample_levels: int = 0, is_mask: bool = False) -> np.ndarray:
        """Load a raster, bypassing the cache entirely."""
        return self.loader(url, downsample_levels, is_mask)

    def size(self) -> int:
        """Number of cached rasters."""
        with self._lock:
            return len(self._entries)

    def clear(self) -> int:
        """
        Clear all cached entries.

        Returns:
            Number of entries cleared
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._pixel_count = 0
            return count

    def invalidate(self, url: str) -> int:
        """Drop every entry for `url`; returns the number removed."""
        with self._lock:
            keys = [k for k in self._entries if k.url == url]
            for key in keys:
                self._remove(key)
            return len(keys)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "items": len(self._entries),
                "pixels": self._pixel_count,
                "max_pixels": self.max_pixels,
                "hits": self._hits,
                "misses": self._misses,
            }

    def keys(self) -> List[CacheKey]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries)

    def _add(self, key: CacheKey, raster: np.ndarray) -> None:
        """Add entry with LRU eviction. Caller holds the lock."""
        pixels = int(raster.shape[0]) * int(raster.shape[1]) if raster.ndim >= 2 else int(raster.size)
        if pixels > self.max_pixels:
            logger.debug(f"Not caching {key}: {pixels} pixels exceeds budget {self.max_pixels}")
            return

        if key in self._entries:
            self._remove(key)

        while self._entries and self._pixel_count + pixels > self.max_pixels:
            oldest = next(iter(self._entries))
            self._remove(oldest)

        self._entries[key] = raster
        self._pixel_count += pixels

    def _remove(self, key: CacheKey) -> None:
        raster = self._entries.pop(key)
        self._pixel_count -= int(raster.shape[0]) * int(raster.shape[1]) if raster.ndim >= 2 else int(raster.size)
