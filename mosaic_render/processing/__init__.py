"""
Source image loading and caching.
"""

from .cache import ImageCache, CacheKey, ImageLoadError, load_image, downsample, url_to_path

__all__ = [
    "ImageCache",
    "CacheKey",
    "ImageLoadError",
    "load_image",
    "downsample",
    "url_to_path",
]
