"""
Scale-aware pixel filters applied to source rasters before resampling.

Each stage mutates a float raster in place and receives the scale of the
loaded pyramid level, so spatial parameters given at full resolution can be
shrunk to match.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple
import numpy as np
import cv2


class FilterStage(ABC):
    """A single in-place filter."""

    @abstractmethod
    def process(self, raster: np.ndarray, scale: float) -> None:
        """
        Filter `raster` in place.

        Args:
            raster: 2D float32 raster
            scale: Scale of the raster relative to full resolution (1/2**level)
        """


class ValueToNoise(FilterStage):
    """
    Replace every pixel equal to `value` with uniform noise.

    Used to hide saturated or empty borders that would otherwise bias
    contrast normalization and matching.
    """

    def __init__(
        self,
        value: float,
        min_noise: float,
        max_noise: float,
        seed: Optional[int] = None,
    ):
        if min_noise > max_noise:
            raise ValueError(f"min_noise ({min_noise}) must be <= max_noise ({max_noise})")
        self.value = value
        self.min_noise = min_noise
        self.max_noise = max_noise
        self.seed = seed

    def process(self, raster: np.ndarray, scale: float) -> None:
        hits = raster == self.value
        count = int(np.count_nonzero(hits))
        if count == 0:
            return
        rng = np.random.default_rng(self.seed)
        raster[hits] = rng.uniform(self.min_noise, self.max_noise, size=count)


class NormalizeLocalContrast(FilterStage):
    """
    Normalize intensity by the local mean and standard deviation.

    Block radii are given at full resolution and multiplied by the scale.
    With `center` the local mean moves to the middle of the value range; with
    `stretch`, `stds` local standard deviations span half the value range.
    """

    def __init__(
        self,
        block_radius_x: int,
        block_radius_y: int,
        stds: float,
        center: bool = True,
        stretch: bool = True,
        value_range: Tuple[float, float] = (0.0, 255.0),
    ):
        if block_radius_x < 0 or block_radius_y < 0:
            raise ValueError("block radii must be >= 0")
        if stds <= 0:
            raise ValueError(f"stds must be > 0, got {stds}")
        self.block_radius_x = block_radius_x
        self.block_radius_y = block_radius_y
        self.stds = stds
        self.center = center
        self.stretch = stretch
        self.value_range = value_range

    def process(self, raster: np.ndarray, scale: float) -> None:
        if raster.size == 0 or not (self.center or self.stretch):
            return

        radius_x = max(1, int(round(self.block_radius_x * scale)))
        radius_y = max(1, int(round(self.block_radius_y * scale)))
        ksize = (2 * radius_x + 1, 2 * radius_y + 1)

        values = raster.astype(np.float32, copy=False)
        mean = cv2.blur(values, ksize, borderType=cv2.BORDER_REFLECT)
        mean_sq = cv2.blur(values * values, ksize, borderType=cv2.BORDER_REFLECT)
        std = np.sqrt(np.maximum(mean_sq - mean * mean, 0.0))

        low, high = self.value_range
        half_range = (high - low) * 0.5
        target_mean = low + half_range if self.center else mean

        deviation = values - mean
        if self.stretch:
            spread = std * self.stds
            # flat blocks carry no contrast to stretch
            flat = spread < 1e-3
            deviation = np.where(flat, 0.0, deviation / np.where(flat, 1.0, spread) * half_range)

        np.clip(target_mean + deviation, low, high, out=raster)


class FilterPipeline:
    """
    Ordered sequence of filter stages.

    Example:
        >>> pipeline = FilterPipeline([ValueToNoise(0, 64, 191)])
        >>> pipeline.apply(raster, scale=0.25)
    """

    def __init__(self, stages: Optional[Iterable[FilterStage]] = None):
        self.stages: List[FilterStage] = list(stages or [])

    def add(self, stage: FilterStage) -> None:
        self.stages.append(stage)

    def apply(self, raster: np.ndarray, scale: float) -> None:
        """Run every stage, in order, on `raster` in place."""
        for stage in self.stages:
            stage.process(raster, scale)

    def __len__(self) -> int:
        return len(self.stages)


def default_filter_pipeline(seed: Optional[int] = None) -> FilterPipeline:
    """
    Filter bank used for alignment renders.

    Pure black and pure white become mid-grey noise, then local contrast is
    normalized over 500 pixel blocks at full resolution.
    """
    return FilterPipeline([
        ValueToNoise(0, 64, 191, seed=seed),
        ValueToNoise(255, 64, 191, seed=seed),
        NormalizeLocalContrast(500, 500, 3, center=True, stretch=True),
    ])
