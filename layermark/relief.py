import json
import logging
from dataclasses import dataclass, field, asdict
from typing import List, Tuple

import numpy as np

from .mask_utils import extract_color_masks, cumulative_masks
from .utils import (
    PIXELS_PER_MM, NUM_COLORS, FLAT_LAYER_HEIGHT, TACTILE_LAYER_HEIGHTS, timed,
)

LOGGER = logging.getLogger(__name__)


@dataclass
class Settings:
    """Physical build settings of one board. Heights and sizes are in millimeters."""
    base_height: float = 0.8
    layer_heights: Tuple[float, float, float, float] = TACTILE_LAYER_HEIGHTS
    is_tactile: bool = True
    width_mm: float = 50.0
    height_mm: float = 160.0
    # Slab i also covers pixels of every higher index, so no slab floats
    fill_below: bool = False

    def __post_init__(self):
        self.layer_heights = tuple(float(h) for h in self.layer_heights)
        if len(self.layer_heights) != NUM_COLORS:
            raise ValueError(f"layer_heights needs {NUM_COLORS} values, got {len(self.layer_heights)}")
        if self.base_height <= 0:
            raise ValueError(f"base_height must be positive, got {self.base_height}")
        for i, h in enumerate(self.layer_heights):
            if h <= 0:
                raise ValueError(f"layer_heights[{i}] must be positive, got {h}")
        if self.width_mm <= 0 or self.height_mm <= 0:
            raise ValueError(f"board size must be positive, got {self.width_mm}x{self.height_mm}")

    @classmethod
    def flat(cls, **kwargs):
        return cls(layer_heights=(FLAT_LAYER_HEIGHT,) * NUM_COLORS, is_tactile=False, **kwargs)

    @classmethod
    def tactile(cls, **kwargs):
        return cls(layer_heights=TACTILE_LAYER_HEIGHTS, is_tactile=True, **kwargs)

    @property
    def resolution(self) -> Tuple[int, int]:
        """(width_px, height_px) of the index grid."""
        return round(self.width_mm * PIXELS_PER_MM), round(self.height_mm * PIXELS_PER_MM)

    def pixel_size(self, width_px=None) -> float:
        """Millimeters per pixel for a grid ``width_px`` wide (default: the board resolution)."""
        return self.width_mm / (width_px or self.resolution[0])

    def effective_layer_heights(self) -> Tuple[float, ...]:
        """Layer heights used for geometry; flat mode repeats the first one."""
        if not self.is_tactile:
            return (self.layer_heights[0],) * NUM_COLORS
        return self.layer_heights

    def to_dict(self) -> dict:
        data = asdict(self)
        data['layer_heights'] = list(self.layer_heights)
        return data

    @classmethod
    def from_dict(cls, data: dict):
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def load_settings(path) -> Settings:
    with open(path, 'r', encoding='utf-8') as f:
        return Settings.from_dict(json.load(f))


def save_settings(settings: Settings, path):
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(settings.to_dict(), f, indent=2)


@dataclass
class LayerSlab:
    """One color of the layer stack: its pixels and its z-range [z_min, z_max)."""
    index: int
    mask: np.ndarray
    z_min: float
    z_max: float
    footprint: np.ndarray = field(default=None, repr=False)

    def __post_init__(self):
        if self.footprint is None:
            self.footprint = self.mask

    @property
    def thickness(self) -> float:
        return self.z_max - self.z_min

    @property
    def is_empty(self) -> bool:
        return not self.footprint.any()

    @property
    def pixel_count(self) -> int:
        return int(self.mask.sum())


def layer_z_ranges(settings: Settings) -> List[Tuple[float, float]]:
    """
    Stacks the layers bottom-up. Index 0 spans [0, base + h0), every following
    index starts at the previous top.
    """
    heights = settings.effective_layer_heights()
    ranges = []
    top = 0.0
    for i, h in enumerate(heights):
        z_min = top
        top = z_min + h + (settings.base_height if i == 0 else 0.0)
        ranges.append((z_min, top))
    return ranges


@timed
def build_layer_stack(grid, settings: Settings) -> List[LayerSlab]:
    """Builds the 4 slabs (mask + z-range) of a cleaned index grid."""
    grid = np.asarray(grid)
    masks = extract_color_masks(grid)
    footprints = cumulative_masks(grid) if settings.fill_below else masks

    slabs = []
    for i, ((z_min, z_max), mask, footprint) in enumerate(zip(layer_z_ranges(settings), masks, footprints)):
        slab = LayerSlab(index=i, mask=mask, z_min=z_min, z_max=z_max, footprint=footprint)
        LOGGER.info("Layer %d: %d px, z=[%.3f, %.3f)", i + 1, slab.pixel_count, z_min, z_max)
        slabs.append(slab)
    return slabs
