import logging
import os
import time
from functools import wraps

LOGGER = logging.getLogger(__name__)

# Configuration defaults
PIXELS_PER_MM = 8  # Raster resolution of the board
NUM_COLORS = 4  # Palette size, fixed

KMEANS_MAX_ITERATIONS = 10
SATURATION_WEIGHT = 5000  # Medoid score bonus per unit of saturation
EXTREME_WEIGHT = 2000  # Medoid score bonus for near-black / near-white pixels
EXTREME_BONUS = 0.5
LUMINANCE_LOW = 0.10
LUMINANCE_HIGH = 0.90

DESPECKLE_ITERATIONS = 2
DESPECKLE_MIN_SUPPORT = 2  # Fewer same-color neighbors than this is weak support
DESPECKLE_QUORUM = 3  # Votes the majority neighbor color needs to take over

FLAT_LAYER_HEIGHT = 0.6
TACTILE_LAYER_HEIGHTS = (0.6, 0.8, 1.0, 1.2)

THUMBNAIL_SIZE = 512


def timed(func):
    """Decorator to log the execution time of a function."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        t0 = time.perf_counter()
        result = func(*args, **kwargs)
        t1 = time.perf_counter()
        LOGGER.debug("[TIMING] %-25s: %0.3fs", func.__name__, t1 - t0)
        return result

    return wrapper


def ensure_dir(path):
    """Ensures that a directory exists, creating it if necessary."""
    if path and not os.path.exists(path):
        os.makedirs(path)


def rgb_to_hex(color):
    """(r, g, b) -> 'rrggbb'"""
    return ''.join(f'{int(c):02x}' for c in color[:3])


def hex_to_rgb(value):
    value = value.lstrip('#')
    return tuple(int(value[i:i + 2], 16) for i in (0, 2, 4))
