import logging
import warnings
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
from PIL import Image

from .errors import DegenerateClusterWarning, InputError
from .utils import (
    timed, NUM_COLORS, KMEANS_MAX_ITERATIONS, SATURATION_WEIGHT, EXTREME_WEIGHT,
    EXTREME_BONUS, LUMINANCE_LOW, LUMINANCE_HIGH,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuantizedImage:
    """Palette plus per-pixel palette indices of one source raster.

    ``palette[0]`` is the most frequent color and becomes the bottom layer.
    ``indices`` has shape (height, width) and is read-only.
    """
    palette: List[Tuple[int, int, int]]
    indices: np.ndarray

    @property
    def width(self) -> int:
        return self.indices.shape[1]

    @property
    def height(self) -> int:
        return self.indices.shape[0]

    def counts(self) -> np.ndarray:
        return np.bincount(self.indices.ravel(), minlength=len(self.palette))


def image_to_pixels(image) -> Tuple[np.ndarray, Tuple[int, int]]:
    """Flattens an RGBA image (PIL or array) to an (N, 3) int64 array. Alpha is ignored."""
    if isinstance(image, Image.Image):
        arr = np.asarray(image.convert('RGBA'))
    else:
        arr = np.asarray(image)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise InputError(f"expected an RGB(A) raster, got array of shape {arr.shape}")
    h, w = arr.shape[:2]
    if h * w == 0:
        raise InputError("image has zero pixels")
    return arr[..., :3].reshape(-1, 3).astype(np.int64), (h, w)


def squared_distances(pixels: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """(N, 3) x (k, 3) -> (N, k) squared RGB distances."""
    diff = pixels[:, None, :] - centroids[None, :, :]
    return np.einsum('nkc,nkc->nk', diff, diff)


def round_half_up(values):
    return np.floor(np.asarray(values, dtype=float) + 0.5).astype(np.int64)


def kmeans_pp_seed(pixels: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """
    Picks ``k`` initial centroids from the pixels with K-Means++ sampling.

    The first centroid is a uniformly random pixel. Every further centroid is drawn
    with probability proportional to the squared distance of each pixel to its
    nearest already chosen centroid (roulette wheel over the cumulative sum).
    """
    n = len(pixels)
    centroids = [pixels[min(int(rng.random() * n), n - 1)]]

    for _ in range(1, k):
        d = squared_distances(pixels, np.array(centroids)).min(axis=1)
        cumulative = np.cumsum(d)
        target = rng.random() * cumulative[-1]
        idx = int(np.searchsorted(cumulative, target, side='left'))
        centroids.append(pixels[min(idx, n - 1)])

    return np.array(centroids, dtype=np.int64)


def lloyd_iterations(pixels: np.ndarray, centroids: np.ndarray, max_iterations=KMEANS_MAX_ITERATIONS):
    """
    Runs Lloyd rounds until no rounded centroid moves or the cap is reached.

    Returns (centroids, assignments). The assignments are the ones computed in the
    last round, so after hitting the cap they belong to the previous centroids.
    """
    k = len(centroids)
    centroids = centroids.copy()
    assignments = np.zeros(len(pixels), dtype=np.int64)

    for _ in range(max_iterations):
        assignments = np.argmin(squared_distances(pixels, centroids), axis=1)
        counts = np.bincount(assignments, minlength=k)
        sums = np.stack([
            np.bincount(assignments, weights=pixels[:, c], minlength=k) for c in range(3)
        ], axis=1)

        filled = counts > 0
        new_centroids = centroids.copy()
        new_centroids[filled] = round_half_up(sums[filled] / counts[filled, None])

        changed = not np.array_equal(new_centroids, centroids)
        centroids = new_centroids
        if not changed:
            break

    return centroids, assignments


def saturation(pixels: np.ndarray) -> np.ndarray:
    """HSV-style saturation (max - min) / max, 0 for black."""
    mx = pixels.max(axis=1).astype(float)
    mn = pixels.min(axis=1).astype(float)
    return np.divide(mx - mn, mx, out=np.zeros_like(mx), where=mx > 0)


def extremes_bonus(pixels: np.ndarray) -> np.ndarray:
    """EXTREME_BONUS for near-black or near-white pixels, 0 otherwise."""
    lum = (0.299 * pixels[:, 0] + 0.587 * pixels[:, 1] + 0.114 * pixels[:, 2]) / 255
    return np.where((lum < LUMINANCE_LOW) | (lum > LUMINANCE_HIGH), EXTREME_BONUS, 0.0)


def select_medoids(pixels: np.ndarray, assignments: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """
    Replaces every centroid with a real pixel of its cluster.

    Picks the pixel minimising
        dist_to_centroid^2 - saturation * SATURATION_WEIGHT - extreme_bonus * EXTREME_WEIGHT
    which deliberately favours vibrant or near-black/white pixels over the exact mean.
    Clusters without pixels keep their mean centroid.
    """
    dist = np.take_along_axis(squared_distances(pixels, centroids), assignments[:, None], axis=1)[:, 0]
    scores = dist - saturation(pixels) * SATURATION_WEIGHT - extremes_bonus(pixels) * EXTREME_WEIGHT

    medoids = centroids.copy()
    for j in range(len(centroids)):
        members = np.flatnonzero(assignments == j)
        if len(members) == 0:
            LOGGER.warning("Cluster %d received no pixels, keeping centroid %s", j, tuple(centroids[j]))
            continue
        medoids[j] = pixels[members[np.argmin(scores[members])]]
    return medoids


def sort_by_frequency(palette: np.ndarray, assignments: np.ndarray):
    """Reorders clusters by descending pixel count; ties keep their cluster order."""
    k = len(palette)
    counts = np.bincount(assignments, minlength=k)
    order = np.argsort(-counts, kind='stable')
    old_to_new = np.empty(k, dtype=np.int64)
    old_to_new[order] = np.arange(k)
    return palette[order], old_to_new[assignments]


@timed
def quantize_colors(image, k: int = NUM_COLORS, rng=None) -> QuantizedImage:
    """
    Reduces an RGBA raster to ``k`` palette colors and a per-pixel index grid.

    Args:
        image: PIL image or (H, W, 3|4) uint8 array
        k: number of palette entries
        rng: seed, ``numpy.random.Generator`` or None (fresh entropy)

    Returns:
        QuantizedImage with the palette sorted by descending pixel count
    """
    rng = np.random.default_rng(rng)
    pixels, (h, w) = image_to_pixels(image)

    centroids = kmeans_pp_seed(pixels, k, rng)
    centroids, assignments = lloyd_iterations(pixels, centroids)
    medoids = select_medoids(pixels, assignments, centroids)
    empty = np.flatnonzero(np.bincount(assignments, minlength=k) == 0)
    if len(empty):
        # Skip this frame and the timing wrapper so the warning names the caller
        warnings.warn(f"clusters {empty.tolist()} received no pixels", DegenerateClusterWarning, stacklevel=3)
    palette, indices = sort_by_frequency(medoids, assignments)

    grid = indices.astype(np.uint8).reshape(h, w)
    grid.flags.writeable = False
    colors = [tuple(int(c) for c in color) for color in palette]
    LOGGER.info("Quantized %dx%d image to %d colors: %s", w, h, k, colors)
    return QuantizedImage(palette=colors, indices=grid)
