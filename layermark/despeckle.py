import numpy as np

from .utils import timed, NUM_COLORS, DESPECKLE_ITERATIONS, DESPECKLE_MIN_SUPPORT, DESPECKLE_QUORUM

_OUTSIDE = 255  # Padding value, never a palette index

NEIGHBOR_OFFSETS = [(dy, dx) for dy in (-1, 0, 1) for dx in (-1, 0, 1) if (dy, dx) != (0, 0)]


def neighbor_counts(grid: np.ndarray, num_colors: int = NUM_COLORS) -> np.ndarray:
    """
    Counts, for every pixel, how many of its up to 8 neighbors hold each color.

    Returns an int array of shape (num_colors, H, W). Neighbors outside the grid
    are not counted.
    """
    h, w = grid.shape
    padded = np.pad(grid.astype(np.int16), 1, constant_values=_OUTSIDE)
    counts = np.zeros((num_colors, h, w), dtype=np.int16)
    for dy, dx in NEIGHBOR_OFFSETS:
        shifted = padded[1 + dy:1 + dy + h, 1 + dx:1 + dx + w]
        for c in range(num_colors):
            counts[c] += shifted == c
    return counts


def despeckle_once(grid: np.ndarray, num_colors: int = NUM_COLORS,
                   min_support=DESPECKLE_MIN_SUPPORT, quorum=DESPECKLE_QUORUM) -> np.ndarray:
    """
    One majority-vote pass. Reads only ``grid`` and returns a new array.

    A pixel with fewer than ``min_support`` same-colored neighbors switches to the
    most common neighbor color (lowest index on ties), but only if that color has
    at least ``quorum`` votes.
    """
    counts = neighbor_counts(grid, num_colors)
    support = np.take_along_axis(counts, grid[None].astype(np.intp), axis=0)[0]
    majority = np.argmax(counts, axis=0)
    majority_count = counts.max(axis=0)

    switch = (support < min_support) & (majority_count >= quorum)
    return np.where(switch, majority, grid).astype(grid.dtype)


@timed
def despeckle(grid: np.ndarray, iterations: int = DESPECKLE_ITERATIONS, num_colors: int = NUM_COLORS) -> np.ndarray:
    """Runs ``iterations`` despeckle passes, each on the previous pass's output."""
    current = np.asarray(grid)
    for _ in range(iterations):
        current = despeckle_once(current, num_colors)
    if current is grid:
        current = current.copy()
    current.flags.writeable = False
    return current
