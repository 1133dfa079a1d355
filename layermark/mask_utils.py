import numpy as np

from .utils import NUM_COLORS


def extract_color_masks(grid, num_colors=NUM_COLORS):
    """
    Extracts one boolean occupancy mask per palette index from an index grid.
    The masks partition the grid: every pixel is True in exactly one of them.
    """
    grid = np.asarray(grid)
    return [grid == i for i in range(num_colors)]


def cumulative_masks(grid, num_colors=NUM_COLORS):
    """Masks of every pixel whose index is at least ``i``; each contains the next."""
    grid = np.asarray(grid)
    return [grid >= i for i in range(num_colors)]


def mask_to_cell_bounds(mask, pixel_size):
    """
    Returns x0, x1, y0, y1 arrays (mm) of every True cell of a mask.

    Row 0 of the raster is the top edge of the model, so rows are flipped
    vertically: cell (r, c) spans y in [(H - 1 - r) * s, (H - r) * s].
    """
    h_px = mask.shape[0]
    rows, cols = np.nonzero(mask)
    x0 = cols * pixel_size
    x1 = (cols + 1) * pixel_size
    y0 = (h_px - 1 - rows) * pixel_size
    y1 = (h_px - rows) * pixel_size
    return rows, cols, x0, x1, y0, y1
