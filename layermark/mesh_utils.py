import logging

import numpy as np
import trimesh

from .errors import MeshGenerationError
from .mask_utils import mask_to_cell_bounds
from .utils import timed

LOGGER = logging.getLogger(__name__)


def _point(x, y, z):
    return np.stack(np.broadcast_arrays(x, y, z), axis=1).astype(np.float64)


def _quad_triangles(a, b, c, d):
    """Splits quads a-b-c-d (counter-clockwise seen from outside) into triangles."""
    return np.concatenate([np.stack([a, b, c], axis=1), np.stack([a, c, d], axis=1)], axis=0)


def boundary_edges(mask):
    """
    Marks the cell edges of a mask that need a wall.

    Returns four boolean arrays (north, south, west, east) shaped like the mask.
    An edge needs a wall when its cell is True and the cell across it is False
    or outside the grid.
    """
    padded = np.pad(mask, 1, constant_values=False)
    inner = padded[1:-1, 1:-1]
    north = inner & ~padded[:-2, 1:-1]
    south = inner & ~padded[2:, 1:-1]
    west = inner & ~padded[1:-1, :-2]
    east = inner & ~padded[1:-1, 2:]
    return north, south, west, east


def mask_to_triangles(mask, z_min, z_max, pixel_size):
    """
    Builds the boundary triangles of a mask extruded between z_min and z_max.

    Every True cell contributes a top and a bottom quad; walls are only emitted on
    edges facing a False or out-of-grid cell. Winding gives outward normals.

    Returns:
        float64 array of shape (n, 3, 3)
    """
    mask = np.asarray(mask, dtype=bool)
    if not mask.any():
        return np.empty((0, 3, 3), dtype=np.float64)

    parts = []
    rows, cols, x0, x1, y0, y1 = mask_to_cell_bounds(mask, pixel_size)

    # Top faces up, bottom faces down
    parts.append(_quad_triangles(_point(x0, y0, z_max), _point(x1, y0, z_max),
                                 _point(x1, y1, z_max), _point(x0, y1, z_max)))
    parts.append(_quad_triangles(_point(x0, y0, z_min), _point(x0, y1, z_min),
                                 _point(x1, y1, z_min), _point(x1, y0, z_min)))

    north, south, west, east = (edge[rows, cols] for edge in boundary_edges(mask))

    if north.any():
        xa, xb, y = x0[north], x1[north], y1[north]
        parts.append(_quad_triangles(_point(xa, y, z_min), _point(xa, y, z_max),
                                     _point(xb, y, z_max), _point(xb, y, z_min)))
    if south.any():
        xa, xb, y = x0[south], x1[south], y0[south]
        parts.append(_quad_triangles(_point(xa, y, z_min), _point(xb, y, z_min),
                                     _point(xb, y, z_max), _point(xa, y, z_max)))
    if west.any():
        x, ya, yb = x0[west], y0[west], y1[west]
        parts.append(_quad_triangles(_point(x, ya, z_min), _point(x, ya, z_max),
                                     _point(x, yb, z_max), _point(x, yb, z_min)))
    if east.any():
        x, ya, yb = x1[east], y0[east], y1[east]
        parts.append(_quad_triangles(_point(x, ya, z_min), _point(x, yb, z_min),
                                     _point(x, yb, z_max), _point(x, ya, z_max)))

    return np.concatenate(parts, axis=0)


def triangles_to_mesh(triangles):
    """Wraps a triangle soup in a trimesh.Trimesh with coincident vertices merged."""
    if len(triangles) == 0:
        return trimesh.Trimesh()
    vertices = triangles.reshape(-1, 3)
    faces = np.arange(len(vertices)).reshape(-1, 3)
    return trimesh.Trimesh(vertices=vertices, faces=faces, process=True)


@timed
def generate_layer_mesh(mask, z_min, z_max, pixel_size):
    """
    Generates the closed solid of one occupancy mask. An all-False mask gives an empty mesh.

    Cells that touch only at a corner share an edge between four faces. The solid is
    still closed, but trimesh reports is_watertight=False for such a mask, so check
    edge use counts instead of relying on is_watertight.
    """
    if z_max <= z_min:
        raise MeshGenerationError(f"empty z-range [{z_min}, {z_max})", stage='mesh')
    if pixel_size <= 0:
        raise MeshGenerationError(f"pixel size must be positive, got {pixel_size}", stage='mesh')

    triangles = mask_to_triangles(mask, z_min, z_max, pixel_size)
    mesh = triangles_to_mesh(triangles)
    LOGGER.debug("Mesh with %d triangles for z=[%.3f, %.3f)", len(mesh.faces), z_min, z_max)
    return mesh
