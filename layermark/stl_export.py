import io
import logging
import struct

from .errors import EncodingError
from .utils import timed, rgb_to_hex

LOGGER = logging.getLogger(__name__)

STL_HEADER_SIZE = 80


def _check_header(header):
    if isinstance(header, str):
        header = header.encode("ascii", errors="replace")
    if len(header) > STL_HEADER_SIZE:
        raise EncodingError(f"STL header longer than {STL_HEADER_SIZE} bytes", stage='stl')
    # Binary STL readers treat a header starting with "solid" as ASCII
    if header.lstrip().lower().startswith(b"solid"):
        raise EncodingError("STL header must not start with 'solid'", stage='stl')
    return header.ljust(STL_HEADER_SIZE, b" ")


@timed
def encode_stl(mesh, header=None):
    """
    Serializes a trimesh.Trimesh to binary STL bytes through trimesh's exporter.

    ``header`` optionally replaces the 80-byte header trimesh writes (all zeros).
    """
    padded = _check_header(header) if header is not None else None
    stl_buf = io.BytesIO()
    mesh.export(file_obj=stl_buf, file_type='stl')
    data = stl_buf.getvalue()
    if padded is not None:
        data = padded + data[STL_HEADER_SIZE:]
    LOGGER.debug("Encoded STL with %d triangles", len(mesh.faces))
    return data


def decode_stl_header(data):
    """Returns (header, triangle_count) of a binary STL buffer."""
    if len(data) < STL_HEADER_SIZE + 4:
        raise EncodingError("buffer too short for a binary STL", stage='stl')
    (count,) = struct.unpack_from("<I", data, STL_HEADER_SIZE)
    return bytes(data[:STL_HEADER_SIZE]), count


def stl_filename(index, color):
    """layer_<n>_<rrggbb>.stl, n counted from 1 in stacking order."""
    return f"layer_{index + 1}_{rgb_to_hex(color)}.stl"
