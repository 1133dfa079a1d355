# layermark - turns a raster into four stacked, colored, printable solids
# noqa imports for re-export
from .utils import timed, PIXELS_PER_MM, NUM_COLORS  # noqa: F401
from .errors import LayermarkError, InputError, MeshGenerationError, EncodingError, DegenerateClusterWarning  # noqa: F401
from .image_io import load_image, prepare_canvas  # noqa: F401
from .quantize import QuantizedImage, quantize_colors  # noqa: F401
from .despeckle import despeckle  # noqa: F401
from .relief import Settings, LayerSlab, build_layer_stack, load_settings, save_settings  # noqa: F401
from .mesh_utils import generate_layer_mesh  # noqa: F401
from .stl_export import encode_stl  # noqa: F401
from .package_3mf import build_3mf_package, write_3mf_package  # noqa: F401
from .render_utils import render_preview, make_thumbnail  # noqa: F401
from .pipeline import (  # noqa: F401
    LayerMesh, quantize_image, build_layer_meshes, export_stls, export_stl_zip, export_3mf,
    export_stl_zip_async, export_3mf_async, write_output,
)

__version__ = "0.1.0"
__all__ = [
    'timed', 'PIXELS_PER_MM', 'NUM_COLORS',
    'LayermarkError', 'InputError', 'MeshGenerationError', 'EncodingError', 'DegenerateClusterWarning',
    'load_image', 'prepare_canvas',
    'QuantizedImage', 'quantize_colors', 'despeckle',
    'Settings', 'LayerSlab', 'build_layer_stack', 'load_settings', 'save_settings',
    'generate_layer_mesh', 'encode_stl', 'build_3mf_package', 'write_3mf_package',
    'render_preview', 'make_thumbnail',
    'LayerMesh', 'quantize_image', 'build_layer_meshes', 'export_stls', 'export_stl_zip', 'export_3mf',
    'export_stl_zip_async', 'export_3mf_async', 'write_output',
]
