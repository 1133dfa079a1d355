import asyncio
import io
import logging
import os
import tempfile
import zipfile
from collections import namedtuple
from contextlib import contextmanager

from .despeckle import despeckle
from .errors import LayermarkError, MeshGenerationError, EncodingError
from .mesh_utils import generate_layer_mesh
from .package_3mf import build_3mf_package
from .quantize import QuantizedImage, quantize_colors
from .relief import build_layer_stack
from .render_utils import render_preview, make_thumbnail
from .stl_export import encode_stl, stl_filename
from .utils import timed, ensure_dir, DESPECKLE_ITERATIONS

LOGGER = logging.getLogger(__name__)

LayerMesh = namedtuple('LayerMesh', ['index', 'z_min', 'z_max', 'mesh'])


@contextmanager
def stage(name, error_cls):
    """Tags pipeline errors with the stage name and wraps anything else in ``error_cls``."""
    try:
        yield
    except LayermarkError as e:
        if e.stage is None:
            e.stage = name
        raise
    except Exception as e:
        LOGGER.exception("Stage '%s' failed", name)
        raise error_cls(str(e) or type(e).__name__, stage=name) from e


def quantize_image(image, rng=None, despeckle_iterations=DESPECKLE_ITERATIONS) -> QuantizedImage:
    """Quantizes a prepared canvas to the 4-color palette and cleans up speckles."""
    with stage('quantize', LayermarkError):
        quantized = quantize_colors(image, rng=rng)
    with stage('despeckle', LayermarkError):
        cleaned = despeckle(quantized.indices, despeckle_iterations, num_colors=len(quantized.palette))
    return QuantizedImage(palette=quantized.palette, indices=cleaned)


@timed
def build_layer_meshes(quantized: QuantizedImage, settings, progress_cb=None):
    """Relief + mesh stage. Returns one LayerMesh per palette index, empty ones included."""
    with stage('relief', MeshGenerationError):
        slabs = build_layer_stack(quantized.indices, settings)
        pixel_size = settings.pixel_size(quantized.width)

    layers = []
    with stage('mesh', MeshGenerationError):
        for n, slab in enumerate(slabs, start=1):
            if slab.is_empty:
                LOGGER.info("Layer %d has no pixels, its mesh stays empty", slab.index + 1)
            mesh = generate_layer_mesh(slab.footprint, slab.z_min, slab.z_max, pixel_size)
            layers.append(LayerMesh(slab.index, slab.z_min, slab.z_max, mesh))
            if progress_cb:
                progress_cb(n / len(slabs))
    return layers


def encode_layer_stls(layers, palette):
    """{filename: stl bytes} for every non-empty layer, in stacking order."""
    with stage('stl', EncodingError):
        return {
            stl_filename(layer.index, palette[layer.index]): encode_stl(layer.mesh)
            for layer in layers
            if len(layer.mesh.faces) > 0
        }


def zip_files(files):
    with stage('zip', EncodingError):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
            for name, data in files.items():
                archive.writestr(name, data)
        return buf.getvalue()


def package_3mf(layers, quantized, settings, thumbnail=None):
    with stage('3mf', EncodingError):
        if thumbnail is None:
            thumbnail = render_preview(quantized)
        return build_3mf_package(layers, quantized.palette, settings, make_thumbnail(thumbnail))


def export_stls(quantized, settings):
    return encode_layer_stls(build_layer_meshes(quantized, settings), quantized.palette)


def export_stl_zip(quantized, settings):
    return zip_files(export_stls(quantized, settings))


def export_3mf(quantized, settings, thumbnail=None):
    layers = build_layer_meshes(quantized, settings)
    return package_3mf(layers, quantized, settings, thumbnail)


async def export_stl_zip_async(quantized, settings, progress_cb=None):
    """Same as export_stl_zip, yielding to the event loop between stages."""
    report = progress_cb or (lambda v: None)
    report(0.0)
    await asyncio.sleep(0)
    layers = build_layer_meshes(quantized, settings, progress_cb=lambda v: report(0.6 * v))
    await asyncio.sleep(0)
    files = encode_layer_stls(layers, quantized.palette)
    report(0.8)
    await asyncio.sleep(0)
    data = zip_files(files)
    report(1.0)
    return data


async def export_3mf_async(quantized, settings, thumbnail=None, progress_cb=None):
    """Same as export_3mf, yielding to the event loop between stages."""
    report = progress_cb or (lambda v: None)
    report(0.0)
    await asyncio.sleep(0)
    layers = build_layer_meshes(quantized, settings, progress_cb=lambda v: report(0.7 * v))
    await asyncio.sleep(0)
    data = package_3mf(layers, quantized, settings, thumbnail)
    report(1.0)
    return data


def write_output(data: bytes, path):
    """Writes a finished payload through a temp file, so a failed write leaves no partial file."""
    with stage('write', EncodingError):
        directory = os.path.dirname(os.path.abspath(path))
        ensure_dir(directory)
        # Same directory so os.replace stays a rename on one filesystem
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.layermark-')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(tmp_path, path)
        except Exception:
            os.remove(tmp_path)
            raise
    LOGGER.info("Wrote %s (%d bytes)", path, len(data))
