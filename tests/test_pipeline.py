import asyncio
import base64
import io
import zipfile

import numpy as np
import pytest
from PIL import Image

from conftest import png_bytes, solid_image
from layermark.errors import EncodingError, InputError, LayermarkError, MeshGenerationError
from layermark.image_io import load_image, prepare_canvas
from layermark.pipeline import (
    build_layer_meshes, export_3mf, export_3mf_async, export_stl_zip, export_stl_zip_async,
    export_stls, quantize_image, stage, write_output,
)
from layermark.relief import Settings
from layermark.render_utils import make_thumbnail, render_preview
from layermark.stl_export import decode_stl_header

pytestmark = pytest.mark.filterwarnings('ignore::layermark.errors.DegenerateClusterWarning')


def test_solid_red_end_to_end():
    quantized = quantize_image(solid_image(2, 2, (255, 0, 0)), rng=1)
    assert quantized.palette[0] == (255, 0, 0)
    np.testing.assert_array_equal(quantized.indices, np.zeros((2, 2)))

    layers = build_layer_meshes(quantized, Settings(base_height=0.8, layer_heights=(0.6, 0.8, 1.0, 1.2)))
    assert [len(layer.mesh.faces) > 0 for layer in layers] == [True, False, False, False]
    assert layers[0].z_min == 0.0
    assert layers[0].z_max == pytest.approx(1.4)
    # 2x2 block: 8 top, 8 bottom, 8 perimeter wall quads
    assert len(layers[0].mesh.faces) == 32
    assert layers[0].mesh.is_watertight


def test_single_pixel_exports_one_twelve_triangle_stl():
    quantized = quantize_image(solid_image(1, 1, (255, 0, 0)), rng=2)
    files = export_stls(quantized, Settings())

    assert list(files) == ['layer_1_ff0000.stl']
    data = files['layer_1_ff0000.stl']
    assert decode_stl_header(data)[1] == 12
    assert len(data) == 84 + 50 * 12


def test_stl_zip_contains_one_file_per_non_empty_layer(four_band_image):
    quantized = quantize_image(four_band_image, rng=0, despeckle_iterations=0)
    data = export_stl_zip(quantized, Settings(width_mm=4, height_mm=20))

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert archive.namelist() == [
            'layer_1_fa1414.stl', 'layer_2_14c81e.stl', 'layer_3_1e28dc.stl', 'layer_4_fafafa.stl',
        ]


def test_export_3mf_with_default_thumbnail(four_band_image):
    quantized = quantize_image(four_band_image, rng=0)
    data = export_3mf(quantized, Settings(width_mm=4, height_mm=20))

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        thumb = Image.open(io.BytesIO(archive.read('Metadata/thumbnail.png')))
        assert thumb.size == (4, 20)
        assert '3D/3dmodel.model' in archive.namelist()


def test_async_exports_report_progress(four_band_image):
    quantized = quantize_image(four_band_image, rng=0)
    settings = Settings(width_mm=4, height_mm=20)
    progress = []

    data = asyncio.run(export_3mf_async(quantized, settings, progress_cb=progress.append))
    assert progress[0] == 0.0 and progress[-1] == 1.0
    assert progress == sorted(progress)
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert '3D/3dmodel.model' in archive.namelist()

    stl_zip = asyncio.run(export_stl_zip_async(quantized, settings))
    with zipfile.ZipFile(io.BytesIO(stl_zip)) as archive:
        assert len(archive.namelist()) == 4


def test_fill_below_meshes_stay_watertight(four_band_image):
    quantized = quantize_image(four_band_image, rng=0)
    layers = build_layer_meshes(quantized, Settings(width_mm=4, height_mm=20, fill_below=True))

    assert all(layer.mesh.is_watertight for layer in layers)
    np.testing.assert_allclose(layers[0].mesh.bounds[:, :2], [[0, 0], [4, 20]])


def test_zero_pixel_input_fails_in_quantize_stage():
    with pytest.raises(InputError) as info:
        quantize_image(np.zeros((0, 0, 4), dtype=np.uint8))
    assert info.value.stage == 'quantize'
    assert str(info.value).startswith('quantize:')


def test_stage_wraps_unexpected_errors():
    with pytest.raises(EncodingError) as info:
        with stage('stl', EncodingError):
            raise MemoryError()
    assert info.value.stage == 'stl'
    assert isinstance(info.value.__cause__, MemoryError)


def test_stage_keeps_pipeline_errors_and_fills_stage():
    with pytest.raises(MeshGenerationError) as info:
        with stage('mesh', EncodingError):
            raise MeshGenerationError('bad range')
    assert info.value.stage == 'mesh'
    assert isinstance(info.value, LayermarkError)


def test_write_output(tmp_path):
    target = tmp_path / 'out' / 'board.3mf'
    write_output(b'payload', target)
    assert target.read_bytes() == b'payload'

    blocker = tmp_path / 'file'
    blocker.write_bytes(b'')
    with pytest.raises(EncodingError):
        write_output(b'payload', blocker / 'board.3mf')


def test_failed_write_keeps_previous_file(tmp_path):
    target = tmp_path / 'board.3mf'
    target.write_bytes(b'old')

    with pytest.raises(EncodingError):
        write_output('not bytes', target)

    assert target.read_bytes() == b'old'
    assert list(tmp_path.iterdir()) == [target]


def test_load_image_sources(tmp_path):
    img = solid_image(3, 2, (0, 255, 0))
    raw = png_bytes(img)
    path = tmp_path / 'img.png'
    path.write_bytes(raw)
    encoded = base64.b64encode(raw).decode()

    for source in (img, raw, str(path), path, encoded, f'data:image/png;base64,{encoded}'):
        loaded = load_image(source)
        assert loaded.mode == 'RGBA'
        assert loaded.size == (3, 2)


@pytest.mark.parametrize('source', [b'not an image', 'definitely not base64!', 'data:image/png,abc', 42])
def test_load_image_rejects_bad_input(source):
    with pytest.raises(InputError):
        load_image(source)


def test_load_image_reports_missing_file(tmp_path):
    missing = tmp_path / 'typo.png'
    for source in (str(missing), missing):
        with pytest.raises(InputError, match='no such file'):
            load_image(source)


def test_prepare_canvas_matches_board_resolution():
    settings = Settings(width_mm=5, height_mm=10)
    canvas = prepare_canvas(solid_image(300, 200, (200, 100, 50)), settings)
    assert canvas.size == (40, 80)
    assert canvas.mode == 'RGBA'

    plain = prepare_canvas(solid_image(300, 200, (200, 100, 50)), settings, boost=False)
    assert plain.getpixel((20, 40))[:3] == (200, 100, 50)


def test_preview_and_thumbnail(four_band_image):
    quantized = quantize_image(four_band_image, rng=0)
    preview = render_preview(quantized)

    assert preview.size == (4, 20)
    assert preview.getpixel((0, 0)) == (250, 20, 20)
    assert preview.getpixel((3, 19)) == (250, 250, 250)

    thumb = Image.open(io.BytesIO(make_thumbnail(Image.new('RGB', (1000, 500)), size=100)))
    assert thumb.format == 'PNG'
    assert thumb.size == (100, 50)
