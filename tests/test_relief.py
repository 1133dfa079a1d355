import json

import numpy as np
import pytest

from layermark.relief import Settings, build_layer_stack, layer_z_ranges, load_settings, save_settings


def test_default_board_resolution():
    settings = Settings()
    assert settings.resolution == (400, 1280)
    assert settings.pixel_size() == pytest.approx(0.125)
    assert settings.pixel_size(2) == pytest.approx(25.0)


def test_tactile_ranges_stack_from_zero():
    ranges = layer_z_ranges(Settings(base_height=0.8, layer_heights=(0.6, 0.8, 1.0, 1.2)))
    expected = [(0.0, 1.4), (1.4, 2.2), (2.2, 3.2), (3.2, 4.4)]
    for (z_min, z_max), (e_min, e_max) in zip(ranges, expected):
        assert z_min == pytest.approx(e_min)
        assert z_max == pytest.approx(e_max)


def test_ranges_are_contiguous_and_increasing():
    ranges = layer_z_ranges(Settings(base_height=0.5, layer_heights=(0.2, 1.7, 0.4, 0.9)))
    for (_, top), (bottom, _) in zip(ranges, ranges[1:]):
        assert bottom == top
    assert all(z_min < z_max for z_min, z_max in ranges)


def test_flat_mode_forces_equal_heights():
    settings = Settings(base_height=0.8, layer_heights=(1.0, 0.8, 1.0, 1.2), is_tactile=False)
    assert settings.effective_layer_heights() == (1.0, 1.0, 1.0, 1.0)

    slabs = build_layer_stack(np.array([[0, 1], [2, 3]]), settings)
    assert slabs[0].thickness == pytest.approx(1.8)
    for slab in slabs[1:]:
        assert slab.thickness == pytest.approx(1.0)


def test_flat_preset():
    settings = Settings.flat()
    assert not settings.is_tactile
    assert settings.layer_heights == (0.6, 0.6, 0.6, 0.6)
    assert Settings.tactile().layer_heights == (0.6, 0.8, 1.0, 1.2)


def test_masks_partition_the_grid():
    rng = np.random.default_rng(5)
    grid = rng.integers(0, 4, size=(9, 7))
    slabs = build_layer_stack(grid, Settings())

    assert sum(slab.pixel_count for slab in slabs) == grid.size
    stacked = np.stack([slab.mask for slab in slabs]).astype(int)
    np.testing.assert_array_equal(stacked.sum(axis=0), np.ones(grid.shape))
    for i, slab in enumerate(slabs):
        np.testing.assert_array_equal(slab.mask, grid == i)


def test_single_color_grid_occupies_only_base_layer():
    slabs = build_layer_stack(np.zeros((2, 2), dtype=np.uint8), Settings())

    assert slabs[0].mask.all()
    assert slabs[0].z_min == 0.0
    assert slabs[0].z_max == pytest.approx(1.4)
    assert [slab.is_empty for slab in slabs] == [False, True, True, True]


def test_fill_below_extends_footprints_but_keeps_masks():
    grid = np.array([[0, 1, 2, 3]])
    slabs = build_layer_stack(grid, Settings(fill_below=True))

    np.testing.assert_array_equal(slabs[0].footprint, [[True, True, True, True]])
    np.testing.assert_array_equal(slabs[2].footprint, [[False, False, True, True]])
    np.testing.assert_array_equal(slabs[2].mask, [[False, False, True, False]])


@pytest.mark.parametrize('kwargs', [
    {'base_height': 0},
    {'layer_heights': (0.6, 0.8, 1.0)},
    {'layer_heights': (0.6, -0.8, 1.0, 1.2)},
    {'width_mm': 0},
])
def test_invalid_settings_rejected(kwargs):
    with pytest.raises(ValueError):
        Settings(**kwargs)


def test_settings_roundtrip_through_json(tmp_path):
    settings = Settings(base_height=1.0, layer_heights=(0.4, 0.5, 0.6, 0.7), is_tactile=False,
                        width_mm=40, height_mm=120, fill_below=True)
    path = tmp_path / 'settings.json'
    save_settings(settings, path)

    assert json.loads(path.read_text())['layer_heights'] == [0.4, 0.5, 0.6, 0.7]
    assert load_settings(path) == settings


def test_from_dict_ignores_unknown_keys_and_fills_defaults():
    settings = Settings.from_dict({'base_height': 0.6, 'max_size_cm': 10})
    assert settings.base_height == 0.6
    assert settings.layer_heights == Settings().layer_heights
