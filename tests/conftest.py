import io
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))


def solid_image(width, height, color):
    arr = np.zeros((height, width, 4), dtype=np.uint8)
    arr[..., :3] = color
    arr[..., 3] = 255
    return Image.fromarray(arr)


def png_bytes(img):
    buf = io.BytesIO()
    img.save(buf, format='PNG')
    return buf.getvalue()


@pytest.fixture
def four_band_image():
    """20x4 RGBA image with four horizontal color bands of 10, 6, 3 and 1 rows."""
    arr = np.zeros((20, 4, 4), dtype=np.uint8)
    arr[..., 3] = 255
    arr[0:10, :, :3] = (250, 20, 20)
    arr[10:16, :, :3] = (20, 200, 30)
    arr[16:19, :, :3] = (30, 40, 220)
    arr[19:20, :, :3] = (250, 250, 250)
    return Image.fromarray(arr)


@pytest.fixture
def noisy_image():
    rng = np.random.default_rng(7)
    arr = rng.integers(0, 256, size=(24, 16, 4), dtype=np.uint8)
    arr[..., 3] = 255
    return Image.fromarray(arr)
