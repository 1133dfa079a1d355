import io

import numpy as np
from PIL import Image

from .utils import THUMBNAIL_SIZE


def render_preview(quantized) -> Image.Image:
    """Paints the index grid through the palette as an opaque RGB image."""
    palette = np.array(quantized.palette, dtype=np.uint8)
    return Image.fromarray(palette[quantized.indices])


def make_thumbnail(image: Image.Image, size=THUMBNAIL_SIZE) -> bytes:
    """PNG bytes of ``image`` scaled down to fit a size x size box."""
    thumb = image.convert('RGB')
    thumb.thumbnail((size, size), Image.Resampling.LANCZOS)
    buf = io.BytesIO()
    thumb.save(buf, format='PNG')
    return buf.getvalue()
