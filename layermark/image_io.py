import base64
import binascii
import io
import logging
import os

from PIL import Image, ImageEnhance, ImageOps, UnidentifiedImageError

from .errors import InputError

LOGGER = logging.getLogger(__name__)

SATURATION_BOOST = 1.5
CONTRAST_BOOST = 1.2


def _looks_like_path(text):
    # Base64 text never contains '.', a file name almost always does
    if not isinstance(text, str) or text.startswith('data:'):
        return False
    return bool(os.path.splitext(text.strip())[1])


def _decode_base64(text):
    """Accepts plain base64 or a data:image/...;base64, URL."""
    if text.startswith('data:'):
        header, _, text = text.partition(',')
        if ';base64' not in header:
            raise InputError("data URL is not base64 encoded", stage='load')
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InputError(f"invalid base64 image data: {e}", stage='load') from e


def load_image(source) -> Image.Image:
    """
    Loads a source raster as RGBA.

    ``source`` may be a PIL image, raw image bytes, a path, or a base64 string /
    data URL as returned by the image generation service.
    """
    if isinstance(source, Image.Image):
        img = source
    else:
        if isinstance(source, (bytes, bytearray)):
            data = bytes(source)
        elif isinstance(source, (str, os.PathLike)) and os.path.isfile(source):
            with open(source, 'rb') as f:
                data = f.read()
        elif isinstance(source, os.PathLike) or _looks_like_path(source):
            raise InputError(f"no such file: {os.fspath(source)}", stage='load')
        elif isinstance(source, str):
            data = _decode_base64(source.strip())
        else:
            raise InputError(f"unsupported image source {type(source).__name__}", stage='load')
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise InputError(f"could not decode image: {e}", stage='load') from e

    if img.width == 0 or img.height == 0:
        raise InputError("image has zero pixels", stage='load')
    return img.convert('RGBA')


def prepare_canvas(image: Image.Image, settings, boost=True) -> Image.Image:
    """
    Crops the image to the board's aspect ratio (centered) and resizes it to the
    board resolution. With ``boost``, saturation and contrast are raised so the
    quantizer finds vibrant colors.
    """
    size = settings.resolution
    rgba = image.convert('RGBA')
    canvas = ImageOps.fit(rgba, size, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
    if boost:
        alpha = canvas.getchannel('A')
        rgb = canvas.convert('RGB')
        rgb = ImageEnhance.Color(rgb).enhance(SATURATION_BOOST)
        rgb = ImageEnhance.Contrast(rgb).enhance(CONTRAST_BOOST)
        canvas = rgb.convert('RGBA')
        canvas.putalpha(alpha)
    LOGGER.info("Prepared %dx%d canvas from %dx%d source", size[0], size[1], image.width, image.height)
    return canvas
