import io
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

import requests
from PIL import Image, ImageEnhance, UnidentifiedImageError

from image_helper import RasterBuffer, raster_from_image
from palette import parse_color

logger = logging.getLogger(__name__)


class ImageSourceError(ValueError):
    """Raised when a source image cannot be fetched or decoded."""


class ScaleMode(Enum):
    PAD = "pad"  # Letterbox with background color
    CROP = "crop"  # Crop to fit


def load_image(data: Optional[bytes] = None, path: Optional[Union[str, Path]] = None,
               url: Optional[str] = None, timeout: float = 10) -> Image.Image:
    """Decode an image from exactly one of raw bytes, a file path or a URL."""
    sources = [s for s in (data, path, url) if s is not None]
    if len(sources) != 1:
        raise ImageSourceError("Exactly one of data, path or url must be given")

    if url is not None:
        try:
            response = requests.get(url, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ImageSourceError(f"Failed to download image from {url}: {e}") from e
        data = response.content
        logger.info(f"Downloaded {len(data)} bytes from {url}")
    elif path is not None:
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise ImageSourceError(f"Failed to read image {path}: {e}") from e

    if not data:
        raise ImageSourceError("Image data is empty")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageSourceError(f"Failed to process image: {e}") from e
    return img


def scale_img_in_memory(img: Image.Image, target_width: int, target_height: int,
                        mode: ScaleMode = ScaleMode.PAD,
                        background: Tuple[int, int, int] = (255, 255, 255)) -> Image.Image:
    """Scale image to target size using specified mode"""
    if img.size == (target_width, target_height):
        return img

    width_ratio = target_width / img.width
    height_ratio = target_height / img.height

    if mode == ScaleMode.PAD:
        # Use smallest ratio to ensure image fits within target
        scale_factor = min(width_ratio, height_ratio)
    else:
        # Use largest ratio to ensure image covers target
        scale_factor = max(width_ratio, height_ratio)

    new_width = max(1, round(img.width * scale_factor))
    new_height = max(1, round(img.height * scale_factor))
    resized = img.resize((new_width, new_height), Image.Resampling.LANCZOS)

    if mode == ScaleMode.PAD:
        final = Image.new('RGB', (target_width, target_height), background)
        x = (target_width - new_width) // 2
        y = (target_height - new_height) // 2
        final.paste(resized, (x, y))
        return final

    x = (new_width - target_width) // 2
    y = (new_height - target_height) // 2
    return resized.crop((x, y, x + target_width, y + target_height))


def enhance_image(img: Image.Image, contrast: float = 1.0, saturation: float = 1.0) -> Image.Image:
    if contrast != 1.0:
        img = ImageEnhance.Contrast(img).enhance(contrast)
    if saturation != 1.0:
        img = ImageEnhance.Color(img).enhance(saturation)
    return img


def prepare_image(img: Image.Image, config: dict) -> Image.Image:
    """Bring an arbitrary image to the display's size and color mode."""
    background = parse_color(config.get('background', '#FFFFFF'))

    # Composite transparency over the background instead of dropping it to black
    if img.mode in ('RGBA', 'LA') or (img.mode == 'P' and 'transparency' in img.info):
        rgba = img.convert('RGBA')
        flattened = Image.new('RGB', rgba.size, background)
        flattened.paste(rgba, mask=rgba.getchannel('A'))
        img = flattened
    else:
        img = img.convert('RGB')

    if config.get('rotation'):
        img = img.rotate(config['rotation'], expand=True, fillcolor=background)

    img = enhance_image(img, config.get('contrast', 1.0), config.get('enhanced', 1.0))
    return scale_img_in_memory(
        img, config['width'], config['height'],
        ScaleMode(config.get('scale_mode', ScaleMode.PAD.value)), background
    )


def prepare_raster(img: Image.Image, config: dict) -> RasterBuffer:
    return raster_from_image(prepare_image(img, config))
