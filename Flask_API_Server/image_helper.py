import logging
import time
from enum import Enum
from typing import Iterator, Union

import numpy as np
from PIL import Image

from palette import Color, Palette, nearest

logger = logging.getLogger(__name__)

# Floyd-Steinberg neighbours as (dx, dy, weight out of 16)
DIFFUSION_WEIGHTS = (
    (1, 0, 7),
    (-1, 1, 3),
    (0, 1, 5),
    (1, 1, 1)
)


class QuantizeMode(Enum):
    DIRECT = "direct"  # Nearest color per pixel
    DIFFUSED = "diffused"  # Floyd-Steinberg error diffusion


class RasterBuffer:
    """Row-major RGB pixels, 3 bytes per pixel, no alpha."""

    __slots__ = ('width', 'height', 'data')

    def __init__(self, width: int, height: int, data: Union[bytes, bytearray, memoryview]):
        if width <= 0 or height <= 0:
            raise ValueError(f"Raster dimensions must be positive, got {width}x{height}")
        expected = width * height * 3
        if len(data) != expected:
            raise ValueError(
                f"Raster data is {len(data)} bytes, expected {expected} for {width}x{height} RGB"
            )
        self.width = width
        self.height = height
        self.data = bytes(data)

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'RasterBuffer':
        if array.ndim != 3 or array.shape[2] != 3:
            raise ValueError(f"Expected an (height, width, 3) array, got shape {array.shape}")
        pixels = np.clip(array, 0, 255).astype(np.uint8)
        return cls(pixels.shape[1], pixels.shape[0], pixels.tobytes())

    def to_array(self) -> np.ndarray:
        return np.frombuffer(self.data, dtype=np.uint8).reshape(self.height, self.width, 3).copy()

    def pixel(self, x: int, y: int) -> Color:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} raster")
        i = (y * self.width + x) * 3
        return (self.data[i], self.data[i + 1], self.data[i + 2])

    def pixels(self) -> Iterator[Color]:
        data = self.data
        for i in range(0, len(data), 3):
            yield (data[i], data[i + 1], data[i + 2])

    def __eq__(self, other) -> bool:
        if not isinstance(other, RasterBuffer):
            return NotImplemented
        return (self.width, self.height, self.data) == (other.width, other.height, other.data)

    def __repr__(self) -> str:
        return f"RasterBuffer({self.width}x{self.height})"


def _check_preconditions(buffer: RasterBuffer, palette: Palette):
    if not isinstance(buffer, RasterBuffer):
        raise ValueError(f"Expected a RasterBuffer, got {type(buffer).__name__}")
    if not isinstance(palette, Palette) or len(palette) == 0:
        raise ValueError("A non-empty Palette is required")
    # RasterBuffer validates on construction, but the attributes are writable
    if len(buffer.data) != buffer.width * buffer.height * 3:
        raise ValueError("Raster data length does not match its dimensions")


def quantize_direct(buffer: RasterBuffer, palette: Palette) -> RasterBuffer:
    """Map every pixel to its nearest palette color, independently."""
    _check_preconditions(buffer, palette)
    start = time.perf_counter()

    pixels = np.frombuffer(buffer.data, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
    best_dist = np.full(len(pixels), np.iinfo(np.int32).max, dtype=np.int64)
    best_index = np.zeros(len(pixels), dtype=np.intp)

    # Same scan as nearest(): only a strictly smaller distance replaces the winner
    for index, swatch in enumerate(palette.colors):
        dist = ((pixels - np.array(swatch, dtype=np.int32)) ** 2).sum(axis=1, dtype=np.int64)
        closer = dist < best_dist
        best_dist[closer] = dist[closer]
        best_index[closer] = index

    colors = np.array(palette.colors, dtype=np.uint8)
    result = RasterBuffer(buffer.width, buffer.height, colors[best_index].tobytes())

    logger.debug(f"Direct quantization of {buffer.width}x{buffer.height} to {len(palette)} colors "
                 f"took {time.perf_counter() - start:.3f}s")
    return result


def quantize_diffused(buffer: RasterBuffer, palette: Palette) -> RasterBuffer:
    """Apply Floyd-Steinberg dithering to the raster.

    Single row-major pass. Each pixel is matched after its left and upper
    neighbours have pushed their error into it. Contributions are truncated
    to integers and clamped to 0-255 as soon as they are added, so the
    working buffer never leaves 8-bit range.
    """
    _check_preconditions(buffer, palette)
    start = time.perf_counter()

    width, height = buffer.width, buffer.height
    pixels = bytearray(buffer.data)
    for y in range(height):
        for x in range(width):
            i = (y * width + x) * 3
            old_pixel = (pixels[i], pixels[i + 1], pixels[i + 2])
            new_pixel = nearest(old_pixel, palette)
            pixels[i:i + 3] = bytes(new_pixel)
            quant_error = (
                old_pixel[0] - new_pixel[0],
                old_pixel[1] - new_pixel[1],
                old_pixel[2] - new_pixel[2]
            )
            if quant_error == (0, 0, 0):
                continue

            for dx, dy, weight in DIFFUSION_WEIGHTS:
                nx, ny = x + dx, y + dy
                if nx < 0 or nx >= width or ny >= height:
                    continue
                j = (ny * width + nx) * 3
                for c in range(3):
                    # int() truncates toward zero
                    value = pixels[j + c] + int(quant_error[c] * weight / 16)
                    pixels[j + c] = 0 if value < 0 else 255 if value > 255 else value

    logger.debug(f"Diffused quantization of {width}x{height} to {len(palette)} colors "
                 f"took {time.perf_counter() - start:.3f}s")
    return RasterBuffer(width, height, pixels)


def quantize(buffer: RasterBuffer, palette: Palette,
             mode: Union[QuantizeMode, str] = QuantizeMode.DIFFUSED) -> RasterBuffer:
    try:
        mode = QuantizeMode(mode)
    except ValueError:
        raise ValueError(
            f"Unknown quantization mode {mode!r}, expected one of {[m.value for m in QuantizeMode]}"
        ) from None

    if mode == QuantizeMode.DIRECT:
        return quantize_direct(buffer, palette)
    return quantize_diffused(buffer, palette)


def raster_from_image(image: Image.Image) -> RasterBuffer:
    """Convert a PIL image of any mode to an RGB raster, dropping alpha."""
    if image.mode != 'RGB':
        image = image.convert('RGB')
    return RasterBuffer(image.width, image.height, image.tobytes())


def raster_to_image(buffer: RasterBuffer) -> Image.Image:
    return Image.frombytes('RGB', (buffer.width, buffer.height), buffer.data)


def encode_indices(buffer: RasterBuffer, palette: Palette) -> bytes:
    """Convert to single channel using palette indices, one byte per pixel."""
    try:
        return bytes(palette.index(rgb) for rgb in buffer.pixels())
    except ValueError as e:
        raise ValueError(f"Raster is not quantized to this palette: {e}") from None


def encode_packed(buffer: RasterBuffer, palette: Palette) -> bytes:
    """Two pixels per byte, first pixel in the high nibble."""
    if len(palette) > 16:
        raise ValueError("Packed 4-bit encoding supports at most 16 colors")
    indices = encode_indices(buffer, palette)
    if len(indices) % 2:
        indices += b'\x00'
    return bytes((indices[i] << 4) | indices[i + 1] for i in range(0, len(indices), 2))
