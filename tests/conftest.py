"""Shared fixtures for the e-paper quantization tests."""

import io
from typing import Callable, Tuple

import pytest
from PIL import Image

from image_helper import RasterBuffer
from palette import Palette

BLACK = (0, 0, 0)
WHITE = (255, 255, 255)


@pytest.fixture
def bw_palette() -> Palette:
    return Palette([BLACK, WHITE], names=['black', 'white'])


@pytest.fixture
def make_raster() -> Callable[..., RasterBuffer]:
    """Build a raster from a list of rows of RGB tuples."""

    def _make(rows) -> RasterBuffer:
        data = bytes(channel for row in rows for pixel in row for channel in pixel)
        return RasterBuffer(len(rows[0]), len(rows), data)

    return _make


@pytest.fixture
def gray() -> Callable[[int], Tuple[int, int, int]]:
    return lambda value: (value, value, value)


@pytest.fixture
def png_bytes() -> Callable[..., bytes]:
    """Encode a solid-color image as PNG."""

    def _make(size=(8, 4), color=(255, 0, 0), mode='RGB') -> bytes:
        img = Image.new(mode, size, color)
        buf = io.BytesIO()
        img.save(buf, format='PNG')
        return buf.getvalue()

    return _make
