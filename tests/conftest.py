"""Shared fixtures: small in-memory images and their encoded bytes."""

import io

import pytest
from PIL import Image


def make_image(width: int, height: int, mode: str = "RGB") -> Image.Image:
    """Horizontal red gradient over a vertical blue gradient."""
    img = Image.new(mode, (width, height))
    pixels = img.load()
    for x in range(width):
        for y in range(height):
            r = x * 255 // max(1, width - 1)
            b = y * 255 // max(1, height - 1)
            pixels[x, y] = (r, 80, b, 255) if mode == "RGBA" else (r, 80, b)
    return img


def to_bytes(img: Image.Image, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def small_image():
    return make_image(64, 48)


@pytest.fixture
def png_bytes():
    return to_bytes(make_image(64, 48))
