import io

import pytest
from PIL import Image


def encode(image: Image.Image, image_format: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


def solid_png(color=(255, 0, 0), size=(100, 100), mode="RGB") -> bytes:
    return encode(Image.new(mode, size, color))


def split_png(left_color, right_color, size=(100, 100)) -> bytes:
    width, height = size
    image = Image.new("RGB", size, left_color)
    image.paste(Image.new("RGB", (width // 2, height), right_color), (width // 2, 0))
    return encode(image)


@pytest.fixture
def red_png() -> bytes:
    return solid_png((255, 0, 0))


@pytest.fixture
def blue_png() -> bytes:
    return solid_png((0, 0, 255), size=(50, 80))


@pytest.fixture
def red_blue_png() -> bytes:
    return split_png((255, 0, 0), (0, 0, 255))
