from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

import numpy as np
from PIL import Image, ImageOps, ImageStat, UnidentifiedImageError

from imagecompare.app.errors import DecodeError, ResourceError, ValidationError

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, str, Path]

# Modes whose bands are kept as-is; everything else is normalised first.
NATIVE_MODES = {"L", "LA", "RGB", "RGBA"}
GREYSCALE_MODES = {"1", "I", "I;16", "F"}


@dataclass(frozen=True)
class ChannelStats:
    mean: float
    stdev: float


@dataclass
class DecodedImage:
    image: Image.Image
    width: int
    height: int
    format: str
    byte_size: int
    channels: List[ChannelStats] = field(default_factory=list)

    @property
    def color_bands(self) -> int:
        # alpha is never a colour channel
        return len([band for band in self.image.getbands() if band != "A"])


def read_source(source: ImageSource) -> bytes:
    if isinstance(source, bytes):
        return source
    try:
        return Path(source).read_bytes()
    except OSError as exc:
        raise ResourceError(f"Unable to read image file {source}: {exc}") from exc


def _normalise_mode(image: Image.Image) -> Image.Image:
    if image.mode in NATIVE_MODES:
        return image
    if image.mode in GREYSCALE_MODES:
        return image.convert("L")
    if image.mode in {"P", "PA"} and ("transparency" in image.info or image.mode == "PA"):
        return image.convert("RGBA")
    return image.convert("RGB")


def decode_image(source: ImageSource) -> DecodedImage:
    """Decode raw bytes (or a file path) into pixels, metadata and channel stats."""
    data = read_source(source)
    if not data:
        raise DecodeError("Image data is empty")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise DecodeError(f"Unsupported or corrupt image: {exc}") from exc

    image_format = (image.format or "unknown").lower()
    image = _normalise_mode(image)
    decoded = DecodedImage(
        image=image,
        width=image.width,
        height=image.height,
        format=image_format,
        byte_size=len(data),
        channels=compute_channel_stats(image),
    )
    logger.debug(
        "Decoded %s image %dx%d (%d bytes, mode %s)",
        decoded.format,
        decoded.width,
        decoded.height,
        decoded.byte_size,
        image.mode,
    )
    return decoded


def compute_channel_stats(image: Image.Image) -> List[ChannelStats]:
    stat = ImageStat.Stat(image)
    return [ChannelStats(mean=float(mean), stdev=float(stdev)) for mean, stdev in zip(stat.mean, stat.stddev)]


def resize_cover(image: Image.Image, width: int, height: int) -> Image.Image:
    # Scale to fill the box while keeping aspect ratio, then crop the overflow around the centre.
    return ImageOps.fit(image, (width, height), method=Image.Resampling.LANCZOS)


def resize_fill(image: Image.Image, width: int, height: int) -> Image.Image:
    return image.resize((width, height), Image.Resampling.LANCZOS)


def extract_region(image: Image.Image, left: int, top: int, width: int, height: int) -> Image.Image:
    if left < 0 or top < 0 or left + width > image.width or top + height > image.height:
        raise ValidationError(
            f"Bad extract area: left={left} top={top} width={width} height={height} "
            f"for a {image.width}x{image.height} image"
        )
    return image.crop((left, top, left + width, top + height))


def rgb_pixels(image: Image.Image) -> np.ndarray:
    """Row-major ``(N, 3)`` uint8 array with one RGB triple per pixel."""
    rgb = image if image.mode == "RGB" else image.convert("RGB")
    return np.asarray(rgb, dtype=np.uint8).reshape(-1, 3)
