from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Sequence

import numpy as np
from PIL import Image

from imagecompare.app.errors import ComputationError
from imagecompare.app.imaging import ChannelStats, resize_cover, rgb_pixels
from imagecompare.app.models import ColorSummary, ImageStats

logger = logging.getLogger(__name__)


def sample_pixels(image: Image.Image, grid_width: int = 50, grid_height: int = 50) -> np.ndarray:
    """Cover-fit ``image`` onto a fixed grid and return its RGB triples.

    The sample count is always ``grid_width * grid_height``, whatever the
    source resolution, so dominant colours stay comparable across images.
    """
    sampled = resize_cover(image, grid_width, grid_height)
    pixels = rgb_pixels(sampled)
    logger.debug("Sampled %d pixels from %dx%d source", len(pixels), image.width, image.height)
    return pixels


def bucket_keys(pixels: np.ndarray, bucket_size: int) -> np.ndarray:
    """Floor every channel to the corner of its ``bucket_size`` cell."""
    return (np.asarray(pixels, dtype=np.int32) // bucket_size) * bucket_size


def quantize_colors(pixels: np.ndarray, bucket_size: int = 10, palette_size: int = 5) -> ColorSummary:
    """Rank coarse colour buckets by frequency.

    Buckets with equal counts keep the order in which they first appeared
    in ``pixels``. ``Counter`` preserves insertion order and ``most_common``
    sorts stably, so identical buffers always give identical palettes.
    """
    if len(pixels) == 0:
        raise ComputationError("No pixels to quantize; the sampler returned an empty buffer")

    counter = Counter(map(tuple, bucket_keys(pixels, bucket_size).tolist()))
    ranked = [color for color, _ in counter.most_common(palette_size)]
    logger.debug("Quantized %d pixels into %d buckets", len(pixels), len(counter))
    return ColorSummary(dominant=ranked[0], palette=ranked)


def derive_stats(channels: Sequence[ChannelStats]) -> ImageStats:
    if not channels:
        raise ComputationError("Channel statistics are empty")
    return ImageStats(
        brightness=channels[0].mean,
        saturation=calculate_saturation(channels),
        contrast=channels[0].stdev,
    )


def calculate_saturation(channels: Sequence[ChannelStats]) -> float:
    # RMS of the first three channel means, a cheap stand-in for HSV saturation
    if len(channels) < 3:
        return 0.0
    red, green, blue = channels[:3]
    return math.sqrt((red.mean ** 2 + green.mean ** 2 + blue.mean ** 2) / 3)
