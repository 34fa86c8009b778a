import math

import numpy as np
import pytest
from PIL import Image

from imagecompare.app.colors import derive_stats, quantize_colors, sample_pixels
from imagecompare.app.errors import ComputationError
from imagecompare.app.imaging import ChannelStats


def test_sample_pixels_returns_fixed_grid_regardless_of_size():
    for size in [(300, 120), (7, 9), (50, 50)]:
        pixels = sample_pixels(Image.new("RGB", size, (10, 20, 30)))
        assert pixels.shape == (2500, 3)


def test_sample_pixels_custom_grid_and_greyscale_source():
    pixels = sample_pixels(Image.new("L", (64, 64), 128), grid_width=10, grid_height=4)
    assert pixels.shape == (40, 3)
    assert (pixels == 128).all()


def test_sample_pixels_crops_overflow_instead_of_squashing():
    # green centre square with red strips on both sides; cover fit keeps only the centre
    image = Image.new("RGB", (200, 100), (255, 0, 0))
    image.paste(Image.new("RGB", (100, 100), (0, 255, 0)), (50, 0))
    summary = quantize_colors(sample_pixels(image))
    assert summary.dominant == (0, 250, 0)
    assert (250, 0, 0) not in summary.palette


def test_quantize_uses_bucket_floor_corner():
    pixels = np.array([[12, 34, 56], [15, 38, 59], [200, 0, 0]], dtype=np.uint8)
    summary = quantize_colors(pixels)
    assert summary.dominant == (10, 30, 50)
    assert summary.palette == [(10, 30, 50), (200, 0, 0)]


def test_quantize_ties_keep_first_occurrence_order():
    pixels = np.array([[200, 0, 0], [10, 10, 10], [10, 10, 10], [201, 3, 4]], dtype=np.uint8)
    summary = quantize_colors(pixels)
    assert summary.dominant == (200, 0, 0)
    assert summary.palette == [(200, 0, 0), (10, 10, 10)]


def test_quantize_palette_capped_and_led_by_dominant():
    colors = [[i * 30, 0, 0] for i in range(7)]
    pixels = np.array(colors + [[0, 0, 0]] * 3, dtype=np.uint8)
    summary = quantize_colors(pixels)
    assert len(summary.palette) == 5
    assert summary.palette[0] == summary.dominant == (0, 0, 0)


def test_quantize_is_deterministic():
    rng = np.random.default_rng(7)
    pixels = rng.integers(0, 256, size=(2500, 3), dtype=np.uint8)
    assert quantize_colors(pixels) == quantize_colors(pixels.copy())


def test_quantize_custom_bucket_size():
    pixels = np.array([[255, 255, 255], [129, 1, 1]], dtype=np.uint8)
    summary = quantize_colors(pixels, bucket_size=128, palette_size=1)
    assert summary.palette == [(128, 128, 128)]


def test_quantize_rejects_empty_pixels():
    with pytest.raises(ComputationError):
        quantize_colors(np.empty((0, 3), dtype=np.uint8))


def test_derive_stats_uses_channel_zero_for_brightness_and_contrast():
    stats = derive_stats([ChannelStats(120.0, 12.5), ChannelStats(60.0, 3.0), ChannelStats(30.0, 1.0)])
    assert stats.brightness == 120.0
    assert stats.contrast == 12.5
    assert stats.saturation == pytest.approx(math.sqrt((120.0 ** 2 + 60.0 ** 2 + 30.0 ** 2) / 3))


@pytest.mark.parametrize("count", [1, 2])
def test_saturation_zero_without_three_channels(count):
    stats = derive_stats([ChannelStats(200.0, 5.0)] * count)
    assert stats.saturation == 0


def test_saturation_ignores_alpha_channel():
    channels = [ChannelStats(255.0, 0.0), ChannelStats(0.0, 0.0), ChannelStats(0.0, 0.0), ChannelStats(255.0, 0.0)]
    assert derive_stats(channels).saturation == pytest.approx(255 / math.sqrt(3))


def test_derive_stats_rejects_missing_channels():
    with pytest.raises(ComputationError):
        derive_stats([])
