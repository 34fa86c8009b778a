from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Tuple

from imagecompare.app.colors import derive_stats, quantize_colors, sample_pixels
from imagecompare.app.config import AnalysisSettings
from imagecompare.app.errors import stage
from imagecompare.app.imaging import DecodedImage, ImageSource, decode_image
from imagecompare.app.models import (
    ColorDifference,
    ComparisonResult,
    DimensionDifference,
    DominantColorPair,
    ImageAnalysis,
    ImageMetadata,
    Region,
    RegionComparisonResult,
    RegionMatchResult,
    ScalarComparison,
)
from imagecompare.app.region import check_colors_in_region, match_region

logger = logging.getLogger(__name__)


def decode(source: ImageSource) -> DecodedImage:
    with stage("decode"):
        return decode_image(source)


def analyze_decoded(decoded: DecodedImage, settings: AnalysisSettings) -> ImageAnalysis:
    with stage("analysis"):
        with stage("sampling"):
            pixels = sample_pixels(decoded.image, settings.sample_width, settings.sample_height)
        with stage("color quantization"):
            colors = quantize_colors(pixels, settings.bucket_size, settings.palette_size)
        with stage("statistics"):
            stats = derive_stats(decoded.channels)

    return ImageAnalysis(
        metadata=ImageMetadata(
            width=decoded.width,
            height=decoded.height,
            format=decoded.format,
            byte_size=decoded.byte_size,
        ),
        stats=stats,
        dominant_color=colors.dominant,
        palette=colors.palette,
    )


def analyze_image(source: ImageSource, settings: Optional[AnalysisSettings] = None) -> ImageAnalysis:
    """Decode one image and summarise its brightness, contrast and colours."""
    settings = settings or AnalysisSettings()
    with stage("analysis"):
        decoded = decode(source)
    return analyze_decoded(decoded, settings)


def _channel_mean(decoded: DecodedImage, index: int) -> float:
    # greyscale images (with or without alpha) only carry colour in channel 0
    channels = decoded.channels
    return channels[index].mean if index < decoded.color_bands else channels[0].mean


def build_comparison(
    first: Tuple[DecodedImage, ImageAnalysis],
    second: Tuple[DecodedImage, ImageAnalysis],
    region_match: RegionMatchResult,
    settings: AnalysisSettings,
) -> ComparisonResult:
    decoded_a, analysis_a = first
    decoded_b, analysis_b = second
    stats_a, stats_b = analysis_a.stats, analysis_b.stats

    if settings.preserve_saturation_quirk:
        # image1's contrast against image2's saturation, as the v1 API reported it
        saturation_difference = abs(stats_a.contrast - stats_b.saturation)
    else:
        saturation_difference = abs(stats_a.saturation - stats_b.saturation)

    return ComparisonResult(
        dimension_difference=DimensionDifference(
            width=abs(decoded_a.width - decoded_b.width),
            height=abs(decoded_a.height - decoded_b.height),
        ),
        color_difference=ColorDifference(
            red_difference=abs(_channel_mean(decoded_a, 0) - _channel_mean(decoded_b, 0)),
            green_difference=abs(_channel_mean(decoded_a, 1) - _channel_mean(decoded_b, 1)),
            blue_difference=abs(_channel_mean(decoded_a, 2) - _channel_mean(decoded_b, 2)),
        ),
        brightness_comparison=ScalarComparison(difference=abs(stats_a.brightness - stats_b.brightness)),
        saturation_comparison=ScalarComparison(difference=saturation_difference),
        contrast_comparison=ScalarComparison(difference=abs(stats_a.contrast - stats_b.contrast)),
        dominant_colors=DominantColorPair(image1=analysis_a.dominant_color, image2=analysis_b.dominant_color),
        region_color_match=region_match,
    )


def full_frame(decoded: DecodedImage) -> Region:
    return Region(left=0, top=0, width=decoded.width, height=decoded.height)


async def decode_pair(source_a: ImageSource, source_b: ImageSource) -> Tuple[DecodedImage, DecodedImage]:
    decoded_a, decoded_b = await asyncio.gather(
        asyncio.to_thread(decode, source_a),
        asyncio.to_thread(decode, source_b),
    )
    return decoded_a, decoded_b


async def compare_images(
    source_a: ImageSource,
    source_b: ImageSource,
    settings: Optional[AnalysisSettings] = None,
) -> ComparisonResult:
    """Analyse two images side by side and diff their statistics.

    Both decodes run concurrently, then both analyses do. The region match
    runs last because it needs image1's dimensions for its full-frame
    bounds. Any failure aborts the whole comparison.
    """
    settings = settings or AnalysisSettings()
    with stage("comparison"):
        decoded_a, decoded_b = await decode_pair(source_a, source_b)
        analysis_a, analysis_b = await asyncio.gather(
            asyncio.to_thread(analyze_decoded, decoded_a, settings),
            asyncio.to_thread(analyze_decoded, decoded_b, settings),
        )
        with stage("region color match"):
            region_match = await asyncio.to_thread(
                match_region,
                decoded_a.image,
                full_frame(decoded_a),
                decoded_b.image,
                settings.region_bucket_divisor,
            )
        return build_comparison((decoded_a, analysis_a), (decoded_b, analysis_b), region_match, settings)


def _region_report(
    decoded_a: DecodedImage,
    decoded_b: DecodedImage,
    region: Region,
    settings: AnalysisSettings,
) -> RegionComparisonResult:
    region_match = match_region(decoded_a.image, region, decoded_b.image, settings.region_bucket_divisor)
    presence = check_colors_in_region(
        decoded_a.image,
        region,
        decoded_b.image,
        tolerance=settings.presence_tolerance,
        sample_size=settings.presence_sample_size,
    )
    return RegionComparisonResult(region_color_match=region_match, color_presence=presence)


async def compare_region(
    source_a: ImageSource,
    source_b: ImageSource,
    bounds: Optional[Dict[str, Optional[int]]] = None,
    settings: Optional[AnalysisSettings] = None,
) -> RegionComparisonResult:
    """Match a region of image1 against all of image2.

    Any bound missing from ``bounds`` (or set to None) falls back to image1's
    full frame.
    """
    settings = settings or AnalysisSettings()
    with stage("region comparison"):
        decoded_a, decoded_b = await decode_pair(source_a, source_b)
        overrides = {key: value for key, value in (bounds or {}).items() if value is not None}
        region = full_frame(decoded_a).model_copy(update=overrides)
        return await asyncio.to_thread(_region_report, decoded_a, decoded_b, region, settings)
