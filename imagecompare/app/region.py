from __future__ import annotations

import logging

import numpy as np
from PIL import Image

from imagecompare.app.errors import ComputationError, ValidationError
from imagecompare.app.imaging import extract_region, resize_fill, rgb_pixels
from imagecompare.app.models import ColorPresenceResult, Region, RegionMatchResult

logger = logging.getLogger(__name__)

# Region colours compared against the candidate palette per batch in the presence check.
PRESENCE_BATCH = 512


def clamp_region(region: Region, width: int, height: int) -> Region:
    """Fit ``region`` inside a ``width`` x ``height`` image.

    The origin is clamped into the image; the extent is shortened to what is
    left of the image past the requested origin. A negative extent means the
    origin lies past the far edge and is rejected.
    """
    clamped = Region(
        left=max(0, min(region.left, width)),
        top=max(0, min(region.top, height)),
        width=min(region.width, width - region.left),
        height=min(region.height, height - region.top),
    )
    if clamped.width < 0 or clamped.height < 0:
        raise ValidationError(
            f"Region {region.model_dump()} falls outside the {width}x{height} image"
        )
    logger.debug("Clamped region %s to %s", region.model_dump(), clamped.model_dump())
    return clamped


def _extract_bounds(image: Image.Image, region: Region) -> tuple[Region, Image.Image]:
    bounds = clamp_region(region, image.width, image.height)
    if bounds.width == 0 or bounds.height == 0:
        raise ComputationError(f"Region {bounds.model_dump()} has zero area")
    return bounds, extract_region(image, bounds.left, bounds.top, bounds.width, bounds.height)


def _levels(divisor: int) -> int:
    return 255 // divisor + 1


def bucket_codes(pixels: np.ndarray, divisor: int) -> np.ndarray:
    """Pack each pixel's ``channel // divisor`` triple into one integer."""
    levels = _levels(divisor)
    indices = np.asarray(pixels, dtype=np.int64) // divisor
    return (indices[:, 0] * levels + indices[:, 1]) * levels + indices[:, 2]


def format_code(code: int, divisor: int) -> str:
    levels = _levels(divisor)
    red, rest = divmod(int(code), levels * levels)
    green, blue = divmod(rest, levels)
    return f"{red},{green},{blue}"


def _unique_in_order(codes: np.ndarray) -> np.ndarray:
    unique, first_seen = np.unique(codes, return_index=True)
    return unique[np.argsort(first_seen, kind="stable")]


def match_region(
    base: Image.Image,
    region: Region,
    candidate: Image.Image,
    bucket_divisor: int = 15,
) -> RegionMatchResult:
    """Measure how many of a region's colour buckets recur anywhere in ``candidate``.

    Only bucket presence is tracked, not counts. The candidate is scanned at
    full resolution with no resampling, so the cost grows with its pixel
    count. This is the slow path for very large images.
    """
    bounds, cropped = _extract_bounds(base, region)
    region_codes = _unique_in_order(bucket_codes(rgb_pixels(cropped), bucket_divisor))
    total = len(region_codes)
    if total == 0:
        raise ComputationError("Region produced no colours to match")

    candidate_codes = np.unique(bucket_codes(rgb_pixels(candidate), bucket_divisor))
    matched_mask = np.isin(region_codes, candidate_codes)
    matched = int(matched_mask.sum())

    logger.debug(
        "Region %s: %d unique buckets, %d matched in %dx%d candidate",
        bounds.model_dump(),
        total,
        matched,
        candidate.width,
        candidate.height,
    )
    return RegionMatchResult(
        total_region_colors=total,
        matched_colors_count=matched,
        match_percentage=round(matched / total * 100, 2),
        unmatched_colors=[format_code(code, bucket_divisor) for code in region_codes[~matched_mask]],
        matched_colors=[format_code(code, bucket_divisor) for code in region_codes[matched_mask]],
        region_bounds=bounds,
    )


def check_colors_in_region(
    base: Image.Image,
    region: Region,
    candidate: Image.Image,
    tolerance: int = 10,
    sample_size: int = 50,
) -> ColorPresenceResult:
    """Check that every distinct colour in the region has a near match in ``candidate``.

    ``candidate`` is resized to ``sample_size`` squared first. Two colours
    match when each channel differs by at most ``tolerance``.
    """
    _, cropped = _extract_bounds(base, region)
    region_colors = np.unique(rgb_pixels(cropped), axis=0).astype(np.int16)
    candidate_colors = np.unique(rgb_pixels(resize_fill(candidate, sample_size, sample_size)), axis=0).astype(np.int16)

    missing = 0
    for start in range(0, len(region_colors), PRESENCE_BATCH):
        batch = region_colors[start:start + PRESENCE_BATCH]
        distance = np.abs(batch[:, None, :] - candidate_colors[None, :, :])
        present = (distance <= tolerance).all(axis=2).any(axis=1)
        missing += int((~present).sum())

    return ColorPresenceResult(
        is_present=missing == 0,
        region_color_count=len(region_colors),
        missing_color_count=missing,
    )
