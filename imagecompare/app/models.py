from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RGB = Tuple[int, int, int]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Region(CamelModel):
    left: int
    top: int
    width: int
    height: int


class ImageMetadata(CamelModel):
    width: int
    height: int
    format: str
    byte_size: int


class ImageStats(CamelModel):
    brightness: float
    saturation: float
    contrast: float


class ColorSummary(CamelModel):
    dominant: RGB
    palette: List[RGB]


class ImageAnalysis(CamelModel):
    metadata: ImageMetadata
    stats: ImageStats
    dominant_color: RGB
    palette: List[RGB]


class RegionMatchResult(CamelModel):
    total_region_colors: int
    matched_colors_count: int
    match_percentage: float = Field(..., ge=0.0, le=100.0)
    unmatched_colors: List[str]
    matched_colors: List[str]
    region_bounds: Region


class ColorPresenceResult(CamelModel):
    is_present: bool
    region_color_count: int
    missing_color_count: int


class DimensionDifference(CamelModel):
    width: int
    height: int


class ColorDifference(CamelModel):
    red_difference: float
    green_difference: float
    blue_difference: float


class ScalarComparison(CamelModel):
    difference: float


class DominantColorPair(CamelModel):
    image1: RGB
    image2: RGB


class ComparisonResult(CamelModel):
    dimension_difference: DimensionDifference
    color_difference: ColorDifference
    brightness_comparison: ScalarComparison
    saturation_comparison: ScalarComparison
    contrast_comparison: ScalarComparison
    dominant_colors: DominantColorPair
    region_color_match: RegionMatchResult


class RegionComparisonResult(CamelModel):
    region_color_match: RegionMatchResult
    color_presence: ColorPresenceResult


class AnalyzeUrlRequest(BaseModel):
    url: Optional[str] = None


class CompareUrlsRequest(BaseModel):
    url1: Optional[str] = None
    url2: Optional[str] = None
