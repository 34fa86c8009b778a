from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "settings.yaml"


class AnalysisSettings(BaseModel):
    sample_width: int = Field(50, ge=1)
    sample_height: int = Field(50, ge=1)
    bucket_size: int = Field(10, ge=1, le=256)
    palette_size: int = Field(5, ge=1)
    region_bucket_divisor: int = Field(15, ge=1, le=256)
    presence_tolerance: int = Field(10, ge=0, le=255)
    presence_sample_size: int = Field(50, ge=1)
    preserve_saturation_quirk: bool = Field(
        True,
        description="Compare contrast(A) against saturation(B) for compatibility with the v1 API.",
    )


class ServiceSettings(BaseModel):
    upload_dir: str = "uploads"
    fetch_timeout: float = Field(30.0, gt=0)
    max_download_bytes: int = Field(20 * 1024 * 1024, gt=0)


class Settings(BaseModel):
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)


def load_settings(path: Path) -> Settings:
    if not path.exists():
        raise RuntimeError(f"Settings file missing at {path}")
    with path.open("r", encoding="utf-8") as handle:
        data: Dict[str, Any] = yaml.safe_load(handle)
    if not data:
        raise RuntimeError(f"Settings file {path} is empty")
    return Settings(**data)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    config_path = Path(os.getenv("IMAGECOMPARE_CONFIG", DEFAULT_CONFIG_PATH))
    logger.info("Loading settings from %s", config_path)
    return load_settings(config_path)
