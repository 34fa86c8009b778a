from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from imagecompare.app import fetch
from imagecompare.app.analysis import analyze_image, compare_images, compare_region
from imagecompare.app.config import get_settings
from imagecompare.app.errors import ImageCompareError, ValidationError
from imagecompare.app.models import (
    AnalyzeUrlRequest,
    CompareUrlsRequest,
    ComparisonResult,
    ImageAnalysis,
    RegionComparisonResult,
)

logger = logging.getLogger(__name__)
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

app = FastAPI(title="Image Comparison Service", version="0.1.0")


@app.exception_handler(ImageCompareError)
async def image_compare_error_handler(request: Request, exc: ImageCompareError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = "; ".join(error.get("msg", "invalid value") for error in exc.errors())
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {messages}"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s failed unexpectedly", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": str(exc) or exc.__class__.__name__})


async def read_upload(upload: UploadFile) -> bytes:
    data = await upload.read()
    logger.info("Received upload %s (%d bytes)", upload.filename, len(data))
    return data


@app.get("/health", tags=["health"])
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/api/compare/files", response_model=ComparisonResult, tags=["compare"])
async def compare_files(
    image1: Optional[UploadFile] = File(None),
    image2: Optional[UploadFile] = File(None),
) -> ComparisonResult:
    if image1 is None or image2 is None:
        raise ValidationError("Both files are needed!")
    data1, data2 = await asyncio.gather(read_upload(image1), read_upload(image2))
    return await compare_images(data1, data2, get_settings().analysis)


@app.post("/api/compare/urls", response_model=ComparisonResult, tags=["compare"])
async def compare_urls(body: CompareUrlsRequest) -> ComparisonResult:
    if not body.url1 or not body.url2:
        raise ValidationError("Both URLs are needed!")
    settings = get_settings()
    logger.info("Comparing %s with %s", body.url1, body.url2)
    async with fetch.downloaded(settings.service, body.url1, body.url2) as (path1, path2):
        return await compare_images(path1, path2, settings.analysis)


@app.post("/api/compare/region", response_model=RegionComparisonResult, tags=["compare"])
async def compare_region_files(
    image1: Optional[UploadFile] = File(None),
    image2: Optional[UploadFile] = File(None),
    left: Optional[int] = Form(None),
    top: Optional[int] = Form(None),
    width: Optional[int] = Form(None),
    height: Optional[int] = Form(None),
) -> RegionComparisonResult:
    if image1 is None or image2 is None:
        raise ValidationError("Both files are needed!")
    data1, data2 = await asyncio.gather(read_upload(image1), read_upload(image2))
    bounds = {"left": left, "top": top, "width": width, "height": height}
    return await compare_region(data1, data2, bounds, get_settings().analysis)


@app.post("/api/analyze/file", response_model=ImageAnalysis, tags=["analyze"])
async def analyze_file(image: Optional[UploadFile] = File(None)) -> ImageAnalysis:
    if image is None:
        raise ValidationError("File is required")
    data = await read_upload(image)
    return await asyncio.to_thread(analyze_image, data, get_settings().analysis)


@app.post("/api/analyze/url", response_model=ImageAnalysis, tags=["analyze"])
async def analyze_url(body: AnalyzeUrlRequest) -> ImageAnalysis:
    if not body.url:
        raise ValidationError("URL is required!")
    settings = get_settings()
    logger.info("Analyzing %s", body.url)
    async with fetch.downloaded(settings.service, body.url) as (path,):
        return await asyncio.to_thread(analyze_image, path, settings.analysis)


@app.on_event("startup")
async def warmup() -> None:
    # Fail fast on a broken settings file and make sure downloads have somewhere to go
    settings = get_settings()
    Path(settings.service.upload_dir).mkdir(parents=True, exist_ok=True)
    logger.info(
        "Sampling %dx%d, bucket size %d, region divisor %d",
        settings.analysis.sample_width,
        settings.analysis.sample_height,
        settings.analysis.bucket_size,
        settings.analysis.region_bucket_divisor,
    )
