from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List

import httpx

from imagecompare.app.config import ServiceSettings
from imagecompare.app.errors import ResourceError

logger = logging.getLogger(__name__)


def create_client(settings: ServiceSettings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.fetch_timeout, follow_redirects=True)


def write_temp_file(directory: Path, data: bytes) -> Path:
    try:
        directory.mkdir(parents=True, exist_ok=True)
        handle, name = tempfile.mkstemp(prefix="temp-", suffix=".img", dir=directory)
        with os.fdopen(handle, "wb") as output:
            output.write(data)
    except OSError as exc:
        raise ResourceError(f"Unable to store downloaded image: {exc}") from exc
    logger.info("Stored %d bytes in %s", len(data), name)
    return Path(name)


def remove_temp_file(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    logger.info("Removed %s", path)


def _too_large(url: str, size: int, limit: int) -> ResourceError:
    return ResourceError(f"Image at {url} is {size} bytes, over the {limit} byte limit")


async def download_image(client: httpx.AsyncClient, url: str, settings: ServiceSettings) -> Path:
    """Stream ``url`` into a temp file, stopping as soon as it passes the size limit."""
    limit = settings.max_download_bytes
    chunks: List[bytes] = []
    try:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > limit:
                raise _too_large(url, int(declared), limit)
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > limit:
                    raise _too_large(url, received, limit)
                chunks.append(chunk)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning("Download of %s failed: %s", url, exc)
        raise ResourceError(f"Failed to download {url}: {exc}") from exc

    return write_temp_file(Path(settings.upload_dir), b"".join(chunks))


@asynccontextmanager
async def downloaded(settings: ServiceSettings, *urls: str) -> AsyncIterator[List[Path]]:
    """Download ``urls`` concurrently into temp files that are removed on exit.

    If any download fails, the files already written are removed before the
    first error is raised.
    """
    async with create_client(settings) as client:
        results = await asyncio.gather(
            *(download_image(client, url, settings) for url in urls),
            return_exceptions=True,
        )
    paths = [result for result in results if isinstance(result, Path)]
    try:
        for result in results:
            if isinstance(result, BaseException):
                raise result
        yield paths
    finally:
        for path in paths:
            remove_temp_file(path)
