# app/infrastructure/loader.py
import asyncio
import base64
import binascii
import logging
import os
from typing import List, Optional, Sequence, Tuple

import aiofiles
import aiohttp
from PIL import Image

from app.config.settings import settings
from app.domain.errors import BackgroundLoadError, ExportError
from app.infrastructure.cv import image_process

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


async def load_image_bytes(src: str, session: aiohttp.ClientSession, timeout: float = settings.REQUEST_TIMEOUT) -> bytes:
    """Fetch raw bytes from an http(s) URL, a local path, a data URL or bare base64.

    Raises BackgroundLoadError on any failure.
    """
    if not src:
        raise BackgroundLoadError("empty image source")
    try:
        if src.startswith(("http://", "https://")):
            async with session.get(src, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                response.raise_for_status()
                return await response.read()
        if os.path.isfile(src):
            async with aiofiles.open(src, "rb") as f:
                return await f.read()
        if src.startswith("data:"):
            _, encoded = src.split(",", 1)
            return base64.b64decode(encoded + "===")
        return base64.b64decode(src + "===", validate=False)
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError, binascii.Error) as e:
        raise BackgroundLoadError(f"could not load '{src[:70]}': {type(e).__name__}") from e


async def load_image(src: str, session: aiohttp.ClientSession) -> Image.Image:
    data = await load_image_bytes(src, session)
    image = image_process.decode_image(data)
    if image is None:
        raise BackgroundLoadError(f"could not decode '{src[:70]}'")
    return image


async def load_background(src: Optional[str]) -> Tuple[Optional[Image.Image], Optional[str]]:
    """Load the template background for the editor.

    Never raises: on failure the editor keeps working over the placeholder
    fill, so the error is returned next to a None image.
    """
    if not src:
        return None, None
    async with aiohttp.ClientSession() as session:
        try:
            return await load_image(src, session), None
        except BackgroundLoadError as e:
            logger.warning(f"Background not available: {e}")
            return None, "Failed to load background image"


async def load_many(sources: Sequence[str]) -> List[Image.Image]:
    """Load every source concurrently; any single failure aborts with ExportError."""
    if not sources:
        return []
    async with aiohttp.ClientSession() as session:
        results = await asyncio.gather(*(load_image(src, session) for src in sources), return_exceptions=True)
    failed = [(src, r) for src, r in zip(sources, results) if isinstance(r, BaseException)]
    if failed:
        for src, err in failed:
            logger.error(f"Failed to load image '{src[:70]}': {err}")
        raise ExportError(f"{len(failed)} of {len(sources)} image(s) could not be loaded") from failed[0][1]
    return list(results)
