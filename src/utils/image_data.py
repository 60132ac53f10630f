# coding: utf-8
"""
Image payload helpers: data URLs and remote downloads
"""

import base64
import re
from typing import Optional, Tuple

import aiohttp
from loguru import logger

from config.config import ModelConfig


DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)


def is_data_url(value: Optional[str]) -> bool:
    return bool(value) and value.startswith("data:")


def parse_data_url(data_url: str) -> Tuple[str, bytes]:
    """
    Decode a base64 data URL

    Returns:
        (mime_type, raw bytes)

    Raises:
        ValueError: Not a base64 data URL
    """
    match = DATA_URL_RE.match(data_url.strip())
    if not match:
        raise ValueError("Invalid image data URL")
    return match.group("mime"), base64.b64decode(match.group("data"))


def to_data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def extension_for(mime_type: str) -> str:
    return {
        "image/jpeg": "jpg",
        "image/jpg": "jpg",
        "image/webp": "webp",
        "image/gif": "gif",
    }.get(mime_type, "png")


async def load_image(url: str) -> Optional[Tuple[str, bytes]]:
    """
    Get image bytes from a data URL or http(s) URL

    Returns:
        (mime_type, bytes) or None if the image cannot be loaded
    """
    if is_data_url(url):
        try:
            return parse_data_url(url)
        except ValueError as e:
            logger.warning(f"Could not decode data URL: {e}")
            return None

    try:
        timeout = aiohttp.ClientTimeout(total=ModelConfig.REFERENCE_DOWNLOAD_TIMEOUT)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as response:
                if response.status != 200:
                    logger.warning(f"Image download failed ({response.status}): {url[:100]}")
                    return None
                mime_type = response.headers.get("Content-Type", "image/jpeg").split(";")[0]
                return mime_type, await response.read()

    except (aiohttp.ClientError, TimeoutError) as e:
        logger.warning(f"Image download error for {url[:100]}: {e}")
        return None
