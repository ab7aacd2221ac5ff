"""
Image asset cache.

Retrieves and decodes the fixed list of sticker images once. Sources may be
http(s) URLs, data: URLs or local file paths; remote sources are fetched
concurrently on the caller's event loop.
"""

import asyncio
import base64
import binascii
import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union
from urllib.parse import unquote_to_bytes

import httpx
from PIL import Image

from stickerwall.utils.common import (
    AssetLoadError,
    ImageConstants,
    ImageProcessingError,
    decode_image,
    setup_logging,
)

logger = setup_logging(__name__)


def _decode_data_url(url: str) -> bytes:
    """Return the payload of a data: URL."""
    try:
        header, payload = url[len("data:"):].split(",", 1)
    except ValueError as e:
        raise ImageProcessingError("Malformed data URL") from e

    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ImageProcessingError(f"Invalid base64 payload in data URL: {e}") from e
    return unquote_to_bytes(payload)


def describe_source(source: str) -> str:
    """Short form of a locator for log messages."""
    if source.startswith("data:"):
        return f"{source[:30]}..."
    return source


class ImageAssetCache:
    """Ordered, read-only cache of decoded sticker images.

    The cache is either empty (not loaded), or holds exactly one image per
    source in source order. A failed load leaves it empty.

    Args:
        sources: Ordered image locators
        timeout: Timeout in seconds for each remote request
        max_image_size_mb: Largest accepted encoded image
        transport: Optional httpx transport, used instead of the network
    """

    def __init__(
        self,
        sources: Sequence[str],
        timeout: float = 30.0,
        max_image_size_mb: float = ImageConstants.MAX_FILE_SIZE_MB,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.sources: List[str] = [str(source) for source in sources]
        self.timeout = timeout
        self.max_image_size_mb = max_image_size_mb
        self.transport = transport
        self._images: Optional[List[Image.Image]] = None

    @property
    def is_ready(self) -> bool:
        return self._images is not None

    @property
    def images(self) -> List[Image.Image]:
        return list(self._images or [])

    def __len__(self) -> int:
        return len(self._images or [])

    async def load(self) -> List[Image.Image]:
        """Retrieve and decode every source.

        Returns:
            Decoded images, indexed like the sources

        Raises:
            AssetLoadError: If any single source fails; no partial result is kept
        """
        if self._images is not None:
            return self.images

        logger.info(f"Loading {len(self.sources)} sticker images...")
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport, follow_redirects=True
        ) as client:
            results = await asyncio.gather(
                *(self._load_one(client, source) for source in self.sources),
                return_exceptions=True,
            )

        failures: List[Tuple[str, BaseException]] = []
        for source, result in zip(self.sources, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to load image: {describe_source(source)}: {result}")
                failures.append((source, result))

        if failures:
            raise AssetLoadError(
                f"Failed to load images ({len(failures)} of {len(self.sources)} failed)",
                failures,
            )

        self._images = list(results)
        logger.info(f"Loaded {len(self._images)} sticker images")
        return self.images

    async def _load_one(self, client: httpx.AsyncClient, source: str) -> Image.Image:
        data = await self._fetch(client, source)
        return decode_image(
            data, describe_source(source), max_size_mb=self.max_image_size_mb
        )

    async def _fetch(self, client: httpx.AsyncClient, source: str) -> bytes:
        if source.startswith(("http://", "https://")):
            response = await client.get(source)
            response.raise_for_status()
            return response.content

        if source.startswith("data:"):
            return _decode_data_url(source)

        path = Path(source[len("file://"):] if source.startswith("file://") else source)
        if not path.is_file():
            raise FileNotFoundError(f"Image file not found: {path}")
        return await asyncio.to_thread(path.read_bytes)


def load_image_sources(location: Union[str, Path]) -> List[str]:
    """Build the ordered source list for the cache.

    Args:
        location: A directory (its image files, sorted by name) or a text file
            with one locator per line; blank lines and '#' comments are skipped

    Returns:
        Ordered image locators

    Raises:
        AssetLoadError: If the location does not exist
    """
    path = Path(location)

    if path.is_dir():
        return [
            str(path / name)
            for name in sorted(os.listdir(path))
            if Path(name).suffix.lower() in ImageConstants.IMAGE_EXTENSIONS
        ]

    if path.is_file():
        base_dir = path.parent
        sources = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if "://" in line or line.startswith("data:") or os.path.isabs(line):
                    sources.append(line)
                else:
                    sources.append(str(base_dir / line))
        return sources

    raise AssetLoadError(f"Image source location not found: {location}")
