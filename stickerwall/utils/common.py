"""
Common utility functions used across the sticker wall modules.
"""

import io
import sys
import logging
from typing import List, Optional, Tuple, Union

from PIL import Image


LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%I:%M:%S %p"


class ImageConstants:
    """Constants for image processing operations."""

    MAX_FILE_SIZE_MB = 100  # Maximum source image size in MB
    DEFAULT_MODE = "RGBA"
    IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".tiff", ".webp"}


class StickerWallError(Exception):
    """Base exception for sticker wall errors."""

    pass


class ConfigurationError(StickerWallError):
    """Exception raised for configuration-related errors."""

    pass


class ImageProcessingError(StickerWallError):
    """Exception raised when a single source image cannot be decoded."""

    pass


class AssetLoadError(StickerWallError):
    """Exception raised when the image cache cannot be populated.

    Args:
        message: Summary message
        failures: List of (source, error) pairs for every source that failed
    """

    def __init__(self, message: str, failures: Optional[List[Tuple[str, BaseException]]] = None):
        super().__init__(message)
        self.failures = failures or []


class SurfaceNotReadyError(StickerWallError):
    """Exception raised when a generate request arrives before the worker is ready."""

    pass


class SurfaceDetachedError(StickerWallError):
    """Exception raised when a surface is used after its ownership was transferred."""

    pass


class InternalSelectionError(StickerWallError):
    """Exception raised when the weighted selector cannot pick a category.

    This indicates a broken weight table (empty or non-positive weights).
    """

    pass


# Configure logging
def setup_logging(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Set up and return a logger with the given name and level.

    Args:
        name: The name of the logger
        level: The logging level (default: logging.INFO)

    Returns:
        A configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove any existing handlers to avoid duplicate messages
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def set_log_level(level: int) -> None:
    """Change the level of every logger created for this package."""
    for name, logger in logging.Logger.manager.loggerDict.items():
        if not isinstance(logger, logging.Logger) or not name.startswith("stickerwall"):
            continue
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)


# Image handling
def decode_image(
    data: bytes,
    source: str = "<bytes>",
    mode: Optional[str] = ImageConstants.DEFAULT_MODE,
    max_size_mb: float = ImageConstants.MAX_FILE_SIZE_MB,
) -> Image.Image:
    """Decode raw image bytes into a fully loaded PIL image.

    Args:
        data: Encoded image bytes
        source: Locator used in error messages
        mode: Optional mode to convert the image to (e.g., 'RGB', 'RGBA')
        max_size_mb: Largest accepted encoded size

    Returns:
        The decoded image

    Raises:
        ImageProcessingError: If the bytes are empty, too large or not a valid image
    """
    if not data:
        raise ImageProcessingError(f"Empty image data: {source}")

    max_size = max_size_mb * 1024 * 1024
    if len(data) > max_size:
        raise ImageProcessingError(
            f"Image too large: {source} ({len(data) / (1024 * 1024):.1f}MB)"
        )

    try:
        with Image.open(io.BytesIO(data)) as img:
            # Verify image is not corrupted
            img.verify()

        # Reopen for actual use (verify leaves the image unusable)
        img = Image.open(io.BytesIO(data))
        img.load()

        if mode and img.mode != mode:
            img = img.convert(mode)
        return img
    except Image.UnidentifiedImageError as e:
        raise ImageProcessingError(f"Unsupported image format: {source}") from e
    except (OSError, SyntaxError, ValueError) as e:
        raise ImageProcessingError(f"Corrupted image data: {source}: {e}") from e


def get_resampling_filter():
    """
    Get the resampling filter used when scaling stickers.

    Returns:
        The LANCZOS resampling filter
    """
    return Image.Resampling.LANCZOS


def parse_color(color: Union[str, Tuple[int, ...]]) -> Tuple[int, int, int]:
    """Normalize a color given as '#rrggbb', a color name or an RGB(A) tuple.

    Raises:
        ConfigurationError: If the color cannot be parsed
    """
    if isinstance(color, (tuple, list)):
        if len(color) < 3 or not all(isinstance(c, int) and 0 <= c <= 255 for c in color):
            raise ConfigurationError(f"Invalid color tuple: {color}")
        return int(color[0]), int(color[1]), int(color[2])

    from PIL import ImageColor

    try:
        rgb = ImageColor.getrgb(str(color))
    except ValueError as e:
        raise ConfigurationError(f"Invalid color: {color}") from e
    return rgb[0], rgb[1], rgb[2]
