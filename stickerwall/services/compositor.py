"""
Compositing placements onto a surface and exporting the result.
"""

import asyncio
import base64
import io
import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from PIL import Image

from stickerwall.core.layout import Placement
from stickerwall.services.surface import Surface
from stickerwall.utils.common import get_resampling_filter, setup_logging

logger = setup_logging(__name__)


@dataclass(frozen=True)
class ExportedImage:
    """Encoded canvas, as raw bytes and as a data URL."""

    blob: bytes
    data_url: str
    mime_type: str


def _scaled_sticker(
    bitmap: Image.Image, size: int, cache: Dict[Tuple[int, int], Image.Image], index: int
) -> Image.Image:
    key = (index, size)
    scaled = cache.get(key)
    if scaled is None:
        scaled = bitmap.resize((size, size), get_resampling_filter())
        cache[key] = scaled
    return scaled


def _visible_box(
    canvas: Image.Image, placement: Placement, size: int
) -> Optional[Tuple[int, int, int, int]]:
    """Canvas box covered by the rotated sticker, or None when it is fully off-canvas."""
    theta = math.radians(placement.angle)
    half = size * (abs(math.cos(theta)) + abs(math.sin(theta))) / 2
    left = max(0, math.floor(placement.x - half))
    top = max(0, math.floor(placement.y - half))
    right = min(canvas.width, math.ceil(placement.x + half))
    bottom = min(canvas.height, math.ceil(placement.y + half))
    if right <= left or bottom <= top:
        return None
    return left, top, right, bottom


def _draw_cropped(canvas: Image.Image, bitmap: Image.Image, placement: Placement, size: int) -> None:
    """Draw a sticker larger than the canvas by sampling only its visible part."""
    box = _visible_box(canvas, placement, size)
    if box is None:
        return

    if bitmap.width > size or bitmap.height > size:
        bitmap = bitmap.resize((min(bitmap.width, size), min(bitmap.height, size)), get_resampling_filter())
    if bitmap.mode != "RGBA":
        bitmap = bitmap.convert("RGBA")

    # Inverse mapping: canvas point -> sticker-local point (undo clockwise rotation) -> bitmap pixel
    theta = math.radians(placement.angle)
    cos, sin = math.cos(theta), math.sin(theta)
    kx = bitmap.width / size
    ky = bitmap.height / size
    left, top, right, bottom = box
    dx = left - placement.x
    dy = top - placement.y
    data = (
        kx * cos,
        kx * sin,
        kx * (cos * dx + sin * dy) + bitmap.width / 2,
        -ky * sin,
        ky * cos,
        ky * (cos * dy - sin * dx) + bitmap.height / 2,
    )
    region = bitmap.transform(
        (right - left, bottom - top), Image.Transform.AFFINE, data, resample=Image.Resampling.BICUBIC
    )
    canvas.paste(region, (left, top), region)


def _is_oversized(canvas: Image.Image, size: int) -> bool:
    return size > max(canvas.width, canvas.height)


def draw_placement(
    canvas: Image.Image, bitmap: Image.Image, placement: Placement, scaled: Optional[Image.Image] = None
) -> None:
    """Draw one sticker centered on the placement, rotated clockwise by its angle."""
    size = max(1, int(round(placement.size)))
    if scaled is None and _is_oversized(canvas, size):
        _draw_cropped(canvas, bitmap, placement, size)
        return
    sticker = scaled if scaled is not None else bitmap.resize((size, size), get_resampling_filter())
    if sticker.mode != "RGBA":
        sticker = sticker.convert("RGBA")

    # PIL rotates counter-clockwise for positive angles
    rotated = sticker.rotate(-placement.angle, expand=True, resample=Image.Resampling.BICUBIC)

    offset_x = int(round(placement.x - rotated.width / 2))
    offset_y = int(round(placement.y - rotated.height / 2))
    canvas.paste(rotated, (offset_x, offset_y), rotated)


def composite_placements(
    surface: Surface,
    placements: Sequence[Placement],
    bitmaps: Sequence[Image.Image],
    background: Tuple[int, int, int],
) -> int:
    """Fill the surface and draw every placement in order.

    Placements whose index has no bitmap are skipped without raising.

    Args:
        surface: Target surface, already sized for the request
        placements: Placements in draw order
        bitmaps: Loaded sticker images
        background: Fill color drawn first

    Returns:
        Number of stickers drawn
    """
    surface.fill(background)
    canvas = surface.image
    scaled_cache: Dict[Tuple[int, int], Image.Image] = {}

    drawn = 0
    skipped = 0
    for placement in placements:
        index = placement.image_index
        bitmap = bitmaps[index] if 0 <= index < len(bitmaps) else None
        if bitmap is None:
            skipped += 1
            continue

        size = max(1, int(round(placement.size)))
        if _is_oversized(canvas, size):
            _draw_cropped(canvas, bitmap, placement, size)
        else:
            draw_placement(canvas, bitmap, placement, _scaled_sticker(bitmap, size, scaled_cache, index))
        drawn += 1

    if skipped:
        logger.debug(f"Skipped {skipped} placements without a loaded image")
    logger.info(f"Composited {drawn} stickers onto {canvas.width}x{canvas.height} canvas")
    return drawn


def encode_surface(surface: Surface, image_format: str = "PNG") -> ExportedImage:
    """Encode the surface synchronously."""
    image_format = image_format.upper()
    image = surface.image
    if image_format == "JPEG" and image.mode != "RGB":
        image = image.convert("RGB")

    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    blob = buffer.getvalue()

    mime_type = f"image/{image_format.lower()}"
    data_url = f"data:{mime_type};base64,{base64.b64encode(blob).decode('ascii')}"
    return ExportedImage(blob=blob, data_url=data_url, mime_type=mime_type)


async def export_surface(surface: Surface, image_format: str = "PNG") -> ExportedImage:
    """Encode the surface after yielding to the event loop once."""
    await asyncio.sleep(0)
    exported = encode_surface(surface, image_format)
    logger.debug(f"Exported {len(exported.blob)} bytes as {exported.mime_type}")
    return exported
