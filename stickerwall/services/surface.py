"""
Drawing surface with exclusive, one-way ownership transfer.
"""

from typing import Optional, Tuple

from PIL import Image

from stickerwall.utils.common import SurfaceDetachedError


class Surface:
    """A raster drawing target owned by exactly one context at a time.

    Calling transfer() moves the underlying image into a new Surface and
    invalidates this one; any later access through the old reference raises
    SurfaceDetachedError.

    Args:
        width: Initial width in pixels
        height: Initial height in pixels
        mode: Pillow image mode of the backing image
    """

    def __init__(self, width: int, height: int, mode: str = "RGB"):
        if width <= 0 or height <= 0:
            raise ValueError(f"Surface dimensions must be positive, got {width}x{height}")
        self._image: Optional[Image.Image] = Image.new(mode, (width, height))
        self.mode = mode

    @classmethod
    def _adopt(cls, image: Image.Image) -> "Surface":
        surface = cls.__new__(cls)
        surface._image = image
        surface.mode = image.mode
        return surface

    @property
    def detached(self) -> bool:
        return self._image is None

    @property
    def image(self) -> Image.Image:
        if self._image is None:
            raise SurfaceDetachedError("Surface was transferred and can no longer be used")
        return self._image

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    def transfer(self) -> "Surface":
        """Hand the backing image to a new owner and detach this reference."""
        image = self.image
        self._image = None
        return Surface._adopt(image)

    def resize(self, width: int, height: int) -> None:
        """Replace the contents with a blank image of the requested size."""
        if width <= 0 or height <= 0:
            raise ValueError(f"Surface dimensions must be positive, got {width}x{height}")
        if self._image is None:
            raise SurfaceDetachedError("Surface was transferred and can no longer be used")
        self._image = Image.new(self.mode, (width, height))

    def fill(self, color: Tuple[int, int, int]) -> None:
        """Paint the whole surface with an opaque color."""
        self._image = Image.new(self.mode, self.image.size, color)
