"""
Sticker wallpaper generator: stochastic sticker layout, compositing and export.
"""

__version__ = "0.1.0"

from stickerwall.core.layout import Placement, generate_layout
from stickerwall.services.surface import Surface
from stickerwall.services.worker import StickerWorker

__all__ = ["Placement", "generate_layout", "Surface", "StickerWorker", "__version__"]
