"""
Stochastic sticker layout.

Stickers are dropped column by column onto a one-dimensional height field that
stands in for real collision tests. Each round starts from flat ground and keeps
dropping shuffled stickers until one of them cannot find a spot within the retry
bound; the next round then stacks a fresh layer on top in draw order.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from stickerwall.core.config_manager import LayoutConfig
from stickerwall.core.selector import WeightedSelector
from stickerwall.utils.common import setup_logging

logger = setup_logging(__name__)

ACCEPTED = "accepted"
EMPTY_WINDOW = "empty-window"
TOO_HIGH = "too-high"


@dataclass(frozen=True)
class Placement:
    """One sticker to draw.

    Args:
        image_index: Index into the loaded image list
        x: Center x in pixels
        y: Center y in pixels
        size: Edge length of the square draw region in pixels
        angle: Clockwise rotation in degrees
    """

    image_index: int
    x: float
    y: float
    size: float
    angle: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CanvasMetrics:
    """Derived layout geometry for one canvas.

    Args:
        density: Sticker columns across the width, after aspect correction
        scale: Pixels per layout unit
        height_in_unit: Canvas height in layout units
    """

    density: float
    scale: float
    height_in_unit: float

    @classmethod
    def for_canvas(cls, width: int, height: int, density: float) -> "CanvasMetrics":
        if height > width:
            density = density * width / height
        scale = width / density
        return cls(density=density, scale=scale, height_in_unit=height / scale)


class HeightField:
    """Per-column occupied height, in layout units."""

    def __init__(self, cells: int):
        self.heights = np.zeros(cells, dtype=np.float64)

    def __len__(self) -> int:
        return len(self.heights)

    def window(self, center: float, half_width: float) -> Tuple[int, int]:
        """Cell range [start, stop) covered by a sticker centered on `center` (in cells)."""
        start = math.floor(max(0.0, center - half_width))
        stop = math.floor(min(float(len(self.heights)), center + half_width))
        return start, stop

    def sample(
        self, start: int, stop: int, rng: np.random.Generator, settle_jitter: float
    ) -> Tuple[float, float]:
        """Return (min, max) of the window, each cell lowered by an independent settle draw."""
        settled = self.heights[start:stop] - rng.uniform(0.0, settle_jitter, stop - start)
        return float(settled.min()), float(settled.max())

    def fill(self, start: int, stop: int, level: float) -> None:
        self.heights[start:stop] = level


class LayoutGenerator:
    """Produces ordered placements for a canvas.

    All randomness comes from the injected generator, so two generators built
    with the same seed yield identical layouts.

    Args:
        config: Layout tunables
        rng: Random source; a fresh unseeded generator is used when omitted
    """

    def __init__(self, config: Optional[LayoutConfig] = None, rng: Optional[np.random.Generator] = None):
        self.config = config or LayoutConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.size_selector = WeightedSelector(self.config.size_categories)

    def generate(
        self, width: int, height: int, total: int, density: float, size_variation: float
    ) -> List[Placement]:
        """Lay out stickers over a width x height canvas.

        Args:
            width: Canvas width in pixels
            height: Canvas height in pixels
            total: Number of distinct images available
            density: Approximate sticker columns across the width
            size_variation: Exponent applied to the size category

        Returns:
            Placements in draw order: round by round, then in acceptance order

        Raises:
            ValueError: If the canvas or density is not positive
            InternalSelectionError: If the size table cannot produce a category
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Canvas dimensions must be positive, got {width}x{height}")
        if not math.isfinite(density) or density <= 0:
            raise ValueError(f"density must be positive, got {density}")
        if total <= 0:
            return []

        metrics = CanvasMetrics.for_canvas(width, height, density)
        logger.debug(
            f"Layout {width}x{height}: density={metrics.density:.3f} "
            f"scale={metrics.scale:.2f} height_in_unit={metrics.height_in_unit:.2f}"
        )

        placements: List[Placement] = []
        for round_index in range(self.config.rounds):
            layer = self._run_round(metrics, total, size_variation)
            logger.debug(f"Round {round_index + 1}/{self.config.rounds}: {len(layer)} stickers")
            placements.extend(layer)

        logger.info(f"Generated {len(placements)} placements over {self.config.rounds} rounds")
        return placements

    def _run_round(self, metrics: CanvasMetrics, total: int, size_variation: float) -> List[Placement]:
        """Fill one layer until a sticker cannot be placed."""
        config = self.config
        field = HeightField(math.ceil(metrics.density * config.columns_per_unit))
        placed: List[Placement] = []

        for _ in range(config.max_passes_per_round):
            for index in self.rng.permutation(total):
                size = self._draw_size(size_variation)
                placement = self._place_sticker(field, metrics, int(index), size)
                if placement is None:
                    return placed
                placed.append(placement)

        logger.warning(f"Round stopped after {config.max_passes_per_round} passes without saturating")
        return placed

    def _draw_size(self, size_variation: float) -> float:
        low, high = self.config.size_jitter
        jitter = self.rng.uniform(low, high) ** 2
        return jitter * self.size_selector.select(self.rng) ** size_variation

    def _place_sticker(
        self, field: HeightField, metrics: CanvasMetrics, index: int, size: float
    ) -> Optional[Placement]:
        """Retry random columns for one sticker; None once the retry bound is exceeded."""
        for _ in range(self.config.max_attempts):
            placement, _reason = self.try_place(field, metrics, index, size)
            if placement is not None:
                return placement
        return None

    def try_place(
        self, field: HeightField, metrics: CanvasMetrics, index: int, size: float
    ) -> Tuple[Optional[Placement], str]:
        """Make a single placement attempt at a random column.

        Returns:
            (placement, reason); placement is None unless reason is "accepted"
        """
        config = self.config
        span = metrics.density + 2 * config.edge_margin
        x = math.floor(self.rng.random() * span) - config.edge_margin

        half_width = config.columns_per_unit / config.window_divisor * size
        start, stop = field.window(x * config.columns_per_unit, half_width)
        if stop <= start:
            return None, EMPTY_WINDOW

        min_y, max_y = field.sample(start, stop, self.rng, config.settle_jitter)
        if not min_y < metrics.height_in_unit + config.floor_margin:
            return None, TOO_HIGH

        field.fill(
            start,
            stop,
            min_y + (max_y - min_y) / config.blend_divisor + size / config.settle_divisor,
        )
        low, high = config.angle_range
        placement = Placement(
            image_index=index,
            x=x * metrics.scale,
            y=min_y * metrics.scale,
            size=size * metrics.scale,
            angle=float(self.rng.uniform(low, high)),
        )
        return placement, ACCEPTED


def generate_layout(
    width: int,
    height: int,
    total: int,
    density: float = 20.0,
    size_variation: float = 1.0,
    rng: Optional[np.random.Generator] = None,
    config: Optional[LayoutConfig] = None,
) -> List[Placement]:
    """Convenience wrapper around LayoutGenerator.generate."""
    return LayoutGenerator(config, rng).generate(width, height, total, density, size_variation)
