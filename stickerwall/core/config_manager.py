"""Configuration management for layout and rendering."""

import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from stickerwall.utils.common import ConfigurationError, parse_color, setup_logging
from stickerwall.utils.env_loader import get_prefixed_env, load_environment

logger = setup_logging(__name__)


# (size multiplier, weight) in tie-break order
DEFAULT_SIZE_CATEGORIES: List[Tuple[float, float]] = [(0.5, 1.0), (1.0, 10.0), (3.0, 1.0)]


@dataclass
class LayoutConfig:
    """Tunables for the layout generator.

    Args:
        columns_per_unit: Height field cells per unit of density
        rounds: Number of independent layering passes
        size_categories: Ordered (size, weight) pairs for the size draw
        size_jitter: Bounds of the uniform jitter, squared before use
        settle_jitter: Upper bound of the downward perturbation per cell read
        blend_divisor: How much of the window's height spread is kept on acceptance
        settle_divisor: Sticker size is divided by this before raising the terrain
        window_divisor: Half window width in cells is columns_per_unit / window_divisor * size
        edge_margin: Units a sticker may start beyond either side of the canvas
        floor_margin: Units below the bottom edge a sticker may still land
        max_attempts: Attempts per sticker before the round is abandoned
        max_passes_per_round: Upper bound on shuffle passes in one round
        angle_range: Rotation bounds in degrees

    Raises:
        ConfigurationError: If any value is invalid
    """

    columns_per_unit: int = 100
    rounds: int = 3
    size_categories: List[Tuple[float, float]] = field(
        default_factory=lambda: list(DEFAULT_SIZE_CATEGORIES)
    )
    size_jitter: Tuple[float, float] = (0.9, 1.1)
    settle_jitter: float = 0.1
    blend_divisor: float = 5.0
    settle_divisor: float = 2.0
    window_divisor: float = 2.3
    edge_margin: int = 2
    floor_margin: float = 2.0
    max_attempts: Optional[int] = None
    max_passes_per_round: int = 10_000
    angle_range: Tuple[float, float] = (-20.0, 30.0)

    def __post_init__(self) -> None:
        """Normalize sequence fields and validate."""
        self.size_categories = [(float(s), float(w)) for s, w in self.size_categories]
        self.size_jitter = (float(self.size_jitter[0]), float(self.size_jitter[1]))
        self.angle_range = (float(self.angle_range[0]), float(self.angle_range[1]))
        if self.max_attempts is None:
            self.max_attempts = 100 * self.columns_per_unit
        self._validate_config()

    def _validate_config(self) -> None:
        if not isinstance(self.columns_per_unit, int) or self.columns_per_unit <= 0:
            raise ConfigurationError("columns_per_unit must be a positive integer")

        if not isinstance(self.rounds, int) or self.rounds < 1:
            raise ConfigurationError("rounds must be a positive integer")

        if not self.size_categories:
            raise ConfigurationError("size_categories must not be empty")

        for size, weight in self.size_categories:
            if size <= 0 or weight <= 0:
                raise ConfigurationError(
                    f"size categories need positive size and weight, got ({size}, {weight})"
                )

        low, high = self.size_jitter
        if low <= 0 or high < low:
            raise ConfigurationError(f"Invalid size_jitter: {self.size_jitter}")

        if self.settle_jitter < 0:
            raise ConfigurationError("settle_jitter must not be negative")

        for name in ("blend_divisor", "settle_divisor", "window_divisor"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")

        if self.edge_margin < 0:
            raise ConfigurationError("edge_margin must not be negative")

        if not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be a positive integer")

        if not isinstance(self.max_passes_per_round, int) or self.max_passes_per_round < 1:
            raise ConfigurationError("max_passes_per_round must be a positive integer")

        if self.angle_range[1] < self.angle_range[0]:
            raise ConfigurationError(f"Invalid angle_range: {self.angle_range}")


@dataclass
class RenderConfig:
    """Settings for compositing, export and asset retrieval.

    Args:
        background_color: Canvas fill before stickers are drawn
        image_format: Pillow format name used for export
        default_width: Canvas width when a request omits it
        default_height: Canvas height when a request omits it
        default_density: Sticker columns across the width
        default_size_variation: Size distribution exponent
        request_timeout: Timeout in seconds for each remote asset
        max_image_size_mb: Largest accepted source image
    """

    background_color: Union[str, Tuple[int, int, int]] = "#eaffef"
    image_format: str = "PNG"
    default_width: int = 6000
    default_height: int = 3164
    default_density: float = 20.0
    default_size_variation: float = 1.0
    request_timeout: float = 30.0
    max_image_size_mb: int = 100

    def __post_init__(self) -> None:
        self.background_color = parse_color(self.background_color)
        self.image_format = str(self.image_format).upper()

        if self.image_format not in ("PNG", "JPEG", "WEBP"):
            raise ConfigurationError(f"Unsupported image_format: {self.image_format}")

        if self.default_width <= 0 or self.default_height <= 0:
            raise ConfigurationError("default canvas dimensions must be positive")

        if not math.isfinite(self.default_density) or self.default_density <= 0:
            raise ConfigurationError("default_density must be positive")

        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")

    @property
    def mime_type(self) -> str:
        return f"image/{self.image_format.lower()}"


def _number(value: str) -> Union[int, float]:
    try:
        return int(value)
    except ValueError:
        return float(value)


def _coerce(value: str, current: Any) -> Any:
    """Convert an environment string to the type of the current setting."""
    if isinstance(current, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, tuple):
        # "#rrggbb" style values stay strings
        if "," not in value:
            return value
        return tuple(_number(part.strip()) for part in value.split(","))
    if isinstance(current, list):
        return yaml.safe_load(value)
    return value


class ConfigManager:
    """Builds layout and render settings from defaults, a YAML file and the environment.

    Precedence, lowest first: built-in defaults, YAML file, STICKERWALL_* variables.
    Environment variable names use the section as a prefix, for example
    STICKERWALL_LAYOUT_ROUNDS or STICKERWALL_RENDER_BACKGROUND_COLOR.
    """

    SECTIONS = ("layout", "render")

    def __init__(self, config_file: Optional[Union[str, Path]] = None, use_env: bool = True):
        self.config_file = Path(config_file) if config_file else None
        self.layout = LayoutConfig()
        self.render = RenderConfig()
        # Names set by a file or environment layer, per section
        self._explicit: Dict[str, set] = {section: set() for section in self.SECTIONS}
        self._load_all_configs(use_env)

    def _load_all_configs(self, use_env: bool) -> None:
        if self.config_file is not None:
            self._load_yaml_config(self.config_file)

        if use_env:
            load_environment()
            self._load_env_overrides()

    def _load_yaml_config(self, path: Path) -> None:
        """Load layout/render sections from a YAML file."""
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {path}")

        unknown = set(data) - set(self.SECTIONS)
        if unknown:
            raise ConfigurationError(f"Unknown config sections: {', '.join(sorted(unknown))}")

        for section in self.SECTIONS:
            setattr(self, section, self._apply(section, data.get(section) or {}))
        logger.info(f"Loaded configuration from {path}")

    def _load_env_overrides(self) -> None:
        env = get_prefixed_env()
        for section in self.SECTIONS:
            prefix = f"{section}_"
            current = getattr(self, section)
            values = {}
            for key, raw in env.items():
                if not key.startswith(prefix):
                    continue
                name = key[len(prefix):]
                if not hasattr(current, name):
                    logger.warning(f"Ignoring unknown setting STICKERWALL_{key.upper()}")
                    continue
                try:
                    values[name] = _coerce(raw, getattr(current, name))
                except (TypeError, ValueError) as e:
                    raise ConfigurationError(
                        f"Invalid value for STICKERWALL_{key.upper()}: {raw!r}"
                    ) from e
            if values:
                setattr(self, section, self._apply(section, values))
                logger.debug(f"Applied {len(values)} {section} override(s) from environment")

    def _apply(self, section: str, values: Dict[str, Any]):
        """Return a copy of a section's config dataclass with the given values."""
        config = getattr(self, section)
        if not isinstance(values, dict):
            raise ConfigurationError(f"Config section must be a mapping, got {type(values).__name__}")

        known = {f.name for f in fields(config)}
        unknown = set(values) - known
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")

        explicit = self._explicit[section] | set(values)
        if "columns_per_unit" in values and "max_attempts" not in explicit:
            # A derived retry bound follows the new resolution
            values = dict(values, max_attempts=None)

        try:
            updated = replace(config, **values)
        except TypeError as e:
            raise ConfigurationError(str(e)) from e
        self._explicit[section] = explicit
        return updated

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Current settings as plain data, suitable for yaml.safe_dump."""
        result: Dict[str, Dict[str, Any]] = {}
        for section in self.SECTIONS:
            config = getattr(self, section)
            section_values = {}
            for f in fields(config):
                value = getattr(config, f.name)
                if isinstance(value, tuple):
                    value = list(value)
                elif isinstance(value, list):
                    value = [list(item) if isinstance(item, tuple) else item for item in value]
                section_values[f.name] = value
            result[section] = section_values
        return result

    def save_config_to_yaml(self, path: Union[str, Path]) -> None:
        """Save the current settings to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, indent=2)
        logger.info(f"Saved configuration to {path}")
