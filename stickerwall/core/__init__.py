"""
Layout algorithm and configuration.
"""

from .config_manager import ConfigManager, LayoutConfig, RenderConfig
from .layout import LayoutGenerator, Placement, generate_layout
from .selector import WeightedSelector, random_select

__all__ = [
    "ConfigManager",
    "LayoutConfig",
    "RenderConfig",
    "LayoutGenerator",
    "Placement",
    "generate_layout",
    "WeightedSelector",
    "random_select",
]
