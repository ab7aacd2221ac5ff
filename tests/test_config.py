import os

import pytest
import yaml

from stickerwall.core.config_manager import ConfigManager, LayoutConfig, RenderConfig
from stickerwall.utils.common import ConfigurationError


def test_layout_defaults():
    config = LayoutConfig()

    assert config.columns_per_unit == 100
    assert config.max_attempts == 10_000
    assert config.rounds == 3
    assert config.size_categories == [(0.5, 1.0), (1.0, 10.0), (3.0, 1.0)]
    assert config.angle_range == (-20.0, 30.0)


def test_retry_bound_follows_resolution():
    assert LayoutConfig(columns_per_unit=50).max_attempts == 5_000
    assert LayoutConfig(columns_per_unit=50, max_attempts=7).max_attempts == 7


@pytest.mark.parametrize(
    "kwargs",
    [
        {"rounds": 0},
        {"columns_per_unit": 0},
        {"size_categories": []},
        {"size_categories": [(1.0, -1.0)]},
        {"size_jitter": (1.2, 1.0)},
        {"blend_divisor": 0},
        {"max_passes_per_round": 0},
        {"angle_range": (10, -10)},
    ],
)
def test_invalid_layout_settings_are_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        LayoutConfig(**kwargs)


def test_render_defaults():
    config = RenderConfig()

    assert config.background_color == (0xEA, 0xFF, 0xEF)
    assert config.image_format == "PNG"
    assert config.mime_type == "image/png"
    assert (config.default_width, config.default_height) == (6000, 3164)


def test_invalid_render_settings_are_rejected():
    with pytest.raises(ConfigurationError):
        RenderConfig(background_color="not-a-color")
    with pytest.raises(ConfigurationError):
        RenderConfig(image_format="tga")
    with pytest.raises(ConfigurationError):
        RenderConfig(default_density=0)


def test_yaml_file_overrides_defaults(tmp_path):
    path = tmp_path / "wall.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "layout": {"rounds": 2, "size_categories": [[1.0, 1.0], [2.0, 3.0]]},
                "render": {"background_color": "#000000", "default_density": 12},
            }
        )
    )

    manager = ConfigManager(path, use_env=False)

    assert manager.layout.rounds == 2
    assert manager.layout.size_categories == [(1.0, 1.0), (2.0, 3.0)]
    assert manager.render.background_color == (0, 0, 0)
    assert manager.render.default_density == 12


def test_unknown_yaml_keys_are_rejected(tmp_path):
    path = tmp_path / "wall.yaml"
    path.write_text("layout:\n  wobble: 3\n")
    with pytest.raises(ConfigurationError):
        ConfigManager(path, use_env=False)

    path.write_text("colors:\n  red: 1\n")
    with pytest.raises(ConfigurationError):
        ConfigManager(path, use_env=False)


def test_missing_config_file_is_an_error(tmp_path):
    with pytest.raises(ConfigurationError):
        ConfigManager(tmp_path / "missing.yaml", use_env=False)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("STICKERWALL_LAYOUT_ROUNDS", "4")
    monkeypatch.setenv("STICKERWALL_LAYOUT_ANGLE_RANGE", "-10,10")
    monkeypatch.setenv("STICKERWALL_RENDER_BACKGROUND_COLOR", "255,0,0")
    monkeypatch.setenv("STICKERWALL_RENDER_DEFAULT_DENSITY", "8.5")

    manager = ConfigManager()

    assert manager.layout.rounds == 4
    assert manager.layout.angle_range == (-10.0, 10.0)
    assert manager.render.background_color == (255, 0, 0)
    assert manager.render.default_density == 8.5


def test_dotenv_file_is_loaded(tmp_path):
    (tmp_path / ".env").write_text('STICKERWALL_RENDER_BACKGROUND_COLOR="#102030"\n')

    try:
        manager = ConfigManager()
    finally:
        os.environ.pop("STICKERWALL_RENDER_BACKGROUND_COLOR", None)

    assert manager.render.background_color == (0x10, 0x20, 0x30)


def test_invalid_environment_value(monkeypatch):
    monkeypatch.setenv("STICKERWALL_LAYOUT_ROUNDS", "many")
    with pytest.raises(ConfigurationError):
        ConfigManager()


def test_saved_config_loads_back(tmp_path):
    manager = ConfigManager(use_env=False)
    manager.layout = LayoutConfig(rounds=5)
    path = tmp_path / "out" / "saved.yaml"

    manager.save_config_to_yaml(path)
    reloaded = ConfigManager(path, use_env=False)

    assert reloaded.layout == manager.layout
    assert reloaded.render == manager.render


def test_file_retry_bound_survives_resolution_override(tmp_path, monkeypatch):
    path = tmp_path / "wall.yaml"
    path.write_text("layout:\n  max_attempts: 50\n")
    monkeypatch.setenv("STICKERWALL_LAYOUT_COLUMNS_PER_UNIT", "10")

    manager = ConfigManager(path)

    assert manager.layout.columns_per_unit == 10
    assert manager.layout.max_attempts == 50


def test_derived_retry_bound_follows_resolution_override(tmp_path, monkeypatch):
    path = tmp_path / "wall.yaml"
    path.write_text("layout:\n  rounds: 2\n")
    monkeypatch.setenv("STICKERWALL_LAYOUT_COLUMNS_PER_UNIT", "10")

    manager = ConfigManager(path)

    assert manager.layout.max_attempts == 1_000
