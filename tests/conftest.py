"""Shared fixtures: small sticker images written with Pillow."""
import io

import pytest
from PIL import Image

STICKER_COLORS = [(255, 0, 0, 255), (0, 255, 0, 255), (0, 0, 255, 255)]


@pytest.fixture
def sticker_dir(tmp_path):
    directory = tmp_path / "stickers"
    directory.mkdir()
    for i, color in enumerate(STICKER_COLORS):
        Image.new("RGBA", (32, 32), color).save(directory / f"sticker_{i}.png")
    (directory / "notes.txt").write_text("not an image")
    return directory


@pytest.fixture
def sticker_sources(sticker_dir):
    return [str(sticker_dir / f"sticker_{i}.png") for i in range(len(STICKER_COLORS))]


@pytest.fixture
def png_bytes():
    def _make(color=(255, 0, 0, 255), size=(16, 16)):
        buffer = io.BytesIO()
        Image.new("RGBA", size, color).save(buffer, format="PNG")
        return buffer.getvalue()

    return _make


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep stray .env files and STICKERWALL_* variables out of tests."""
    monkeypatch.chdir(tmp_path)
    import os

    for key in list(os.environ):
        if key.startswith("STICKERWALL_"):
            monkeypatch.delenv(key)
