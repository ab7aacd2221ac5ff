import asyncio
import base64
import pathlib
import threading

import httpx
import pytest

from stickerwall.services.assets import ImageAssetCache, load_image_sources
from stickerwall.utils.common import AssetLoadError, ImageProcessingError


def _transport(routes):
    def handler(request: httpx.Request) -> httpx.Response:
        body = routes.get(request.url.path)
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, content=body, headers={"Content-Type": "image/png"})

    return httpx.MockTransport(handler)


def test_local_files_load_in_source_order(sticker_sources):
    cache = ImageAssetCache(sticker_sources)

    images = asyncio.run(cache.load())

    assert cache.is_ready
    assert len(cache) == 3
    assert [image.getpixel((0, 0)) for image in images] == [
        (255, 0, 0, 255),
        (0, 255, 0, 255),
        (0, 0, 255, 255),
    ]


def test_local_files_are_read_concurrently(sticker_sources, monkeypatch):
    # Every read waits for all the others, so a sequential loader would break the barrier
    barrier = threading.Barrier(len(sticker_sources))
    read_bytes = pathlib.Path.read_bytes

    def gated_read(self):
        barrier.wait(timeout=5)
        return read_bytes(self)

    monkeypatch.setattr(pathlib.Path, "read_bytes", gated_read)

    images = asyncio.run(ImageAssetCache(sticker_sources).load())

    assert len(images) == len(sticker_sources)


def test_remote_sources_are_fetched(png_bytes):
    transport = _transport(
        {"/a.png": png_bytes((255, 0, 0, 255)), "/b.png": png_bytes((0, 0, 0, 0))}
    )
    cache = ImageAssetCache(
        ["https://stickers.test/a.png", "https://stickers.test/b.png"], transport=transport
    )

    images = asyncio.run(cache.load())

    assert len(images) == 2
    assert images[0].mode == "RGBA"
    assert images[1].getpixel((0, 0)) == (0, 0, 0, 0)


def test_data_url_sources_are_decoded(png_bytes):
    data_url = "data:image/png;base64," + base64.b64encode(png_bytes()).decode("ascii")
    cache = ImageAssetCache([data_url])

    images = asyncio.run(cache.load())

    assert images[0].size == (16, 16)


def test_one_failed_retrieval_fails_the_whole_batch(png_bytes):
    transport = _transport({"/a.png": png_bytes()})
    cache = ImageAssetCache(
        ["https://stickers.test/a.png", "https://stickers.test/missing.png"], transport=transport
    )

    with pytest.raises(AssetLoadError) as excinfo:
        asyncio.run(cache.load())

    assert len(excinfo.value.failures) == 1
    assert excinfo.value.failures[0][0] == "https://stickers.test/missing.png"
    assert isinstance(excinfo.value.failures[0][1], httpx.HTTPStatusError)
    assert not cache.is_ready
    assert cache.images == []


def test_undecodable_image_fails_the_batch(sticker_sources, tmp_path):
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"definitely not a png")
    cache = ImageAssetCache(sticker_sources + [str(broken)])

    with pytest.raises(AssetLoadError) as excinfo:
        asyncio.run(cache.load())

    assert isinstance(excinfo.value.failures[0][1], ImageProcessingError)
    assert not cache.is_ready


def test_missing_local_file_fails_the_batch(tmp_path):
    cache = ImageAssetCache([str(tmp_path / "nope.png")])

    with pytest.raises(AssetLoadError):
        asyncio.run(cache.load())


def test_empty_source_list_loads_nothing():
    cache = ImageAssetCache([])

    assert asyncio.run(cache.load()) == []
    assert cache.is_ready


def test_sources_from_directory_are_sorted_images(sticker_dir):
    sources = load_image_sources(sticker_dir)

    assert [s.rsplit("/", 1)[-1] for s in sources] == [
        "sticker_0.png",
        "sticker_1.png",
        "sticker_2.png",
    ]


def test_sources_from_list_file(sticker_dir, tmp_path):
    listing = sticker_dir / "stickers.txt"
    listing.write_text(
        "# stickers\n"
        "sticker_1.png\n"
        "\n"
        "https://stickers.test/remote.png\n"
        f"{tmp_path / 'absolute.png'}\n"
    )

    sources = load_image_sources(listing)

    assert sources == [
        str(sticker_dir / "sticker_1.png"),
        "https://stickers.test/remote.png",
        str(tmp_path / "absolute.png"),
    ]


def test_missing_source_location_raises(tmp_path):
    with pytest.raises(AssetLoadError):
        load_image_sources(tmp_path / "does-not-exist")
