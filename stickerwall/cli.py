#!/usr/bin/env python3
"""
Command-line interface for the sticker wallpaper generator.
"""
import sys
import json
import time
import queue
import logging
import argparse
from pathlib import Path
from typing import List, Optional

import numpy as np

from stickerwall.core.config_manager import ConfigManager
from stickerwall.core.layout import generate_layout
from stickerwall.services.assets import load_image_sources
from stickerwall.services.protocol import (
    ErrorResponse,
    GeneratedResponse,
    ReadyResponse,
    response_to_dict,
)
from stickerwall.services.surface import Surface
from stickerwall.services.worker import StickerWorker
from stickerwall.utils.common import StickerWallError, set_log_level, setup_logging
from stickerwall.utils.env_loader import get_env_var

# Set up logging
logger = setup_logging(__name__)


def _add_canvas_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--width", type=int, default=None, help="Canvas width in pixels")
    parser.add_argument("--height", type=int, default=None, help="Canvas height in pixels")
    parser.add_argument(
        "--density",
        type=float,
        default=None,
        help="Approximate number of sticker columns across the width",
    )
    parser.add_argument(
        "--size_variation",
        type=float,
        default=None,
        help="Exponent shaping how extreme sticker sizes get",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for a reproducible layout")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sticker wallpaper generator")
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Generate command
    generate_parser = subparsers.add_parser(
        "generate", help="Lay out, composite and export a wallpaper"
    )
    generate_parser.add_argument(
        "--sources",
        default=None,
        help="Directory of sticker images, or a text file with one locator per line "
        "(default: $STICKERWALL_SOURCES)",
    )
    _add_canvas_arguments(generate_parser)
    generate_parser.add_argument(
        "--output", default=None, help="Output image path (default: stickerwall-<timestamp>.png)"
    )
    generate_parser.add_argument(
        "--data_url_output", default=None, help="Also write the data URL to this text file"
    )
    generate_parser.add_argument(
        "--timeout", type=float, default=300.0, help="Seconds to wait for each worker step"
    )

    # Layout command
    layout_parser = subparsers.add_parser("layout", help="Print placements as JSON")
    _add_canvas_arguments(layout_parser)
    layout_parser.add_argument(
        "--total", type=int, required=True, help="Number of distinct sticker images"
    )

    # Config command
    config_parser = subparsers.add_parser("config", help="Write the effective configuration")
    config_parser.add_argument("--output", required=True, help="Destination YAML file")

    return parser


def _canvas_values(args: argparse.Namespace, config: ConfigManager):
    render = config.render
    width = args.width if args.width is not None else render.default_width
    height = args.height if args.height is not None else render.default_height
    density = args.density if args.density is not None else render.default_density
    size_variation = (
        args.size_variation if args.size_variation is not None else render.default_size_variation
    )
    return width, height, density, size_variation


def _wait_for(worker: StickerWorker, timeout: float, request_id: Optional[int] = None):
    """Return the next ready/generated response, raising on errors."""
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TimeoutError("Timed out waiting for the worker")
        try:
            response = worker.get_response(timeout=remaining)
        except queue.Empty as e:
            raise TimeoutError("Timed out waiting for the worker") from e

        logger.debug(f"Worker response: {response_to_dict(response)}")
        if isinstance(response, ErrorResponse):
            if request_id is None or response.request_id in (None, request_id):
                raise StickerWallError(response.message)
            continue
        if isinstance(response, GeneratedResponse) and response.request_id != request_id:
            continue
        return response


def run_generate(args: argparse.Namespace, config: ConfigManager) -> int:
    sources_location = args.sources or get_env_var("SOURCES")
    if not sources_location:
        logger.error("No sticker sources given (use --sources or STICKERWALL_SOURCES)")
        return 2

    sources = load_image_sources(sources_location)
    if not sources:
        logger.error(f"No sticker images found in {sources_location}")
        return 2

    width, height, density, size_variation = _canvas_values(args, config)
    output = Path(args.output or f"stickerwall-{int(time.time() * 1000)}.png")

    with StickerWorker(
        sources,
        layout_config=config.layout,
        render_config=config.render,
        seed=args.seed,
    ) as worker:
        worker.init_surface(Surface(width, height))

        ready = _wait_for(worker, args.timeout)
        if isinstance(ready, ReadyResponse):
            logger.info(f"Loaded {ready.image_count} images")

        request_id = worker.generate(width, height, density, size_variation)
        generated = _wait_for(worker, args.timeout, request_id)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(generated.blob)
    logger.info(f"✓ Wallpaper saved: {output} ({generated.placement_count} stickers)")

    if args.data_url_output:
        Path(args.data_url_output).write_text(generated.data_url, encoding="utf-8")
        logger.info(f"Data URL written to {args.data_url_output}")
    return 0


def run_layout(args: argparse.Namespace, config: ConfigManager) -> int:
    width, height, density, size_variation = _canvas_values(args, config)
    placements = generate_layout(
        width,
        height,
        args.total,
        density,
        size_variation,
        rng=np.random.default_rng(args.seed),
        config=config.layout,
    )
    json.dump([placement.to_dict() for placement in placements], sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the sticker wallpaper CLI.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        set_log_level(logging.DEBUG)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = ConfigManager(args.config)

        if args.command == "generate":
            return run_generate(args, config)
        elif args.command == "layout":
            return run_layout(args, config)
        elif args.command == "config":
            config.save_config_to_yaml(args.output)
            return 0
    except (StickerWallError, TimeoutError, ValueError) as e:
        logger.error(f"✗ {e}")
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
