"""
Sticker worker: the isolated context that owns the surface and image cache.

The worker runs a single asyncio event loop on its own thread. Messages are
handled one at a time in arrival order by `handle_message`, which takes the
current `WorkerState` and returns the next one together with the responses to
send. Nothing else mutates worker state.
"""

import asyncio
import itertools
import queue
import threading
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Tuple

import httpx
import numpy as np
from PIL import Image

from stickerwall.core.config_manager import LayoutConfig, RenderConfig
from stickerwall.core.layout import LayoutGenerator
from stickerwall.services.assets import ImageAssetCache
from stickerwall.services.compositor import composite_placements, export_surface
from stickerwall.services.protocol import (
    AssetsFailedMessage,
    AssetsLoadedMessage,
    ErrorResponse,
    GeneratedResponse,
    GenerateMessage,
    InitMessage,
    ReadyResponse,
    ResponseMessage,
    WorkerMessage,
)
from stickerwall.services.surface import Surface
from stickerwall.utils.common import (
    AssetLoadError,
    StickerWallError,
    SurfaceNotReadyError,
    setup_logging,
)

logger = setup_logging(__name__)


@dataclass(frozen=True)
class WorkerState:
    """Everything the worker owns.

    Args:
        surface: Drawing surface, once transferred in
        images: Loaded sticker images, once the cache resolved
        load_error: Message of a failed cache population
    """

    surface: Optional[Surface] = None
    images: Optional[Tuple[Image.Image, ...]] = None
    load_error: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.surface is not None and self.images is not None


@dataclass
class WorkerContext:
    """Collaborators shared by every handler call."""

    layout: LayoutGenerator
    render: RenderConfig


HandlerResult = Tuple[WorkerState, List[ResponseMessage]]


async def handle_message(state: WorkerState, message: WorkerMessage, context: WorkerContext) -> HandlerResult:
    """Apply one message to the worker state.

    Failures are returned as ErrorResponse values, never raised.

    Args:
        state: Current worker state
        message: Incoming request or internal message
        context: Layout generator and render settings

    Returns:
        (next state, responses to send)
    """
    if isinstance(message, InitMessage):
        return _handle_init(state, message)
    elif isinstance(message, GenerateMessage):
        return await _handle_generate(state, message, context)
    elif isinstance(message, AssetsLoadedMessage):
        logger.info(f"Worker ready with {len(message.images)} images")
        return replace(state, images=tuple(message.images), load_error=None), [
            ReadyResponse(image_count=len(message.images))
        ]
    elif isinstance(message, AssetsFailedMessage):
        logger.error(f"Asset loading failed: {message.message}")
        return replace(state, images=None, load_error=message.message), [
            ErrorResponse(message=message.message)
        ]
    raise TypeError(f"Unhandled worker message: {type(message).__name__}")


def _handle_init(state: WorkerState, message: InitMessage) -> HandlerResult:
    if state.surface is not None:
        return state, [ErrorResponse(message="Canvas already initialized")]
    logger.info(f"Surface bound ({message.surface.size[0]}x{message.surface.size[1]})")
    return replace(state, surface=message.surface), []


async def _handle_generate(state: WorkerState, message: GenerateMessage, context: WorkerContext) -> HandlerResult:
    request_id = message.request_id
    try:
        surface, images = _require_ready(state)

        placements = context.layout.generate(
            message.width, message.height, len(images), message.density, message.size_variation
        )
        surface.resize(message.width, message.height)
        composite_placements(surface, placements, images, context.render.background_color)
        exported = await export_surface(surface, context.render.image_format)
    except (StickerWallError, ValueError) as e:
        logger.error(f"Generate request {request_id} failed: {e}")
        return state, [ErrorResponse(message=str(e), request_id=request_id)]
    except Exception as e:
        logger.exception(f"Unexpected error in generate request {request_id}")
        return state, [ErrorResponse(message=f"Internal error: {e}", request_id=request_id)]

    return state, [
        GeneratedResponse(
            blob=exported.blob,
            data_url=exported.data_url,
            request_id=request_id,
            placement_count=len(placements),
        )
    ]


def _require_ready(state: WorkerState) -> Tuple[Surface, Tuple[Image.Image, ...]]:
    if state.surface is None:
        raise SurfaceNotReadyError("Canvas not initialized")
    if state.images is None:
        if state.load_error:
            raise SurfaceNotReadyError(f"Images unavailable: {state.load_error}")
        raise SurfaceNotReadyError("Images not loaded yet")
    return state.surface, state.images


_STOP = object()


class StickerWorker:
    """Hosts the worker context on a dedicated thread.

    Asset loading starts as soon as the worker starts. Responses are put on
    an outbox queue and, when given, passed to `on_message` on the worker thread.

    Args:
        sources: Ordered image locators for the asset cache
        layout_config: Layout tunables
        render_config: Render and retrieval settings
        rng: Random source for layouts
        seed: Seed for a fresh random source, used when rng is omitted
        transport: Optional httpx transport for asset retrieval
        on_message: Optional callback receiving every response
    """

    def __init__(
        self,
        sources: Sequence[str],
        layout_config: Optional[LayoutConfig] = None,
        render_config: Optional[RenderConfig] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_message: Optional[Callable[[ResponseMessage], None]] = None,
        name: str = "sticker-worker",
    ):
        self.render_config = render_config or RenderConfig()
        self.context = WorkerContext(
            layout=LayoutGenerator(layout_config, rng if rng is not None else np.random.default_rng(seed)),
            render=self.render_config,
        )
        self.cache = ImageAssetCache(
            sources,
            timeout=self.render_config.request_timeout,
            max_image_size_mb=self.render_config.max_image_size_mb,
            transport=transport,
        )
        self.on_message = on_message
        self.outbox: "queue.Queue[ResponseMessage]" = queue.Queue()

        self._request_ids = itertools.count(1)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._inbox: Optional[asyncio.Queue] = None
        self._started = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    # Controlling side

    def start(self) -> "StickerWorker":
        self._thread.start()
        self._started.wait()
        return self

    def __enter__(self) -> "StickerWorker":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.terminate()

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def post_message(self, message: WorkerMessage) -> None:
        """Queue a message for the worker; safe to call from any thread."""
        if self._loop is None or not self.is_alive:
            raise RuntimeError("Worker is not running")
        self._loop.call_soon_threadsafe(self._inbox.put_nowait, message)

    def init_surface(self, surface: Surface) -> None:
        """Transfer a surface into the worker. The caller's reference becomes unusable."""
        self.post_message(InitMessage.transferring(surface))

    def generate(
        self, width: int, height: int, density: float = 20.0, size_variation: float = 1.0
    ) -> int:
        """Request a wallpaper; returns the request id echoed on the response."""
        request_id = next(self._request_ids)
        self.post_message(
            GenerateMessage(
                width=width,
                height=height,
                density=density,
                size_variation=size_variation,
                request_id=request_id,
            )
        )
        return request_id

    def get_response(self, timeout: Optional[float] = None) -> ResponseMessage:
        """Block until the next response arrives (raises queue.Empty on timeout)."""
        return self.outbox.get(timeout=timeout)

    def terminate(self, timeout: Optional[float] = 10.0) -> None:
        """Stop the worker after the message in flight; surface and cache are discarded."""
        if self._loop is not None and self.is_alive:
            self._loop.call_soon_threadsafe(self._inbox.put_nowait, _STOP)
            self._thread.join(timeout)

    # Worker side

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._inbox = asyncio.Queue()
        self._started.set()
        try:
            loop.run_until_complete(self._main())
        finally:
            loop.close()
            logger.info("Worker stopped")

    async def _main(self) -> None:
        state = WorkerState()
        loader = asyncio.ensure_future(self._load_assets())
        try:
            while True:
                message = await self._inbox.get()
                if message is _STOP:
                    break
                state, responses = await handle_message(state, message, self.context)
                for response in responses:
                    self._emit(response)
        finally:
            if not loader.done():
                loader.cancel()
                await asyncio.gather(loader, return_exceptions=True)

    async def _load_assets(self) -> None:
        try:
            images = await self.cache.load()
        except AssetLoadError as e:
            await self._inbox.put(AssetsFailedMessage(message=str(e)))
            return
        except Exception as e:
            logger.exception("Asset cache population crashed")
            await self._inbox.put(AssetsFailedMessage(message=f"Failed to load images: {e}"))
            return
        await self._inbox.put(AssetsLoadedMessage(images=images))

    def _emit(self, response: ResponseMessage) -> None:
        self.outbox.put(response)
        if self.on_message is not None:
            try:
                self.on_message(response)
            except Exception:
                logger.exception("Response callback failed")
