"""
Messages exchanged between the controlling context and the sticker worker.

Every message is a frozen dataclass carrying a `type` tag. Requests flow into the
worker, responses flow back out. The two internal messages are posted by the
worker to itself when its asset cache settles, so all state changes go through
the same handler.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Union

from PIL import Image

from stickerwall.services.surface import Surface


# Requests
@dataclass(frozen=True)
class InitMessage:
    """Binds a transferred surface to the worker."""

    type: ClassVar[str] = "init"
    surface: Surface

    @classmethod
    def transferring(cls, surface: Surface) -> "InitMessage":
        """Build the message and detach the caller's surface reference."""
        return cls(surface=surface.transfer())


@dataclass(frozen=True)
class GenerateMessage:
    """Requests a layout, composite and export."""

    type: ClassVar[str] = "generate"
    width: int
    height: int
    density: float = 20.0
    size_variation: float = 1.0
    request_id: Optional[int] = None


# Internal
@dataclass(frozen=True)
class AssetsLoadedMessage:
    type: ClassVar[str] = "assets-loaded"
    images: List[Image.Image] = field(default_factory=list)


@dataclass(frozen=True)
class AssetsFailedMessage:
    type: ClassVar[str] = "assets-failed"
    message: str


# Responses
@dataclass(frozen=True)
class ReadyResponse:
    type: ClassVar[str] = "ready"
    image_count: int


@dataclass(frozen=True)
class GeneratedResponse:
    type: ClassVar[str] = "generated"
    blob: bytes
    data_url: str
    request_id: Optional[int] = None
    placement_count: int = 0


@dataclass(frozen=True)
class ErrorResponse:
    type: ClassVar[str] = "error"
    message: str
    request_id: Optional[int] = None


RequestMessage = Union[InitMessage, GenerateMessage]
WorkerMessage = Union[InitMessage, GenerateMessage, AssetsLoadedMessage, AssetsFailedMessage]
ResponseMessage = Union[ReadyResponse, GeneratedResponse, ErrorResponse]


def response_to_dict(response: ResponseMessage) -> Dict[str, Any]:
    """Plain-data form of a response, with the blob left out."""
    if isinstance(response, ReadyResponse):
        return {"type": response.type, "imageCount": response.image_count}
    if isinstance(response, GeneratedResponse):
        return {
            "type": response.type,
            "requestId": response.request_id,
            "size": len(response.blob),
            "placements": response.placement_count,
        }
    if isinstance(response, ErrorResponse):
        return {"type": response.type, "requestId": response.request_id, "message": response.message}
    raise TypeError(f"Unknown response type: {type(response).__name__}")
