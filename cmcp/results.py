"""Shaping of sandbox results: truncation and image extraction."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_MAX_LENGTH = 40_000


@dataclass
class ImageData:
    """Base64 image data taken from a tool response."""

    data: str
    mime_type: str


@dataclass
class ExecuteResult:
    """Execution output: JSON text plus any images pulled out of it."""

    text: str
    images: list[ImageData] = field(default_factory=list)


def truncate_response(text: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Cut ``text`` to ``max_length`` characters at a line break, with a notice.

    A ``max_length`` of 0 disables truncation.
    """
    if max_length == 0 or len(text) <= max_length:
        return text
    cut = text.rfind("\n", 0, max_length)
    if cut == -1:
        cut = max_length
    remaining = len(text) - cut
    return (
        f"{text[:cut]}\n\n[truncated — {remaining} chars omitted. Use your code to extract "
        "only the data you need, or increase max_length.]"
    )


def extract_images(value: Any) -> list[ImageData]:
    """Pull MCP image blocks out of ``value`` in place and return them.

    Each ``{"type": "image", "data": ..., "mimeType": ...}`` object keeps its
    shape, with ``data`` replaced by a placeholder naming the image's index.
    """
    images: list[ImageData] = []
    _walk(value, images)
    return images


def _walk(value: Any, images: list[ImageData]) -> None:
    if isinstance(value, dict):
        data = value.get("data")
        mime_type = value.get("mimeType")
        if value.get("type") == "image" and isinstance(data, str) and isinstance(mime_type, str):
            value["data"] = f"[image #{len(images)} extracted]"
            images.append(ImageData(data=data, mime_type=mime_type))
        for child in value.values():
            _walk(child, images)
    elif isinstance(value, list):
        for item in value:
            _walk(item, images)