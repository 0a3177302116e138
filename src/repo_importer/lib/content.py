"""Remote content payloads and their decoding into node text."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

from repo_importer.lib.config import (
    DEFAULT_INLINE_FETCH_LIMIT as INLINE_FETCH_LIMIT,
)
from repo_importer.lib.errors import MalformedResponseError

__all__ = [
    "BASE64",
    "INLINE_FETCH_LIMIT",
    "RemoteContent",
    "decode_base64",
    "decode_content",
    "should_fetch_inline",
]

BASE64 = "base64"


@dataclass(frozen=True)
class RemoteContent:
    """A content payload as returned by the hosting API."""

    content: str
    encoding: str = ""


def should_fetch_inline(size: int, *, limit: int = INLINE_FETCH_LIMIT) -> bool:
    """Return True when a file is small enough to fetch during the import."""
    return 0 < size < limit


def decode_base64(raw: str) -> bytes:
    """Decode a base64 payload that may be wrapped across several lines."""
    compact = raw.replace("\n", "").replace("\r", "")
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedResponseError(f"invalid base64 content: {exc}") from exc


def decode_content(payload: RemoteContent) -> str:
    """Return the text of *payload*.

    Base64 payloads are decoded and read as UTF-8, replacing invalid bytes;
    anything else is treated as already-decoded text.
    """
    if payload.encoding.lower() == BASE64:
        return decode_base64(payload.content).decode("utf-8", errors="replace")
    return payload.content
