"""Tests for repo_importer.lib.content."""

from __future__ import annotations

import base64

import pytest

from repo_importer.lib.config import Config
from repo_importer.lib.content import (
    INLINE_FETCH_LIMIT,
    RemoteContent,
    decode_base64,
    decode_content,
    should_fetch_inline,
)
from repo_importer.lib.errors import MalformedResponseError


class TestShouldFetchInline:
    @pytest.mark.parametrize(
        ("size", "expected"),
        [(0, False), (1, True), (99_999, True), (100_000, False), (200_000, False)],
    )
    def test_window(self, size: int, expected: bool) -> None:
        assert should_fetch_inline(size) is expected

    def test_default_limit_matches_config(self) -> None:
        assert INLINE_FETCH_LIMIT == Config().inline_fetch_limit == 100_000
        assert should_fetch_inline(Config().inline_fetch_limit - 1) is True

    def test_custom_limit(self) -> None:
        assert should_fetch_inline(50, limit=100) is True
        assert should_fetch_inline(100, limit=100) is False


class TestDecode:
    def test_wrapped_base64_round_trip(self) -> None:
        original = "line one\nline two ✓\n" * 40
        encoded = base64.b64encode(original.encode("utf-8")).decode("ascii")
        wrapped = "\n".join(encoded[i : i + 60] for i in range(0, len(encoded), 60))
        assert "\n" in wrapped

        assert decode_content(RemoteContent(wrapped, "base64")) == original

    def test_binary_bytes_survive(self) -> None:
        raw = bytes(range(256))
        encoded = base64.b64encode(raw).decode("ascii")
        assert decode_base64(encoded[:40] + "\n" + encoded[40:]) == raw

    def test_binary_content_becomes_text(self) -> None:
        encoded = base64.b64encode(b"\xff\xfeok").decode("ascii")
        text = decode_content(RemoteContent(encoded, "base64"))
        assert text.endswith("ok")

    def test_plain_text_passes_through(self) -> None:
        assert decode_content(RemoteContent("hi there", "utf-8")) == "hi there"
        assert decode_content(RemoteContent("raw", "")) == "raw"

    def test_encoding_name_is_case_insensitive(self) -> None:
        encoded = base64.b64encode(b"abc").decode("ascii")
        assert decode_content(RemoteContent(encoded, "BASE64")) == "abc"

    def test_invalid_base64_is_malformed(self) -> None:
        with pytest.raises(MalformedResponseError, match="invalid base64"):
            decode_content(RemoteContent("not*base64", "base64"))
