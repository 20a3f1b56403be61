"""Byte-level JSON codec for bookmark files.

Bookmarks are read and written as raw UTF-8 bytes. orjson handles those
natively; the stdlib backend is set up to produce the same compact layout,
so a file written by either backend is byte-identical.
"""
from __future__ import annotations

from typing import Any

try:  # pragma: no cover - optional dependency
    import orjson  # type: ignore
except ImportError:  # pragma: no cover - fallback path
    import json

    def decode(raw: bytes) -> Any:
        # Invalid UTF-8 surfaces as UnicodeDecodeError, a ValueError.
        return json.loads(raw.decode("utf-8"))

    def encode(data: Any) -> bytes:
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
else:  # pragma: no cover - executed when orjson is available
    def decode(raw: bytes) -> Any:
        return orjson.loads(raw)

    def encode(data: Any) -> bytes:
        return orjson.dumps(data)


__all__ = ["decode", "encode"]
