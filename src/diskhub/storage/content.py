# SPDX-License-Identifier: MIT
"""Normalisation of the content types :meth:`Disk.put` accepts."""

from __future__ import annotations

from .protocol import PutContent


def to_bytes(content: bytes | bytearray | str, encoding: str = "utf-8") -> bytes:
    if isinstance(content, str):
        return content.encode(encoding)
    return bytes(content)


def is_stream(content: PutContent) -> bool:
    return not isinstance(content, (bytes, bytearray, str))


async def read_all(content: PutContent) -> bytes:
    """Collect *content* into a single ``bytes`` object.

    .. warning::

        Streams are buffered fully in memory.  Used by backends whose upload
        call needs a complete request body.
    """
    if not is_stream(content):
        return to_bytes(content)  # type: ignore[arg-type]
    buf = bytearray()
    async for chunk in content:  # type: ignore[union-attr]
        buf.extend(to_bytes(chunk))
    return bytes(buf)
