"""Fence-aware splitting of long messages for Discord's 2000-character limit.

Splits prefer blank lines, then line breaks, then a hard cut. A code fence
that is open at a split point is closed at the end of the chunk and reopened
(with the same language tag) at the start of the next one.
"""

from __future__ import annotations

DISCORD_MAX_CHARS = 2000
# Room for the fence close/reopen and the part marker
DEFAULT_CHUNK_SIZE = DISCORD_MAX_CHARS - 100


def chunk_message(text: str, max_chars: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Split *text* into chunks no longer than *max_chars* (plus fence repair)."""
    if not text or not text.strip():
        return []
    if len(text) <= max_chars:
        return [text]

    chunks: list[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= max_chars:
            chunks.append(remaining)
            break

        cut = _split_point(remaining, max_chars)
        chunk = remaining[:cut].rstrip()
        remaining = remaining[cut:].lstrip("\n")

        open_lang = _open_fence_language(chunk)
        if open_lang is not None:
            chunk += "\n```"
            remaining = f"```{open_lang}\n{remaining}"
        chunks.append(chunk)

    return [c for c in chunks if c.strip()]


def chunk_with_markers(text: str, max_chars: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Like :func:`chunk_message`, prefixing ``(i/n)`` when more than one chunk results."""
    chunks = chunk_message(text, max_chars)
    if len(chunks) <= 1:
        return chunks
    total = len(chunks)
    return [f"({i}/{total})\n{chunk}" for i, chunk in enumerate(chunks, start=1)]


def _split_point(text: str, max_chars: int) -> int:
    window = text[:max_chars]
    floor = max_chars // 3

    paragraph = window.rfind("\n\n")
    if paragraph > floor:
        return paragraph + 1
    newline = window.rfind("\n")
    if newline > floor:
        return newline + 1
    space = window.rfind(" ")
    if space > floor:
        return space + 1
    return max_chars


def _open_fence_language(chunk: str) -> str | None:
    """Language tag of a fence left open at the end of *chunk*.

    Returns None when every fence is closed, "" for an untagged open fence.
    """
    language: str | None = None
    for line in chunk.split("\n"):
        stripped = line.strip()
        if not stripped.startswith("```"):
            continue
        language = stripped[3:].strip() if language is None else None
    return language
