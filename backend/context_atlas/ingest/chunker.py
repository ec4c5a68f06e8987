"""Heading-aware chunking utilities."""

from __future__ import annotations

import math
import re

from context_atlas.ingest.types import ContentChunk

MAX_CHUNK_CHARS = 1000
MIN_CHUNK_CHARS = 100

# Section boundaries: lines starting with 1-3 '#' then a space or tab.
_SECTION_SPLIT_RE = re.compile(r"(?=^#{1,3}[ \t])", re.MULTILINE)
_HEADING_RE = re.compile(r"^(#{1,3})[ \t]+(.+)")
_PARAGRAPH_RE = re.compile(r"\n\s*\n")


def chunk_content(
    content: str,
    max_chars: int = MAX_CHUNK_CHARS,
    min_chars: int = MIN_CHUNK_CHARS,
) -> list[ContentChunk]:
    """Split *content* into chunks bounded by ``min_chars``/``max_chars``.

    Sections that fit are emitted whole; larger sections are packed
    paragraph by paragraph. A single paragraph longer than ``max_chars`` is
    never cut.
    """
    chunks: list[ContentChunk] = []
    for section in _SECTION_SPLIT_RE.split(content):
        if not section.strip():
            continue
        match = _HEADING_RE.match(section)
        heading = match.group(2).strip() if match else None
        body = section[match.end() :].strip() if match else section.strip()
        if not body and not heading:
            continue

        whole = _join(heading, body)
        if len(whole) <= max_chars:
            if len(whole) >= min_chars:
                chunks.append(_make_chunk(whole, heading))
            continue

        chunks.extend(_pack_paragraphs(heading, body, max_chars, min_chars))
    return chunks


def _pack_paragraphs(
    heading: str | None,
    body: str,
    max_chars: int,
    min_chars: int,
) -> list[ContentChunk]:
    packed: list[ContentChunk] = []
    current = heading or ""
    for paragraph in _PARAGRAPH_RE.split(body):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        candidate = _join(current or None, paragraph)
        if len(candidate) > max_chars and current and len(current) >= min_chars:
            packed.append(_make_chunk(current, heading))
            current = _join(f"{heading} (continued)" if heading else None, paragraph)
        else:
            current = candidate
    current = current.strip()
    if current and len(current) >= min_chars:
        packed.append(_make_chunk(current, heading))
    return packed


def _join(head: str | None, text: str) -> str:
    if head and text:
        return f"{head}\n\n{text}"
    return head or text


def _make_chunk(text: str, heading: str | None) -> ContentChunk:
    return ContentChunk(text=text, metadata={"headings": [heading] if heading else []})


def estimate_tokens(text: str) -> int:
    """Rough token estimate: four characters per token, rounded up."""
    return math.ceil(len(text) / 4)


__all__ = ["MAX_CHUNK_CHARS", "MIN_CHUNK_CHARS", "chunk_content", "estimate_tokens"]
