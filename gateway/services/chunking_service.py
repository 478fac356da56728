import re
from collections.abc import Iterator

# Paragraph and sentence ends win over clause and word boundaries.
BREAK_MARKERS: tuple[tuple[str, ...], ...] = (
    ("\n\n",),
    (". ", "? ", "! ", "\n"),
    ("; ", ", "),
    (" ",),
)
BREAK_WINDOW = 0.6


def _collapse_whitespace(text: str) -> str:
    collapsed = re.sub(r"\r\n?", "\n", text)
    collapsed = re.sub(r"[ \t]+", " ", collapsed)
    return re.sub(r"\n{3,}", "\n\n", collapsed).strip()


def _find_break(text: str, start: int, limit: int) -> int:
    floor = start + int((limit - start) * BREAK_WINDOW)
    for group in BREAK_MARKERS:
        positions = [(text.rfind(marker, floor, limit), marker) for marker in group]
        index, marker = max(positions)
        if index != -1:
            return index + len(marker.rstrip())
    return limit


def iter_chunks(text: str, chunk_size: int, overlap: int) -> Iterator[tuple[int, int]]:
    """Yield ``(start, end)`` offsets of overlapping windows over ``text``."""
    length = len(text)
    start = 0
    while start < length:
        end = min(start + chunk_size, length)
        if end < length:
            end = _find_break(text, start, end)
            if end - start <= overlap:
                end = min(start + chunk_size, length)
        yield start, end
        if end >= length:
            return
        start = end - overlap


def chunk_text(
    text: str,
    chunk_size: int = 2000,
    overlap: int = 200,
    min_chunk_chars: int = 50,
) -> list[str]:
    """Split sanitized document text into embedding-sized pieces.

    Windows prefer to end on a paragraph or sentence boundary found in the
    last 40% of the window. Consecutive pieces share ``overlap`` characters
    and pieces shorter than ``min_chunk_chars`` are not indexed.
    """
    if overlap >= chunk_size:
        raise ValueError("overlap must be smaller than chunk_size")
    if chunk_size < 200:
        raise ValueError("chunk_size must be at least 200 characters")

    body = _collapse_whitespace(text)
    pieces = (body[start:end].strip() for start, end in iter_chunks(body, chunk_size, overlap))
    return [piece for piece in pieces if len(piece) >= min_chunk_chars]
