"""
Character chunking of note content with overlap.
"""

from typing import List

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200

# Preferred break points, strongest first
SEPARATORS = ('\n\n', '\n', '. ', ' ')


def split_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE, chunk_overlap: int = DEFAULT_CHUNK_OVERLAP) -> List[str]:
    """Split text into chunks of at most ``chunk_size`` characters.

    Each chunk ends at the strongest separator found in its second half, falling back to a
    hard cut, and the next chunk starts ``chunk_overlap`` characters before that end.
    """
    if chunk_size < 1:
        raise ValueError('chunk_size must be >= 1')
    if chunk_overlap < 0:
        raise ValueError('chunk_overlap must be >= 0')
    if chunk_overlap >= chunk_size:
        raise ValueError('chunk_overlap must be less than chunk_size')

    chunks: List[str] = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        if end < len(text):
            for separator in SEPARATORS:
                index = text.rfind(separator, start + chunk_size // 2, end)
                if index != -1:
                    end = index + len(separator)
                    break

        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)

        if end >= len(text):
            break
        start = max(end - chunk_overlap, start + 1)

    return chunks
