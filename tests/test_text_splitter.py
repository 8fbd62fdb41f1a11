"""
Tests for note chunking.
"""

import pytest

from vault_kb.utils.text_splitter import split_text


def test_short_text_is_one_chunk():
    assert split_text("  A short note.  ", 100, 10) == ["A short note."]


def test_empty_text():
    assert split_text("", 100, 10) == []
    assert split_text("   \n\n  ", 100, 10) == []


def test_chunks_respect_size_and_cover_text():
    text = " ".join(f"word{i}" for i in range(300))
    chunks = split_text(text, 100, 20)

    assert len(chunks) > 1
    assert all(len(chunk) <= 100 for chunk in chunks)
    assert chunks[0].startswith("word0 ")
    assert chunks[-1].endswith("word299")


def test_consecutive_chunks_overlap():
    text = " ".join(f"w{i:03d}" for i in range(200))
    chunks = split_text(text, 100, 30)

    for previous, current in zip(chunks, chunks[1:]):
        assert current.split()[0] in previous


def test_prefers_paragraph_breaks():
    first = "First paragraph " * 4
    text = first.strip() + "\n\n" + "Second paragraph " * 4
    chunks = split_text(text, 80, 0)

    assert chunks[0] == first.strip()


@pytest.mark.parametrize("size, overlap", [(0, 0), (10, -1), (10, 10)])
def test_invalid_settings(size, overlap):
    with pytest.raises(ValueError):
        split_text("text", size, overlap)
