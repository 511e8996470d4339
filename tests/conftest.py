from __future__ import annotations

import pytest

from zipkit import ContentItem


@pytest.fixture
def sample_items() -> list[ContentItem]:
    return [
        ContentItem(name="readme.txt", content="Hello, zipkit!\n" * 20),
        ContentItem(name="data/numbers.bin", content=bytes(range(256)) * 8),
        ContentItem(name="data/empty.txt", content=b""),
        ContentItem(name="unicode/héllo wörld.txt", content="ünïcödé ✓"),
    ]


@pytest.fixture
def redundant_content() -> bytes:
    return b"the quick brown fox jumps over the lazy dog. " * 500
