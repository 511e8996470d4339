from __future__ import annotations

import pytest

from zipkit.constants import COMP_DEFLATE, COMP_STORED
from zipkit.deflate import compress, decompress, method_for_level
from zipkit.errors import StructuralCorruption, UnsupportedMethod


def test_method_for_level() -> None:
    assert method_for_level(0) == COMP_STORED
    assert all(method_for_level(level) == COMP_DEFLATE for level in range(1, 10))


def test_store_is_identity() -> None:
    assert compress(b"abc", 0) == (COMP_STORED, b"abc")
    assert decompress(b"abc", COMP_STORED, 3) == b"abc"


def test_deflate_is_raw(redundant_content) -> None:
    method, payload = compress(redundant_content, 9)

    assert method == COMP_DEFLATE
    assert len(payload) < len(redundant_content)
    # No zlib header
    assert payload[:2] != b"\x78\xda"
    assert decompress(payload, COMP_DEFLATE, len(redundant_content)) == redundant_content


def test_truncated_stream(redundant_content) -> None:
    _, payload = compress(redundant_content, 6)
    with pytest.raises(StructuralCorruption):
        decompress(payload[: len(payload) // 2], COMP_DEFLATE)


def test_trailing_garbage() -> None:
    _, payload = compress(b"hello", 6)
    with pytest.raises(StructuralCorruption, match="Extra data"):
        decompress(payload + b"junk", COMP_DEFLATE)


def test_size_mismatch() -> None:
    _, payload = compress(b"hello", 6)
    with pytest.raises(StructuralCorruption, match="Size mismatch"):
        decompress(payload, COMP_DEFLATE, expected_size=4)


def test_invalid_stream() -> None:
    with pytest.raises(StructuralCorruption):
        decompress(b"\xff\xff\xff\xff", COMP_DEFLATE)


def test_unsupported_method() -> None:
    with pytest.raises(UnsupportedMethod):
        decompress(b"", 12)
