"""
Copyright 2025 DNAi inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

"""
Deflate encoder and decoder for entry payloads.

ZIP stores raw deflate streams (no zlib header or trailer), so both directions
run zlib with negative window bits.
"""

import zlib

from .constants import COMP_DEFLATE, COMP_STORED
from .errors import EncodingFailure, StructuralCorruption, UnsupportedMethod


def method_for_level(level: int) -> int:
    """Return the ZIP compression method used for a compression level."""
    return COMP_STORED if level == 0 else COMP_DEFLATE


def compress(data: bytes, level: int) -> tuple[int, bytes]:
    """Compress data at the given effort level.

    Args:
        data: Raw entry bytes.
        level: 0 stores the data unchanged, 1-9 deflate with increasing effort.

    Returns:
        Tuple of (compression method id, payload bytes).

    Raises:
        EncodingFailure: If zlib rejects the data or level.
    """
    method = method_for_level(level)
    if method == COMP_STORED:
        return method, data

    try:
        compressor = zlib.compressobj(level=level, method=zlib.DEFLATED, wbits=-zlib.MAX_WBITS)
        compressed = compressor.compress(data)
        compressed += compressor.flush()
    except (zlib.error, ValueError) as e:
        raise EncodingFailure(f"Deflate compression failed: {e}") from e
    return method, compressed


def decompress(data: bytes, method: int, expected_size: int = -1) -> bytes:
    """Decompress an entry payload stored with the given method.

    Args:
        data: Payload bytes (already decrypted).
        method: ZIP compression method id.
        expected_size: Uncompressed size from the central directory, or -1 to skip the check.

    Returns:
        Decompressed data as bytes.

    Raises:
        UnsupportedMethod: If the method is neither stored nor deflate.
        StructuralCorruption: If the deflate stream is invalid or the size disagrees.
    """
    if method == COMP_STORED:
        result = data
    elif method == COMP_DEFLATE:
        try:
            decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
            result = decompressor.decompress(data)
            result += decompressor.flush()
        except zlib.error as e:
            raise StructuralCorruption(f"Deflate decompression failed: {e}") from e
        if not decompressor.eof:
            raise StructuralCorruption("Deflate stream is truncated")
        if decompressor.unused_data:
            raise StructuralCorruption("Extra data after compressed stream")
    else:
        raise UnsupportedMethod(f"Unsupported compression method: {method}")

    if expected_size >= 0 and len(result) != expected_size:
        raise StructuralCorruption(
            f"Size mismatch: expected {expected_size} bytes, got {len(result)}"
        )
    return result
