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
Debugging utilities for zipkit.

This module provides tools for analyzing archive buffers: a hex dump, a
signature scan of the records in a buffer and an extraction check.
"""

import struct
from typing import Optional

from .constants import (
    CENTRAL_DIR_HEADER,
    CENTRAL_DIR_HEADER_SIZE,
    DATA_DESCRIPTOR,
    DATA_DESCRIPTOR_SIZE,
    END_OF_CENTRAL_DIR,
    END_OF_CENTRAL_DIR_SIZE,
    FLAG_DATA_DESCRIPTOR,
    LOCAL_FILE_HEADER,
    LOCAL_FILE_HEADER_SIZE,
    ZIP64_END_OF_CENTRAL_DIR,
    ZIP64_END_OF_CENTRAL_DIR_LOCATOR,
    ZIP64_LOCATOR_SIZE,
)
from .crypto import Password
from .errors import ZipError


def hex_dump(data: bytes, offset: int = 0, length: Optional[int] = None) -> str:
    """Create a hex dump of binary data.

    Args:
        data: Binary data to dump.
        offset: Starting offset for display.
        length: Maximum length to dump (None for all).

    Returns:
        Formatted hex dump string.
    """
    if length is not None:
        data = data[:length]

    lines = []
    for i in range(0, len(data), 16):
        chunk = data[i : i + 16]
        hex_part = " ".join(f"{b:02X}" for b in chunk)
        ascii_part = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"{offset + i:08X}  {hex_part:<48}  {ascii_part}")

    return "\n".join(lines)


def scan_records(data: bytes) -> dict[str, list[int]]:
    """Locate ZIP records in a buffer by walking their signatures.

    Local headers are skipped using the sizes they declare; bytes that match
    no signature are stepped over one at a time.

    Returns:
        Mapping of record kind to the offsets where it was found.
    """
    found: dict[str, list[int]] = {
        "local": [],
        "central": [],
        "data_descriptor": [],
        "zip64_eocd": [],
        "zip64_locator": [],
        "eocd": [],
    }

    offset = 0
    size = len(data)
    while offset + 4 <= size:
        sig = struct.unpack_from("<I", data, offset)[0]

        if sig == LOCAL_FILE_HEADER and offset + LOCAL_FILE_HEADER_SIZE <= size:
            found["local"].append(offset)
            flags = struct.unpack_from("<H", data, offset + 6)[0]
            compressed_size = struct.unpack_from("<I", data, offset + 18)[0]
            filename_len, extra_len = struct.unpack_from("<HH", data, offset + 26)
            offset += LOCAL_FILE_HEADER_SIZE + filename_len + extra_len
            # Sizes deferred to a data descriptor are unknown here
            if not flags & FLAG_DATA_DESCRIPTOR:
                offset += compressed_size
        elif sig == CENTRAL_DIR_HEADER and offset + CENTRAL_DIR_HEADER_SIZE <= size:
            found["central"].append(offset)
            filename_len, extra_len, comment_len = struct.unpack_from("<HHH", data, offset + 28)
            offset += CENTRAL_DIR_HEADER_SIZE + filename_len + extra_len + comment_len
        elif sig == END_OF_CENTRAL_DIR and offset + END_OF_CENTRAL_DIR_SIZE <= size:
            found["eocd"].append(offset)
            comment_len = struct.unpack_from("<H", data, offset + 20)[0]
            offset += END_OF_CENTRAL_DIR_SIZE + comment_len
        elif sig == ZIP64_END_OF_CENTRAL_DIR and offset + 12 <= size:
            found["zip64_eocd"].append(offset)
            record_size = struct.unpack_from("<Q", data, offset + 4)[0]
            offset += 12 + record_size
        elif sig == ZIP64_END_OF_CENTRAL_DIR_LOCATOR:
            found["zip64_locator"].append(offset)
            offset += ZIP64_LOCATOR_SIZE
        elif sig == DATA_DESCRIPTOR:
            found["data_descriptor"].append(offset)
            offset += DATA_DESCRIPTOR_SIZE
        else:
            offset += 1

    return found


def dump_structure(data: bytes, label: str = "<buffer>") -> str:
    """Describe the records found in an archive buffer.

    Args:
        data: Archive bytes.
        label: Name shown in the report header.

    Returns:
        Formatted string describing the ZIP structure.
    """
    records = scan_records(data)

    output = [f"ZIP Structure: {label}\n", "=" * 80]
    output.append(f"\nSize: {len(data)} bytes")

    output.append(f"\nLocal File Headers: {len(records['local'])}")
    for i, off in enumerate(records["local"][:10]):
        output.append(f"  [{i}] Offset: 0x{off:08X}")

    output.append(f"\nCentral Directory Headers: {len(records['central'])}")
    for i, off in enumerate(records["central"][:10]):
        output.append(f"  [{i}] Offset: 0x{off:08X}")

    if records["data_descriptor"]:
        output.append(f"\nData Descriptors: {len(records['data_descriptor'])}")

    for off in records["zip64_eocd"]:
        output.append(f"\nZIP64 End of Central Directory: 0x{off:08X}")

    for off in records["zip64_locator"]:
        output.append(f"\nZIP64 Locator: 0x{off:08X}")

    for off in records["eocd"]:
        output.append(f"\nEnd of Central Directory: 0x{off:08X}")

    return "\n".join(output)


def verify_archive(data: bytes, password: Optional[Password] = None) -> tuple[bool, list[str]]:
    """Verify that every entry of an archive can be extracted.

    Args:
        data: Archive bytes.
        password: Password for encrypted entries.

    Returns:
        Tuple of (is_valid, list_of_errors).
    """
    from .reader import ZipReader

    errors = []

    try:
        reader = ZipReader(data, password=password)
    except ZipError as e:
        return False, [f"Error opening archive: {e}"]

    with reader:
        for entry in reader.entries():
            try:
                reader.read(entry.name)
            except ZipError as e:
                errors.append(f"Error reading {entry.name}: {e}")

    return len(errors) == 0, errors
