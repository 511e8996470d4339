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
Utility functions for zipkit.

Checksums, MS-DOS timestamps, entry-name normalization and the checked
read/write helpers shared by the reader and the writer.
"""

import zlib
from datetime import datetime
from typing import BinaryIO

from .errors import StructuralCorruption

DOS_EPOCH = datetime(1980, 1, 1, 0, 0, 0)
DOS_MAX = datetime(2107, 12, 31, 23, 59, 58)


def crc32(data: bytes) -> int:
    """Return the unsigned CRC-32 of ``data``."""
    return zlib.crc32(data) & 0xFFFFFFFF


def normalize_name(name: str) -> str:
    """Return an entry name with forward-slash separators."""
    if "\\" in name:
        name = name.replace("\\", "/")
    return name


def dos_datetime_to_timestamp(dos_date: int, dos_time: int) -> datetime:
    """Decode a packed MS-DOS date/time pair.

    The date packs day (5 bits), month (4 bits) and years since 1980
    (7 bits); the time packs seconds halved (5 bits), minutes (6 bits)
    and hours (5 bits). Out-of-range fields decode as 1980-01-01.

    Args:
        dos_date: Packed date word.
        dos_time: Packed time word.

    Returns:
        Naive datetime.
    """
    year = 1980 + (dos_date >> 9)
    month = (dos_date >> 5) & 0xF
    day = dos_date & 0x1F
    hour = dos_time >> 11
    minute = (dos_time >> 5) & 0x3F
    second = 2 * (dos_time & 0x1F)

    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        # Zeroed or garbage fields, as written by some tools
        return DOS_EPOCH


def timestamp_to_dos_datetime(dt: datetime) -> tuple[int, int]:
    """Pack a datetime into an MS-DOS ``(date, time)`` pair.

    Aware datetimes are converted to local time first. Values outside
    1980..2107 are clamped and odd seconds round down.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    dt = min(max(dt, DOS_EPOCH), DOS_MAX)

    dos_date = ((dt.year - 1980) << 9) | (dt.month << 5) | dt.day
    dos_time = (dt.hour << 11) | (dt.minute << 5) | (dt.second >> 1)
    return dos_date, dos_time


def read_exact(f: BinaryIO, size: int) -> bytes:
    """Read ``size`` bytes or fail.

    Raises:
        StructuralCorruption: On a negative size or a short read.
    """
    if size < 0:
        raise StructuralCorruption(f"Invalid read size: {size} (must be non-negative)")

    data = f.read(size)
    if len(data) != size:
        raise StructuralCorruption(f"Unexpected end of data: expected {size} bytes, got {len(data)}")
    return data


def write_bytes(f: BinaryIO, data: bytes) -> None:
    """Write ``data`` in full.

    Raises:
        StructuralCorruption: If the file accepted fewer bytes than given.
    """
    written = f.write(data)
    if written is not None and written != len(data):
        raise StructuralCorruption(f"Short write: expected {len(data)} bytes, wrote {written}")
