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
ZIP structure definitions and parsing functions.

This module defines dataclasses for the ZIP records zipkit reads and writes:
local file headers, central directory headers, end of central directory
records, the ZIP64 extensions and the WinZip AES extra field.

Fixed-size parts are described by ``struct.Struct`` layouts whose first
field is the record signature; variable-length parts (names, extra fields,
comments) follow and are read with the lengths the fixed part declares.
"""

import struct
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Iterator, Optional

from .constants import (
    AES_EXTRA_DATA_SIZE,
    AES_EXTRA_FIELD_TAG,
    AES_VENDOR_ID,
    CENTRAL_DIR_HEADER,
    COMP_AES,
    END_OF_CENTRAL_DIR,
    FLAG_ENCRYPTED,
    LOCAL_FILE_HEADER,
    MAX_FILE_SIZE,
    ZIP64_END_OF_CENTRAL_DIR,
    ZIP64_END_OF_CENTRAL_DIR_LOCATOR,
    ZIP64_EXTRA_FIELD_TAG,
)
from .errors import StructuralCorruption, UnsupportedMethod
from .utils import dos_datetime_to_timestamp, read_exact

LOCAL_FILE_HEADER_LAYOUT = struct.Struct("<IHHHHHIIIHH")
CENTRAL_DIR_HEADER_LAYOUT = struct.Struct("<IHHHHHHIIIHHHHHII")
END_OF_CENTRAL_DIR_LAYOUT = struct.Struct("<IHHHHIIH")
ZIP64_END_OF_CENTRAL_DIR_LAYOUT = struct.Struct("<IQHHIIQQQQ")
ZIP64_LOCATOR_LAYOUT = struct.Struct("<IIQI")
DATA_DESCRIPTOR_LAYOUT = struct.Struct("<IIII")
ZIP64_DATA_DESCRIPTOR_LAYOUT = struct.Struct("<IIQQ")


@dataclass
class LocalFileHeader:
    """Local file header, written before each entry's data.

    CRC and sizes are zero when the entry uses a data descriptor.
    """

    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    filename: bytes
    extra: bytes


@dataclass
class CentralDirectoryHeader:
    """Central directory record of one entry.

    Points back to the entry's local header and carries the authoritative
    CRC, sizes, attributes and comment.
    """

    version_made_by: int
    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    disk_start: int
    internal_attrs: int
    external_attrs: int
    local_header_offset: int
    filename: bytes
    extra: bytes
    comment: bytes

    @property
    def date_time(self) -> datetime:
        """Modification time decoded from the DOS fields."""
        return dos_datetime_to_timestamp(self.mod_date, self.mod_time)


@dataclass
class EndOfCentralDirectory:
    """End of Central Directory record.

    Values that overflow their 16/32-bit fields are saturated and the
    ZIP64 record holds the real ones.
    """

    disk_num: int
    cd_disk: int
    cd_records_on_disk: int
    cd_records_total: int
    cd_size: int
    cd_offset: int
    comment: bytes


@dataclass
class Zip64EndOfCentralDirectory:
    """ZIP64 End of Central Directory record."""

    record_size: int
    version_made_by: int
    version_needed: int
    disk_num: int
    cd_disk: int
    cd_records_on_disk: int
    cd_records_total: int
    cd_size: int
    cd_offset: int


@dataclass
class Zip64Locator:
    """Pointer from the end of the archive to the ZIP64 EOCD record."""

    disk_num: int
    zip64_eocd_offset: int
    total_disks: int


@dataclass
class Zip64ExtraField:
    """ZIP64 extra field data.

    Only the values whose 32-bit counterpart is saturated are present.
    """

    original_size: Optional[int] = None
    compressed_size: Optional[int] = None
    local_header_offset: Optional[int] = None
    disk_start: Optional[int] = None


@dataclass
class AesExtraField:
    """WinZip AES extra field (tag 0x9901).

    Entries encrypted with AES store method 99 in their headers; the method
    actually used on the plaintext is kept here.
    """

    version: int
    vendor: bytes
    strength: int
    compression_method: int


@dataclass
class ZipEntry:
    """One entry of an archive as seen by the reader.

    Combines the central directory record with its decoded name and parsed
    extra fields.
    """

    name: str
    is_dir: bool
    compressed_size: int
    uncompressed_size: int
    crc32: int
    compression_method: int
    flags: int
    date_time: datetime
    local_header_offset: int
    extra_field: bytes
    mod_time: int = 0
    zip64_extra: Optional[Zip64ExtraField] = None
    aes_extra: Optional[AesExtraField] = None
    comment: bytes = b""

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flags & FLAG_ENCRYPTED)

    @property
    def actual_compression_method(self) -> int:
        """Compression method applied to the plaintext, unwrapping AES."""
        if self.aes_extra is not None:
            return self.aes_extra.compression_method
        return self.compression_method


def _read_record(f: BinaryIO, layout: struct.Struct, signature: int, label: str) -> tuple:
    """Read a fixed-size record and check its signature.

    Returns:
        The unpacked fields after the signature.

    Raises:
        StructuralCorruption: If the data is truncated or the signature is wrong.
    """
    values = layout.unpack(read_exact(f, layout.size))
    if values[0] != signature:
        raise StructuralCorruption(
            f"Invalid {label} signature: 0x{values[0]:08X}, expected 0x{signature:08X}"
        )
    return values[1:]


def iter_extra_fields(extra_data: bytes) -> Iterator[tuple[int, bytes]]:
    """Yield (tag, payload) pairs from a raw extra field block.

    Truncated trailing fields are ignored, as most readers do.
    """
    pos = 0
    while pos + 4 <= len(extra_data):
        tag, size = struct.unpack("<HH", extra_data[pos : pos + 4])
        pos += 4
        if pos + size > len(extra_data):
            break
        yield tag, extra_data[pos : pos + size]
        pos += size


def parse_local_file_header(f: BinaryIO) -> LocalFileHeader:
    """Parse a local file header from the current file position.

    Args:
        f: Binary file-like object positioned at the start of a local file header.

    Raises:
        StructuralCorruption: If the signature is invalid or data is truncated.
    """
    *fields, name_len, extra_len = _read_record(
        f, LOCAL_FILE_HEADER_LAYOUT, LOCAL_FILE_HEADER, "local file header"
    )
    filename = read_exact(f, name_len)
    extra = read_exact(f, extra_len)
    return LocalFileHeader(*fields, filename=filename, extra=extra)


def parse_central_directory_header(f: BinaryIO) -> CentralDirectoryHeader:
    """Parse a central directory header from the current file position.

    Raises:
        StructuralCorruption: If the signature is invalid or data is truncated.
    """
    values = _read_record(f, CENTRAL_DIR_HEADER_LAYOUT, CENTRAL_DIR_HEADER, "central directory header")
    name_len, extra_len, comment_len = values[9:12]

    filename = read_exact(f, name_len)
    extra = read_exact(f, extra_len)
    comment = read_exact(f, comment_len)

    return CentralDirectoryHeader(
        *values[:9],
        *values[12:],
        filename=filename,
        extra=extra,
        comment=comment,
    )


def parse_eocd(f: BinaryIO) -> EndOfCentralDirectory:
    """Parse an End of Central Directory record from the current file position.

    Raises:
        StructuralCorruption: If the signature is invalid or data is truncated.
    """
    *fields, comment_len = _read_record(f, END_OF_CENTRAL_DIR_LAYOUT, END_OF_CENTRAL_DIR, "EOCD")
    return EndOfCentralDirectory(*fields, comment=read_exact(f, comment_len))


def parse_zip64_eocd(f: BinaryIO) -> Zip64EndOfCentralDirectory:
    """Parse a ZIP64 End of Central Directory record from the current file position.

    The extensible data sector that may follow the fixed part is not read.
    """
    fields = _read_record(f, ZIP64_END_OF_CENTRAL_DIR_LAYOUT, ZIP64_END_OF_CENTRAL_DIR, "ZIP64 EOCD")
    return Zip64EndOfCentralDirectory(*fields)


def parse_zip64_locator(f: BinaryIO) -> Zip64Locator:
    fields = _read_record(f, ZIP64_LOCATOR_LAYOUT, ZIP64_END_OF_CENTRAL_DIR_LOCATOR, "ZIP64 locator")
    return Zip64Locator(*fields)


def parse_zip64_extra_field(
    extra_data: bytes,
    uncompressed_size: int,
    compressed_size: int,
    local_header_offset: int = 0,
) -> Optional[Zip64ExtraField]:
    """Parse the ZIP64 extra field from extra field data.

    Values appear in the field only when the corresponding 32-bit header
    value is 0xFFFFFFFF, in the fixed order: original size, compressed size,
    local header offset, disk start.

    Args:
        extra_data: Raw extra field bytes.
        uncompressed_size: 32-bit uncompressed size from the header.
        compressed_size: 32-bit compressed size from the header.
        local_header_offset: 32-bit offset from the header (central directory only).

    Returns:
        Zip64ExtraField object if found, None otherwise.
    """
    for tag, field_data in iter_extra_fields(extra_data):
        if tag != ZIP64_EXTRA_FIELD_TAG:
            continue

        zip64_extra = Zip64ExtraField()
        field_pos = 0

        if uncompressed_size == MAX_FILE_SIZE and field_pos + 8 <= len(field_data):
            zip64_extra.original_size = struct.unpack("<Q", field_data[field_pos : field_pos + 8])[0]
            field_pos += 8

        if compressed_size == MAX_FILE_SIZE and field_pos + 8 <= len(field_data):
            zip64_extra.compressed_size = struct.unpack("<Q", field_data[field_pos : field_pos + 8])[0]
            field_pos += 8

        if local_header_offset == MAX_FILE_SIZE and field_pos + 8 <= len(field_data):
            zip64_extra.local_header_offset = struct.unpack("<Q", field_data[field_pos : field_pos + 8])[0]
            field_pos += 8

        if field_pos + 4 <= len(field_data):
            zip64_extra.disk_start = struct.unpack("<I", field_data[field_pos : field_pos + 4])[0]

        return zip64_extra

    return None


def parse_aes_extra_field(extra_data: bytes, compression_method: int) -> Optional[AesExtraField]:
    """Parse the WinZip AES extra field from extra field data.

    Args:
        extra_data: Raw extra field bytes.
        compression_method: Method stored in the header; must be 99 when the
            field is present.

    Returns:
        AesExtraField object if found, None otherwise.

    Raises:
        StructuralCorruption: If the field is malformed or inconsistent with the header.
        UnsupportedMethod: If the AES strength is unknown.
    """
    for tag, field_data in iter_extra_fields(extra_data):
        if tag != AES_EXTRA_FIELD_TAG:
            continue

        if len(field_data) < AES_EXTRA_DATA_SIZE:
            raise StructuralCorruption(f"AES extra field too short: {len(field_data)} bytes")
        if compression_method != COMP_AES:
            raise StructuralCorruption(
                f"AES extra field found, but compression method was {compression_method}"
            )

        version, vendor, strength, actual_method = struct.unpack("<H2sBH", field_data[:AES_EXTRA_DATA_SIZE])
        if vendor != AES_VENDOR_ID:
            raise StructuralCorruption(f"Unknown AES vendor id: {vendor!r}")
        if strength not in (1, 2, 3):
            raise UnsupportedMethod(f"Unsupported AES strength: {strength}")

        return AesExtraField(
            version=version,
            vendor=vendor,
            strength=strength,
            compression_method=actual_method,
        )

    return None


def build_zip64_extra_field(*values: int) -> bytes:
    """Build a ZIP64 extra field holding the given 64-bit values in order."""
    field_data = b"".join(struct.pack("<Q", value) for value in values)
    return struct.pack("<HH", ZIP64_EXTRA_FIELD_TAG, len(field_data)) + field_data


def build_aes_extra_field(version: int, strength: int, compression_method: int) -> bytes:
    """Build a WinZip AES extra field."""
    field_data = struct.pack("<H2sBH", version, AES_VENDOR_ID, strength, compression_method)
    return struct.pack("<HH", AES_EXTRA_FIELD_TAG, len(field_data)) + field_data
