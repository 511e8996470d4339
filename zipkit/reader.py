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
ZIP archive reader implementation.

This module provides the ZipReader class for reading ZIP and ZIP64 archives,
including entries protected with WinZip AES or traditional PKWARE encryption.
"""

import io
import logging
import struct
from typing import BinaryIO, Optional, Union

from .constants import (
    AES_VERSION_AE1,
    COMP_AES,
    COMP_DEFLATE,
    COMP_STORED,
    EOCD_SIGNATURE_BYTES,
    END_OF_CENTRAL_DIR_SIZE,
    FLAG_DATA_DESCRIPTOR,
    FLAG_STRONG_ENCRYPTION,
    FLAG_UTF8,
    LOCAL_FILE_HEADER_SIZE,
    MAX_CD_OFFSET,
    MAX_CD_SIZE,
    MAX_COMMENT_LENGTH,
    MAX_ENTRY_COUNT,
    TEXT_ENCODING,
    UNIX_DIR_FLAG,
    UNIX_FILE_TYPE_MASK,
    ZIP64_LOCATOR_SIZE,
)
from .crypto import AesCipher, Password, ZipCryptoCipher
from .deflate import decompress
from .errors import (
    ChecksumMismatch,
    InvalidPassword,
    PasswordRequired,
    StructuralCorruption,
    UnsupportedMethod,
    ZipError,
)
from .models import ArchiveEntry, ArchiveMetadata, CompressionMethod
from .structures import (
    EndOfCentralDirectory,
    Zip64EndOfCentralDirectory,
    Zip64Locator,
    ZipEntry,
    parse_aes_extra_field,
    parse_central_directory_header,
    parse_eocd,
    parse_local_file_header,
    parse_zip64_eocd,
    parse_zip64_extra_field,
    parse_zip64_locator,
)
from .utils import crc32, normalize_name, read_exact

logger = logging.getLogger(__name__)

Source = Union[bytes, bytearray, memoryview, BinaryIO]


class ZipReader:
    """Reader for ZIP and ZIP64 archives.

    Only the central directory is parsed on construction; entry payloads are
    decrypted and decompressed on demand.

    Example:
        with ZipReader(data, password="secret") as z:
            print(z.list())
            content = z.read("file.txt")
    """

    def __init__(self, source: Source, password: Optional[Password] = None):
        """Initialize ZipReader with archive bytes or a seekable binary file object.

        Args:
            source: Archive bytes, or a binary file-like object with read/seek/tell.
            password: Password for encrypted entries. An empty password counts as none.

        Raises:
            StructuralCorruption: If the source is not a valid ZIP archive.
        """
        if isinstance(source, (bytes, bytearray, memoryview)):
            self._file = io.BytesIO(bytes(source))
        else:
            for method in ("read", "seek", "tell"):
                if not hasattr(source, method):
                    raise StructuralCorruption(f"File-like object must have a {method}() method")
            self._file = source

        self._password = password or None
        self._records: list[ZipEntry] = []
        self._entries: dict[str, ZipEntry] = {}
        self._eocd: Optional[EndOfCentralDirectory] = None
        self._eocd_offset: int = 0
        self._zip64_eocd: Optional[Zip64EndOfCentralDirectory] = None
        self._zip64_locator: Optional[Zip64Locator] = None
        self._closed: bool = False

        self._file.seek(0, io.SEEK_END)
        self._file_size = self._file.tell()

        self._parse_archive()

    def _find_eocd(self) -> EndOfCentralDirectory:
        """Find and parse the End of Central Directory record.

        Scans backward from the end of the data for the EOCD signature. The
        EOCD can be followed by up to 65535 bytes of comment, so a candidate
        is accepted only when its comment fits in the data and its central
        directory lies before it.

        Raises:
            StructuralCorruption: If no EOCD can be found.
        """
        max_scan = min(END_OF_CENTRAL_DIR_SIZE + MAX_COMMENT_LENGTH, self._file_size)
        self._file.seek(self._file_size - max_scan)
        data = self._file.read(max_scan)

        base = self._file_size - len(data)
        pos = data.rfind(EOCD_SIGNATURE_BYTES)
        while pos != -1:
            if pos + END_OF_CENTRAL_DIR_SIZE <= len(data):
                cd_size, cd_offset, comment_len = struct.unpack("<IIH", data[pos + 12 : pos + 22])
                comment_fits = pos + END_OF_CENTRAL_DIR_SIZE + comment_len <= len(data)
                # Saturated values are resolved through the ZIP64 records
                cd_before = (
                    cd_offset == MAX_CD_OFFSET
                    or cd_size == MAX_CD_SIZE
                    or cd_offset + cd_size <= base + pos
                )
                if comment_fits and cd_before:
                    break
            pos = data.rfind(EOCD_SIGNATURE_BYTES, 0, pos)

        if pos == -1:
            raise StructuralCorruption("End of Central Directory record not found")

        absolute_pos = base + pos
        self._eocd_offset = absolute_pos

        # A ZIP64 locator, when present, sits right before the EOCD
        if absolute_pos >= ZIP64_LOCATOR_SIZE:
            self._file.seek(absolute_pos - ZIP64_LOCATOR_SIZE)
            try:
                self._zip64_locator = parse_zip64_locator(self._file)
            except StructuralCorruption:
                self._zip64_locator = None
            else:
                self._zip64_eocd = self._find_zip64_eocd()

        self._file.seek(absolute_pos)
        return parse_eocd(self._file)

    def _find_zip64_eocd(self) -> Zip64EndOfCentralDirectory:
        """Find and parse the ZIP64 End of Central Directory record.

        Raises:
            StructuralCorruption: If the locator points outside the data.
        """
        zip64_eocd_offset = self._zip64_locator.zip64_eocd_offset
        if zip64_eocd_offset >= self._file_size:
            raise StructuralCorruption(
                f"Invalid ZIP64 EOCD offset: {zip64_eocd_offset} (archive size: {self._file_size})"
            )

        self._file.seek(zip64_eocd_offset)
        return parse_zip64_eocd(self._file)

    def _decode_text(self, raw: bytes, flags: int) -> str:
        if flags & FLAG_UTF8:
            return raw.decode("utf-8", errors="replace")
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return raw.decode("cp437")

    def _parse_central_directory(self) -> None:
        """Parse the central directory and build ZipEntry objects.

        Raises:
            StructuralCorruption: If the central directory cannot be parsed.
        """
        end_record = self._zip64_eocd or self._eocd
        cd_offset = end_record.cd_offset
        cd_size = end_record.cd_size
        num_entries = end_record.cd_records_total
        if end_record.cd_records_on_disk != num_entries:
            raise StructuralCorruption(
                f"Entry count mismatch: {end_record.cd_records_on_disk} on this disk, {num_entries} in total"
            )

        if num_entries > MAX_ENTRY_COUNT:
            raise StructuralCorruption(f"Entry count too large: {num_entries} (max {MAX_ENTRY_COUNT:,})")

        if cd_offset + cd_size > self._eocd_offset:
            raise StructuralCorruption(
                f"Central directory extends beyond its end record: offset {cd_offset}, "
                f"size {cd_size} (end record at {self._eocd_offset})"
            )

        self._file.seek(cd_offset)

        for _ in range(num_entries):
            cd_header = parse_central_directory_header(self._file)

            filename = normalize_name(self._decode_text(cd_header.filename, cd_header.flags))

            # Directory by trailing slash or Unix file type bits
            unix_mode = cd_header.external_attrs >> 16
            is_dir = filename.endswith("/") or (unix_mode & UNIX_FILE_TYPE_MASK) == UNIX_DIR_FLAG

            zip64_extra = parse_zip64_extra_field(
                cd_header.extra,
                cd_header.uncompressed_size,
                cd_header.compressed_size,
                cd_header.local_header_offset,
            )
            uncompressed_size = cd_header.uncompressed_size
            compressed_size = cd_header.compressed_size
            local_header_offset = cd_header.local_header_offset
            if zip64_extra:
                if zip64_extra.original_size is not None:
                    uncompressed_size = zip64_extra.original_size
                if zip64_extra.compressed_size is not None:
                    compressed_size = zip64_extra.compressed_size
                if zip64_extra.local_header_offset is not None:
                    local_header_offset = zip64_extra.local_header_offset

            try:
                aes_extra = parse_aes_extra_field(cd_header.extra, cd_header.compression_method)
            except ZipError as e:
                e.entry_name = filename
                raise

            entry = ZipEntry(
                name=filename,
                is_dir=is_dir,
                compressed_size=compressed_size,
                uncompressed_size=uncompressed_size,
                crc32=cd_header.crc32,
                compression_method=cd_header.compression_method,
                flags=cd_header.flags,
                date_time=cd_header.date_time,
                local_header_offset=local_header_offset,
                extra_field=cd_header.extra,
                mod_time=cd_header.mod_time,
                zip64_extra=zip64_extra,
                aes_extra=aes_extra,
                comment=cd_header.comment,
            )

            self._records.append(entry)
            # Last record wins on duplicate names
            self._entries[filename] = entry

        consumed = self._file.tell() - cd_offset
        if consumed != cd_size:
            raise StructuralCorruption(
                f"Central directory size mismatch: {num_entries} records take {consumed} bytes, "
                f"declared {cd_size}"
            )

        logger.debug(
            "parsed central directory: %d records, %d unique names",
            len(self._records),
            len(self._entries),
        )

    def _parse_archive(self) -> None:
        """Parse the entire archive structure."""
        self._eocd = self._find_eocd()
        self._parse_central_directory()

    def _read_payload(self, entry: ZipEntry) -> bytes:
        """Return the raw (possibly encrypted and compressed) payload of an entry.

        Raises:
            StructuralCorruption: If the local header or data lies outside the archive.
        """
        if entry.local_header_offset + LOCAL_FILE_HEADER_SIZE > self._file_size:
            raise StructuralCorruption(
                f"Invalid local header offset: {entry.local_header_offset} (archive size: {self._file_size})"
            )

        self._file.seek(entry.local_header_offset)
        parse_local_file_header(self._file)

        # Sizes come from the central directory, which is authoritative even
        # when the local header defers them to a data descriptor
        current_pos = self._file.tell()
        if current_pos + entry.compressed_size > self._file_size:
            raise StructuralCorruption(
                f"Compressed data extends beyond archive: position {current_pos}, "
                f"size {entry.compressed_size} (archive size: {self._file_size})"
            )
        return read_exact(self._file, entry.compressed_size)

    def _decrypt_payload(self, entry: ZipEntry, payload: bytes) -> bytes:
        """Remove the encryption layer of an entry payload.

        Raises:
            UnsupportedMethod: If PKWARE strong encryption is used.
            PasswordRequired: If no password was supplied.
            InvalidPassword: If the password does not match.
        """
        if entry.flags & FLAG_STRONG_ENCRYPTION:
            raise UnsupportedMethod("PKWARE strong encryption is not supported")
        if not self._password:
            raise PasswordRequired("Entry is encrypted and no password was supplied")

        if entry.aes_extra is not None:
            return AesCipher(entry.aes_extra.strength).decrypt(payload, self._password)

        if entry.flags & FLAG_DATA_DESCRIPTOR:
            check_byte = entry.mod_time >> 8
        else:
            check_byte = entry.crc32 >> 24
        return ZipCryptoCipher.decrypt(payload, self._password, check_byte)

    def _checks_crc(self, entry: ZipEntry) -> bool:
        # Only AE-1 keeps the CRC; AE-2 zeroes it and relies on the HMAC alone
        return entry.aes_extra is None or entry.aes_extra.version == AES_VERSION_AE1

    def _extract(self, entry: ZipEntry) -> bytes:
        method = entry.actual_compression_method
        if entry.compression_method == COMP_AES and entry.aes_extra is None:
            raise StructuralCorruption("AES compression method without an AES extra field")
        if method not in (COMP_STORED, COMP_DEFLATE):
            raise UnsupportedMethod(f"Unsupported compression method: {method}")

        payload = self._read_payload(entry)
        if not entry.is_encrypted:
            data = decompress(payload, method, entry.uncompressed_size)
            actual_crc = crc32(data)
            if actual_crc != entry.crc32:
                raise ChecksumMismatch(
                    f"CRC32 mismatch: expected 0x{entry.crc32:08X}, got 0x{actual_crc:08X}"
                )
            return data

        payload = self._decrypt_payload(entry, payload)
        # A wrong ZipCrypto password passes the one-byte check now and then;
        # what follows is garbage that fails to inflate or to match the CRC
        try:
            data = decompress(payload, method, entry.uncompressed_size)
        except StructuralCorruption as e:
            raise InvalidPassword(f"Decrypted data is invalid: {e.message}") from e
        if self._checks_crc(entry):
            actual_crc = crc32(data)
            if actual_crc != entry.crc32:
                raise InvalidPassword(
                    f"CRC32 mismatch after decryption: expected 0x{entry.crc32:08X}, got 0x{actual_crc:08X}"
                )
        return data

    def _check_open(self) -> None:
        if self._closed:
            raise StructuralCorruption("Archive is closed")

    def entries(self) -> list[ZipEntry]:
        """Return the surviving central directory records in storage order.

        A record is dropped when a later record has the same name.
        """
        return [entry for entry in self._records if self._entries[entry.name] is entry]

    # Defined after every method annotated with the builtin list, which it shadows
    def list(self) -> list[str]:
        """List all entry names in the archive.

        Returns:
            List of entry names (files and directories), in central directory order.
        """
        return [entry.name for entry in self.entries()]

    def get_info(self, name: str) -> Optional[ZipEntry]:
        """Get metadata for a specific entry.

        Args:
            name: Entry name (must match exactly, including path separators).

        Returns:
            ZipEntry object if found, None otherwise.
        """
        return self._entries.get(normalize_name(name))

    def read(self, name: str) -> bytes:
        """Read, decrypt and decompress the content of an entry.

        Raises:
            KeyError: If entry is not found.
            ZipError: If the entry cannot be extracted; the error carries the entry name.
        """
        self._check_open()

        entry = self.get_info(name)
        if entry is None:
            raise KeyError(f"Entry not found: {name}")
        if entry.is_dir:
            return b""

        try:
            return self._extract(entry)
        except ZipError as e:
            if e.entry_name is None:
                e.entry_name = entry.name
            raise

    def open(self, name: str) -> BinaryIO:
        """Open an entry for reading decompressed data.

        Returns:
            BinaryIO file-like object containing decompressed data.
        """
        return io.BytesIO(self.read(name))

    def to_archive_entry(self, entry: ZipEntry) -> ArchiveEntry:
        """Convert a central directory record to the public entry model.

        The method is read from the central directory only; no payload is
        touched, but methods without a CompressionMethod member are refused.

        Raises:
            UnsupportedMethod: If the entry's compression method is neither store nor deflate.
        """
        try:
            method = CompressionMethod(entry.actual_compression_method)
        except ValueError as e:
            raise UnsupportedMethod(
                f"Unsupported compression method: {entry.actual_compression_method}", entry.name
            ) from e

        return ArchiveEntry(
            name=entry.name,
            uncompressed_size=entry.uncompressed_size,
            compressed_size=entry.compressed_size,
            last_modified=entry.date_time,
            is_directory=entry.is_dir,
            encrypted=entry.is_encrypted,
            compression_method=method,
            comment=self._decode_text(entry.comment, entry.flags) if entry.comment else None,
            crc32=entry.crc32,
            encryption_strength=entry.aes_extra.strength if entry.aes_extra else None,
        )

    @property
    def raw_comment(self) -> bytes:
        return self._eocd.comment

    @property
    def comment(self) -> Optional[str]:
        """Archive comment decoded as UTF-8, or None when empty."""
        if not self._eocd.comment:
            return None
        return self._eocd.comment.decode(TEXT_ENCODING, errors="replace")

    def metadata(self) -> ArchiveMetadata:
        """Summarise the archive without decompressing any payload."""
        return ArchiveMetadata.from_entries(
            (self.to_archive_entry(entry) for entry in self.entries()),
            comment=self.comment,
        )

    def close(self) -> None:
        """Close the reader; the underlying file object is left to its owner."""
        self._closed = True

    def __enter__(self) -> "ZipReader":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
