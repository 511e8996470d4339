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
ZIP archive writer implementation.

This module provides the ZipWriter class, an in-memory writer cursor that
appends local records as entries are added and emits the central directory
and end of central directory record when closed.
"""

import io
import logging
from datetime import datetime
from typing import BinaryIO, Optional

from .constants import (
    AES_VERSION_AE2,
    CENTRAL_DIR_HEADER,
    COMP_AES,
    COMP_STORED,
    DATA_DESCRIPTOR,
    END_OF_CENTRAL_DIR,
    EXTERNAL_ATTRS_DIR,
    EXTERNAL_ATTRS_FILE,
    FLAG_DATA_DESCRIPTOR,
    FLAG_ENCRYPTED,
    FLAG_UTF8,
    LOCAL_FILE_HEADER,
    MAX_CD_OFFSET,
    MAX_CD_SIZE,
    MAX_COMMENT_LENGTH,
    MAX_ENTRIES,
    MAX_FILE_SIZE,
    MAX_NAME_LENGTH,
    TEXT_ENCODING,
    VERSION_AES,
    VERSION_DEFAULT,
    VERSION_MADE_BY_DEFAULT,
    VERSION_ZIP64,
    ZIP64_END_OF_CENTRAL_DIR,
    ZIP64_END_OF_CENTRAL_DIR_LOCATOR,
)
from .crypto import AesCipher, ZipCryptoCipher
from .deflate import compress
from .errors import EncodingFailure, StructuralCorruption, ZipError
from .models import ArchiveConfiguration, content_to_bytes
from .structures import (
    CENTRAL_DIR_HEADER_LAYOUT,
    DATA_DESCRIPTOR_LAYOUT,
    END_OF_CENTRAL_DIR_LAYOUT,
    LOCAL_FILE_HEADER_LAYOUT,
    ZIP64_DATA_DESCRIPTOR_LAYOUT,
    ZIP64_END_OF_CENTRAL_DIR_LAYOUT,
    ZIP64_LOCATOR_LAYOUT,
    build_aes_extra_field,
    build_zip64_extra_field,
)
from .utils import (
    crc32,
    normalize_name,
    timestamp_to_dos_datetime,
    write_bytes,
)

logger = logging.getLogger(__name__)


class ZipWriter:
    """Writer for ZIP archives held in memory.

    The writer owns the current offset, the bytes written so far and the list
    of central directory records. Nothing is returned until close() has
    written the central directory.

    Example:
        with ZipWriter(ArchiveConfiguration(level=9)) as z:
            z.add_bytes("hello.txt", b"Hello, World!")
        data = z.getvalue()
    """

    def __init__(self, config: Optional[ArchiveConfiguration] = None, file: Optional[BinaryIO] = None):
        """Initialize ZipWriter.

        Args:
            config: Write configuration; validated here, before any entry is added.
            file: Binary file-like object to write to. Defaults to an in-memory buffer.

        Raises:
            InvalidConfiguration: If the configuration is invalid.
        """
        self._config = (config or ArchiveConfiguration()).validate()

        if file is None:
            file = io.BytesIO()
        elif not hasattr(file, "write"):
            raise StructuralCorruption("File-like object must have a write() method")
        self._file = file

        self._pending_entries: list[dict] = []
        self._current_offset: int = 0
        self._closed: bool = False
        self._needs_zip64: bool = False

        if self._config.encrypted and not self._config.zip_crypto:
            self._aes: Optional[AesCipher] = AesCipher(self._config.encryption_strength)
        else:
            self._aes = None

    @property
    def config(self) -> ArchiveConfiguration:
        return self._config

    def _emit(self, *chunks: bytes) -> None:
        for chunk in chunks:
            write_bytes(self._file, chunk)
            self._current_offset += len(chunk)

    def _validate_name(self, name: str, is_directory: bool) -> str:
        if not isinstance(name, str):
            raise EncodingFailure(f"Entry name must be a string, got {type(name).__name__}")

        name = normalize_name(name)
        if not name:
            raise EncodingFailure("Entry name cannot be empty")
        if "\x00" in name:
            raise EncodingFailure("Entry name cannot contain null bytes", name)

        if is_directory and not name.endswith("/"):
            name += "/"

        try:
            name_bytes = name.encode(TEXT_ENCODING)
        except UnicodeEncodeError as e:
            raise EncodingFailure(f"Entry name is not encodable: {e}", name) from e
        if len(name_bytes) > MAX_NAME_LENGTH:
            raise EncodingFailure(
                f"Entry name too long: {len(name_bytes)} bytes (max {MAX_NAME_LENGTH})", name
            )
        return name

    def _encrypt_payload(self, entry_info: dict, payload: bytes) -> bytes:
        """Encrypt a compressed payload and update the entry's header fields."""
        password = self._config.password
        entry_info["flags"] |= FLAG_ENCRYPTED

        if self._aes is not None:
            entry_info["extra"] = build_aes_extra_field(
                AES_VERSION_AE2, self._aes.strength, entry_info["compression_method"]
            )
            entry_info["compression_method"] = COMP_AES
            entry_info["version"] = VERSION_AES
            # AE-2 relies on the HMAC instead of the CRC
            entry_info["crc32"] = 0
            return self._aes.encrypt(payload, password)

        if entry_info["use_data_descriptor"]:
            check_byte = entry_info["mod_time"] >> 8
        else:
            check_byte = entry_info["crc32"] >> 24
        return ZipCryptoCipher.encrypt(payload, password, check_byte)

    def _needs_zip64_for_entry(self, entry_info: dict) -> bool:
        """Check if an entry needs ZIP64 extensions."""
        return (
            entry_info["uncompressed_size"] > MAX_FILE_SIZE
            or entry_info["compressed_size"] > MAX_FILE_SIZE
            or entry_info["local_header_offset"] > MAX_FILE_SIZE
        )

    def _write_local_file_header(self, entry_info: dict) -> None:
        """Write a local file header for a pending entry.

        With a data descriptor the CRC and sizes are written as zero and
        follow the data instead.
        """
        name_bytes = entry_info["name"].encode(TEXT_ENCODING)
        extra = entry_info["extra"]
        version = entry_info["version"]

        if entry_info["use_data_descriptor"]:
            stored_crc32 = 0
            stored_compressed_size = 0
            stored_uncompressed_size = 0
        elif entry_info["uncompressed_size"] > MAX_FILE_SIZE or entry_info["compressed_size"] > MAX_FILE_SIZE:
            extra = build_zip64_extra_field(
                entry_info["uncompressed_size"], entry_info["compressed_size"]
            ) + extra
            version = max(version, VERSION_ZIP64)
            stored_crc32 = entry_info["crc32"]
            stored_compressed_size = MAX_FILE_SIZE
            stored_uncompressed_size = MAX_FILE_SIZE
        else:
            stored_crc32 = entry_info["crc32"]
            stored_compressed_size = entry_info["compressed_size"]
            stored_uncompressed_size = entry_info["uncompressed_size"]

        header = LOCAL_FILE_HEADER_LAYOUT.pack(
            LOCAL_FILE_HEADER,
            version,
            entry_info["flags"],
            entry_info["compression_method"],
            entry_info["mod_time"],
            entry_info["mod_date"],
            stored_crc32,
            stored_compressed_size,
            stored_uncompressed_size,
            len(name_bytes),
            len(extra),
        )
        self._emit(header, name_bytes, extra)

    def _write_data_descriptor(self, entry_info: dict) -> None:
        """Write a data descriptor after the entry data.

        Sizes are 8 bytes wide when the entry needs ZIP64.
        """
        layout = ZIP64_DATA_DESCRIPTOR_LAYOUT if self._needs_zip64_for_entry(entry_info) else DATA_DESCRIPTOR_LAYOUT
        self._emit(
            layout.pack(
                DATA_DESCRIPTOR,
                entry_info["crc32"],
                entry_info["compressed_size"],
                entry_info["uncompressed_size"],
            )
        )

    def add_bytes(
        self,
        name: str,
        data: bytes = b"",
        *,
        is_directory: bool = False,
        comment: Optional[str] = None,
        date_time: Optional[datetime] = None,
        use_data_descriptor: bool = False,
        compressed: Optional[tuple[int, bytes]] = None,
    ) -> None:
        """Add an entry from bytes data.

        Args:
            name: Entry name (path within the archive). A trailing slash marks a directory.
            data: Entry content.
            is_directory: Mark the entry as a directory; a trailing slash is appended.
            comment: Optional per-entry comment.
            date_time: Modification time, defaults to now.
            use_data_descriptor: Write CRC and sizes after the data (streamed entries).
            compressed: Pre-computed ``(method, payload)`` for ``data``, as produced by
                zipkit.deflate.compress at the configured level.

        Raises:
            ZipError: If the archive is closed or the entry cannot be encoded,
                compressed or encrypted. The error carries the entry name.
        """
        if self._closed:
            raise StructuralCorruption("Archive is closed")

        try:
            self._add_entry(name, data, is_directory, comment, date_time, use_data_descriptor, compressed)
        except ZipError as e:
            if e.entry_name is None:
                e.entry_name = name
            raise

    def _add_entry(
        self,
        name: str,
        data: bytes,
        is_directory: bool,
        comment: Optional[str],
        date_time: Optional[datetime],
        use_data_descriptor: bool,
        compressed: Optional[tuple[int, bytes]],
    ) -> None:
        is_directory = is_directory or (isinstance(name, str) and normalize_name(name).endswith("/"))
        name = self._validate_name(name, is_directory)
        data = content_to_bytes(data, name)

        if is_directory and data:
            raise EncodingFailure("Directory entries cannot carry data", name)

        comment_bytes = comment.encode(TEXT_ENCODING) if comment else b""
        if len(comment_bytes) > MAX_COMMENT_LENGTH:
            raise EncodingFailure(f"Entry comment too long (max {MAX_COMMENT_LENGTH} bytes)", name)

        mod_date, mod_time = timestamp_to_dos_datetime(date_time or datetime.now())

        flags = FLAG_UTF8
        if use_data_descriptor:
            flags |= FLAG_DATA_DESCRIPTOR

        if is_directory:
            compression_method, payload = COMP_STORED, b""
        elif compressed is not None:
            compression_method, payload = compressed
        else:
            compression_method, payload = compress(data, self._config.level)

        entry_info = {
            "name": name,
            "is_directory": is_directory,
            "crc32": crc32(data),
            "compression_method": compression_method,
            "mod_time": mod_time,
            "mod_date": mod_date,
            "flags": flags,
            "version": VERSION_DEFAULT,
            "extra": b"",
            "comment": comment_bytes,
            "uncompressed_size": len(data),
            "local_header_offset": self._current_offset,
            "use_data_descriptor": use_data_descriptor,
        }

        if self._config.encrypted and not is_directory:
            payload = self._encrypt_payload(entry_info, payload)

        entry_info["compressed_size"] = len(payload)
        if self._needs_zip64_for_entry(entry_info):
            self._needs_zip64 = True

        self._write_local_file_header(entry_info)
        self._emit(payload)

        if use_data_descriptor:
            self._write_data_descriptor(entry_info)

        self._pending_entries.append(entry_info)
        logger.debug(
            "added entry %r: method=%d size=%d compressed=%d encrypted=%s",
            name,
            entry_info["compression_method"],
            entry_info["uncompressed_size"],
            entry_info["compressed_size"],
            bool(entry_info["flags"] & FLAG_ENCRYPTED),
        )

    def add_stream(self, name: str, stream: BinaryIO, **kwargs) -> None:
        """Add an entry from a stream of unknown size.

        The stream is read to the end and the entry is written with a data
        descriptor carrying the CRC and sizes after the data.

        Raises:
            EncodingFailure: If the stream cannot be read.
        """
        if not hasattr(stream, "read"):
            raise EncodingFailure("Stream object must have a read() method", name)
        self.add_bytes(name, content_to_bytes(stream, name), use_data_descriptor=True, **kwargs)

    def _write_central_directory(self) -> tuple[int, int]:
        """Write the central directory containing all entry headers.

        Returns:
            Tuple of (cd_offset, cd_size).
        """
        cd_start_offset = self._current_offset

        for entry_info in self._pending_entries:
            name_bytes = entry_info["name"].encode(TEXT_ENCODING)
            comment_bytes = entry_info["comment"]
            version = entry_info["version"]

            if self._needs_zip64_for_entry(entry_info):
                zip64_extra = build_zip64_extra_field(
                    entry_info["uncompressed_size"],
                    entry_info["compressed_size"],
                    entry_info["local_header_offset"],
                )
                version = max(version, VERSION_ZIP64)
                stored_compressed_size = MAX_FILE_SIZE
                stored_uncompressed_size = MAX_FILE_SIZE
                stored_local_header_offset = MAX_FILE_SIZE
            else:
                zip64_extra = b""
                stored_compressed_size = entry_info["compressed_size"]
                stored_uncompressed_size = entry_info["uncompressed_size"]
                stored_local_header_offset = entry_info["local_header_offset"]

            extra = zip64_extra + entry_info["extra"]
            external_attrs = EXTERNAL_ATTRS_DIR if entry_info["is_directory"] else EXTERNAL_ATTRS_FILE

            header = CENTRAL_DIR_HEADER_LAYOUT.pack(
                CENTRAL_DIR_HEADER,
                VERSION_MADE_BY_DEFAULT,
                version,
                entry_info["flags"],
                entry_info["compression_method"],
                entry_info["mod_time"],
                entry_info["mod_date"],
                entry_info["crc32"],
                stored_compressed_size,
                stored_uncompressed_size,
                len(name_bytes),
                len(extra),
                len(comment_bytes),
                0,  # disk number start
                0,  # internal attributes
                external_attrs,
                stored_local_header_offset,
            )
            self._emit(header, name_bytes, extra, comment_bytes)

        cd_size = self._current_offset - cd_start_offset
        return cd_start_offset, cd_size

    def _check_needs_zip64(self, cd_offset: int, cd_size: int) -> bool:
        """Check if ZIP64 end records are needed for the archive."""
        return (
            self._needs_zip64
            or len(self._pending_entries) > MAX_ENTRIES
            or cd_size > MAX_CD_SIZE
            or cd_offset > MAX_CD_OFFSET
        )

    def _write_zip64_eocd(self, cd_offset: int, cd_size: int) -> None:
        """Write ZIP64 End of Central Directory record."""
        num_entries = len(self._pending_entries)
        self._emit(
            ZIP64_END_OF_CENTRAL_DIR_LAYOUT.pack(
                ZIP64_END_OF_CENTRAL_DIR,
                # Record size excludes the signature and this field
                ZIP64_END_OF_CENTRAL_DIR_LAYOUT.size - 12,
                VERSION_MADE_BY_DEFAULT,
                VERSION_ZIP64,
                0,
                0,
                num_entries,
                num_entries,
                cd_size,
                cd_offset,
            )
        )

    def _write_zip64_locator(self, zip64_eocd_offset: int) -> None:
        """Write ZIP64 End of Central Directory Locator (single disk)."""
        self._emit(ZIP64_LOCATOR_LAYOUT.pack(ZIP64_END_OF_CENTRAL_DIR_LOCATOR, 0, zip64_eocd_offset, 1))

    def _write_eocd(self, cd_offset: int, cd_size: int) -> None:
        """Write the End of Central Directory record.

        If ZIP64 is needed, the ZIP64 EOCD and locator are written first and
        the classic record carries saturated values.
        """
        num_entries = len(self._pending_entries)
        comment_bytes = (self._config.comment or "").encode(TEXT_ENCODING)

        if self._check_needs_zip64(cd_offset, cd_size):
            zip64_eocd_offset = self._current_offset
            self._write_zip64_eocd(cd_offset, cd_size)
            self._write_zip64_locator(zip64_eocd_offset)

            stored_entries = min(num_entries, MAX_ENTRIES)
            stored_cd_size = min(cd_size, MAX_CD_SIZE)
            stored_cd_offset = min(cd_offset, MAX_CD_OFFSET)
        else:
            stored_entries = num_entries
            stored_cd_size = cd_size
            stored_cd_offset = cd_offset

        record = END_OF_CENTRAL_DIR_LAYOUT.pack(
            END_OF_CENTRAL_DIR,
            0,
            0,
            stored_entries,
            stored_entries,
            stored_cd_size,
            stored_cd_offset,
            len(comment_bytes),
        )
        self._emit(record, comment_bytes)

    def close(self) -> None:
        """Write central directory and EOCD. Further additions are rejected."""
        if self._closed:
            return

        try:
            cd_offset, cd_size = self._write_central_directory()
            self._write_eocd(cd_offset, cd_size)
            logger.debug(
                "closed archive: %d entries, central directory %d bytes at offset %d",
                len(self._pending_entries),
                cd_size,
                cd_offset,
            )
        finally:
            self._closed = True

    def getvalue(self) -> bytes:
        """Return the finished archive bytes.

        Raises:
            StructuralCorruption: If the archive has not been closed or does not
                write to an in-memory buffer.
        """
        if not self._closed:
            raise StructuralCorruption("Archive is not finalized; call close() first")
        if not hasattr(self._file, "getvalue"):
            raise StructuralCorruption("Archive was written to an external file object")
        return self._file.getvalue()

    def __enter__(self) -> "ZipWriter":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit; the archive is only finalized on success."""
        if exc_type is None:
            self.close()
        else:
            self._closed = True
