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
Public data model for zipkit.

This module defines the write configuration, the read-side entry and metadata
records, and the content items accepted by the writer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, BinaryIO, Optional, Union

from .constants import (
    COMP_DEFLATE,
    COMP_STORED,
    DEFAULT_COMPRESSION_LEVEL,
    DEFAULT_ENCRYPTION_STRENGTH,
    MAX_COMMENT_LENGTH,
    MAX_COMPRESSION_LEVEL,
    MIN_COMPRESSION_LEVEL,
    TEXT_ENCODING,
)
from .errors import EncodingFailure, InvalidConfiguration

Content = Union[str, bytes, bytearray, memoryview, BinaryIO]


class CompressionMethod(IntEnum):
    """Compression methods zipkit can write and read."""

    STORE = COMP_STORED
    DEFLATE = COMP_DEFLATE


@dataclass
class ArchiveConfiguration:
    """Write-time parameters.

    Attributes:
        level: Compression effort, 0 stores entries, 1-9 deflate them.
        password: Enables encryption when non-empty.
        encryption_strength: AES strength (1=AES-128, 2=AES-192, 3=AES-256),
            ignored without a password.
        comment: Archive-level comment.
        zip_crypto: Use traditional PKWARE encryption instead of AES.
        max_workers: Number of threads compressing entry payloads.
    """

    level: int = DEFAULT_COMPRESSION_LEVEL
    password: Optional[str] = None
    encryption_strength: int = DEFAULT_ENCRYPTION_STRENGTH
    comment: Optional[str] = None
    zip_crypto: bool = False
    max_workers: int = 1

    @property
    def encrypted(self) -> bool:
        return bool(self.password)

    def validate(self) -> "ArchiveConfiguration":
        """Check every field once, before any entry is processed.

        Returns:
            The configuration itself.

        Raises:
            InvalidConfiguration: If a field is out of range.
        """
        if isinstance(self.level, bool) or not isinstance(self.level, int):
            raise InvalidConfiguration(f"Compression level must be an integer, got {self.level!r}")
        if not MIN_COMPRESSION_LEVEL <= self.level <= MAX_COMPRESSION_LEVEL:
            raise InvalidConfiguration(
                f"Invalid compression level: {self.level} "
                f"(must be {MIN_COMPRESSION_LEVEL}-{MAX_COMPRESSION_LEVEL})"
            )

        if self.password is not None and not isinstance(self.password, str):
            raise InvalidConfiguration("Password must be a string")
        if self.encrypted and not self.zip_crypto:
            if self.encryption_strength not in (1, 2, 3) or isinstance(self.encryption_strength, bool):
                raise InvalidConfiguration(
                    f"Invalid encryption strength: {self.encryption_strength!r} (must be 1, 2 or 3)"
                )

        if self.comment is not None:
            if not isinstance(self.comment, str):
                raise InvalidConfiguration("Archive comment must be a string")
            if len(self.comment.encode(TEXT_ENCODING)) > MAX_COMMENT_LENGTH:
                raise InvalidConfiguration(
                    f"Archive comment too long (max {MAX_COMMENT_LENGTH} bytes)"
                )

        if isinstance(self.max_workers, bool) or not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise InvalidConfiguration(f"max_workers must be a positive integer, got {self.max_workers!r}")

        return self


@dataclass(frozen=True)
class ArchiveEntry:
    """One entry as reported by the archive reader."""

    name: str
    uncompressed_size: int
    compressed_size: int
    last_modified: datetime
    is_directory: bool
    encrypted: bool
    compression_method: CompressionMethod
    comment: Optional[str] = None
    crc32: int = 0
    encryption_strength: Optional[int] = None


@dataclass(frozen=True)
class ArchiveMetadata:
    """Aggregate read-time result.

    Totals are computed over non-directory entries only.
    """

    entries: tuple[ArchiveEntry, ...] = ()
    total_uncompressed_size: int = 0
    total_compressed_size: int = 0
    comment: Optional[str] = None

    @classmethod
    def from_entries(cls, entries, comment: Optional[str] = None) -> "ArchiveMetadata":
        entries = tuple(entries)
        files = [entry for entry in entries if not entry.is_directory]
        return cls(
            entries=entries,
            total_uncompressed_size=sum(entry.uncompressed_size for entry in files),
            total_compressed_size=sum(entry.compressed_size for entry in files),
            comment=comment,
        )

    @property
    def compression_ratio(self) -> float:
        """Space saved as a fraction of the uncompressed size (0.0 for empty archives)."""
        if self.total_uncompressed_size == 0:
            return 0.0
        return 1 - self.total_compressed_size / self.total_uncompressed_size


@dataclass
class ContentItem:
    """A named piece of content to be written into an archive."""

    name: str
    content: Content = b""
    is_directory: bool = False
    comment: Optional[str] = None
    last_modified: Optional[datetime] = field(default=None)


def content_to_bytes(content: Any, name: Optional[str] = None) -> bytes:
    """Normalise text, bytes-like or stream content to bytes.

    Text is encoded as UTF-8. Streams are read to the end; a text stream is
    encoded the same way as text.

    Raises:
        EncodingFailure: If the content type is unsupported or the stream fails.
    """
    if content is None:
        return b""
    if isinstance(content, str):
        try:
            return content.encode(TEXT_ENCODING)
        except UnicodeEncodeError as e:
            raise EncodingFailure(f"Cannot encode text content: {e}", name) from e
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)
    if hasattr(content, "read"):
        try:
            data = content.read()
        except OSError as e:
            raise EncodingFailure(f"Failed to read from stream: {e}", name) from e
        return content_to_bytes(data, name)
    raise EncodingFailure(f"Unsupported content type: {type(content).__name__}", name)


def as_content_item(item: Any) -> ContentItem:
    """Coerce one writer input into a ContentItem.

    Accepts ContentItem objects, ``(name, content)`` tuples and mappings with
    ``name`` and ``data`` or ``content`` keys.

    Raises:
        EncodingFailure: If the item has no usable name.
    """
    if isinstance(item, ContentItem):
        return item
    if isinstance(item, tuple) and len(item) == 2:
        return ContentItem(name=item[0], content=item[1])
    if isinstance(item, dict):
        if "name" not in item:
            raise EncodingFailure("Content item is missing a name")
        return ContentItem(
            name=item["name"],
            content=item.get("data", item.get("content", b"")),
            is_directory=bool(item.get("is_directory", item.get("isDirectory", False))),
            comment=item.get("comment"),
            last_modified=item.get("last_modified"),
        )
    raise EncodingFailure(f"Unsupported content item: {type(item).__name__}")
