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
Whole-archive operations.

These three functions are the boundary used by request handlers and the
command line: each call works on one in-memory buffer, owns no state between
calls and either returns a complete result or raises a ZipError.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Optional, Union

from .constants import DEFAULT_ENTRY_NAME
from .crypto import Password
from .deflate import compress
from .errors import ZipError
from .models import (
    ArchiveConfiguration,
    ArchiveMetadata,
    ContentItem,
    as_content_item,
    content_to_bytes,
)
from .reader import Source, ZipReader
from .writer import ZipWriter

logger = logging.getLogger(__name__)


def _is_single_content(items: Any) -> bool:
    return isinstance(items, (str, bytes, bytearray, memoryview)) or hasattr(items, "read")


def _normalize_items(items: Any) -> list[tuple[ContentItem, bytes]]:
    """Turn writer input into (item, content bytes) pairs, in input order."""
    if _is_single_content(items):
        items = [ContentItem(name=DEFAULT_ENTRY_NAME, content=items)]
    elif isinstance(items, (ContentItem, dict)):
        items = [items]

    normalized = []
    for raw in items:
        item = as_content_item(raw)
        try:
            data = b"" if item.is_directory else content_to_bytes(item.content, item.name)
        except ZipError as e:
            if e.entry_name is None:
                e.entry_name = item.name
            raise
        normalized.append((item, data))
    return normalized


def _compress_all(
    normalized: list[tuple[ContentItem, bytes]], level: int, max_workers: int
) -> list[Optional[tuple[int, bytes]]]:
    """Compress entry payloads in a thread pool, keeping input order."""

    def _one(pair: tuple[ContentItem, bytes]) -> Optional[tuple[int, bytes]]:
        item, data = pair
        if item.is_directory or item.name.endswith("/"):
            return None
        try:
            return compress(data, level)
        except ZipError as e:
            e.entry_name = item.name
            raise

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(_one, normalized))


def write_archive(
    items: Union[Iterable[Any], str, bytes],
    config: Optional[ArchiveConfiguration] = None,
) -> bytes:
    """Build a complete archive from named contents.

    Args:
        items: Either a single content (text, bytes-like or binary stream),
            stored under the name ``file``, or an iterable of ContentItem
            objects, ``(name, content)`` tuples or mappings with ``name`` and
            ``data`` keys.
        config: Write configuration. Defaults to level 5 without encryption.

    Returns:
        The archive bytes.

    Raises:
        InvalidConfiguration: Before any entry is processed.
        ZipError: If any entry fails; the error names the entry and no
            partial archive is returned.
    """
    config = (config or ArchiveConfiguration()).validate()
    normalized = _normalize_items(items)

    if config.max_workers > 1 and config.level > 0 and len(normalized) > 1:
        precompressed = _compress_all(normalized, config.level, config.max_workers)
    else:
        precompressed = [None] * len(normalized)

    writer = ZipWriter(config)
    for (item, data), compressed in zip(normalized, precompressed):
        writer.add_bytes(
            item.name,
            data,
            is_directory=item.is_directory,
            comment=item.comment,
            date_time=item.last_modified,
            compressed=compressed,
        )
    writer.close()

    result = writer.getvalue()
    logger.debug("wrote archive: %d entries, %d bytes", len(normalized), len(result))
    return result


def read_entries(buffer: Source, password: Optional[Password] = None) -> list[tuple[str, bytes]]:
    """Extract every file entry of an archive.

    Directory entries are skipped. When several entries share a name only the
    last one is returned, at its own position.

    Args:
        buffer: Archive bytes or a seekable binary file object.
        password: Password for encrypted entries.

    Returns:
        List of (name, content) pairs in central directory order.

    Raises:
        StructuralCorruption: If the archive structure is invalid.
        PasswordRequired: If an entry is encrypted and no password was given.
        InvalidPassword: If the password is wrong.
        UnsupportedMethod: If an entry uses an unknown compression method.
    """
    with ZipReader(buffer, password=password) as reader:
        return [(entry.name, reader.read(entry.name)) for entry in reader.entries() if not entry.is_dir]


def read_metadata(buffer: Source, password: Optional[Password] = None) -> ArchiveMetadata:
    """Report the structure of an archive without decompressing payloads.

    The password is accepted for symmetry with read_entries; metadata is
    stored unencrypted and never needs it.

    Raises:
        StructuralCorruption: If the archive structure is invalid.
        UnsupportedMethod: If any entry uses a compression method other than
            store or deflate. Every entry reports its method as a
            CompressionMethod, so such an archive is rejected as a whole
            rather than listed without that entry. The error carries the
            entry name.
    """
    with ZipReader(buffer, password=password) as reader:
        return reader.metadata()

