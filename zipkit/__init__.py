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
zipkit - in-memory ZIP archive engine with deflate compression and password encryption.

This library builds and reads standard ZIP archives from named byte contents,
with optional WinZip AES (128/192/256-bit) or traditional PKWARE encryption,
and reports archive metadata without decompressing payloads.
"""

import logging

from .archive import read_entries, read_metadata, write_archive
from .errors import (
    ChecksumMismatch,
    DecryptionFailure,
    EncodingFailure,
    EncryptionFailure,
    InvalidConfiguration,
    InvalidPassword,
    PasswordRequired,
    StructuralCorruption,
    UnsupportedMethod,
    ZipError,
)
from .models import ArchiveConfiguration, ArchiveEntry, ArchiveMetadata, CompressionMethod, ContentItem
from .reader import ZipReader
from .writer import ZipWriter

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ArchiveConfiguration",
    "ArchiveEntry",
    "ArchiveMetadata",
    "ChecksumMismatch",
    "CompressionMethod",
    "ContentItem",
    "DecryptionFailure",
    "EncodingFailure",
    "EncryptionFailure",
    "InvalidConfiguration",
    "InvalidPassword",
    "PasswordRequired",
    "StructuralCorruption",
    "UnsupportedMethod",
    "ZipError",
    "ZipReader",
    "ZipWriter",
    "read_entries",
    "read_metadata",
    "write_archive",
]

__version__ = "0.1.0"
