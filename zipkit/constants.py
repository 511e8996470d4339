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
ZIP format constants including signatures, compression methods, flags, and version numbers.

This module defines the constants used throughout zipkit for parsing and
writing ZIP archives, including the WinZip AES and ZIP64 extensions.
"""

# ZIP file signatures (magic numbers)
LOCAL_FILE_HEADER = 0x04034B50  # "PK\x03\x04"
CENTRAL_DIR_HEADER = 0x02014B50  # "PK\x01\x02"
END_OF_CENTRAL_DIR = 0x06054B50  # "PK\x05\x06"
ZIP64_END_OF_CENTRAL_DIR = 0x06064B50  # "PK\x06\x06"
ZIP64_END_OF_CENTRAL_DIR_LOCATOR = 0x07064B50  # "PK\x06\x07"
DATA_DESCRIPTOR = 0x08074B50  # "PK\x07\x08"

EOCD_SIGNATURE_BYTES = b"PK\x05\x06"

# Compression methods
COMP_STORED = 0  # No compression
COMP_DEFLATE = 8  # Deflate compression (zlib)
COMP_AES = 99  # WinZip AES marker, real method lives in the 0x9901 extra field

# General purpose bit flags
FLAG_ENCRYPTED = 0x0001  # File is encrypted
FLAG_DATA_DESCRIPTOR = 0x0008  # Data descriptor follows file data
FLAG_STRONG_ENCRYPTION = 0x0040  # PKWARE strong encryption (unsupported)
FLAG_UTF8 = 0x0800  # UTF-8 encoding for filename/comment

# ZIP version constants
VERSION_DEFAULT = 20  # Default version needed to extract
VERSION_ZIP64 = 45  # ZIP64 format version
VERSION_AES = 51  # WinZip AES encryption
VERSION_MADE_BY_DEFAULT = 63  # Made by: Unix (63 = 3.0 * 20 + 3)

# Classic ZIP limits (32-bit)
MAX_FILE_SIZE = 0xFFFFFFFF  # 4 GiB - 1
MAX_ENTRIES = 0xFFFF  # 65535 entries
MAX_CD_SIZE = 0xFFFFFFFF  # 4 GiB - 1
MAX_CD_OFFSET = 0xFFFFFFFF  # 4 GiB - 1
MAX_COMMENT_LENGTH = 0xFFFF
MAX_NAME_LENGTH = 0xFFFF

# Extra field tags
ZIP64_EXTRA_FIELD_TAG = 0x0001
AES_EXTRA_FIELD_TAG = 0x9901

# WinZip AES extra field
AES_VENDOR_ID = b"AE"
AES_VERSION_AE1 = 1  # CRC stored
AES_VERSION_AE2 = 2  # CRC zeroed, HMAC only
AES_EXTRA_DATA_SIZE = 7

# AES strength -> (key length, salt length) in bytes
AES_KEY_LENGTHS = {1: 16, 2: 24, 3: 32}
AES_SALT_LENGTHS = {1: 8, 2: 12, 3: 16}
AES_VERIFIER_SIZE = 2
AES_MAC_SIZE = 10
AES_PBKDF2_ITERATIONS = 1000

# Traditional PKWARE encryption header size
ZIPCRYPTO_HEADER_SIZE = 12

# External attributes (Unix mode in the high word)
EXTERNAL_ATTRS_FILE = 0o100644 << 16
EXTERNAL_ATTRS_DIR = 0o040755 << 16
UNIX_FILE_TYPE_MASK = 0o170000
UNIX_DIR_FLAG = 0o040000

# Local file header size (fixed part)
LOCAL_FILE_HEADER_SIZE = 30

# Central directory header size (fixed part, excluding filename/extra/comment)
CENTRAL_DIR_HEADER_SIZE = 46

# End of central directory size (fixed part, excluding comment)
END_OF_CENTRAL_DIR_SIZE = 22

# ZIP64 locator size (fixed part)
ZIP64_LOCATOR_SIZE = 20

# Data descriptor size (with signature, 32-bit sizes)
DATA_DESCRIPTOR_SIZE = 16

# Writer defaults
DEFAULT_ENTRY_NAME = "file"
DEFAULT_COMPRESSION_LEVEL = 5
DEFAULT_ENCRYPTION_STRENGTH = 3
MIN_COMPRESSION_LEVEL = 0
MAX_COMPRESSION_LEVEL = 9

# Sanity bound on central directory entry counts
MAX_ENTRY_COUNT = 10_000_000

TEXT_ENCODING = "utf-8"
