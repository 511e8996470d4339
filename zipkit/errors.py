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
Custom exception classes for zipkit.

Every failure raised by the engine derives from ZipError. Errors that concern a
single entry carry its name in ``entry_name`` so that callers can report which
entry aborted the operation.
"""

from typing import Optional


class ZipError(Exception):
    """Base exception class for all ZIP-related errors.

    Args:
        message: Human-readable description of the failure.
        entry_name: Name of the offending entry, when the error is entry-scoped.
    """

    kind = "ZipError"

    def __init__(self, message: str, entry_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.entry_name = entry_name

    def __str__(self) -> str:
        if self.entry_name is not None:
            return f"{self.message} (entry '{self.entry_name}')"
        return self.message

    def to_dict(self) -> dict:
        """Return the error as a plain mapping for a request/response layer."""
        result = {"kind": self.kind, "message": self.message}
        if self.entry_name is not None:
            result["entryName"] = self.entry_name
        return result


class InvalidConfiguration(ZipError):
    """Raised when write parameters are out of range.

    Raised before any entry is processed, e.g. for a compression level outside
    0-9 or an encryption strength outside 1-3 while a password is set.
    """

    kind = "InvalidConfiguration"


class EncodingFailure(ZipError):
    """Raised when an entry's content cannot be turned into archive bytes.

    This covers invalid entry names, content of an unsupported type and
    compression failures.
    """

    kind = "EncodingFailure"


class EncryptionFailure(ZipError):
    """Raised when an entry payload cannot be encrypted."""

    kind = "EncryptionFailure"


class DecryptionFailure(ZipError):
    """Raised when an encrypted entry cannot be decrypted."""

    kind = "DecryptionFailure"


class PasswordRequired(DecryptionFailure):
    """Raised when an entry is encrypted and no password was supplied."""

    kind = "PasswordRequired"


class InvalidPassword(DecryptionFailure):
    """Raised when the supplied password does not match.

    This exception is raised when:
    - The password verifier stored with an AES entry does not match
    - The AES authentication code does not match the ciphertext
    - The ZipCrypto check byte or the CRC32 of a decrypted entry does not match
    """

    kind = "InvalidPassword"


class StructuralCorruption(ZipError):
    """Raised when a ZIP buffer has an invalid format or structure.

    This exception is raised when:
    - The end of central directory record cannot be found
    - Required signatures are missing or incorrect
    - Offsets or sizes point outside the buffer
    - Compressed data cannot be inflated
    """

    kind = "StructuralCorruption"


class ChecksumMismatch(StructuralCorruption):
    """Raised when CRC32 checksum validation of an unencrypted entry fails."""

    kind = "ChecksumMismatch"


class UnsupportedMethod(ZipError):
    """Raised when an entry uses a compression or encryption method zipkit lacks."""

    kind = "UnsupportedMethod"
