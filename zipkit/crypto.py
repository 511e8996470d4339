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
Per-entry encryption for ZIP archives.

Two schemes are supported:

- WinZip AES (AE-1/AE-2): AES in little-endian CTR mode with keys derived by
  PBKDF2-HMAC-SHA1 from the password and a random salt. The payload is laid
  out as ``salt | password verifier | ciphertext | HMAC-SHA1[:10]``. Strength
  1, 2 and 3 select 128, 192 and 256-bit keys.
- Traditional PKWARE encryption ("ZipCrypto"): a CRC32-based stream cipher
  with a 12-byte encryption header whose last byte is a password check byte.

Both ciphers work on the (possibly compressed) payload. Passwords are encoded
as UTF-8.
"""

import hmac
from typing import Union

from Cryptodome.Cipher import AES
from Cryptodome.Hash import HMAC, SHA1
from Cryptodome.Protocol.KDF import PBKDF2
from Cryptodome.Random import get_random_bytes
from Cryptodome.Util import Counter

from .constants import (
    AES_KEY_LENGTHS,
    AES_MAC_SIZE,
    AES_PBKDF2_ITERATIONS,
    AES_SALT_LENGTHS,
    AES_VERIFIER_SIZE,
    TEXT_ENCODING,
    ZIPCRYPTO_HEADER_SIZE,
)
from .errors import EncryptionFailure, InvalidConfiguration, InvalidPassword, StructuralCorruption

Password = Union[str, bytes]


def password_bytes(password: Password) -> bytes:
    """Return the byte form of a password."""
    if isinstance(password, bytes):
        return password
    return password.encode(TEXT_ENCODING)


class AesCipher:
    """WinZip AES encryption for a single strength.

    Example:
        cipher = AesCipher(3)
        payload = cipher.encrypt(b"data", "secret")
        assert cipher.decrypt(payload, "secret") == b"data"
    """

    def __init__(self, strength: int):
        if strength not in AES_KEY_LENGTHS:
            raise InvalidConfiguration(
                f"Invalid encryption strength: {strength} (must be 1, 2 or 3)"
            )
        self.strength = strength
        self.key_length = AES_KEY_LENGTHS[strength]
        self.salt_length = AES_SALT_LENGTHS[strength]

    @property
    def overhead(self) -> int:
        """Bytes added to each payload: salt, verifier and MAC."""
        return self.salt_length + AES_VERIFIER_SIZE + AES_MAC_SIZE

    def _derive(self, password: Password, salt: bytes) -> tuple[bytes, bytes, bytes]:
        derived = PBKDF2(
            password_bytes(password),
            salt,
            dkLen=self.key_length * 2 + AES_VERIFIER_SIZE,
            count=AES_PBKDF2_ITERATIONS,
            hmac_hash_module=SHA1,
        )
        key = derived[: self.key_length]
        mac_key = derived[self.key_length : self.key_length * 2]
        verifier = derived[self.key_length * 2 :]
        return key, mac_key, verifier

    @staticmethod
    def _ctr(key: bytes):
        counter = Counter.new(128, initial_value=1, little_endian=True)
        return AES.new(key, AES.MODE_CTR, counter=counter)

    def encrypt(self, payload: bytes, password: Password) -> bytes:
        """Encrypt a payload and frame it with salt, verifier and MAC.

        Raises:
            EncryptionFailure: If the cipher cannot be initialised.
        """
        try:
            salt = get_random_bytes(self.salt_length)
            key, mac_key, verifier = self._derive(password, salt)
            ciphertext = self._ctr(key).encrypt(payload)
            mac = HMAC.new(mac_key, ciphertext, digestmod=SHA1).digest()[:AES_MAC_SIZE]
        except (ValueError, TypeError) as e:
            raise EncryptionFailure(f"AES encryption failed: {e}") from e
        return salt + verifier + ciphertext + mac

    def decrypt(self, data: bytes, password: Password) -> bytes:
        """Verify and decrypt a framed payload.

        Raises:
            StructuralCorruption: If the payload is shorter than the framing.
            InvalidPassword: If the verifier or the MAC does not match.
        """
        if len(data) < self.overhead:
            raise StructuralCorruption(
                f"AES payload too short: {len(data)} bytes (need at least {self.overhead})"
            )

        salt = data[: self.salt_length]
        stored_verifier = data[self.salt_length : self.salt_length + AES_VERIFIER_SIZE]
        ciphertext = data[self.salt_length + AES_VERIFIER_SIZE : -AES_MAC_SIZE]
        stored_mac = data[-AES_MAC_SIZE:]

        key, mac_key, verifier = self._derive(password, salt)
        if not hmac.compare_digest(verifier, stored_verifier):
            raise InvalidPassword("Wrong password: AES password verifier mismatch")

        mac = HMAC.new(mac_key, ciphertext, digestmod=SHA1).digest()[:AES_MAC_SIZE]
        if not hmac.compare_digest(mac, stored_mac):
            raise InvalidPassword("Authentication failed: AES HMAC mismatch")

        return self._ctr(key).decrypt(ciphertext)


def _make_crc_table() -> list[int]:
    table = []
    for c in range(256):
        for _ in range(8):
            c = (c >> 1) ^ 0xEDB88320 if c & 1 else c >> 1
        table.append(c)
    return table


_CRC_TABLE = _make_crc_table()


class ZipCryptoCipher:
    """Traditional PKWARE stream cipher.

    Each instance holds the three 32-bit keys; it is initialised from the
    password and then consumed while encrypting or decrypting one payload.
    """

    overhead = ZIPCRYPTO_HEADER_SIZE

    def __init__(self, password: Password):
        self.key0 = 0x12345678
        self.key1 = 0x23456789
        self.key2 = 0x34567890
        for byte in password_bytes(password):
            self._update_keys(byte)

    def _update_keys(self, byte: int) -> None:
        self.key0 = (self.key0 >> 8) ^ _CRC_TABLE[(self.key0 ^ byte) & 0xFF]
        self.key1 = (self.key1 + (self.key0 & 0xFF)) & 0xFFFFFFFF
        self.key1 = (self.key1 * 134775813 + 1) & 0xFFFFFFFF
        self.key2 = (self.key2 >> 8) ^ _CRC_TABLE[(self.key2 ^ (self.key1 >> 24)) & 0xFF]

    def _process(self, data: bytes, decrypting: bool) -> bytes:
        table = _CRC_TABLE
        key0, key1, key2 = self.key0, self.key1, self.key2
        out = bytearray(len(data))
        for i, byte in enumerate(data):
            k = key2 | 2
            stream = ((k * (k ^ 1)) >> 8) & 0xFF
            plain = byte ^ stream if decrypting else byte
            out[i] = byte ^ stream
            key0 = (key0 >> 8) ^ table[(key0 ^ plain) & 0xFF]
            key1 = ((key1 + (key0 & 0xFF)) * 134775813 + 1) & 0xFFFFFFFF
            key2 = (key2 >> 8) ^ table[(key2 ^ (key1 >> 24)) & 0xFF]
        self.key0, self.key1, self.key2 = key0, key1, key2
        return bytes(out)

    def encrypt_bytes(self, data: bytes) -> bytes:
        return self._process(data, decrypting=False)

    def decrypt_bytes(self, data: bytes) -> bytes:
        return self._process(data, decrypting=True)

    @classmethod
    def encrypt(cls, payload: bytes, password: Password, check_byte: int) -> bytes:
        """Encrypt a payload behind a fresh 12-byte encryption header.

        Args:
            payload: Compressed entry bytes.
            password: Entry password.
            check_byte: Value of the header's last byte, the high byte of the
                CRC32 (or of the DOS time when a data descriptor is used).
        """
        header = get_random_bytes(ZIPCRYPTO_HEADER_SIZE - 1) + bytes([check_byte & 0xFF])
        cipher = cls(password)
        return cipher.encrypt_bytes(header + payload)

    @classmethod
    def decrypt(cls, data: bytes, password: Password, check_byte: int) -> bytes:
        """Check the password against the encryption header and decrypt.

        Raises:
            StructuralCorruption: If the payload is shorter than the header.
            InvalidPassword: If the decrypted check byte does not match.
        """
        if len(data) < ZIPCRYPTO_HEADER_SIZE:
            raise StructuralCorruption(
                f"Encrypted payload too short: {len(data)} bytes (need at least {ZIPCRYPTO_HEADER_SIZE})"
            )
        cipher = cls(password)
        header = cipher.decrypt_bytes(data[:ZIPCRYPTO_HEADER_SIZE])
        if header[-1] != (check_byte & 0xFF):
            raise InvalidPassword("Wrong password: encryption header check byte mismatch")
        return cipher.decrypt_bytes(data[ZIPCRYPTO_HEADER_SIZE:])
