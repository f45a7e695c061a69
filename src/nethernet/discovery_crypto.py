# src/nethernet/discovery_crypto.py
"""
Authentication and encryption for NetherNet LAN discovery datagrams.

The key is SHA-256 over the little-endian uint64 seed 0xDEADBEEF. It is a
constant every client and host share, so it only provides interoperability
with the game's discovery format, not secrecy against anyone who knows the
protocol.

AES-256 in ECB mode is what the discovery format mandates. Do not reuse this
module for data whose confidentiality matters.
"""

from __future__ import annotations

import hashlib
import hmac
import struct
from dataclasses import dataclass, field
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

DISCOVERY_KEY_SEED = 0xDEADBEEF
CHECKSUM_LENGTH_BYTES = 32
AES_BLOCK_SIZE_BITS = 128


@dataclass
class DiscoveryCryptoError(ValueError):
    code: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"DiscoveryCryptoError(code={self.code!r}, details={self.details!r})"


def derive_discovery_key(seed: int = DISCOVERY_KEY_SEED) -> bytes:
    return hashlib.sha256(struct.pack("<Q", seed)).digest()


@dataclass(frozen=True)
class DiscoveryCrypto:
    """Checksum and cipher operations bound to one discovery key."""

    key: bytes

    def checksum(self, payload: bytes) -> bytes:
        return hmac.new(self.key, payload, hashlib.sha256).digest()

    def is_valid(self, payload: bytes, checksum: bytes) -> bool:
        if len(checksum) != CHECKSUM_LENGTH_BYTES:
            return False
        return hmac.compare_digest(self.checksum(payload), checksum)

    def encrypt(self, payload: bytes) -> bytes:
        padder = padding.PKCS7(AES_BLOCK_SIZE_BITS).padder()
        padded = padder.update(payload) + padder.finalize()
        encryptor = self._cipher().encryptor()
        return encryptor.update(padded) + encryptor.finalize()

    def decrypt(self, payload: bytes) -> bytes:
        decryptor = self._cipher().decryptor()
        unpadder = padding.PKCS7(AES_BLOCK_SIZE_BITS).unpadder()
        try:
            padded = decryptor.update(payload) + decryptor.finalize()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            raise DiscoveryCryptoError(
                code="invalid_ciphertext",
                details={"length": len(payload)},
            ) from exc

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self.key), modes.ECB())


# Process-wide, derived once at import and never mutated.
NETHERNET_DISCOVERY_KEY = derive_discovery_key()
DEFAULT_DISCOVERY_CRYPTO = DiscoveryCrypto(NETHERNET_DISCOVERY_KEY)


def compute_discovery_checksum(payload: bytes) -> bytes:
    return DEFAULT_DISCOVERY_CRYPTO.checksum(payload)


def is_valid_discovery_checksum(payload: bytes, checksum: bytes) -> bool:
    return DEFAULT_DISCOVERY_CRYPTO.is_valid(payload, checksum)


def encrypt_discovery_payload(payload: bytes) -> bytes:
    return DEFAULT_DISCOVERY_CRYPTO.encrypt(payload)


def decrypt_discovery_payload(payload: bytes) -> bytes:
    return DEFAULT_DISCOVERY_CRYPTO.decrypt(payload)
