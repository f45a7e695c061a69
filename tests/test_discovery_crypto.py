# tests/test_discovery_crypto.py
"""
Tests for nethernet.discovery_crypto.

Covers:
- key derivation from the fixed seed
- checksum length and validation
- wrong-length checksums are rejected before any HMAC is computed
- encrypt/decrypt round trip for odd lengths
- corrupt ciphertext raises DiscoveryCryptoError
"""

from __future__ import annotations

import hashlib
import struct
from typing import List

import pytest

from nethernet import discovery_crypto
from nethernet.discovery_crypto import (
    CHECKSUM_LENGTH_BYTES,
    NETHERNET_DISCOVERY_KEY,
    DiscoveryCrypto,
    DiscoveryCryptoError,
    compute_discovery_checksum,
    decrypt_discovery_payload,
    derive_discovery_key,
    encrypt_discovery_payload,
    is_valid_discovery_checksum,
)


def test_key_is_sha256_of_little_endian_seed() -> None:
    expected = hashlib.sha256(struct.pack("<Q", 0xDEADBEEF)).digest()
    assert NETHERNET_DISCOVERY_KEY == expected
    assert derive_discovery_key() == expected
    assert len(NETHERNET_DISCOVERY_KEY) == 32


def test_checksum_is_32_bytes_and_validates() -> None:
    payload = b"hello nethernet"
    checksum = compute_discovery_checksum(payload)
    assert len(checksum) == CHECKSUM_LENGTH_BYTES
    assert is_valid_discovery_checksum(payload, checksum)
    assert not is_valid_discovery_checksum(payload + b"!", checksum)


@pytest.mark.parametrize("length", [0, 1, 16, 31, 33, 64])
def test_wrong_length_checksum_is_invalid(length: int) -> None:
    payload = b"data"
    # Even a prefix of the correct checksum is rejected.
    candidate = (compute_discovery_checksum(payload) * 3)[:length]
    assert not is_valid_discovery_checksum(payload, candidate)


@pytest.mark.parametrize("length", [0, 16, 31, 33, 64])
def test_wrong_length_checksum_skips_hmac(length: int, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[bytes] = []
    real_new = discovery_crypto.hmac.new

    def counting_new(key: bytes, msg: bytes, digestmod):
        calls.append(msg)
        return real_new(key, msg, digestmod)

    monkeypatch.setattr(discovery_crypto.hmac, "new", counting_new)

    assert not is_valid_discovery_checksum(b"data", b"\x00" * length)
    assert calls == []

    assert not is_valid_discovery_checksum(b"data", b"\x00" * CHECKSUM_LENGTH_BYTES)
    assert calls == [b"data"]


@pytest.mark.parametrize("payload", [b"", b"a", b"x" * 15, b"y" * 16, b"z" * 17, bytes(range(256))])
def test_encrypt_decrypt_round_trip(payload: bytes) -> None:
    encrypted = encrypt_discovery_payload(payload)
    assert len(encrypted) % 16 == 0
    assert decrypt_discovery_payload(encrypted) == payload


def test_decrypt_rejects_garbage() -> None:
    crypto = DiscoveryCrypto(derive_discovery_key(1234))
    ciphertext = encrypt_discovery_payload(b"payload")
    with pytest.raises(DiscoveryCryptoError) as excinfo:
        # A different key leaves invalid padding (or a misaligned length).
        crypto.decrypt(ciphertext[:-1])
    assert excinfo.value.code == "invalid_ciphertext"
