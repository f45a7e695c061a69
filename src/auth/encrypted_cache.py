# src/auth/encrypted_cache.py
"""
Per-account token cache encrypted at rest with AES-256-GCM.

File layout:  iv (12 bytes) | tag (16 bytes) | ciphertext
Plaintext:    UTF-8 JSON object

A missing file is a cold cache and reads as {}. A file that exists but
cannot be decrypted or parsed raises CacheDecryptionError; callers must not
treat corruption as "no token".
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .encryption_key import normalize_encryption_key

AES_GCM_IV_LENGTH_BYTES = 12
AES_GCM_TAG_LENGTH_BYTES = 16
CACHE_FILE_SUFFIX = "-cache.bin"

CacheRecord = Dict[str, Any]
CacheFactory = Callable[[str, str], "EncryptedFileCache"]


@dataclass
class CacheDecryptionError(RuntimeError):
    """An existing cache file could not be decrypted or decoded."""

    code: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"CacheDecryptionError(code={self.code!r}, details={self.details!r})"


def _coerce_record(value: Any) -> CacheRecord:
    return dict(value) if isinstance(value, dict) else {}


def hash_identifier(identifier: str) -> str:
    """Stable hex digest so account names never appear in filenames."""
    return hashlib.sha256(identifier.encode("utf-8")).hexdigest()


def cache_file_path(directory: Path, username: str, cache_name: str) -> Path:
    return directory / f"{hash_identifier(username)}_{cache_name}{CACHE_FILE_SUFFIX}"


def encrypt_cache(payload: CacheRecord, key: bytes) -> bytes:
    iv = os.urandom(AES_GCM_IV_LENGTH_BYTES)
    plaintext = json.dumps(payload).encode("utf-8")
    # AESGCM appends the tag; the file format stores it in front.
    sealed = AESGCM(key).encrypt(iv, plaintext, None)
    ciphertext, tag = sealed[:-AES_GCM_TAG_LENGTH_BYTES], sealed[-AES_GCM_TAG_LENGTH_BYTES:]
    return iv + tag + ciphertext


def decrypt_cache(payload: bytes, key: bytes) -> CacheRecord:
    header = AES_GCM_IV_LENGTH_BYTES + AES_GCM_TAG_LENGTH_BYTES
    if len(payload) < header:
        raise CacheDecryptionError(
            code="cache_truncated",
            details={"length": len(payload), "minimum": header},
        )
    iv = payload[:AES_GCM_IV_LENGTH_BYTES]
    tag = payload[AES_GCM_IV_LENGTH_BYTES:header]
    ciphertext = payload[header:]
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as exc:
        raise CacheDecryptionError(code="cache_auth_failed") from exc
    try:
        decoded = json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CacheDecryptionError(code="cache_not_json", details={"error": repr(exc)}) from exc
    return _coerce_record(decoded)


class EncryptedFileCache:
    """
    One encrypted cache file, with the decrypted record memoized.

    The interface mirrors what the auth flow expects from a cache:
    get_cached / set_cached / set_cached_partial / reset.
    """

    def __init__(self, cache_path: Path, key: bytes) -> None:
        self._cache_path = cache_path
        self._key = key
        self._cache: Optional[CacheRecord] = None

    @property
    def path(self) -> Path:
        return self._cache_path

    def reset(self) -> None:
        self._cache = None
        self._cache_path.unlink(missing_ok=True)

    def get_cached(self) -> CacheRecord:
        if self._cache is not None:
            return self._cache
        if not self._cache_path.exists():
            self._cache = {}
            return self._cache
        try:
            self._cache = decrypt_cache(self._cache_path.read_bytes(), self._key)
        except CacheDecryptionError as exc:
            exc.details.setdefault("path", str(self._cache_path))
            raise
        return self._cache

    def set_cached(self, value: Any) -> None:
        self._cache = _coerce_record(value)
        self._cache_path.parent.mkdir(parents=True, exist_ok=True)
        self._cache_path.write_bytes(encrypt_cache(self._cache, self._key))

    def set_cached_partial(self, value: Any) -> None:
        merged = {**self.get_cached(), **_coerce_record(value)}
        self.set_cached(merged)


def create_encrypted_cache_factory(
    directory: Union[str, "os.PathLike[str]"],
    key: bytes,
) -> CacheFactory:
    """Bind a cache directory and key; returns factory(username, cache_name)."""
    root = Path(directory)
    normalized = normalize_encryption_key(key)

    def factory(username: str, cache_name: str) -> EncryptedFileCache:
        root.mkdir(parents=True, exist_ok=True)
        return EncryptedFileCache(cache_file_path(root, username, cache_name), normalized)

    return factory
