# src/auth/encryption_key.py
"""
Local symmetric key for the encrypted credential cache.

Resolution order:
    1. non-empty (trimmed) environment override
    2. existing key in the platform key storage
    3. freshly generated random key, persisted with owner-only permissions

Every source is normalized to exactly AES_GCM_KEY_LENGTH_BYTES.

On Windows the stored key is wrapped with DPAPI (current-user scope) and
kept base64-encoded in the key file; elsewhere the raw bytes are stored.

Two processes starting for the first time at once may both generate and
write a key; the last writer wins and the loser's cache entries become
undecryptable. That window only exists on the very first run and is left
unguarded.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import secrets
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, Protocol, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

log = logging.getLogger(__name__)

AES_GCM_KEY_LENGTH_BYTES = 32
KEY_FILE_MODE = 0o600
KEY_DERIVATION_INFO = b"bedcraft credential cache key v1"

# CRYPTPROTECT_UI_FORBIDDEN: never prompt, fail instead.
CRYPTPROTECT_UI_FORBIDDEN = 0x1
DPAPI_DESCRIPTION = "bedcraft cache key"

KeySource = Literal["environment", "file", "windows-dpapi", "generated"]
StorageSource = Literal["file", "windows-dpapi"]
PathLike = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class EncryptionKeyResult:
    key: bytes
    source: KeySource


@dataclass
class KeyStorageError(RuntimeError):
    """A stored key exists but cannot be turned back into key bytes."""

    code: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"KeyStorageError(code={self.code!r}, details={self.details!r})"


class KeyStorage(Protocol):
    """Where the generated key lives between runs."""

    source: StorageSource

    def read_key(self, key_file_path: Path) -> Optional[bytes]:
        """Return the stored key, or None when nothing is stored yet."""
        ...

    def write_key(self, key_file_path: Path, key: bytes) -> None:
        ...


def _write_owner_only(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, KEY_FILE_MODE)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    # O_CREAT mode is ignored for pre-existing files.
    os.chmod(path, KEY_FILE_MODE)


class FileKeyStorage:
    """Raw key bytes in a file readable only by the current user."""

    source: StorageSource = "file"

    def read_key(self, key_file_path: Path) -> Optional[bytes]:
        if not key_file_path.exists():
            return None
        return key_file_path.read_bytes()

    def write_key(self, key_file_path: Path, key: bytes) -> None:
        _write_owner_only(key_file_path, key)


class DpapiCodec(Protocol):
    def protect(self, data: bytes) -> bytes:
        ...

    def unprotect(self, data: bytes) -> bytes:
        ...


class Win32DpapiCodec:
    """DPAPI through pywin32; only importable on Windows."""

    def protect(self, data: bytes) -> bytes:
        import win32crypt

        return win32crypt.CryptProtectData(data, DPAPI_DESCRIPTION, None, None, None, CRYPTPROTECT_UI_FORBIDDEN)

    def unprotect(self, data: bytes) -> bytes:
        import win32crypt

        _description, plain = win32crypt.CryptUnprotectData(data, None, None, None, CRYPTPROTECT_UI_FORBIDDEN)
        return plain


class WindowsDpapiKeyStorage:
    """Key wrapped by DPAPI for the current user, stored as base64 text."""

    source: StorageSource = "windows-dpapi"

    def __init__(self, codec: Optional[DpapiCodec] = None) -> None:
        self._codec = codec or Win32DpapiCodec()

    def read_key(self, key_file_path: Path) -> Optional[bytes]:
        if not key_file_path.exists():
            return None
        payload = key_file_path.read_bytes()
        if not payload or any(chr(b).isspace() for b in payload):
            raise KeyStorageError(code="invalid_protected_payload", details={"path": str(key_file_path)})
        try:
            protected = base64.b64decode(payload, validate=True)
        except binascii.Error as exc:
            raise KeyStorageError(code="invalid_protected_payload", details={"path": str(key_file_path)}) from exc
        try:
            return self._codec.unprotect(protected)
        except Exception as exc:
            raise KeyStorageError(
                code="dpapi_unprotect_failed",
                details={"path": str(key_file_path), "error": str(exc)},
            ) from exc

    def write_key(self, key_file_path: Path, key: bytes) -> None:
        protected = self._codec.protect(key)
        _write_owner_only(key_file_path, base64.b64encode(protected))


def default_key_storage(platform: Optional[str] = None) -> KeyStorage:
    """DPAPI-backed storage on Windows, a plain key file elsewhere."""
    if (platform or sys.platform) == "win32":
        return WindowsDpapiKeyStorage()
    return FileKeyStorage()


def normalize_encryption_key(key: bytes) -> bytes:
    """
    Map arbitrary-length key material onto a 32-byte AES-256 key.

    Keys that already have the right length are used unchanged; anything
    else (passphrases, short or oversized blobs) goes through HKDF-SHA256.
    """
    if len(key) == AES_GCM_KEY_LENGTH_BYTES:
        return bytes(key)
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=AES_GCM_KEY_LENGTH_BYTES,
        salt=None,
        info=KEY_DERIVATION_INFO,
    )
    return hkdf.derive(bytes(key))


def load_encryption_key(
    key_file_path: PathLike,
    environment_key: Optional[str],
    storage: Optional[KeyStorage] = None,
) -> EncryptionKeyResult:
    """Resolve the cache key; see module docstring for the priority order."""
    if environment_key and environment_key.strip():
        material = environment_key.strip().encode("utf-8")
        return EncryptionKeyResult(normalize_encryption_key(material), "environment")

    store: KeyStorage = storage or default_key_storage()
    path = Path(key_file_path)
    try:
        existing = store.read_key(path)
    except (OSError, KeyStorageError) as exc:
        # Unreadable or undecodable key blobs are rotated to keep startup non-interactive.
        log.warning("Cache key at %s unreadable (%s); generating a new one", path, exc)
        existing = None
    if existing:
        return EncryptionKeyResult(normalize_encryption_key(existing), store.source)

    generated = secrets.token_bytes(AES_GCM_KEY_LENGTH_BYTES)
    store.write_key(path, generated)
    log.info("Generated new cache key at %s", path)
    return EncryptionKeyResult(normalize_encryption_key(generated), "generated")
