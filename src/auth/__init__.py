# auth package
# src/auth/__init__.py
"""
Credential handling for bedcraft.

Exports:
    - create_auth_flow / AuthFlowOptions: build the device-code Authflow
    - load_encryption_key: resolve the local cache key
    - CacheDecryptionError: raised when a cache file exists but is corrupt
"""

from __future__ import annotations

from .auth_flow import AuthFlowOptions, AuthFlowResult, Authflow, create_auth_flow
from .encrypted_cache import CacheDecryptionError, EncryptedFileCache, create_encrypted_cache_factory
from .encryption_key import EncryptionKeyResult, load_encryption_key, normalize_encryption_key

__all__ = [
    "AuthFlowOptions",
    "AuthFlowResult",
    "Authflow",
    "create_auth_flow",
    "CacheDecryptionError",
    "EncryptedFileCache",
    "create_encrypted_cache_factory",
    "EncryptionKeyResult",
    "load_encryption_key",
    "normalize_encryption_key",
]
