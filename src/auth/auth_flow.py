# src/auth/auth_flow.py
"""
Authentication-flow builder.

create_auth_flow() resolves the cache key, binds an encrypted cache factory
to the cache directory and constructs the Authflow facade configured for an
interactive device-code ("live") login.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set, Union

from .device_code import DeviceCodeChallenge, DeviceCodeFlow, LiveDeviceCodeFlow
from .encrypted_cache import CacheFactory, EncryptedFileCache, create_encrypted_cache_factory
from .encryption_key import KeySource, KeyStorage, load_encryption_key

log = logging.getLogger(__name__)

# Xbox title id for Minecraft on Nintendo Switch; accepted by LAN hosts.
TITLE_MINECRAFT_NINTENDO_SWITCH = "00000000441cc96b"
DEVICE_TYPE_NINTENDO = "Nintendo"
LIVE_CACHE_NAME = "live"
TOKEN_EXPIRY_MARGIN_S = 60.0

DeviceCodeCallback = Callable[[DeviceCodeChallenge], None]


@dataclass(frozen=True)
class AuthflowOptions:
    flow: str = "live"
    auth_title: str = TITLE_MINECRAFT_NINTENDO_SWITCH
    device_type: str = DEVICE_TYPE_NINTENDO
    force_refresh: bool = False


class Authflow:
    """
    Facade over the token cache and the device-code login.

    Cached live tokens are reused until shortly before they expire unless
    force_refresh is set. The caller's device-code callback is invoked once
    per distinct challenge.
    """

    def __init__(
        self,
        username: str,
        cache_factory: CacheFactory,
        options: AuthflowOptions,
        device_code_callback: DeviceCodeCallback,
        *,
        device_code_flow: Optional[DeviceCodeFlow] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._username = username
        self._cache_factory = cache_factory
        self._options = options
        self._callback = device_code_callback
        self._flow = device_code_flow
        self._clock = clock
        self._notified: Set[str] = set()

    @property
    def username(self) -> str:
        return self._username

    @property
    def options(self) -> AuthflowOptions:
        return self._options

    def get_live_token(self) -> Dict[str, Any]:
        """
        Return a live access-token record, signing in if needed.

        Raises CacheDecryptionError if the cache file exists but is corrupt.
        """
        cache = self._cache_factory(self._username, LIVE_CACHE_NAME)
        if not self._options.force_refresh:
            token = cache.get_cached().get("token")
            if isinstance(token, dict) and self._is_fresh(token):
                return token

        if self._flow is not None:
            return self._sign_in(cache, self._flow)
        with LiveDeviceCodeFlow(self._options.auth_title) as flow:
            return self._sign_in(cache, flow)

    def _sign_in(self, cache: EncryptedFileCache, flow: DeviceCodeFlow) -> Dict[str, Any]:
        challenge = flow.request_code()
        self._notify(challenge)
        response = flow.poll_token(challenge)

        now = self._clock()
        record = dict(response)
        record["obtained_at"] = now
        record["expires_at"] = now + float(response.get("expires_in", 0))
        cache.set_cached_partial({"token": record})
        log.info("Stored refreshed live token for account cache")
        return record

    def _is_fresh(self, token: Dict[str, Any]) -> bool:
        expires_at = token.get("expires_at")
        if not isinstance(expires_at, (int, float)):
            return False
        return expires_at - TOKEN_EXPIRY_MARGIN_S > self._clock()

    def _notify(self, challenge: DeviceCodeChallenge) -> None:
        if challenge.device_code in self._notified:
            return
        self._notified.add(challenge.device_code)
        self._callback(challenge)


@dataclass(frozen=True)
class AuthFlowOptions:
    account_name: str
    cache_directory: Union[str, Path]
    key_file_path: Union[str, Path]
    device_code_callback: DeviceCodeCallback
    environment_key: Optional[str]
    force_refresh: bool = False


@dataclass(frozen=True)
class AuthFlowResult:
    authflow: Authflow
    key_source: KeySource


def create_auth_flow(
    options: AuthFlowOptions,
    *,
    key_storage: Optional[KeyStorage] = None,
    device_code_flow: Optional[DeviceCodeFlow] = None,
) -> AuthFlowResult:
    result = load_encryption_key(options.key_file_path, options.environment_key, key_storage)
    authflow = Authflow(
        options.account_name,
        create_encrypted_cache_factory(options.cache_directory, result.key),
        AuthflowOptions(force_refresh=options.force_refresh),
        options.device_code_callback,
        device_code_flow=device_code_flow,
    )
    return AuthFlowResult(authflow=authflow, key_source=result.source)
