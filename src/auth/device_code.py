# src/auth/device_code.py
"""
Microsoft live device-code login over HTTP.

Only the first leg of the sign-in chain lives here: obtaining a live access
token through the device-code grant. Exchanging it for Xbox / Minecraft
tokens belongs to the protocol client.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Callable, Dict, Optional, Protocol, Type

import httpx

log = logging.getLogger(__name__)

LIVE_DEVICE_CODE_URL = "https://login.live.com/oauth20_connect.srf"
LIVE_TOKEN_URL = "https://login.live.com/oauth20_token.srf"
LIVE_SCOPE = "service::user.auth.xboxlive.com::MBI_SSL"
DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"

DEFAULT_POLL_INTERVAL_S = 1.0
SLOW_DOWN_STEP_S = 5.0


@dataclass(frozen=True)
class DeviceCodeChallenge:
    """What the user needs to finish sign-in on another device."""

    user_code: str
    device_code: str
    verification_uri: str
    expires_in: int
    interval: float = DEFAULT_POLL_INTERVAL_S
    message: Optional[str] = None


@dataclass
class DeviceCodeError(RuntimeError):
    code: str
    details: dict[str, Any]

    def __str__(self) -> str:
        return f"DeviceCodeError(code={self.code!r}, details={self.details!r})"


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise DeviceCodeError(
            code="invalid_response",
            details={"status": response.status_code, "body": response.text[:200]},
        ) from exc
    if not isinstance(body, dict):
        raise DeviceCodeError(code="invalid_response", details={"status": response.status_code})
    return body


class DeviceCodeFlow(Protocol):
    def request_code(self) -> DeviceCodeChallenge:
        ...

    def poll_token(self, challenge: DeviceCodeChallenge) -> Dict[str, Any]:
        ...


class LiveDeviceCodeFlow:
    """Device-code grant against login.live.com."""

    def __init__(
        self,
        client_id: str,
        *,
        scope: str = LIVE_SCOPE,
        http: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client_id = client_id
        self._scope = scope
        # Clients passed in stay owned by the caller.
        self._owns_http = http is None
        self._http = http or httpx.Client(timeout=10.0)
        self._sleep = sleep
        self._clock = clock

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "LiveDeviceCodeFlow":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def request_code(self) -> DeviceCodeChallenge:
        response = self._http.post(
            LIVE_DEVICE_CODE_URL,
            data={
                "client_id": self._client_id,
                "scope": self._scope,
                "response_type": "device_code",
            },
        )
        response.raise_for_status()
        body = _json_body(response)
        return DeviceCodeChallenge(
            user_code=body["user_code"],
            device_code=body["device_code"],
            verification_uri=body["verification_uri"],
            expires_in=int(body["expires_in"]),
            interval=float(body.get("interval") or DEFAULT_POLL_INTERVAL_S),
            message=body.get("message"),
        )

    def poll_token(self, challenge: DeviceCodeChallenge) -> Dict[str, Any]:
        """Block until the user completes sign-in or the code expires."""
        deadline = self._clock() + challenge.expires_in
        interval = challenge.interval
        while self._clock() < deadline:
            self._sleep(interval)
            response = self._http.post(
                LIVE_TOKEN_URL,
                data={
                    "client_id": self._client_id,
                    "device_code": challenge.device_code,
                    "grant_type": DEVICE_CODE_GRANT,
                },
            )
            body = _json_body(response)
            if response.status_code == 200:
                return body
            error = body.get("error")
            if error == "authorization_pending":
                continue
            if error == "slow_down":
                interval += SLOW_DOWN_STEP_S
                continue
            raise DeviceCodeError(
                code=error or "token_request_failed",
                details={"status": response.status_code, "description": body.get("error_description")},
            )
        raise DeviceCodeError(code="expired_token", details={"expires_in": challenge.expires_in})
