"""
HTTP client for the remote transcription service (JSON over requests).
"""

from __future__ import annotations

import base64
from typing import Any

import requests

from sdk.errors import RemoteTranscriptionError
from sdk.logging import get_logger

logger = get_logger("remote.client")

DEFAULT_TIMEOUT_SEC = 30.0


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class ApiClient:
    """
    Thin JSON client: one session, optional bearer token, errors mapped to
    RemoteTranscriptionError with retryable set for 5xx, 429 and network failures.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout_sec = timeout_sec
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", "localscribe/0.1")
        if api_key:
            self._session.headers["Authorization"] = f"Bearer {api_key}"

    def _request(
        self,
        method: str,
        path: str,
        json_data: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            r = self._session.request(
                method, url, json=json_data, timeout=timeout or self._timeout_sec
            )
        except requests.Timeout as e:
            raise RemoteTranscriptionError(
                f"Request to {url} timed out", retryable=True
            ) from e
        except requests.RequestException as e:
            raise RemoteTranscriptionError(
                f"Request to {url} failed: {e}", retryable=True
            ) from e

        if r.status_code >= 400:
            detail = ""
            try:
                body = r.json()
                if isinstance(body, dict):
                    detail = str(body.get("detail") or body.get("error") or "")
            except ValueError:
                detail = (r.text or "")[:200]
            raise RemoteTranscriptionError(
                f"{method} {path} failed with HTTP {r.status_code}"
                + (f": {detail}" if detail else ""),
                status_code=r.status_code,
                retryable=_is_retryable_status(r.status_code),
            )
        if not r.content:
            return {}
        try:
            data = r.json()
        except ValueError as e:
            raise RemoteTranscriptionError(
                f"{method} {path} returned invalid JSON", status_code=r.status_code
            ) from e
        if not isinstance(data, dict):
            raise RemoteTranscriptionError(
                f"{method} {path} returned unexpected payload", status_code=r.status_code
            )
        return data

    @staticmethod
    def _encode_audio(audio_bytes: bytes) -> str:
        return base64.b64encode(audio_bytes).decode("ascii")

    def close(self) -> None:
        self._session.close()


__all__ = ["ApiClient", "DEFAULT_TIMEOUT_SEC"]
