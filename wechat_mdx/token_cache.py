"""Process-wide cache for the WeChat access token."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from .config import (
    DEFAULT_REQUEST_TIMEOUT,
    TOKEN_DEFAULT_LIFETIME_SECONDS,
    TOKEN_SAFETY_MARGIN_SECONDS,
    WECHAT_TOKEN_URL,
)
from .errors import HostProtocolError, NetworkError, ResponseParseError

logger = logging.getLogger("wechat_mdx.token")

TokenFetcher = Callable[[str, str], Dict[str, Any]]


@dataclass(frozen=True)
class CachedToken:
    token: str
    expires_at: float


def fetch_access_token(
    app_id: str,
    app_secret: str,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> Dict[str, Any]:
    """Request a fresh client-credential token and return the decoded body."""
    http = session or requests
    try:
        resp = http.get(
            WECHAT_TOKEN_URL,
            params={
                "grant_type": "client_credential",
                "appid": app_id,
                "secret": app_secret,
            },
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise NetworkError(f"Failed to request access_token: {exc}") from exc
    try:
        return resp.json()
    except ValueError as exc:
        raise ResponseParseError(
            f"access_token response is not JSON (HTTP {resp.status_code})"
        ) from exc


def token_preview(token: str) -> str:
    """Shorten a token for display, e.g. ``abcdef...wxyz``."""
    if len(token) > 12:
        return f"{token[:6]}...{token[-4:]}"
    return token


class AccessTokenCache:
    """Lazily refreshed bearer token shared by every publish call in a process.

    The cached entry is only returned while ``clock() < expires_at``. Lookups
    and stores each take the lock; the fetch itself runs outside it, so two
    callers racing at expiry may both fetch, but neither can observe a
    half-written entry.
    """

    def __init__(
        self,
        fetcher: Optional[TokenFetcher] = None,
        clock: Callable[[], float] = time.monotonic,
        safety_margin: int = TOKEN_SAFETY_MARGIN_SECONDS,
    ) -> None:
        self._fetcher = fetcher
        self._clock = clock
        self._safety_margin = safety_margin
        self._lock = threading.Lock()
        self._entry: Optional[CachedToken] = None

    def _cached(self, now: float) -> Optional[str]:
        with self._lock:
            entry = self._entry
        if entry is not None and now < entry.expires_at:
            return entry.token
        return None

    def get_token(
        self,
        app_id: str,
        app_secret: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> str:
        now = self._clock()
        cached = self._cached(now)
        if cached is not None:
            return cached

        logger.info("Fetching a new WeChat access_token")
        if self._fetcher is not None:
            body = self._fetcher(app_id, app_secret)
        else:
            body = fetch_access_token(app_id, app_secret, session=session, timeout=timeout)

        errcode = body.get("errcode")
        if errcode:
            raise HostProtocolError("get access_token", int(errcode), body.get("errmsg") or "")
        token = body.get("access_token")
        if not token:
            raise ResponseParseError("WeChat response did not include access_token")

        expires_in = int(body.get("expires_in") or TOKEN_DEFAULT_LIFETIME_SECONDS)
        valid_for = max(expires_in, self._safety_margin) - self._safety_margin
        entry = CachedToken(token=token, expires_at=now + valid_for)
        with self._lock:
            self._entry = entry
        logger.debug("Cached access_token for %ds", valid_for)
        return token

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None
