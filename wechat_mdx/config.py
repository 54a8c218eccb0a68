"""Configuration objects and constants for export and publishing."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError

DEFAULT_ASSETS_DIR = "assets"
MEDIA_LOG_FILENAME = "wechat_media_log.jsonl"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_IMAGE_NAME = "image.png"

WECHAT_TOKEN_URL = "https://api.weixin.qq.com/cgi-bin/token"
WECHAT_UPLOAD_URL = "https://api.weixin.qq.com/cgi-bin/material/add_material"
TOKEN_SAFETY_MARGIN_SECONDS = 60
TOKEN_DEFAULT_LIFETIME_SECONDS = 7200

DEFAULT_SUMMARY_BASE_URL = "https://api.deepseek.com/v1"
DEFAULT_SUMMARY_MODEL = "deepseek-chat"
DEFAULT_COVER_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_COVER_MODEL = "imagen-3.0-generate-001"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


@dataclass
class WeChatCredentials:
    """Application id and secret for the WeChat Official Account API."""

    app_id: str
    app_secret: str

    @classmethod
    def resolve(cls, app_id: Optional[str], app_secret: Optional[str]) -> "WeChatCredentials":
        """Prefer explicit values, fall back to WECHAT_APP_ID / WECHAT_APP_SECRET."""
        resolved_id = _clean(app_id) or os.getenv("WECHAT_APP_ID")
        if not resolved_id:
            raise ConfigurationError("WeChat APPID is not configured")
        resolved_secret = _clean(app_secret) or os.getenv("WECHAT_APP_SECRET")
        if not resolved_secret:
            raise ConfigurationError("WeChat APPSECRET is not configured")
        return cls(app_id=resolved_id, app_secret=resolved_secret)


@dataclass
class GenerationConfig:
    """Endpoint, key and model for a generation provider."""

    api_key: Optional[str]
    base_url: str
    model: str
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def summary_from_env(
        cls,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
    ) -> "GenerationConfig":
        return cls(
            api_key=_clean(api_key) or _clean(os.getenv("OPENAI_API_KEY")),
            base_url=_clean(base_url)
            or _clean(os.getenv("OPENAI_BASE_URL"))
            or DEFAULT_SUMMARY_BASE_URL,
            model=_clean(model) or _clean(os.getenv("OPENAI_MODEL")) or DEFAULT_SUMMARY_MODEL,
        )

    @classmethod
    def cover_from_env(
        cls,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
    ) -> "GenerationConfig":
        return cls(
            api_key=_clean(api_key) or _clean(os.getenv("GEMINI_API_KEY")),
            base_url=_clean(base_url)
            or _clean(os.getenv("GEMINI_API_URL"))
            or DEFAULT_COVER_BASE_URL,
            model=_clean(model) or _clean(os.getenv("GEMINI_MODEL")) or DEFAULT_COVER_MODEL,
        )
