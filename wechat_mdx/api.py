"""Request/response operations exposed to the CLI and the MCP server."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import requests

from .config import DEFAULT_ASSETS_DIR, DEFAULT_REQUEST_TIMEOUT, WeChatCredentials
from .images import localize_images as _localize_images
from .markdown import convert_markdown
from .models import PublishResult
from .styles import resolve_theme_css
from .token_cache import AccessTokenCache, token_preview
from .wechat import WeChatPublisher

PathLike = Union[str, Path]


def convert(markdown: str, custom_css: Optional[str] = None) -> str:
    """Produce the self-contained export document; ``custom_css`` may name a built-in theme."""
    return convert_markdown(markdown, resolve_theme_css(custom_css))


def localize_images(
    markdown: str,
    base_dir: Optional[PathLike],
    site_prefix: Optional[str] = None,
    assets_dir: Optional[str] = DEFAULT_ASSETS_DIR,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> str:
    return _localize_images(
        markdown,
        base_dir,
        site_prefix=site_prefix,
        assets_dir=assets_dir,
        timeout=timeout,
    )


def publish_images(
    markdown: str,
    app_id: Optional[str],
    app_secret: Optional[str],
    token_cache: AccessTokenCache,
    base_dir: Optional[PathLike] = None,
    site_prefix: Optional[str] = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> PublishResult:
    with requests.Session() as session:
        publisher = WeChatPublisher(token_cache, session=session, timeout=timeout)
        return publisher.publish(
            markdown,
            app_id,
            app_secret,
            base_dir=base_dir,
            site_prefix=site_prefix,
        )


def access_token_status(
    app_id: Optional[str],
    app_secret: Optional[str],
    token_cache: AccessTokenCache,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> str:
    """Fetch (or reuse) the access token and report a shortened preview."""
    credentials = WeChatCredentials.resolve(app_id, app_secret)
    token = token_cache.get_token(credentials.app_id, credentials.app_secret, timeout=timeout)
    return f"access_token acquired (partial): {token_preview(token)}"
