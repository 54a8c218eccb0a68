"""Image downloading and localization utilities."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import requests
from filetype import guess

from .config import DEFAULT_ASSETS_DIR, DEFAULT_REQUEST_TIMEOUT
from .errors import AssetIOError, ConfigurationError, DownloadError
from .utils import filename_from_url, is_remote_url, join_prefix, replace_urls, unique_image_urls

logger = logging.getLogger("wechat_mdx.images")

DEFAULT_MIME_TYPE = "application/octet-stream"


def detect_mime_type(data: bytes) -> str:
    """Detect an image MIME type from the file signature."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        return kind.mime
    return DEFAULT_MIME_TYPE


def download_image(
    url: str,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> bytes:
    """Fetch an image, raising DownloadError for transport or HTTP failures."""
    http = session or requests
    try:
        resp = http.get(url, timeout=timeout)
    except requests.RequestException as exc:
        raise DownloadError(url, str(exc)) from exc
    if not resp.ok:
        raise DownloadError(url, f"HTTP {resp.status_code}", status=resp.status_code)
    return resp.content


def write_asset(directory: Path, filename: str, data: bytes) -> Path:
    """Write bytes to ``directory/filename``, creating the directory if needed."""
    destination = directory / filename
    try:
        directory.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
    except OSError as exc:
        raise AssetIOError(destination, str(exc)) from exc
    return destination


def localize_images(
    markdown: str,
    base_dir: Union[str, Path, None],
    site_prefix: Optional[str] = None,
    assets_dir: Optional[str] = None,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> str:
    """Download external images into ``base_dir/assets_dir`` and point Markdown at them.

    URLs already under ``assets_dir/`` are left alone, so running this on its
    own output changes nothing. Relative URLs are only fetched when a site
    prefix is configured. Any failed download aborts the whole run.
    """
    assets_dir_name = assets_dir or DEFAULT_ASSETS_DIR
    if base_dir is None or not str(base_dir).strip():
        raise ConfigurationError(
            f"The document has not been saved; cannot determine the {assets_dir_name} directory"
        )
    target_dir = Path(base_dir) / assets_dir_name
    local_prefix = f"{assets_dir_name}/"
    prefix = (site_prefix or "").strip()

    url_map: Dict[str, str] = {}
    for url in unique_image_urls(markdown):
        if url.startswith(local_prefix):
            continue
        if is_remote_url(url):
            source = url
        elif prefix:
            source = join_prefix(prefix, url)
        else:
            logger.debug("Leaving %s unchanged; no site prefix configured", url)
            continue

        logger.info("Downloading %s", source)
        data = download_image(source, session=session, timeout=timeout)
        filename = filename_from_url(url)
        destination = write_asset(target_dir, filename, data)
        logger.debug("Saved %s to %s", source, destination)
        url_map[url] = f"{assets_dir_name}/{filename}"

    return replace_urls(markdown, url_map.items())
