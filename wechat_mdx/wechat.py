"""Upload Markdown images to the WeChat media library and rewrite their URLs."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import requests

from .config import (
    DEFAULT_ASSETS_DIR,
    DEFAULT_REQUEST_TIMEOUT,
    MEDIA_LOG_FILENAME,
    WECHAT_UPLOAD_URL,
    WeChatCredentials,
)
from .errors import (
    AssetIOError,
    AssetResolutionError,
    DownloadError,
    HostProtocolError,
    ResponseParseError,
    UploadError,
)
from .images import detect_mime_type, download_image, write_asset
from .models import PublishResult, ResolvedAsset, UploadLogEntry
from .token_cache import AccessTokenCache
from .utils import filename_from_url, is_remote_url, join_prefix, replace_urls, unique_image_urls

logger = logging.getLogger("wechat_mdx.wechat")


def _local_path(url: str, base_dir: Optional[Path]) -> Path:
    if base_dir is None:
        return Path(url)
    # Origin-relative URLs are rooted at the document directory.
    return base_dir / url.lstrip("/")


class MediaLog:
    """Append-only JSON Lines record of images already uploaded from a directory.

    There is no file lock: two publish runs against the same directory may
    both upload an image and both append it. Readers keep the last entry seen
    for a URL.
    """

    def __init__(self, base_dir: Union[str, Path]) -> None:
        self.path = Path(base_dir) / MEDIA_LOG_FILENAME

    def load(self) -> Dict[str, UploadLogEntry]:
        entries: Dict[str, UploadLogEntry] = {}
        if not self.path.exists():
            return entries
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise AssetIOError(self.path, str(exc)) from exc
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                entry = UploadLogEntry.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError) as exc:
                logger.warning("Skipping malformed line %d in %s: %s", lineno, self.path, exc)
                continue
            entries[entry.original_url] = entry
        logger.debug("Loaded %d media log entries from %s", len(entries), self.path)
        return entries

    def append(self, entries: List[UploadLogEntry]) -> None:
        if not entries:
            return
        lines = "".join(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n" for entry in entries)
        with self.path.open("a+b") as handle:
            # Keep the first new record off a hand-edited last line.
            if handle.seek(0, os.SEEK_END) > 0:
                handle.seek(-1, os.SEEK_END)
                if handle.read(1) != b"\n":
                    lines = "\n" + lines
            handle.write(lines.encode("utf-8"))


class WeChatPublisher:
    """Uploads every image referenced by a Markdown document exactly once."""

    def __init__(
        self,
        token_cache: AccessTokenCache,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        upload_url: str = WECHAT_UPLOAD_URL,
    ) -> None:
        self.token_cache = token_cache
        self.session = session or requests.Session()
        self.timeout = timeout
        self.upload_url = upload_url

    def _cache_locally(self, base_dir: Optional[Path], filename: str, data: bytes) -> None:
        if base_dir is None:
            return
        try:
            write_asset(base_dir / DEFAULT_ASSETS_DIR, filename, data)
        except AssetIOError as exc:
            logger.warning("Could not cache downloaded image locally: %s", exc)

    def _download(self, url: str, base_dir: Optional[Path], name_source: str) -> ResolvedAsset:
        data = download_image(url, session=self.session, timeout=self.timeout)
        filename = filename_from_url(name_source)
        self._cache_locally(base_dir, filename, data)
        return ResolvedAsset(data=data, filename=filename, source=url)

    def resolve_asset(
        self,
        url: str,
        base_dir: Optional[Path],
        site_prefix: Optional[str],
    ) -> ResolvedAsset:
        """Find bytes for an image: remote URL, then local file, then site prefix."""
        attempts: List[Tuple[str, str]] = []
        if is_remote_url(url):
            try:
                return self._download(url, base_dir, url)
            except DownloadError as exc:
                attempts.append((url, exc.message))
                raise AssetResolutionError(url, attempts) from exc

        path = _local_path(url, base_dir)
        if base_dir is not None and not path.resolve().is_relative_to(base_dir.resolve()):
            attempts.append((str(path), f"outside {base_dir}"))
        else:
            try:
                data = path.read_bytes()
                return ResolvedAsset(data=data, filename=path.name or filename_from_url(url), source=str(path))
            except OSError as exc:
                attempts.append((str(path), str(exc)))

        prefix = (site_prefix or "").strip()
        if not prefix:
            attempts.append(("site prefix", "not configured"))
            raise AssetResolutionError(url, attempts)

        full_url = join_prefix(prefix, url)
        try:
            return self._download(full_url, base_dir, url)
        except DownloadError as exc:
            attempts.append((full_url, exc.message))
            raise AssetResolutionError(url, attempts) from exc

    def upload(self, asset: ResolvedAsset, access_token: str, original_url: str) -> UploadLogEntry:
        """Send one image to the permanent material endpoint."""
        files = {"media": (asset.filename, asset.data, detect_mime_type(asset.data))}
        try:
            resp = self.session.post(
                self.upload_url,
                params={"access_token": access_token, "type": "image"},
                files=files,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UploadError(f"Failed to upload image {original_url}: {exc}") from exc

        try:
            body = resp.json()
        except ValueError as exc:
            if not resp.ok:
                raise UploadError(
                    f"Failed to upload image {original_url}: HTTP {resp.status_code}"
                ) from exc
            raise ResponseParseError(
                f"Upload response for {original_url} is not JSON"
            ) from exc

        errcode = body.get("errcode")
        if errcode:
            raise HostProtocolError(
                f"Uploading image {original_url}", int(errcode), body.get("errmsg") or ""
            )
        if not resp.ok:
            raise UploadError(f"Failed to upload image {original_url}: HTTP {resp.status_code}")

        media_id = body.get("media_id")
        hosted_url = body.get("url")
        if not media_id:
            raise ResponseParseError(f"Upload response for {original_url} is missing media_id")
        if not hosted_url:
            raise ResponseParseError(f"Upload response for {original_url} is missing url")
        return UploadLogEntry(original_url=original_url, wechat_url=hosted_url, media_id=media_id)

    def publish(
        self,
        markdown: str,
        app_id: Optional[str],
        app_secret: Optional[str],
        base_dir: Union[str, Path, None] = None,
        site_prefix: Optional[str] = None,
    ) -> PublishResult:
        """Upload new images, reuse logged ones and rewrite the Markdown."""
        credentials = WeChatCredentials.resolve(app_id, app_secret)
        access_token = self.token_cache.get_token(
            credentials.app_id,
            credentials.app_secret,
            session=self.session,
            timeout=self.timeout,
        )

        urls = unique_image_urls(markdown)
        if not urls:
            return PublishResult(markdown=markdown, items=[])

        base_path = Path(base_dir) if base_dir else None
        media_log = MediaLog(base_path) if base_path is not None else None
        existing = media_log.load() if media_log is not None else {}

        items: List[UploadLogEntry] = []
        new_entries: List[UploadLogEntry] = []
        for url in urls:
            previous = existing.get(url)
            if previous is not None:
                logger.debug("Reusing uploaded image for %s", url)
                items.append(previous)
                continue
            asset = self.resolve_asset(url, base_path, site_prefix)
            logger.info("Uploading %s (%d bytes)", asset.source, len(asset.data))
            entry = self.upload(asset, access_token, url)
            new_entries.append(entry)
            items.append(entry)

        updated = replace_urls(markdown, ((item.original_url, item.wechat_url) for item in items))

        if media_log is not None:
            try:
                media_log.append(new_entries)
            except OSError as exc:
                logger.warning("Could not append to %s: %s", media_log.path, exc)

        logger.info(
            "Published %d image(s): %d uploaded, %d reused",
            len(items),
            len(new_entries),
            len(items) - len(new_entries),
        )
        return PublishResult(markdown=updated, items=items)

