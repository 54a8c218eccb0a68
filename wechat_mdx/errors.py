"""Exception hierarchy shared by the export and asset pipelines."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple


class WeChatMdxError(Exception):
    """Base exception for every failure surfaced to callers."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(WeChatMdxError):
    """Missing credentials, base directory or provider settings."""


class NetworkError(WeChatMdxError):
    """A request failed or returned a non-success status."""


class DownloadError(NetworkError):
    """Fetching a remote image failed."""

    def __init__(self, url: str, reason: str, status: Optional[int] = None) -> None:
        self.url = url
        self.status = status
        super().__init__(
            f"Failed to download image {url}: {reason}",
            {"url": url, "status": status},
        )


class UploadError(NetworkError):
    """The media host rejected an upload at the HTTP level."""


class ProviderError(NetworkError):
    """A text or image generation provider returned an error."""


class HostProtocolError(NetworkError):
    """The remote service answered but embedded a non-zero error code."""

    def __init__(self, operation: str, errcode: int, errmsg: str = "") -> None:
        self.errcode = errcode
        self.errmsg = errmsg
        super().__init__(
            f"{operation} failed with WeChat error {errcode}: {errmsg}",
            {"errcode": errcode, "errmsg": errmsg},
        )


class AssetResolutionError(NetworkError):
    """None of the candidate sources for an image could be read."""

    def __init__(self, url: str, attempts: List[Tuple[str, str]]) -> None:
        self.url = url
        self.attempts = attempts
        tried = "; ".join(f"{source}: {reason}" for source, reason in attempts)
        super().__init__(
            f"Unable to resolve image {url} ({tried})",
            {"url": url, "attempts": attempts},
        )


class AssetIOError(WeChatMdxError):
    """Reading or writing a local file failed."""

    def __init__(self, path: Any, reason: str) -> None:
        self.path = path
        super().__init__(f"File operation failed for {path}: {reason}", {"path": str(path)})


class ParseError(WeChatMdxError):
    """A response body or stylesheet could not be parsed."""


class ResponseParseError(ParseError):
    """A remote service returned a body without the expected fields."""


class StylesheetError(ParseError):
    """The CSS inliner could not apply the stylesheet."""
