"""Data models used throughout the export and publishing pipelines."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List


@dataclass
class ImageReference:
    """Image reference discovered in Markdown `![alt](url)` syntax."""

    start: int
    end: int
    url: str


@dataclass
class ResolvedAsset:
    """Image bytes fetched from disk or the network, ready to store or upload."""

    data: bytes
    filename: str
    source: str


@dataclass
class UploadLogEntry:
    """Record that an image has already been uploaded to the media host."""

    original_url: str
    wechat_url: str
    media_id: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "UploadLogEntry":
        return cls(
            original_url=str(payload["original_url"]),
            wechat_url=str(payload["wechat_url"]),
            media_id=str(payload["media_id"]),
        )


@dataclass
class PublishResult:
    """Rewritten Markdown plus every hosted image, reused or new."""

    markdown: str
    items: List[UploadLogEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"markdown": self.markdown, "items": [item.to_dict() for item in self.items]}
