"""Utility helpers for Markdown image references and file naming."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Tuple

from .config import DEFAULT_IMAGE_NAME
from .models import ImageReference

IMAGE_PATTERN = re.compile(r"!\[[^\]]*]\(([^)]+)\)")


def find_image_references(markdown: str) -> List[ImageReference]:
    """Return every `![alt](url)` occurrence in document order."""
    return [
        ImageReference(start=match.start(), end=match.end(), url=match.group(1))
        for match in IMAGE_PATTERN.finditer(markdown)
    ]


def unique_image_urls(markdown: str) -> List[str]:
    """Unique image URLs in order of first appearance."""
    seen: Dict[str, None] = {}
    for reference in find_image_references(markdown):
        seen.setdefault(reference.url, None)
    return list(seen)


def is_remote_url(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


def filename_from_url(url: str, fallback: str = DEFAULT_IMAGE_NAME) -> str:
    """Use the final path segment of the URL (query and fragment dropped) as a filename."""
    path = url.split("#", 1)[0].split("?", 1)[0]
    name = path.split("/")[-1]
    return name or fallback


def join_prefix(prefix: str, url: str) -> str:
    """Attach an origin-relative URL to a site prefix."""
    base = prefix.strip().rstrip("/")
    if url.startswith("/"):
        return base + url
    return f"{base}/{url}"


def replace_urls(markdown: str, replacements: Iterable[Tuple[str, str]]) -> str:
    """Replace every occurrence of each original URL with its new value.

    All URLs are substituted in a single pass, longest first, so a rewritten
    URL is never matched again by a shorter original it happens to contain.
    """
    mapping = {old: new for old, new in replacements if old and old != new}
    if not mapping:
        return markdown
    alternatives = sorted(mapping, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(old) for old in alternatives))
    return pattern.sub(lambda match: mapping[match.group(0)], markdown)
