"""Markdown to WeChat-ready HTML conversion."""

from __future__ import annotations

import logging
from typing import List, Optional

import markdown as markdown_lib

from .content import convert_links_to_footnotes, replace_mermaid_blocks
from .styles import FALLBACK_CSS, combine_css, compose_document, inline_css, validate_stylesheet

logger = logging.getLogger("wechat_mdx.markdown")

MARKDOWN_EXTENSIONS: List[str] = [
    "tables",
    "footnotes",
    "fenced_code",
    "pymdownx.tilde",
    "pymdownx.tasklist",
]


def render_markdown(text: str) -> str:
    """Render Markdown to an HTML fragment with tables, footnotes, strikethrough and task lists."""
    engine = markdown_lib.Markdown(
        extensions=MARKDOWN_EXTENSIONS,
        extension_configs={"pymdownx.tilde": {"subscript": False}},
        output_format="html",
    )
    return engine.convert(text)


def convert_markdown(
    text: str,
    custom_css: str,
    fallback_css: Optional[str] = None,
) -> str:
    """Convert Markdown into a single HTML document with inline styles."""
    fallback_css = FALLBACK_CSS if fallback_css is None else fallback_css
    validate_stylesheet(combine_css(fallback_css, custom_css))
    fragment = render_markdown(text)
    fragment, has_mermaid = replace_mermaid_blocks(fragment)
    fragment = convert_links_to_footnotes(fragment)
    logger.debug(
        "Rendered %d characters of Markdown (mermaid=%s)", len(text), has_mermaid
    )
    document = compose_document(
        custom_css,
        fragment,
        has_mermaid,
        fallback_css=fallback_css,
    )
    return inline_css(document)
