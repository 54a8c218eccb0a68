"""Stylesheet composition and CSS inlining for WeChat-ready documents."""

from __future__ import annotations

import logging
import xml.dom
from typing import Dict, Optional

import cssutils
from premailer import Premailer

from .errors import StylesheetError

logger = logging.getLogger("wechat_mdx.styles")

MERMAID_SCRIPTS = """<script src="https://cdn.jsdelivr.net/npm/mermaid@10/dist/mermaid.min.js"></script>
<script>
if (window.mermaid) {
  window.mermaid.initialize({ startOnLoad: true, securityLevel: "loose" });
}
</script>"""

FALLBACK_CSS = """.wechat-content {
  font-family: -apple-system, BlinkMacSystemFont, "Helvetica Neue", "PingFang SC", "Microsoft YaHei", sans-serif;
  font-size: 16px;
  line-height: 1.75;
  color: #333333;
  word-break: break-word;
}
.wechat-content h1 { font-size: 24px; margin: 24px 0 16px; font-weight: bold; }
.wechat-content h2 { font-size: 20px; margin: 24px 0 12px; font-weight: bold; }
.wechat-content h3 { font-size: 18px; margin: 20px 0 10px; font-weight: bold; }
.wechat-content p { margin: 12px 0; }
.wechat-content blockquote { margin: 16px 0; padding: 8px 12px; border-left: 4px solid #dddddd; color: #666666; background: #f7f7f7; }
.wechat-content ul { margin: 10px 0; padding-left: 22px; }
.wechat-content ol { margin: 10px 0; padding-left: 22px; }
.wechat-content li { margin: 4px 0; }
.wechat-content img { display: block; max-width: 100%; height: auto; margin: 16px auto; }
.wechat-content code { font-family: Menlo, Consolas, monospace; font-size: 14px; background: #f3f3f3; padding: 2px 4px; border-radius: 3px; }
.wechat-content pre { background: #f6f8fa; padding: 12px; border-radius: 6px; overflow-x: auto; }
.wechat-content table { border-collapse: collapse; width: 100%; margin: 16px 0; }
.wechat-content th { border: 1px solid #dfe2e5; padding: 6px 12px; background: #f6f8fa; }
.wechat-content td { border: 1px solid #dfe2e5; padding: 6px 12px; }
.wechat-content hr { border: none; border-top: 1px solid #e5e5e5; margin: 24px 0; }
.wechat-content del { color: #999999; }
.footnote-ref { font-size: 12px; color: #888888; vertical-align: super; }
.footnotes { margin-top: 32px; padding-top: 12px; border-top: 1px solid #e5e5e5; font-size: 13px; color: #888888; }
.footnote-url { word-break: break-all; }
.mermaid { text-align: center; margin: 16px 0; }"""

_ACCENT_THEMES = {
    "default": ("#07c160", "#f3fbf6"),
    "lapis": ("#3e6ad6", "#f1f5ff"),
    "sakura": ("#e5698f", "#fff2f6"),
}

TECH_CSS = """.wechat-content { color: #d6deeb; background: #0d1117; }
.wechat-content h1, .wechat-content h2, .wechat-content h3 { color: #58a6ff; }
.wechat-content h2 { border-bottom: 1px solid #30363d; padding-bottom: 6px; }
.wechat-content blockquote { border-left: 4px solid #58a6ff; background: #161b22; color: #8b949e; }
.wechat-content code { background: #161b22; color: #ff7b72; }
.wechat-content pre { background: #161b22; }
.wechat-content a { color: #58a6ff; }"""


def _accent_theme(accent: str, tint: str) -> str:
    return f""".wechat-content h1 {{ color: {accent}; text-align: center; }}
.wechat-content h2 {{ color: {accent}; border-left: 4px solid {accent}; padding-left: 10px; }}
.wechat-content h3 {{ color: {accent}; }}
.wechat-content blockquote {{ border-left: 4px solid {accent}; background: {tint}; }}
.wechat-content strong {{ color: {accent}; }}
.footnote-ref {{ color: {accent}; }}"""


BUILTIN_THEMES: Dict[str, str] = {
    name: _accent_theme(accent, tint) for name, (accent, tint) in _ACCENT_THEMES.items()
}
BUILTIN_THEMES["tech"] = TECH_CSS
DEFAULT_THEME = "default"


def resolve_theme_css(name_or_css: Optional[str]) -> str:
    """Map a built-in theme name to its CSS; any other non-blank text is treated as CSS."""
    if not name_or_css or not name_or_css.strip():
        return BUILTIN_THEMES[DEFAULT_THEME]
    key = name_or_css.strip().lower()
    if key in BUILTIN_THEMES:
        return BUILTIN_THEMES[key]
    return name_or_css


def combine_css(fallback_css: str, custom_css: str) -> str:
    return f"{fallback_css}\n{custom_css}"


def _skip_string(css: str, start: int) -> int:
    quote = css[start]
    i = start + 1
    while i < len(css):
        if css[i] == "\\":
            i += 2
            continue
        if css[i] == quote:
            return i + 1
        if css[i] == "\n":
            break
        i += 1
    raise StylesheetError(f"Unterminated string at offset {start}")


def _check_structure(css: str) -> None:
    # Error recovery in CSS parsers closes open blocks at end of input, so
    # truncated rules have to be caught before parsing.
    depth = 0
    dangling = ""
    i = 0
    while i < len(css):
        if css.startswith("/*", i):
            end = css.find("*/", i + 2)
            if end == -1:
                raise StylesheetError(f"Unterminated comment at offset {i}")
            i = end + 2
            continue
        ch = css[i]
        if ch in "\"'":
            i = _skip_string(css, i)
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            if depth == 0:
                raise StylesheetError(f"Unexpected '}}' at offset {i}")
            depth -= 1
            if depth == 0:
                dangling = ""
        elif depth == 0:
            dangling = "" if ch == ";" else dangling + ch
        i += 1
    if depth:
        raise StylesheetError(f"{depth} unclosed block(s) at end of stylesheet")
    if dangling.strip():
        raise StylesheetError(f"Rule without a declaration block: {dangling.strip()!r}")


def validate_stylesheet(css: str) -> None:
    """Raise ``StylesheetError`` unless ``css`` parses cleanly."""
    _check_structure(css)
    parser = cssutils.CSSParser(raiseExceptions=True, validate=False)
    previous = cssutils.log.raiseExceptions
    try:
        parser.parseString(css)
    except xml.dom.DOMException as exc:
        raise StylesheetError(f"Invalid stylesheet: {exc}") from exc
    finally:
        cssutils.log.raiseExceptions = previous
    logger.debug("Validated %d characters of CSS", len(css))


def compose_document(
    custom_css: str,
    content_html: str,
    has_mermaid: bool,
    fallback_css: str = FALLBACK_CSS,
) -> str:
    """Wrap converted HTML in a full document with fallback and custom CSS.

    Custom rules come after the fallback rules so identical selectors in the
    caller's stylesheet win the cascade.
    """
    combined_css = combine_css(fallback_css, custom_css)
    scripts = MERMAID_SCRIPTS if has_mermaid else ""
    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<style>
{combined_css}
</style>
{scripts}
</head>
<body>
<div class="wechat-content">
{content_html}
</div>
</body>
</html>"""


def inline_css(document: str) -> str:
    """Flatten the document's ``<style>`` block into inline ``style`` attributes."""
    try:
        premailer = Premailer(
            document,
            remove_classes=False,
            keep_style_tags=False,
            strip_important=False,
            allow_network=False,
            disable_validation=True,
            cssutils_logging_level=logging.CRITICAL,
        )
        return premailer.transform()
    except Exception as exc:  # noqa: BLE001 - surface inliner failures uniformly
        raise StylesheetError(f"Failed to inline CSS: {exc}") from exc
