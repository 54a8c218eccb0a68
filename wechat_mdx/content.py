"""Post-processing passes over the HTML emitted by the Markdown engine.

Both passes scan plain substrings rather than parsing a DOM. The input is
always Python-Markdown output, so the exact tag shapes below are stable; the
tests in ``tests/test_content.py`` and ``tests/test_markdown.py`` pin them so
a change in the engine's output is caught.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

logger = logging.getLogger("wechat_mdx.content")

MERMAID_START = '<pre><code class="language-mermaid">'
MERMAID_END = "</code></pre>"
MERMAID_CLASS = "mermaid"

ANCHOR_START = "<a "
ANCHOR_END = "</a>"
HREF_ATTR = 'href="'


def replace_mermaid_blocks(html: str) -> Tuple[str, bool]:
    """Turn fenced mermaid code blocks into ``<div class="mermaid">`` containers.

    Returns the rewritten HTML and whether any diagram block was found. An
    opening marker without a closing one stops the rewrite; the marker and
    everything after it are kept unchanged.
    """
    output: List[str] = []
    remaining = html
    has_mermaid = False

    while True:
        start_idx = remaining.find(MERMAID_START)
        if start_idx == -1:
            break
        has_mermaid = True
        output.append(remaining[:start_idx])
        rest = remaining[start_idx + len(MERMAID_START) :]
        end_idx = rest.find(MERMAID_END)
        if end_idx == -1:
            logger.debug("Unterminated mermaid block; leaving remainder untouched")
            output.append(MERMAID_START)
            output.append(rest)
            return "".join(output), has_mermaid
        output.append(f'<div class="{MERMAID_CLASS}">')
        output.append(rest[:end_idx])
        output.append("</div>")
        remaining = rest[end_idx + len(MERMAID_END) :]

    output.append(remaining)
    return "".join(output), has_mermaid


def _extract_href(start_tag: str) -> Optional[str]:
    href_idx = start_tag.find(HREF_ATTR)
    if href_idx == -1:
        return None
    value_start = href_idx + len(HREF_ATTR)
    value_end = start_tag.find('"', value_start)
    if value_end == -1:
        return None
    return start_tag[value_start:value_end]


def render_footnotes(footnotes: List[Tuple[int, str]]) -> str:
    lines = ['<div class="footnotes">', "<ol>"]
    for _, url in footnotes:
        lines.append(f'<li><span class="footnote-url">{url}</span></li>')
    lines.extend(["</ol>", "</div>"])
    return "\n".join(lines)


def convert_links_to_footnotes(html: str) -> str:
    """Replace hyperlinks with numbered markers and append a footnote list.

    ``<a href="URL">TEXT</a>`` becomes ``TEXT <span class="footnote-ref">N</span>``
    with N counting anchors left to right, so a repeated URL gets a new number
    each time. In-page anchors (``href="#..."``) are kept as they are. The scan
    only moves forward; a start tag without ``>`` or without a later ``</a>``
    ends the scan and the rest of the input is returned unmodified.
    """
    footnotes: List[Tuple[int, str]] = []
    output: List[str] = []
    pos = 0

    while True:
        start = html.find(ANCHOR_START, pos)
        if start == -1:
            break
        tag_close = html.find(">", start)
        if tag_close == -1:
            break
        text_start = tag_close + 1
        text_end = html.find(ANCHOR_END, text_start)
        if text_end == -1:
            break
        link_end = text_end + len(ANCHOR_END)

        url = _extract_href(html[start:text_start])
        output.append(html[pos:start])
        if url is None or url.startswith("#"):
            output.append(html[start:link_end])
        else:
            number = len(footnotes) + 1
            footnotes.append((number, url))
            link_text = html[text_start:text_end]
            output.append(f'{link_text} <span class="footnote-ref">{number}</span>')
        pos = link_end

    output.append(html[pos:])
    result = "".join(output)
    if footnotes:
        logger.debug("Converted %d link(s) to footnotes", len(footnotes))
        result += render_footnotes(footnotes)
    return result
