import cssutils
import pytest

from wechat_mdx.api import convert
from wechat_mdx.errors import StylesheetError
from wechat_mdx.markdown import convert_markdown, render_markdown
from wechat_mdx.styles import (
    BUILTIN_THEMES,
    FALLBACK_CSS,
    MERMAID_SCRIPTS,
    compose_document,
    resolve_theme_css,
    validate_stylesheet,
)


def test_engine_renders_mermaid_fence_with_language_class():
    html = render_markdown("```mermaid\ngraph TD\n```\n")

    assert '<pre><code class="language-mermaid">graph TD\n</code></pre>' in html


def test_engine_renders_links_as_plain_anchors():
    html = render_markdown("[link](http://x)")

    assert '<a href="http://x">link</a>' in html


def test_engine_supports_tables_strikethrough_and_task_lists():
    text = (
        "| a | b |\n|---|---|\n| 1 | 2 |\n\n"
        "~~gone~~\n\n"
        "- [x] done\n- [ ] todo\n"
    )

    html = render_markdown(text)

    assert "<table>" in html
    assert "<del>gone</del>" in html
    assert 'type="checkbox"' in html


def test_engine_supports_footnote_syntax():
    html = render_markdown("Claim[^1]\n\n[^1]: Source.\n")

    assert 'class="footnote"' in html
    assert "Source." in html


def test_end_to_end_conversion_adds_footnotes():
    html = convert_markdown("# Title\n\n[link](http://x)", "")

    assert "<h1" in html
    assert "Title" in html
    assert ">1</span>" in html
    assert "footnote-ref" in html
    assert "http://x" in html
    assert "footnote-url" in html
    assert "<style" not in html
    assert "mermaid.min.js" not in html


def test_styles_are_inlined_into_elements():
    html = convert_markdown("Hello", ".wechat-content p { color: #123456; }")

    assert 'style="' in html
    assert "#123456" in html


def test_custom_css_overrides_fallback_for_same_selector():
    html = convert_markdown(
        "Hello",
        ".wechat-content p { color: #654321; }",
        fallback_css=".wechat-content p { color: #123456; }",
    )

    assert "#654321" in html
    assert "#123456" not in html


def test_mermaid_script_included_only_with_diagrams():
    html = convert_markdown("```mermaid\ngraph TD\n```\n", "")

    assert "mermaid.min.js" in html
    assert 'class="mermaid"' in html


def test_compose_document_places_fallback_before_custom():
    document = compose_document(".custom {}", "<p>x</p>", has_mermaid=False)

    assert document.index(FALLBACK_CSS) < document.index(".custom {}")
    assert '<div class="wechat-content">\n<p>x</p>\n</div>' in document
    assert MERMAID_SCRIPTS not in document


def test_compose_document_injects_script_in_head():
    document = compose_document("", "<p>x</p>", has_mermaid=True)

    assert document.index(MERMAID_SCRIPTS) < document.index("</head>")


def test_resolve_theme_css_handles_names_and_raw_css():
    assert resolve_theme_css("lapis") == BUILTIN_THEMES["lapis"]
    assert resolve_theme_css(None) == BUILTIN_THEMES["default"]
    assert resolve_theme_css("no-such-theme") == "no-such-theme"
    assert resolve_theme_css("p { color: red; }") == "p { color: red; }"


def test_convert_accepts_theme_name():
    html = convert("## Heading", "sakura")

    assert "#e5698f" in html


@pytest.mark.parametrize(
    "css",
    [
        "p {",
        "p { color: red",
        "}}}{{{ @@@",
        "p { color: ; } garbage {{",
        "no-such-theme",
        "p { content: \"open }",
        "/* never closed",
    ],
)
def test_malformed_css_raises_stylesheet_error(css):
    with pytest.raises(StylesheetError):
        convert_markdown("Hello", css)


def test_unknown_theme_name_is_rejected_as_css():
    with pytest.raises(StylesheetError, match="no-such-theme"):
        convert("Hello", "no-such-theme")


def test_failed_validation_restores_cssutils_raising():
    before = cssutils.log.raiseExceptions

    with pytest.raises(StylesheetError):
        validate_stylesheet("p {")
    validate_stylesheet("p { color: red; }")

    assert cssutils.log.raiseExceptions == before


@pytest.mark.parametrize("name", sorted(BUILTIN_THEMES))
def test_builtin_themes_are_valid_stylesheets(name):
    validate_stylesheet(FALLBACK_CSS + "\n" + BUILTIN_THEMES[name])


def test_strings_and_comments_may_contain_braces():
    validate_stylesheet('/* } */ p:after { content: "{"; }')
