"""Readme rendering - markdown to sanitized HTML.

Default implementations of MarkdownConverterProtocol and HtmlSanitizerProtocol:
Python-Markdown plus pymdown-extensions strikethrough for conversion,
nh3 (ammonia) for sanitization.
"""

from collections.abc import Iterable

import markdown
import nh3
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from .protocols import HtmlSanitizerProtocol
from .protocols import MarkdownConverterProtocol

# Safe default allow-list. Top-level headings and images are deliberately
# absent: callers opt into them through ``extra_tags``.
DEFAULT_ALLOWED_TAGS = frozenset(
    {
        "address", "article", "aside", "footer", "header", "h3", "h4", "h5", "h6", "hgroup", "main",
        "nav", "section", "blockquote", "dd", "div", "dl", "dt", "figcaption", "figure", "hr", "li",
        "ol", "p", "pre", "ul", "a", "abbr", "b", "bdi", "bdo", "br", "cite", "code", "data", "del", "dfn",
        "em", "i", "kbd", "mark", "q", "rb", "rp", "rt", "rtc", "ruby", "s", "samp", "small", "span",
        "strong", "sub", "sup", "time", "u", "var", "wbr", "caption", "col", "colgroup", "table",
        "tbody", "td", "tfoot", "th", "thead", "tr",
    }
)  # fmt: skip

DEFAULT_ALLOWED_ATTRIBUTES = {
    "a": {"href", "name", "target", "title"},
    "img": {"src", "alt", "title", "width", "height"},
    "td": {"align"},
    "th": {"align"},
}

_HEADING_TAGS = {f"h{level}" for level in range(1, 7)}


class _HeadingShiftProcessor(Treeprocessor):
    def __init__(self, md: markdown.Markdown, offset: int):
        super().__init__(md)
        self.offset = offset

    def run(self, root):
        for element in root.iter():
            if element.tag in _HEADING_TAGS:
                element.tag = f"h{min(int(element.tag[1]) + self.offset, 6)}"


class HeadingShiftExtension(Extension):
    """Shift every heading down by ``offset`` levels (``#`` renders as ``<h2>`` with offset 1)."""

    def __init__(self, offset: int = 1, **kwargs):
        self.offset = offset
        super().__init__(**kwargs)

    def extendMarkdown(self, md: markdown.Markdown) -> None:
        md.treeprocessors.register(_HeadingShiftProcessor(md, self.offset), "heading_shift", 5)


class MarkdownConverter:
    """Markdown to HTML converter (no header ids, headings start at level 2, ~~strikethrough~~)."""

    def __init__(self, heading_offset: int = 1):
        self.heading_offset = heading_offset

    def convert(self, markdown_text: str) -> str:
        # Fresh instance per call: Markdown objects carry per-document state
        md = markdown.Markdown(
            extensions=[
                "fenced_code",
                "tables",
                "pymdownx.tilde",
                HeadingShiftExtension(offset=self.heading_offset),
            ],
        )
        return md.convert(markdown_text)


class HtmlSanitizer:
    """HTML sanitizer backed by nh3 with an explicit tag allow-list."""

    def __init__(
        self,
        allowed_tags: Iterable[str] = DEFAULT_ALLOWED_TAGS,
        allowed_attributes: dict[str, set[str]] | None = None,
    ):
        self.allowed_tags = frozenset(allowed_tags)
        self.allowed_attributes = allowed_attributes if allowed_attributes is not None else DEFAULT_ALLOWED_ATTRIBUTES

    def sanitize(self, html: str, extra_tags: Iterable[str] = ()) -> str:
        tags = set(self.allowed_tags) | set(extra_tags)
        return nh3.clean(html, tags=tags, attributes=self.allowed_attributes)


def compile_readme(
    markdown_text: str,
    converter: MarkdownConverterProtocol,
    sanitizer: HtmlSanitizerProtocol,
    extra_tags: Iterable[str] = (),
) -> str:
    """
    Render readme markdown into HTML that is safe to display.

    Args:
        markdown_text: Raw readme markdown
        converter: Markdown to HTML converter
        sanitizer: HTML sanitizer
        extra_tags: Tags allowed on top of the sanitizer's default allow-list

    Returns:
        Sanitized HTML

    Example:
        >>> compile_readme("# Title", MarkdownConverter(), HtmlSanitizer(), ("h1", "h2", "img"))
        '<h2>Title</h2>'
    """
    return sanitizer.sanitize(converter.convert(markdown_text), extra_tags)
