"""Markdown rendering for event descriptions.

Descriptions are rendered with Python-Markdown with raw HTML disabled; hashtags
the user owns become links. The plain-text rendering is the text content of the
generated HTML so both outputs always agree.
"""

from __future__ import annotations

import html
import os
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol
from urllib.parse import quote, urlsplit

import markdown
from bs4 import BeautifulSoup
from markdown.extensions import Extension
from markdown.preprocessors import Preprocessor

from eventlog.services.hash_tags import HASH_TAG_RE

HASH_TAG_URL_PREFIX = os.getenv("HASH_TAG_URL_PREFIX", "/hash_tags/")

_BLANK_RUN_RE = re.compile(r"\n{3,}")
_CODE_SPAN_RE = re.compile(r"(`+).+?\1")
# browsers ignore whitespace and control characters inside a URL scheme
_URL_NOISE_RE = re.compile(r"[\x00-\x20\x7f]+")

SAFE_URL_SCHEMES = frozenset({"", "http", "https", "mailto"})
_URL_ATTRIBUTES = ("href", "src")


@dataclass(frozen=True)
class RenderedDescription:
    html: str
    text: str

    def __iter__(self):
        return iter((self.html, self.text))


class MarkdownRenderer(Protocol):
    def render(self, text: str, hash_tags: Iterable = ()) -> RenderedDescription:  # pragma: no cover
        ...


class _HashTagPreprocessor(Preprocessor):
    """Swap known hashtags for stashed links before block parsing.

    Running ahead of the block parser keeps ``#tag`` at the start of a line from
    being read as a heading.
    """

    def __init__(self, md, names: frozenset, url_prefix: str) -> None:
        super().__init__(md)
        self.names = names
        self.url_prefix = url_prefix

    def _link(self, match: re.Match) -> str:
        name = match.group(1).lower()
        if name not in self.names:
            return match.group(0)
        href = f"{self.url_prefix}{quote(name)}"
        anchor = (
            f'<a class="hash-tag" href="{html.escape(href, quote=True)}">'
            f"{html.escape(match.group(0))}</a>"
        )
        return self.md.htmlStash.store(anchor)

    def _link_outside_code(self, line: str) -> str:
        parts = []
        pos = 0
        for span in _CODE_SPAN_RE.finditer(line):
            parts.append(HASH_TAG_RE.sub(self._link, line[pos:span.start()]))
            parts.append(span.group(0))
            pos = span.end()
        parts.append(HASH_TAG_RE.sub(self._link, line[pos:]))
        return "".join(parts)

    def run(self, lines: List[str]) -> List[str]:
        if not self.names:
            return lines
        out = []
        for line in lines:
            # indented code blocks stay literal
            if line.startswith(("    ", "\t")):
                out.append(line)
            else:
                out.append(self._link_outside_code(line))
        return out


class _HashTagExtension(Extension):
    def __init__(self, names: Iterable[str], url_prefix: str) -> None:
        super().__init__()
        self.names = frozenset(n.lower() for n in names)
        self.url_prefix = url_prefix

    def extendMarkdown(self, md) -> None:
        md.preprocessors.register(_HashTagPreprocessor(md, self.names, self.url_prefix), "hash_tags", 25)


def _tag_names(hash_tags: Iterable) -> List[str]:
    names = []
    for tag in hash_tags or ():
        name = tag if isinstance(tag, str) else getattr(tag, "name", None)
        if name:
            names.append(name)
    return names


def is_safe_url(url: str) -> bool:
    cleaned = _URL_NOISE_RE.sub("", url or "")
    try:
        scheme = urlsplit(cleaned).scheme.lower()
    except ValueError:
        return False
    return scheme in SAFE_URL_SCHEMES


def strip_unsafe_urls(rendered_html: str) -> str:
    """Drop ``href``/``src`` values that would run script (``javascript:``, ``data:`` ...)."""

    soup = BeautifulSoup(rendered_html, "html.parser")
    stripped = False
    for attribute in _URL_ATTRIBUTES:
        for tag in soup.find_all(attrs={attribute: True}):
            if not is_safe_url(tag[attribute]):
                del tag[attribute]
                stripped = True
    return str(soup) if stripped else rendered_html


def html_to_text(rendered_html: str) -> str:
    text = BeautifulSoup(rendered_html, "html.parser").get_text()
    lines = [" ".join(line.split()) for line in text.splitlines()]
    return _BLANK_RUN_RE.sub("\n\n", "\n".join(lines)).strip()


class MarkdownService:
    """Render a description to HTML and plain text."""

    def __init__(self, url_prefix: Optional[str] = None) -> None:
        self.url_prefix = url_prefix or HASH_TAG_URL_PREFIX

    def _markdown(self, hash_tags: Iterable) -> markdown.Markdown:
        md = markdown.Markdown(
            extensions=[_HashTagExtension(_tag_names(hash_tags), self.url_prefix)],
            output_format="html",
        )
        # raw HTML in descriptions is escaped, never passed through
        md.preprocessors.deregister("html_block", strict=False)
        md.inlinePatterns.deregister("html", strict=False)
        return md

    def render_html(self, text: str, hash_tags: Iterable = ()) -> str:
        return strip_unsafe_urls(self._markdown(hash_tags).convert(text or ""))

    def render(self, text: str, hash_tags: Iterable = ()) -> RenderedDescription:
        rendered_html = self.render_html(text, hash_tags)
        return RenderedDescription(html=rendered_html, text=html_to_text(rendered_html))


__all__ = [
    "MarkdownRenderer",
    "MarkdownService",
    "RenderedDescription",
    "html_to_text",
    "is_safe_url",
    "strip_unsafe_urls",
]
