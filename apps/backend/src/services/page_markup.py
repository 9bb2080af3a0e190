"""Conversion of drafted Markdown into stored page markup and plain text."""

from __future__ import annotations

import html
import re

from bs4 import BeautifulSoup


_BLOCK_TAGS = ("p", "div", "br", "li", "h1", "h2", "h3", "h4", "h5", "h6")
_DROPPED_TAGS = ("style", "script")
_WHITESPACE_RE = re.compile(r"\s+")
_HEADINGS = (("### ", "h3"), ("## ", "h2"), ("# ", "h1"))


def _escape(text: str) -> str:
    return html.escape(text, quote=False)


def markdown_to_html(markdown: str) -> str:
    """Render the small Markdown subset page drafts use.

    Supports ``#``/``##``/``###`` headings, ``- `` bullet lists and plain
    paragraphs (one per non-blank line). All text is HTML-escaped.
    """
    out: list[str] = []
    in_list = False

    def close_list() -> None:
        nonlocal in_list
        if in_list:
            out.append("</ul>")
            in_list = False

    for raw_line in (markdown or "").splitlines():
        line = raw_line.strip()
        if not line:
            close_list()
            continue

        heading = next((h for h in _HEADINGS if line.startswith(h[0])), None)
        if heading is not None:
            prefix, tag = heading
            close_list()
            out.append(f"<{tag}>{_escape(line[len(prefix):])}</{tag}>")
            continue

        if line.startswith("- "):
            if not in_list:
                out.append("<ul>")
                in_list = True
            out.append(f"<li>{_escape(line[2:])}</li>")
            continue

        close_list()
        out.append(f"<p>{_escape(line)}</p>")

    close_list()
    return "".join(out)


def extract_text(markup: str) -> str:
    """Plain text of stored markup, used for embeddings and short notes.

    Block elements are separated by a space, entities are decoded and runs
    of whitespace collapse to a single space.
    """
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup.find_all(_DROPPED_TAGS):
        tag.decompose()
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.append(" ")
    text = soup.get_text().replace("\xa0", " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def short_note(plain_text: str, limit: int = 40) -> str:
    """Chapter summary label for a page."""
    if not plain_text:
        return "New Page"
    return plain_text[:limit] + ("..." if len(plain_text) > limit else "")
