"""Page-level edits on Slidev markdown, used as assistant tools.

Every function takes deck text and returns new deck text. Pages are the ones
``deck_parser.split_pages`` yields, so the page indexes in a coverage report
address the same slides here.
"""
from __future__ import annotations

import re

from .deck_parser import normalize, split_pages
from .errors import DeckEditError

HEADMATTER_RE = re.compile(r"(?s)^---\n(.*?)\n---")
THEME_RE = re.compile(r"theme:\s*(\S+)")


def page_count(markdown: str) -> int:
    return len(split_pages(markdown))


def update_page(markdown: str, page_index: int, new_markdown: str) -> str:
    """Replace the body of one page; its frontmatter block stays."""
    content = normalize(markdown)
    pages = split_pages(content)
    if not 0 <= page_index < len(pages):
        raise DeckEditError(f"page index {page_index} out of range (deck has {page_count(content)} pages)")
    page = pages[page_index]
    return content[: page.start] + "\n" + new_markdown.strip("\n") + "\n" + content[page.end:]


def insert_page(markdown: str, after_index: int, layout: str = "default") -> str:
    """Insert a placeholder page with ``layout`` after page ``after_index``."""
    if after_index < 0:
        raise DeckEditError(f"page index {after_index} out of range")
    content = normalize(markdown)
    pages = split_pages(content)
    insertion = f"\n---\nlayout: {layout}\n---\n\n# New Slide\n\n"
    if after_index < len(pages):
        pos = pages[after_index].end
        return content[:pos] + insertion + content[pos:]
    return content + insertion


def apply_theme(markdown: str, theme_name: str) -> str:
    content = normalize(markdown)
    m = HEADMATTER_RE.match(content)
    if not m:
        raise DeckEditError("headmatter not found; cannot set a global theme")
    headmatter = m.group(1)
    if THEME_RE.search(headmatter):
        new_headmatter = THEME_RE.sub(f"theme: {theme_name}", headmatter, count=1)
    else:
        new_headmatter = headmatter + f"\ntheme: {theme_name}"
    start, end = m.span(1)
    return content[:start] + new_headmatter + content[end:]
