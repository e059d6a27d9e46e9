"""Structural decomposition of Slidev markdown into anchored slides.

A page is one slide body plus the frontmatter block (``---`` / ``key: value``
lines / ``---``) written directly before it. The deck headmatter is the first
page's frontmatter, so page indexes here match the ones ``deck_tools`` edits.
"""
from __future__ import annotations

import re
from typing import List, NamedTuple, Optional, Tuple

from .models import DeckSlide

SEPARATOR = "---"
SEPARATOR_RE = re.compile(r"(?m)^---$")
ANCHOR_RE = re.compile(r"^<!--\s*slide_id:\s*(\S+?)\s*-->")
FRONTMATTER_KEY_RE = re.compile(r"^[A-Za-z_][\w-]*:(?:\s.*)?$")
UNKNOWN_PREFIX = "unknown-"


class Page(NamedTuple):
    frontmatter: str
    body: str
    # span of the raw body part in the normalized text, separators excluded
    start: int
    end: int


def anchor_line(slide_id: str) -> str:
    return f"<!-- slide_id: {slide_id} -->"


def read_anchor(fragment: str) -> Optional[str]:
    m = ANCHOR_RE.match((fragment or "").lstrip())
    return m.group(1) if m else None


def strip_anchor(fragment: str) -> str:
    """Slide body with the leading anchor comment removed."""
    text = (fragment or "").lstrip()
    m = ANCHOR_RE.match(text)
    if m:
        text = text[m.end():]
    return text.strip()


def normalize(markdown: str) -> str:
    return (markdown or "").replace("\r\n", "\n")


def split_fragments(markdown: str) -> List[str]:
    """Split on separator-only lines; trimmed, empty fragments dropped."""
    parts = SEPARATOR_RE.split(normalize(markdown))
    return [p.strip() for p in parts if p.strip()]


def _part_spans(text: str) -> List[Tuple[int, int]]:
    spans = []
    pos = 0
    for m in SEPARATOR_RE.finditer(text):
        spans.append((pos, m.start()))
        pos = m.end()
    spans.append((pos, len(text)))
    return spans


def is_frontmatter(fragment: str) -> bool:
    lines = [line for line in fragment.split("\n") if line.strip()]
    if not lines or not FRONTMATTER_KEY_RE.match(lines[0]):
        return False
    # indented lines continue the previous key
    return all(FRONTMATTER_KEY_RE.match(line) or line[0].isspace() for line in lines)


def split_pages(markdown: str) -> List[Page]:
    """Pages of ``markdown`` in order, frontmatter folded into the following slide.

    A fragment only counts as frontmatter when a separator sits on both sides
    of it and it carries no anchor.
    """
    text = normalize(markdown)
    spans = _part_spans(text)
    pages: List[Page] = []
    pending: Optional[str] = None
    for i, (start, end) in enumerate(spans):
        chunk = text[start:end].strip()
        if not chunk:
            continue
        if pending is None and 0 < i < len(spans) - 1 and read_anchor(chunk) is None and is_frontmatter(chunk):
            pending = chunk
            continue
        pages.append(Page(pending or "", chunk, start, end))
        pending = None
    return pages


def parse_deck(markdown: str) -> List[DeckSlide]:
    slides: List[DeckSlide] = []
    for index, page in enumerate(split_pages(markdown)):
        slide_id = read_anchor(page.body)
        slides.append(
            DeckSlide(
                slide_id=slide_id if slide_id is not None else f"{UNKNOWN_PREFIX}{index}",
                content=page.body,
                index=index,
                anchored=slide_id is not None,
                frontmatter=page.frontmatter,
            )
        )
    return slides
