"""Text normalization shared by every model-response parsing site."""
from __future__ import annotations

import re

FENCE = "```"
TYPE_TAGS = frozenset({"json", "markdown", "md"})


def strip_code_fence(text: str) -> str:
    """Remove one optional fence pair and one optional leading type tag.

    Handles ```` ```json\\n...\\n``` ````, a bare fence pair, and a lone
    ``json`` / ``markdown`` line before the payload. Nothing else in the text
    is touched.
    """
    content = (text or "").strip()
    lines = content.split("\n")
    if lines and lines[0].strip().startswith(FENCE):
        # the fence line carries its own tag, if any
        lines = lines[1:]
        # a closing fence only counts when an opening one was removed
        if lines and lines[-1].strip() == FENCE:
            lines = lines[:-1]
    content = "\n".join(lines).strip()

    first, sep, rest = content.partition("\n")
    if sep and first.strip().lower() in TYPE_TAGS:
        content = rest.strip()
    return content


def preview_text(s: str, max_len: int = 60) -> str:
    s = re.sub(r"\s+", " ", (s or "").strip())
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def raw_head_tail(raw: str, size: int = 400) -> tuple[str, str]:
    raw = raw or ""
    return raw[:size], raw[-size:]
