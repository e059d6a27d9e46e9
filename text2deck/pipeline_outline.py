from __future__ import annotations

import json
import math
from typing import List, Optional, Sequence

from pydantic import ValidationError

from .errors import MalformedOutlineError, OutlineTimeoutError
from .llm import GenerationCapability, safe_invoke
from .models import Outline, PromptStyle, SourceCard
from .pipeline_common import OUTLINE_TIMEOUT_SEC, logger
from .prompts import get_style
from .text_utils import raw_head_tail, strip_code_fence

FIXED_PAGES = 4  # cover, agenda, summary, qa
CARDS_PER_CONTENT_PAGE = 2.5
MIN_PAGES = 6
MAX_PAGES = 18


def estimate_page_count(card_count: int) -> int:
    """Target slide count for ``card_count`` cards, clamped to [6, 18]."""
    n = max(0, int(card_count))
    content_pages = math.floor(n / CARDS_PER_CONTENT_PAGE + 0.5)
    return min(MAX_PAGES, max(MIN_PAGES, FIXED_PAGES + content_pages))


class OutlineBuilder:
    def __init__(
        self,
        llm: GenerationCapability,
        style: Optional[PromptStyle] = None,
        timeout_sec: float = OUTLINE_TIMEOUT_SEC,
    ) -> None:
        self.llm = llm
        self.style = style or get_style(None)
        self.timeout_sec = timeout_sec

    @staticmethod
    def build_prompt(cards: Sequence[SourceCard], estimated_pages: int, topic: str = "") -> str:
        payload = {
            "estimated_pages": estimated_pages,
            "topic": topic,
            "cards": [c.model_dump(mode="json") for c in cards],
        }
        return (
            "SOURCE_CARDS_JSON:\n"
            + json.dumps(payload, ensure_ascii=False, indent=2)
            + f"\n\nReturn the outline JSON with about {estimated_pages} slides."
        )

    @staticmethod
    def parse_outline(raw: str) -> Outline:
        """Fence-stripped model text -> Outline. Never repairs structure."""
        content = strip_code_fence(raw)
        try:
            outline = Outline.model_validate(json.loads(content))
        except (ValueError, ValidationError) as exc:
            head, tail = raw_head_tail(raw)
            logger.error("Outline parse failed: %s", str(exc).splitlines()[0])
            logger.error("RAW HEAD: %s", head)
            logger.error("RAW TAIL: %s", tail)
            raise MalformedOutlineError("The model returned an outline in an unexpected format; please retry.", raw_text=raw)

        ids: List[str] = [s.slide_id for s in outline.slides]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            logger.error("Outline repeats slide_id values: %s", ", ".join(dupes))
            raise MalformedOutlineError(f"Outline repeats slide_id values: {', '.join(dupes)}", raw_text=raw)
        return outline

    async def build(self, cards: Sequence[SourceCard], estimated_pages: int, topic: str = "") -> Outline:
        logger.info("Generating outline (%s cards, ~%s pages, style=%s)...", len(cards), estimated_pages, self.style.id)
        raw = await safe_invoke(
            logger,
            self.llm,
            self.style.outline_prompt,
            self.build_prompt(cards, estimated_pages, topic),
            stage="Outline generation",
            timeout_sec=self.timeout_sec,
            timeout_error=OutlineTimeoutError,
        )
        outline = self.parse_outline(raw)
        logger.info("Outline has %s slides.", len(outline.slides))
        return outline
