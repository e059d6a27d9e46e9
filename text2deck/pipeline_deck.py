from __future__ import annotations

import json
from typing import Optional

from .errors import DeckTimeoutError
from .llm import GenerationCapability, safe_invoke
from .models import Outline, PromptStyle, ThemeCapabilities
from .pipeline_common import DECK_TIMEOUT_SEC, logger
from .prompts import get_style, resolve_theme
from .text_utils import strip_code_fence

# Appended to every deck request whatever the style prompt says.
DECK_CONTRACT = """
Deck contract (non-negotiable):
1. Preserve the slide order and slide count of OUTLINE_JSON exactly.
2. The first line of every slide body is the anchor comment <!-- slide_id: <slide_id> --> using that slide's slide_id.
3. Reproduce every must_include string verbatim (same characters, same case) in its slide.
4. Separate slides with a line containing only ---; never put a line containing only --- inside a slide body.
5. A slide's layout goes in a frontmatter block directly before it (---, then layout: <name>, then ---); the anchor comment is the first line after that block. The deck headmatter is the first slide's frontmatter. Frontmatter blocks are not slides and do not shift page indexes.
""".strip()


class DeckBuilder:
    def __init__(
        self,
        llm: GenerationCapability,
        style: Optional[PromptStyle] = None,
        timeout_sec: float = DECK_TIMEOUT_SEC,
    ) -> None:
        self.llm = llm
        self.style = style or get_style(None)
        self.timeout_sec = timeout_sec

    @staticmethod
    def build_prompt(outline: Outline, capabilities: ThemeCapabilities) -> str:
        outline_json = json.dumps(outline.model_dump(mode="json"), ensure_ascii=False, indent=2)
        caps_json = json.dumps({"layouts": list(capabilities.layouts)}, ensure_ascii=False)
        return (
            f"OUTLINE_JSON:\n{outline_json}\n\n"
            f"THEME_CAPABILITIES ({capabilities.theme}):\n{caps_json}\n\n"
            f"{DECK_CONTRACT}"
        )

    async def build(self, outline: Outline, theme: Optional[str] = None) -> str:
        capabilities = resolve_theme(theme)
        logger.info("Generating deck markdown (%s slides, theme=%s)...", len(outline.slides), capabilities.theme)
        raw = await safe_invoke(
            logger,
            self.llm,
            self.style.slide_prompt,
            self.build_prompt(outline, capabilities),
            stage="Deck generation",
            timeout_sec=self.timeout_sec,
            timeout_error=DeckTimeoutError,
        )
        return strip_code_fence(raw)
