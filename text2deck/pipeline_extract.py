from __future__ import annotations

import json
from typing import Any, Dict, List

from pydantic import ValidationError

from .errors import (
    ExtractionTimeoutError,
    MalformedCardsError,
    PreprocessError,
    QuoteIntegrityError,
)
from .llm import GenerationCapability, safe_invoke
from .models import SourceCard
from .pipeline_common import EXTRACT_TIMEOUT_SEC, logger
from .prompts import EXTRACT_PROMPT
from .text_utils import preview_text, raw_head_tail, strip_code_fence


def verify_quote(card: SourceCard, source_text: str) -> SourceCard:
    if not card.quote or card.quote not in source_text:
        raise QuoteIntegrityError(card.card_id, card.quote)
    return card


class Extractor:
    """Source text -> verbatim evidence cards."""

    def __init__(self, llm: GenerationCapability, timeout_sec: float = EXTRACT_TIMEOUT_SEC) -> None:
        self.llm = llm
        self.timeout_sec = timeout_sec

    @staticmethod
    def build_prompt(source_text: str) -> str:
        return f"SOURCE:\n<<<\n{source_text}\n>>>\n\nReturn the cards JSON now."

    @staticmethod
    def parse_cards_payload(raw: str) -> List[Any]:
        """Raw model text -> list of card dicts; raises MalformedCardsError."""
        content = strip_code_fence(raw)
        try:
            obj = json.loads(content)
        except ValueError:
            head, tail = raw_head_tail(raw)
            logger.error("Card extraction returned non-JSON output.")
            logger.error("RAW HEAD: %s", head)
            logger.error("RAW TAIL: %s", tail)
            raise MalformedCardsError("Extraction output is not valid JSON; please retry.", raw_text=raw)
        if isinstance(obj, dict):
            obj = obj.get("cards")
        if not isinstance(obj, list):
            logger.error("Card extraction JSON has no card list: %s", preview_text(content, 400))
            raise MalformedCardsError("Extraction output has no 'cards' list; please retry.", raw_text=raw)
        return obj

    @staticmethod
    def build_cards(items: List[Any], source_text: str) -> List[SourceCard]:
        """Validate items, assign missing ids, and drop anything not verbatim in the source.

        Survivors come back in the order their quotes first appear in the source.
        """
        cards: List[SourceCard] = []
        seen: set = set()
        for pos, item in enumerate(items, 1):
            if not isinstance(item, dict):
                logger.warning("Dropping card #%s: not an object.", pos)
                continue
            data: Dict[str, Any] = dict(item)
            data["card_id"] = str(data.get("card_id") or f"c{pos:03d}")
            if isinstance(data.get("importance"), str):
                data["importance"] = data["importance"].strip().lower()
            data["tags"] = data.get("tags") or []
            try:
                card = SourceCard.model_validate(data)
            except ValidationError as exc:
                logger.warning("Dropping card %s: %s", data["card_id"], exc.errors()[0].get("msg", exc))
                continue
            if card.card_id in seen:
                logger.warning("Dropping card %s: duplicate card_id.", card.card_id)
                continue
            try:
                verify_quote(card, source_text)
            except QuoteIntegrityError as exc:
                logger.warning("Dropping card: %s", exc)
                continue
            seen.add(card.card_id)
            cards.append(card)
        # source order; ties keep the model's order
        cards.sort(key=lambda c: source_text.find(c.quote))
        return cards

    async def extract(self, source_text: str) -> List[SourceCard]:
        if not (source_text or "").strip():
            raise PreprocessError("Source text is empty; nothing to extract.")
        logger.info("Extracting source cards (%s chars)...", len(source_text))
        raw = await safe_invoke(
            logger,
            self.llm,
            EXTRACT_PROMPT,
            self.build_prompt(source_text),
            stage="Card extraction",
            timeout_sec=self.timeout_sec,
            timeout_error=ExtractionTimeoutError,
            failure_error=PreprocessError,
        )
        items = self.parse_cards_payload(raw)
        cards = self.build_cards(items, source_text)
        logger.info("Kept %s of %s cards.", len(cards), len(items))
        return cards
