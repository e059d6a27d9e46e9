"""Sequential pipeline: extract -> estimate -> outline -> deck -> coverage."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

from tqdm import tqdm

from .coverage import validate_coverage
from .llm import GenerationCapability
from .models import CoverageReport, Outline, PipelineResult, SourceCard
from .pipeline_common import TQDM_NCOLS, RunConfig, logger
from .pipeline_deck import DeckBuilder
from .pipeline_extract import Extractor
from .pipeline_outline import OutlineBuilder, estimate_page_count
from .prompts import get_style

STAGES = ("Extract", "Estimate", "Outline", "Deck", "Coverage")


class ArtifactStore:
    def __init__(self, out_dir: Path) -> None:
        self.out_dir = Path(out_dir)
        self.out_dir.mkdir(parents=True, exist_ok=True)

    def _write_json(self, name: str, data) -> Path:
        path = self.out_dir / name
        with path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        return path

    def save_cards(self, cards: List[SourceCard]) -> Path:
        return self._write_json("cards.json", [c.model_dump(mode="json") for c in cards])

    def save_outline(self, outline: Outline) -> Path:
        return self._write_json("outline.json", outline.model_dump(mode="json"))

    def save_deck(self, markdown: str) -> Path:
        path = self.out_dir / "slides.md"
        path.write_text(markdown.rstrip("\n") + "\n", encoding="utf-8")
        return path

    def save_report(self, report: CoverageReport) -> Path:
        return self._write_json("coverage.json", report.model_dump(mode="json"))

    def save_result(self, result: PipelineResult) -> Dict[str, Path]:
        return {
            "cards": self.save_cards(result.cards),
            "outline": self.save_outline(result.outline),
            "deck": self.save_deck(result.deck_markdown),
            "coverage": self.save_report(result.report),
        }


class Pipeline:
    def __init__(self, cfg: RunConfig, llm: GenerationCapability) -> None:
        self.cfg = cfg
        self.llm = llm
        style = get_style(cfg.style_id, cfg.custom_styles)
        self.extractor = Extractor(llm, timeout_sec=cfg.extract_timeout_sec)
        self.outline_builder = OutlineBuilder(llm, style=style, timeout_sec=cfg.outline_timeout_sec)
        self.deck_builder = DeckBuilder(llm, style=style, timeout_sec=cfg.deck_timeout_sec)
        self.store = ArtifactStore(cfg.out_dir) if cfg.out_dir else None

    async def run(self, source_text: str, topic: Optional[str] = None) -> PipelineResult:
        """Run every stage in order; each starts only after the previous one finished."""
        topic = self.cfg.topic if topic is None else topic
        with tqdm(total=len(STAGES), desc="Pipeline", unit="stage", ncols=TQDM_NCOLS, dynamic_ncols=False) as bar:
            bar.set_postfix_str(STAGES[0])
            cards = await self.extractor.extract(source_text)
            bar.update(1)

            bar.set_postfix_str(STAGES[1])
            pages = estimate_page_count(len(cards))
            logger.info("Estimated %s pages for %s cards.", pages, len(cards))
            bar.update(1)

            bar.set_postfix_str(STAGES[2])
            outline = await self.outline_builder.build(cards, pages, topic=topic)
            bar.update(1)

            bar.set_postfix_str(STAGES[3])
            deck = await self.deck_builder.build(outline, theme=self.cfg.theme)
            bar.update(1)

            bar.set_postfix_str(STAGES[4])
            report = validate_coverage(outline, deck)
            bar.update(1)

        logger.info(report.notes[0])
        result = PipelineResult(
            cards=cards,
            estimated_pages=pages,
            outline=outline,
            deck_markdown=deck,
            report=report,
        )
        if self.store is not None:
            paths = self.store.save_result(result)
            logger.info("Saved artifacts to %s", self.store.out_dir)
            logger.debug("Artifacts: %s", {k: str(v) for k, v in paths.items()})
        return result
