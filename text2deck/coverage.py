"""Outline vs. deck coverage check and the patches that would close each gap.

Validation is pure: the report is rebuilt from scratch on every call and the
outline and deck passed in are never modified.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

from .deck_parser import anchor_line, parse_deck, strip_anchor
from .models import (
    AppendBulletsPatch,
    CoverageReport,
    CoverageSummary,
    DeckSlide,
    InsertSlidePatch,
    MissingPoint,
    MissingSlide,
    Outline,
    OutlineSlide,
)
from .pipeline_common import logger
from .text_utils import preview_text

EXCERPT_CHARS = 160
CONFIDENCE = "high"


class PatchProposer:
    """Numbers patches ``patch-001``, ``patch-002``... in discovery order."""

    def __init__(self) -> None:
        self._seq = 0
        self.patches: List[Union[InsertSlidePatch, AppendBulletsPatch]] = []

    def _next_id(self) -> str:
        self._seq += 1
        return f"patch-{self._seq:03d}"

    @staticmethod
    def reconstruct_slide(slide: OutlineSlide) -> str:
        lines = [anchor_line(slide.slide_id), "", f"# {slide.title}".rstrip(), ""]
        lines.extend(f"- {point}" for point in slide.must_include)
        return "\n".join(lines).rstrip() + "\n"

    def insert_slide(self, slide: OutlineSlide, outline_index: int) -> InsertSlidePatch:
        patch = InsertSlidePatch(
            patch_id=self._next_id(),
            slide_id=slide.slide_id,
            insert_at_index=outline_index,
            markdown=self.reconstruct_slide(slide),
            confidence=CONFIDENCE,
            explain=(
                f"Slide '{slide.slide_id}' ({slide.title}) is missing from the deck; "
                f"insert a minimal slide at position {outline_index} carrying its "
                f"{len(slide.must_include)} required point(s)."
            ),
        )
        self.patches.append(patch)
        return patch

    def append_bullets(self, slide_id: str, page_index: int, missing: List[str]) -> AppendBulletsPatch:
        patch = AppendBulletsPatch(
            patch_id=self._next_id(),
            slide_id=slide_id,
            page_index=page_index,
            append=list(missing),
            confidence=CONFIDENCE,
            explain=(
                f"Slide '{slide_id}' (deck page {page_index}) lacks {len(missing)} required "
                "point(s) verbatim; append them as bullets at the end of the slide."
            ),
        )
        self.patches.append(patch)
        return patch


def _coerce_outline(outline: Any) -> Outline:
    if isinstance(outline, Outline):
        return outline
    if isinstance(outline, Mapping):
        data = dict(outline)
        slides = data.get("slides")
        data["slides"] = slides if isinstance(slides, list) else []
        return Outline.model_validate(data)
    return Outline()


def _index_deck(deck: List[DeckSlide]) -> tuple[Dict[str, DeckSlide], List[str]]:
    by_id: Dict[str, DeckSlide] = {}
    duplicates: List[str] = []
    for slide in deck:
        # synthetic ids must never satisfy an outline requirement
        if not slide.anchored:
            continue
        if slide.slide_id in by_id:
            if slide.slide_id not in duplicates:
                duplicates.append(slide.slide_id)
            continue
        by_id[slide.slide_id] = slide
    return by_id, duplicates


def _summary_note(missing_slides: List[MissingSlide], missing_points: List[MissingPoint]) -> str:
    if not missing_slides and not missing_points:
        return "Coverage complete: every outline slide and must_include point is present in the deck."
    point_count = sum(len(mp.missing_points) for mp in missing_points)
    return (
        f"Coverage gaps: {len(missing_slides)} missing slide(s), "
        f"{point_count} missing point(s) across {len(missing_points)} slide(s)."
    )


def validate_coverage(outline: Any, deck_markdown: Any) -> CoverageReport:
    """Diff the deck against the outline, slide by slide and point by point.

    ``must_include`` strings are matched as case-sensitive substrings of the
    slide body with its anchor comment removed; no normalization is applied.
    """
    outline_model = _coerce_outline(outline)
    if not isinstance(deck_markdown, str):
        deck_markdown = ""
    deck = parse_deck(deck_markdown)
    by_id, duplicates = _index_deck(deck)
    if duplicates:
        logger.warning("Deck repeats slide anchors %s; first occurrence wins.", ", ".join(duplicates))

    proposer = PatchProposer()
    missing_slides: List[MissingSlide] = []
    missing_points: List[MissingPoint] = []

    for outline_index, slide in enumerate(outline_model.slides):
        deck_slide: Optional[DeckSlide] = by_id.get(slide.slide_id)
        if deck_slide is None:
            missing_slides.append(
                MissingSlide(
                    slide_id=slide.slide_id,
                    expected_index=outline_index,
                    title=slide.title,
                    must_include=list(slide.must_include),
                    reason=f"No deck slide is anchored with slide_id '{slide.slide_id}'.",
                )
            )
            proposer.insert_slide(slide, outline_index)
            continue

        body = strip_anchor(deck_slide.content)
        matched = [p for p in slide.must_include if p in body]
        missing = [p for p in slide.must_include if p not in body]
        if missing:
            missing_points.append(
                MissingPoint(
                    slide_id=slide.slide_id,
                    page_index=deck_slide.index,
                    matched_points=matched,
                    missing_points=missing,
                    evidence_excerpt=preview_text(body, EXCERPT_CHARS),
                )
            )
            proposer.append_bullets(slide.slide_id, deck_slide.index, missing)

    outline_ids = {s.slide_id for s in outline_model.slides}
    extra_ids = [s.slide_id for s in deck if not s.anchored or s.slide_id not in outline_ids]

    return CoverageReport(
        outline_version=outline_model.outline_version,
        summary=CoverageSummary(
            total_outline_slides=len(outline_model.slides),
            total_deck_slides=len(deck),
            missing_slide_count=len(missing_slides),
            missing_point_count=sum(len(mp.missing_points) for mp in missing_points),
        ),
        missing_slides=missing_slides,
        missing_points=missing_points,
        proposed_patches=proposer.patches,
        notes=[_summary_note(missing_slides, missing_points)],
        extra_slide_ids=extra_ids,
        duplicate_slide_ids=duplicates,
    )
