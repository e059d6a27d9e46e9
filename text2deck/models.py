"""Pydantic models for cards, outlines, parsed decks and coverage reports."""
from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

Importance = Literal["high", "medium", "low"]
SlideType = Literal["cover", "agenda", "content", "summary", "qa"]


class SourceCard(BaseModel):
    model_config = ConfigDict(frozen=True)

    card_id: str
    quote: str
    tags: Tuple[str, ...] = ()
    importance: Importance = "medium"


class OutlineMeta(BaseModel):
    topic: str = ""
    estimated_pages: Optional[int] = None


class OutlineSlide(BaseModel):
    slide_id: str
    type: SlideType = "content"
    title: str = ""
    purpose: str = ""
    density: str = ""
    visual_hint: str = ""
    bullets: List[str] = Field(default_factory=list)
    must_include: List[str] = Field(default_factory=list)
    source_card_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _default_must_include(cls, data: Any) -> Any:
        # must_include mirrors bullets unless the outline says otherwise
        if isinstance(data, dict) and data.get("must_include") is None:
            data = dict(data)
            data["must_include"] = list(data.get("bullets") or [])
        return data


class Outline(BaseModel):
    outline_version: str = "v1"
    meta: OutlineMeta = Field(default_factory=OutlineMeta)
    slides: List[OutlineSlide] = Field(default_factory=list)


class DeckSlide(BaseModel):
    model_config = ConfigDict(frozen=True)

    slide_id: str
    content: str
    index: int
    anchored: bool = True
    frontmatter: str = ""


class ThemeCapabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    theme: str
    layouts: Tuple[str, ...]


class PromptStyle(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    outline_prompt: str
    slide_prompt: str
    is_builtin: bool = False


class MissingSlide(BaseModel):
    slide_id: str
    expected_index: int
    title: str
    must_include: List[str] = Field(default_factory=list)
    reason: str


class MissingPoint(BaseModel):
    slide_id: str
    page_index: int
    matched_points: List[str] = Field(default_factory=list)
    missing_points: List[str] = Field(default_factory=list)
    evidence_excerpt: str = ""


class InsertSlidePatch(BaseModel):
    op: Literal["insert_slide"] = "insert_slide"
    patch_id: str
    slide_id: str
    insert_at_index: int
    markdown: str
    confidence: Literal["high", "medium", "low"] = "high"
    explain: str


class AppendBulletsPatch(BaseModel):
    op: Literal["append_bullets"] = "append_bullets"
    patch_id: str
    slide_id: str
    page_index: int
    position: Literal["end_of_slide"] = "end_of_slide"
    append: List[str]
    confidence: Literal["high", "medium", "low"] = "high"
    explain: str


Patch = Annotated[Union[InsertSlidePatch, AppendBulletsPatch], Field(discriminator="op")]


class CoverageSummary(BaseModel):
    total_outline_slides: int
    total_deck_slides: int
    missing_slide_count: int
    missing_point_count: int


class CoverageReport(BaseModel):
    outline_version: str
    summary: CoverageSummary
    missing_slides: List[MissingSlide] = Field(default_factory=list)
    missing_points: List[MissingPoint] = Field(default_factory=list)
    proposed_patches: List[Patch] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    extra_slide_ids: List[str] = Field(default_factory=list)
    duplicate_slide_ids: List[str] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing_slides and not self.missing_points


class PipelineResult(BaseModel):
    cards: List[SourceCard]
    estimated_pages: int
    outline: Outline
    deck_markdown: str
    report: CoverageReport
