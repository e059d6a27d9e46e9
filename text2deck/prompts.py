"""Generation instructions, style presets and theme capabilities.

Styles and themes are data: the pipeline looks them up once per request and
never branches on their ids.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional

from .models import PromptStyle, ThemeCapabilities
from .pipeline_common import logger

EXTRACT_PROMPT = """
You are an evidence extractor. Turn the SOURCE text into source cards.

Hard rules:
- Output **JSON only**.
- Every "quote" MUST be copied character-for-character from SOURCE (no paraphrase, no ellipsis, no fixing typos).
- Do NOT add facts that are not in SOURCE.
- Keep cards in the order they appear in SOURCE.
- 1-3 short tags per card; importance is "high", "medium" or "low".

Output schema (JSON):
{
  "cards": [
    {"card_id": "c001", "quote": "...", "tags": ["..."], "importance": "high" | "medium" | "low"}
  ]
}
""".strip()

_OUTLINE_BASE = """
You are a PPT information architect. Convert source cards into an editable outline JSON.

Hard rules:
- Output **JSON only**.
- Do NOT write Slidev/Markdown slide content.
- Do NOT add facts beyond the cards.
- Total slides should be close to estimated_pages (+-2), and clamped to 6-18.
- MUST include fixed pages in this order:
  1) cover
  2) agenda
  3) content slides
  4) summary (CTA)
  5) qa (Thanks)

must_include rules:
- Short bullet strings.
- Stable phrasing; avoid synonyms; no duplicates.
- must_include should match bullets 1:1 by default.

Output schema (JSON):
{
  "outline_version": "v1",
  "meta": { "topic": "...", "estimated_pages": 12 },
  "slides": [
    {
      "slide_id": "cover" | "agenda" | "summary" | "qa" | "s01" | "s02" | "...",
      "type": "cover" | "agenda" | "content" | "summary" | "qa",
      "title": "...",
      "purpose": "introduce" | "define" | "argue" | "compare" | "summarize" | "act" | "transition",
      "density": "low" | "med" | "high",
      "visual_hint": "hero" | "list" | "table" | "timeline" | "diagram" | "quote",
      "bullets": ["..."],
      "must_include": ["..."],
      "source_card_ids": ["c001", "c002"]
    }
  ]
}
""".strip()

_SLIDE_BASE = """
You are a Slidev deck constructor. Input is OUTLINE_JSON and THEME_CAPABILITIES. Output must be the complete slides.md plaintext.

Hard constraints:
- Output **slides.md content only**. No code fences, no explanations.
- Keep slide order and slide count exactly as OUTLINE_JSON.
- Do NOT add facts beyond the outline/cards.
- Each slide body's first line MUST be: <!-- slide_id: {slide_id} --> (after the slide's frontmatter block, if it has one).
- Put a slide's layout in a frontmatter block right before it: a --- line, layout: <name>, a --- line.
- Each slide MUST include ALL must_include[] strings **verbatim** as visible text at least once.
- Use "---" ONLY as slide separators and to open/close frontmatter blocks.
- NEVER output a standalone "---" line inside slide body content.

Internal self-check (must do before final output):
- For each slide, verify all must_include strings appear verbatim.
- If missing, append bullets at the end of that slide to include missing points (append-only; do not rewrite).
""".strip()


def _style(
    style_id: str,
    name: str,
    description: str,
    outline_style: str,
    layout_rules: str,
    profile: str,
) -> PromptStyle:
    return PromptStyle(
        id=style_id,
        name=name,
        description=description,
        outline_prompt=f"{_OUTLINE_BASE}\n\nStyle: {outline_style}",
        slide_prompt=f"{_SLIDE_BASE}\n\nLayout & visual rules:\n{layout_rules}\n\nSTYLE_PROFILE ({name}):\n{profile}\n",
        is_builtin=True,
    )


BUILTIN_STYLES: tuple = (
    _style(
        "business",
        "Business",
        "Concise, clear, data-driven",
        "Business - formal, concise, results-oriented. Emphasize data and metrics.",
        "- Layout must be chosen from THEME_CAPABILITIES.layouts; do not repeat a layout on consecutive slides (except 'default').\n"
        "- Use a Mermaid diagram in a ```mermaid block when a slide explains a process or hierarchy.",
        "- Tone: formal, concise, results-oriented.\n"
        "- Structure: title + 3-5 short bullets.\n"
        "- Prefer layouts: two-cols > center > default.\n"
        "- Include data visualization placeholders: [Chart: description].",
    ),
    _style(
        "tech",
        "Tech",
        "Minimal whitespace, code friendly",
        "Tech - precise, engineering-oriented. Focus on technical principles and code-friendly structure.",
        "- Layout must be chosen from THEME_CAPABILITIES.layouts; do not repeat a layout on consecutive slides.\n"
        "- Use Mermaid diagrams in ```mermaid blocks for architecture, logic flow or relationships.",
        "- Tone: precise, engineering-oriented.\n"
        "- Structure: checklists, steps, numbered bullets.\n"
        "- Prefer layouts: default/two-cols.\n"
        "- Use code blocks with syntax highlighting where the cards contain code.",
    ),
    _style(
        "education",
        "Education",
        "Step by step, easy to follow",
        "Education - progressive learning, explanatory. Use analogies grounded in the cards.",
        "- Alternate 'center' (concepts) and 'two-cols' (examples) when THEME_CAPABILITIES.layouts allows.\n"
        "- Use Mermaid diagrams for processes or concept maps.",
        "- Tone: progressive, explanatory.\n"
        "- Structure: 2-4 points per slide; definition -> example (no new facts) -> recap.\n"
        "- Prefer layouts: center/default.\n"
        "- Highlight key terms with **bold** or `code`.",
    ),
    _style(
        "creative",
        "Creative",
        "Narrative, engaging",
        "Creative - narrative structure, emotionally engaging, still strictly factual.",
        "- Use expressive layouts from THEME_CAPABILITIES.layouts such as 'image-right', 'full', 'center'; avoid repetition.\n"
        "- Use Mermaid only when it clarifies; prioritize visuals.",
        "- Tone: punchier titles, but factual.\n"
        "- Density: 3-5 bullets, more whitespace.\n"
        "- Prefer layouts: cover/center/image-right/two-cols if supported.",
    ),
)

DEFAULT_STYLE_ID = "business"

THEME_CAPABILITIES: Mapping[str, tuple] = MappingProxyType(
    {
        "default": ("default", "cover", "center", "intro", "section", "two-cols", "image-right", "quote", "end"),
        "seriph": ("default", "cover", "center", "intro", "section", "two-cols", "image-right", "image-left", "quote", "fact", "statement", "end"),
        "apple-basic": ("default", "intro", "intro-image", "section", "statement", "fact", "quote", "bullets", "image-right", "3-images", "end"),
        "bricks": ("default", "cover", "intro", "section", "statement", "quote", "end"),
        "shibainu": ("default", "cover", "center", "intro", "two-cols", "image-right", "quote", "end"),
    }
)
DEFAULT_THEME = "default"


def get_merged_styles(custom_styles: Optional[Iterable[PromptStyle]] = None) -> List[PromptStyle]:
    """Built-in styles (overridden in place by same-id custom styles) then pure custom ones."""
    custom = list(custom_styles or [])
    custom_by_id = {s.id: s for s in custom}
    merged = []
    for builtin in BUILTIN_STYLES:
        override = custom_by_id.get(builtin.id)
        merged.append(override.model_copy(update={"is_builtin": True}) if override else builtin)
    builtin_ids = {s.id for s in BUILTIN_STYLES}
    merged.extend(s for s in custom if s.id not in builtin_ids)
    return merged


def get_style(style_id: Optional[str], custom_styles: Optional[Iterable[PromptStyle]] = None) -> PromptStyle:
    styles = {s.id: s for s in get_merged_styles(custom_styles)}
    style = styles.get(style_id or DEFAULT_STYLE_ID)
    if style is None:
        logger.warning("Unknown style %r; falling back to %r.", style_id, DEFAULT_STYLE_ID)
        style = styles[DEFAULT_STYLE_ID]
    return style


def resolve_theme(theme: Optional[str]) -> ThemeCapabilities:
    name = (theme or DEFAULT_THEME).strip()
    layouts = THEME_CAPABILITIES.get(name)
    if layouts is None:
        logger.warning("Unknown theme %r; using %r capabilities.", theme, DEFAULT_THEME)
        name, layouts = DEFAULT_THEME, THEME_CAPABILITIES[DEFAULT_THEME]
    return ThemeCapabilities(theme=name, layouts=layouts)
