from __future__ import annotations

from text2deck.deck_parser import parse_deck, read_anchor, split_fragments, strip_anchor

DECK = """<!-- slide_id: cover -->
# Welcome

---

<!-- slide_id: s01 -->
# Revenue
- Revenue grew 12%

---
# No anchor here
---
"""


def test_split_drops_empty_fragments() -> None:
    assert len(split_fragments(DECK)) == 3
    assert split_fragments("") == []
    assert split_fragments("---\n---\n") == []


def test_parse_reads_anchors_in_order() -> None:
    slides = parse_deck(DECK)
    assert [s.slide_id for s in slides] == ["cover", "s01", "unknown-2"]
    assert [s.index for s in slides] == [0, 1, 2]
    assert slides[0].anchored and slides[1].anchored
    assert not slides[2].anchored


def test_separator_must_be_alone_on_its_line() -> None:
    deck = "<!-- slide_id: a -->\ntext --- inline\n ---\n----\nmore"
    slides = parse_deck(deck)
    assert len(slides) == 1
    assert slides[0].slide_id == "a"


def test_crlf_line_endings() -> None:
    slides = parse_deck("<!-- slide_id: a -->\r\nA\r\n---\r\n<!-- slide_id: b -->\r\nB\r\n")
    assert [s.slide_id for s in slides] == ["a", "b"]


def test_anchor_must_lead_the_fragment() -> None:
    slides = parse_deck("# Title\n<!-- slide_id: late -->\nbody")
    assert slides[0].slide_id == "unknown-0"
    assert read_anchor("  <!--slide_id:s09-->\nbody") == "s09"


def test_strip_anchor_returns_body() -> None:
    assert strip_anchor("<!-- slide_id: s01 -->\n# Revenue\n- x") == "# Revenue\n- x"
    assert strip_anchor("# plain") == "# plain"


def test_content_keeps_anchor_line() -> None:
    slide = parse_deck(DECK)[1]
    assert slide.content.startswith("<!-- slide_id: s01 -->")
    assert "Revenue grew 12%" in slide.content


def test_headmatter_and_layout_blocks_fold_into_their_slide() -> None:
    deck = (
        "---\ntheme: seriph\nfonts:\n  sans: Inter\n---\n<!-- slide_id: cover -->\n# Q3\n"
        "---\nlayout: two-cols\n---\n<!-- slide_id: s01 -->\n# Revenue\n"
    )
    slides = parse_deck(deck)
    assert [(s.slide_id, s.index) for s in slides] == [("cover", 0), ("s01", 1)]
    assert slides[0].frontmatter == "theme: seriph\nfonts:\n  sans: Inter"
    assert slides[1].frontmatter == "layout: two-cols"
    assert slides[1].content.startswith("<!-- slide_id: s01 -->")


def test_key_value_text_before_the_first_separator_is_a_slide() -> None:
    slides = parse_deck("Revenue: 12%\n---\n<!-- slide_id: s01 -->\n# A")
    assert [s.slide_id for s in slides] == ["unknown-0", "s01"]
    assert slides[0].frontmatter == ""


def test_trailing_key_value_fragment_is_a_slide() -> None:
    slides = parse_deck("<!-- slide_id: a -->\nA\n---\nnote: last")
    assert [s.slide_id for s in slides] == ["a", "unknown-1"]
