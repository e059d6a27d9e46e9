"""CLI entrypoint for running the text2deck pipeline from the terminal."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import re
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from . import __version__
from .assistant import ChatAssistant
from .config import AppConfig, load_config
from .coverage import validate_coverage
from .errors import Text2DeckError
from .llm import LLMConfig, init_llm
from .logging_utils import setup_logging
from .models import CoverageReport
from .pipeline import Pipeline
from .pipeline_common import RunConfig
from .pipeline_outline import estimate_page_count
from .prompts import THEME_CAPABILITIES, get_merged_styles

logger = logging.getLogger("text2deck")


def print_helper() -> None:
    print("text2deck help")
    print("")
    print("Quick start:")
    print('  text2deck run --input notes.txt --style business --theme seriph')
    print('  text2deck validate --outline outputs/outline.json --deck outputs/slides.md')
    print("  text2deck estimate 12")
    print('  text2deck chat --deck outputs/slides.md')
    print("")
    print("Backend settings come from config.json (or $TEXT2DECK_CONFIG) and")
    print("TEXT2DECK_PROVIDER / TEXT2DECK_MODEL / TEXT2DECK_API_KEY / TEXT2DECK_BASE_URL.")
    print("")
    print("Full options:")
    print("  text2deck --help")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Turn source text into a Slidev deck and verify its coverage.")
    p.add_argument("--version", action="version", version=f"text2deck {__version__}")
    p.add_argument("--config", default=None, help="Path to config.json (default: $TEXT2DECK_CONFIG or ./config.json)")
    p.add_argument("--verbose", action="store_true", help="Verbose logging")
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the full pipeline on a text file")
    run.add_argument("--input", required=True, help="Source text file")
    run.add_argument("--style", default="business", help="Prompt style id")
    run.add_argument("--theme", default="default", help="Slidev theme name")
    run.add_argument("--topic", default="", help="Optional topic hint for the outline")
    run.add_argument("--out-dir", default=None, help="Output directory (default: ./text2deck_runs/<input stem>)")
    run.add_argument("--extract-timeout", type=float, default=None, help="Card extraction timeout in seconds")
    run.add_argument("--outline-timeout", type=float, default=None, help="Outline generation timeout in seconds")
    run.add_argument("--deck-timeout", type=float, default=None, help="Deck generation timeout in seconds")

    val = sub.add_parser("validate", help="Check a deck against its outline (no model calls)")
    val.add_argument("--outline", required=True, help="outline.json")
    val.add_argument("--deck", required=True, help="slides.md")
    val.add_argument("--json", action="store_true", help="Print the report as JSON")

    est = sub.add_parser("estimate", help="Print the target page count for a card count")
    est.add_argument("cards", type=int)

    chat = sub.add_parser("chat", help="Edit a deck interactively with the assistant")
    chat.add_argument("--deck", required=True, help="slides.md to edit in place")
    chat.add_argument("--max-rounds", type=int, default=None, help="Max tool rounds per turn")

    sub.add_parser("styles", help="List prompt styles and themes")
    return p.parse_args(argv)


def _slugify(s: str, max_len: int = 80) -> str:
    s = re.sub(r"[^a-zA-Z0-9]+", "_", (s or "").strip()).strip("_")
    return (s or "deck")[:max_len]


def _llm_from_config(app_cfg: AppConfig):
    ai = app_cfg.ai
    return init_llm(LLMConfig(provider=ai.provider, model=ai.model, api_key=ai.api_key, base_url=ai.base_url))


def print_report(report: CoverageReport, console: Optional[Console] = None) -> None:
    console = console or Console()
    s = report.summary
    table = Table(title=f"Coverage (outline {report.outline_version})")
    table.add_column("Outline slides", justify="right")
    table.add_column("Deck slides", justify="right")
    table.add_column("Missing slides", justify="right")
    table.add_column("Missing points", justify="right")
    table.add_row(
        str(s.total_outline_slides),
        str(s.total_deck_slides),
        str(s.missing_slide_count),
        str(s.missing_point_count),
    )
    console.print(table)

    if report.proposed_patches:
        patches = Table(title="Proposed patches")
        patches.add_column("Patch")
        patches.add_column("Op")
        patches.add_column("Slide")
        patches.add_column("Detail")
        for patch in report.proposed_patches:
            if patch.op == "insert_slide":
                detail = f"insert at {patch.insert_at_index}"
            else:
                detail = "append: " + "; ".join(patch.append)
            patches.add_row(patch.patch_id, patch.op, patch.slide_id, detail)
        console.print(patches)
    if report.extra_slide_ids:
        console.print(f"Slides not in the outline: {', '.join(report.extra_slide_ids)}")
    for note in report.notes:
        console.print(note)


def cmd_run(args: argparse.Namespace, app_cfg: AppConfig) -> int:
    input_path = Path(args.input).expanduser().resolve()
    if not input_path.exists():
        logger.error("Input not found: %s", input_path)
        return 2
    out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else Path("text2deck_runs") / _slugify(input_path.stem)

    cfg = RunConfig(
        out_dir=out_dir,
        style_id=args.style,
        theme=args.theme,
        topic=(args.topic or "").strip(),
        verbose=args.verbose,
        custom_styles=list(app_cfg.custom_styles),
    )
    if args.extract_timeout:
        cfg.extract_timeout_sec = args.extract_timeout
    if args.outline_timeout:
        cfg.outline_timeout_sec = args.outline_timeout
    if args.deck_timeout:
        cfg.deck_timeout_sec = args.deck_timeout
    setup_logging(args.verbose, log_path=out_dir / "run.log")

    logger.info("Initializing LLM (%s / %s)...", app_cfg.ai.provider, app_cfg.ai.model)
    llm = _llm_from_config(app_cfg)
    pipeline = Pipeline(cfg, llm)
    result = asyncio.run(pipeline.run(input_path.read_text(encoding="utf-8")))
    print_report(result.report)
    print("\nOutput directory:", out_dir.resolve())
    return 0 if result.report.is_complete else 3


def cmd_validate(args: argparse.Namespace) -> int:
    outline = json.loads(Path(args.outline).read_text(encoding="utf-8"))
    deck = Path(args.deck).read_text(encoding="utf-8")
    report = validate_coverage(outline, deck)
    if args.json:
        print(json.dumps(report.model_dump(mode="json"), indent=2, ensure_ascii=False))
    else:
        print_report(report)
    return 0 if report.is_complete else 3


def cmd_chat(args: argparse.Namespace, app_cfg: AppConfig) -> int:
    deck_path = Path(args.deck).expanduser()
    deck = deck_path.read_text(encoding="utf-8") if deck_path.exists() else ""
    assistant = ChatAssistant(
        _llm_from_config(app_cfg),
        deck_markdown=deck,
        max_rounds=args.max_rounds or RunConfig().chat_max_rounds,
    )

    async def _turn(text: str) -> None:
        async for chunk in assistant.run_turn(text):
            print(chunk, end="", flush=True)
        print("")

    print("Type your request (empty line or 'q' to quit).")
    while True:
        text = input("\n> ").strip()
        if not text or text.lower() in {"q", "quit", "exit"}:
            break
        before = assistant.deck_markdown
        asyncio.run(_turn(text))
        if assistant.deck_markdown != before:
            deck_path.write_text(assistant.deck_markdown, encoding="utf-8")
            logger.info("Deck updated: %s", deck_path)
    return 0


def cmd_styles(app_cfg: AppConfig) -> int:
    console = Console()
    table = Table(title="Prompt styles")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Built-in")
    table.add_column("Description")
    for style in get_merged_styles(app_cfg.custom_styles):
        table.add_row(style.id, style.name, "yes" if style.is_builtin else "no", style.description)
    console.print(table)
    themes = Table(title="Themes")
    themes.add_column("Theme")
    themes.add_column("Layouts")
    for name, layouts in THEME_CAPABILITIES.items():
        themes.add_row(name, ", ".join(layouts))
    console.print(themes)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if argv and argv[0] == "help":
        print_helper()
        return 0

    load_dotenv(override=False)
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        if args.command == "estimate":
            print(estimate_page_count(args.cards))
            return 0
        if args.command == "validate":
            return cmd_validate(args)
        app_cfg = load_config(Path(args.config) if args.config else None)
        if args.command == "styles":
            return cmd_styles(app_cfg)
        if args.command == "chat":
            return cmd_chat(args, app_cfg)
        return cmd_run(args, app_cfg)
    except Text2DeckError as exc:
        logger.error("%s", exc)
        return 1
    except Exception:
        logger.exception("Unhandled error in text2deck")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
