"""Logging setup for the text2deck CLI."""
import logging
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

CONSOLE_FORMAT = "[%(levelname)s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
NOISY_LOGGERS = ("urllib3", "httpx")


def _file_handler(path: Path) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def setup_logging(verbose: bool = False, log_path: Optional[Path] = None) -> Optional[Path]:
    """Send records to stderr and, when ``log_path`` is given, to a run log.

    Returns the file actually written to: ``log_path``, a temp-dir fallback
    when that cannot be opened, or None.
    """
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    handlers: List[logging.Handler] = [console]

    written: Optional[Path] = None
    if log_path is not None:
        candidates = [Path(log_path), Path(tempfile.gettempdir()) / "text2deck.run.log"]
        for candidate in candidates:
            try:
                handlers.append(_file_handler(candidate))
            except OSError as exc:
                print(f"[WARN] Cannot open log file {candidate} ({exc}).", file=sys.stderr)
                continue
            written = candidate
            break

    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, handlers=handlers, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return written
