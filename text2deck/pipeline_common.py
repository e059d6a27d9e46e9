"""Shared run configuration and logger for the pipeline stages."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .models import PromptStyle

logger = logging.getLogger("text2deck")
TQDM_NCOLS = 100

EXTRACT_TIMEOUT_SEC = 180.0
OUTLINE_TIMEOUT_SEC = 180.0
DECK_TIMEOUT_SEC = 300.0
CHAT_MAX_ROUNDS = 5


@dataclass
class RunConfig:
    out_dir: Optional[Path] = None
    style_id: str = "business"
    theme: str = "default"
    topic: str = ""
    extract_timeout_sec: float = EXTRACT_TIMEOUT_SEC
    outline_timeout_sec: float = OUTLINE_TIMEOUT_SEC
    deck_timeout_sec: float = DECK_TIMEOUT_SEC
    chat_max_rounds: int = CHAT_MAX_ROUNDS
    verbose: bool = False
    custom_styles: List[PromptStyle] = field(default_factory=list)
