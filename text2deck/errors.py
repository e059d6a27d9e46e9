"""Error types raised across the pipeline."""
from __future__ import annotations


class Text2DeckError(Exception):
    pass


class GenerationTimeoutError(Text2DeckError, TimeoutError):
    def __init__(self, stage: str, timeout_sec: float) -> None:
        self.stage = stage
        self.timeout_sec = timeout_sec
        super().__init__(
            f"{stage} timed out after {timeout_sec:g}s. "
            "Check your network connection and the provider/base_url/model settings."
        )


class ExtractionTimeoutError(GenerationTimeoutError):
    pass


class OutlineTimeoutError(GenerationTimeoutError):
    pass


class DeckTimeoutError(GenerationTimeoutError):
    pass


class GenerationError(Text2DeckError):
    """The provider call itself failed (HTTP, network, empty payload)."""


class PreprocessError(GenerationError):
    pass


class MalformedResponseError(Text2DeckError):
    def __init__(self, message: str, raw_text: str = "") -> None:
        self.raw_text = raw_text
        super().__init__(message)


class MalformedCardsError(MalformedResponseError):
    pass


class MalformedOutlineError(MalformedResponseError):
    pass


class UnsupportedProviderError(Text2DeckError):
    pass


class QuoteIntegrityError(Text2DeckError):
    def __init__(self, card_id: str, quote: str) -> None:
        self.card_id = card_id
        self.quote = quote
        super().__init__(f"Card {card_id} quote is not a verbatim excerpt of the source: {quote[:80]!r}")


class DeckEditError(Text2DeckError):
    pass
