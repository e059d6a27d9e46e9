from __future__ import annotations

import asyncio
import logging
import time

import pytest
import requests

from text2deck import llm as llm_module
from text2deck.errors import (
    DeckTimeoutError,
    ExtractionTimeoutError,
    GenerationError,
    GenerationTimeoutError,
    PreprocessError,
    UnsupportedProviderError,
)
from text2deck.llm import AnthropicLLM, GeminiLLM, LLMConfig, OpenAIChatLLM, init_llm, safe_invoke
from text2deck.pipeline_extract import Extractor

LOGGER = logging.getLogger("text2deck.tests")


class _FakeResponse:
    def __init__(self, status_code: int = 200, data=None, lines=None) -> None:
        self.status_code = status_code
        self._data = data or {}
        self._lines = lines or []
        self.text = str(self._data)
        self.closed = False

    def json(self):
        return self._data

    def iter_lines(self, decode_unicode: bool = False):
        return iter(self._lines)

    def close(self) -> None:
        self.closed = True


class _Recorder:
    def __init__(self, response: _FakeResponse) -> None:
        self.response = response
        self.calls: list[dict] = []

    def __call__(self, url, headers=None, json=None, timeout=None, stream=False):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout, "stream": stream})
        return self.response


def test_init_llm_picks_adapter_by_provider() -> None:
    assert isinstance(init_llm(LLMConfig(provider="OpenAI", model="gpt-4o-mini")), OpenAIChatLLM)
    assert isinstance(init_llm(LLMConfig(provider="ollama", model="llama3")), OpenAIChatLLM)
    assert isinstance(init_llm(LLMConfig(provider="anthropic", model="claude")), AnthropicLLM)
    assert isinstance(init_llm(LLMConfig(provider="gemini", model="gemini-pro")), GeminiLLM)
    assert init_llm(LLMConfig(provider="OpenAI", model="m")).provider == "openai"


def test_init_llm_rejects_unknown_provider() -> None:
    with pytest.raises(UnsupportedProviderError):
        init_llm(LLMConfig(provider="mystery", model="m"))


def test_openai_compatible_requires_base_url() -> None:
    with pytest.raises(UnsupportedProviderError):
        init_llm(LLMConfig(provider="openai-compatible", model="m"))
    adapter = init_llm(LLMConfig(provider="openai-compatible", model="m", base_url="http://host:8000/v1/"))
    assert adapter.url == "http://host:8000/v1/chat/completions"


def test_openai_generate_posts_chat_completion(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder(_FakeResponse(data={"choices": [{"message": {"content": "hello"}}]}))
    monkeypatch.setattr(llm_module.requests, "post", recorder)
    adapter = OpenAIChatLLM(LLMConfig(provider="openai", model="gpt-4o-mini", api_key="sk-test"))

    text = asyncio.run(adapter.generate("SYS", "PROMPT"))

    assert text == "hello"
    call = recorder.calls[0]
    assert call["url"] == "https://api.openai.com/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    assert call["json"]["model"] == "gpt-4o-mini"
    assert call["json"]["messages"] == [
        {"role": "system", "content": "SYS"},
        {"role": "user", "content": "PROMPT"},
    ]
    assert "tools" not in call["json"]


def test_openai_http_error_raises_generation_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(llm_module.requests, "post", _Recorder(_FakeResponse(status_code=503, data={"error": "busy"})))
    adapter = OpenAIChatLLM(LLMConfig(provider="ollama", model="llama3"))
    with pytest.raises(GenerationError, match="503"):
        asyncio.run(adapter.generate("s", "p"))


def test_openai_empty_content_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        llm_module.requests, "post", _Recorder(_FakeResponse(data={"choices": [{"message": {"content": ""}}]}))
    )
    adapter = OpenAIChatLLM(LLMConfig(provider="ollama", model="llama3"))
    with pytest.raises(GenerationError):
        asyncio.run(adapter.generate("s", "p"))


def test_openai_chat_sends_tools_and_returns_message(monkeypatch: pytest.MonkeyPatch) -> None:
    message = {"content": None, "tool_calls": [{"id": "t1", "function": {"name": "apply_theme", "arguments": "{}"}}]}
    recorder = _Recorder(_FakeResponse(data={"choices": [{"message": message}]}))
    monkeypatch.setattr(llm_module.requests, "post", recorder)
    adapter = OpenAIChatLLM(LLMConfig(provider="ollama", model="llama3"))

    out = asyncio.run(adapter.chat([{"role": "user", "content": "hi"}], tools=[{"type": "function"}]))

    assert out == message
    assert recorder.calls[0]["json"]["tools"] == [{"type": "function"}]


def test_openai_stream_yields_deltas(monkeypatch: pytest.MonkeyPatch) -> None:
    lines = [
        "",
        'data: {"choices": [{"delta": {"content": "Hel"}}]}',
        ": keep-alive",
        'data: {"choices": [{"delta": {}}]}',
        'data: {"choices": [{"delta": {"content": "lo"}}]}',
        "data: [DONE]",
        'data: {"choices": [{"delta": {"content": "ignored"}}]}',
    ]
    response = _FakeResponse(lines=lines)
    recorder = _Recorder(response)
    monkeypatch.setattr(llm_module.requests, "post", recorder)
    adapter = OpenAIChatLLM(LLMConfig(provider="ollama", model="llama3"))

    async def _collect() -> list:
        return [chunk async for chunk in adapter.stream([{"role": "user", "content": "hi"}])]

    assert asyncio.run(_collect()) == ["Hel", "lo"]
    assert recorder.calls[0]["stream"] is True
    assert recorder.calls[0]["json"]["stream"] is True
    assert response.closed


def test_anthropic_payload_and_text(monkeypatch: pytest.MonkeyPatch) -> None:
    data = {"content": [{"type": "text", "text": "a"}, {"type": "tool_use"}, {"type": "text", "text": "b"}]}
    recorder = _Recorder(_FakeResponse(data=data))
    monkeypatch.setattr(llm_module.requests, "post", recorder)
    adapter = AnthropicLLM(LLMConfig(provider="anthropic", model="claude", api_key="k"))

    assert asyncio.run(adapter.generate("SYS", "PROMPT")) == "ab"
    call = recorder.calls[0]
    assert call["headers"]["x-api-key"] == "k"
    assert call["json"]["system"] == "SYS"
    assert call["json"]["messages"][0]["content"][0]["text"] == "PROMPT"


def test_gemini_payload_and_text(monkeypatch: pytest.MonkeyPatch) -> None:
    data = {"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}
    recorder = _Recorder(_FakeResponse(data=data))
    monkeypatch.setattr(llm_module.requests, "post", recorder)
    adapter = GeminiLLM(LLMConfig(provider="gemini", model="gemini-pro", api_key="g"))

    assert asyncio.run(adapter.generate("SYS", "PROMPT")) == "ok"
    call = recorder.calls[0]
    assert call["url"].endswith("/v1beta/models/gemini-pro:generateContent")
    assert call["headers"]["x-goog-api-key"] == "g"
    assert call["json"]["systemInstruction"]["parts"][0]["text"] == "SYS"


class _ScriptedLLM:
    provider = "fake"

    def __init__(self, delay: float = 0.0, error: Exception | None = None) -> None:
        self.delay = delay
        self.error = error

    async def generate(self, system: str, prompt: str, timeout_sec: float | None = None) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return "ok"


def _invoke(llm, **kwargs) -> str:
    return asyncio.run(safe_invoke(LOGGER, llm, "s", "p", stage="Stage", timeout_sec=kwargs.pop("timeout_sec", 5), **kwargs))


def test_safe_invoke_returns_text() -> None:
    assert _invoke(_ScriptedLLM()) == "ok"


def test_safe_invoke_maps_expiry_to_stage_timeout() -> None:
    with pytest.raises(DeckTimeoutError) as excinfo:
        _invoke(_ScriptedLLM(delay=1.0), timeout_sec=0.01, timeout_error=DeckTimeoutError)
    assert excinfo.value.stage == "Stage"
    assert "provider/base_url/model" in str(excinfo.value)


def test_safe_invoke_maps_http_timeout_to_stage_timeout() -> None:
    with pytest.raises(GenerationTimeoutError):
        _invoke(_ScriptedLLM(error=requests.ReadTimeout("read timed out")))


def test_safe_invoke_wraps_failures() -> None:
    with pytest.raises(GenerationError) as excinfo:
        _invoke(_ScriptedLLM(error=requests.ConnectionError("refused")))
    assert "Stage failed" in str(excinfo.value)

    with pytest.raises(PreprocessError):
        _invoke(_ScriptedLLM(error=GenerationError("bad")), failure_error=PreprocessError)


def test_safe_invoke_does_not_swallow_programming_errors() -> None:
    with pytest.raises(KeyError):
        _invoke(_ScriptedLLM(error=KeyError("boom")))


class _BlockingPost:
    """Stands in for a server that never answers: blocks until the socket timeout."""

    def __init__(self, hang_sec: float = 3.0) -> None:
        self.hang_sec = hang_sec
        self.timeouts: list[float] = []

    def __call__(self, url, headers=None, json=None, timeout=None, stream=False):
        self.timeouts.append(timeout)
        time.sleep(min(self.hang_sec, timeout))
        raise requests.ReadTimeout("read timed out")


def test_stage_deadline_caps_the_http_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    blocking = _BlockingPost()
    monkeypatch.setattr(llm_module.requests, "post", blocking)
    extractor = Extractor(OpenAIChatLLM(LLMConfig(provider="ollama", model="llama3")), timeout_sec=0.2)

    started = time.monotonic()
    with pytest.raises(ExtractionTimeoutError):
        asyncio.run(extractor.extract("some source"))
    elapsed = time.monotonic() - started

    assert blocking.timeouts == [0.2]
    assert elapsed < 1.0


def test_request_timeout_applies_without_a_stage_deadline(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder(_FakeResponse(data={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}))
    monkeypatch.setattr(llm_module.requests, "post", recorder)
    cfg = LLMConfig(provider="gemini", model="gemini-pro", request_timeout_sec=30.0)

    asyncio.run(GeminiLLM(cfg).generate("s", "p"))
    asyncio.run(GeminiLLM(cfg).generate("s", "p", timeout_sec=120.0))
    asyncio.run(GeminiLLM(cfg).generate("s", "p", timeout_sec=5.0))

    assert [c["timeout"] for c in recorder.calls] == [30.0, 30.0, 5.0]


def test_safe_invoke_forwards_the_deadline() -> None:
    seen: list = []

    class _Recording:
        provider = "fake"

        async def generate(self, system: str, prompt: str, timeout_sec: float | None = None) -> str:
            seen.append(timeout_sec)
            return "ok"

    _invoke(_Recording(), timeout_sec=42.0)
    assert seen == [42.0]
