"""Provider-agnostic text generation.

Each adapter exposes ``async generate(system, prompt, timeout_sec) -> str``. HTTP calls go
through ``requests`` in a worker thread so the event loop stays free and the
caller can bound every call with ``asyncio.wait_for``; ``timeout_sec`` also caps
the socket timeout so the worker thread ends by the same deadline. API keys are never
logged.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Protocol

import requests

from .errors import GenerationError, GenerationTimeoutError, UnsupportedProviderError

OPENAI_BASE_URL = "https://api.openai.com/v1"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"

DEFAULT_BASE_URLS: Mapping[str, str] = MappingProxyType(
    {
        "openai": OPENAI_BASE_URL,
        "ollama": "http://localhost:11434/v1",
        "deepseek": "https://api.deepseek.com/v1",
    }
)


@dataclass(frozen=True)
class LLMConfig:
    provider: str
    model: str
    api_key: str = ""
    base_url: str = ""
    temperature: float = 0.2
    max_tokens: int = 8000
    request_timeout_sec: float = 600.0


class GenerationCapability(Protocol):
    provider: str

    async def generate(self, system: str, prompt: str, timeout_sec: Optional[float] = None) -> str:
        ...


def _raise_for_status(name: str, resp: requests.Response) -> None:
    if resp.status_code >= 400:
        raise GenerationError(f"{name} error: {resp.status_code} {resp.text[:500]}")


def _http_timeout(cfg: LLMConfig, timeout_sec: Optional[float]) -> float:
    # worker threads ignore cancellation; the socket must expire by the stage deadline
    if timeout_sec is None:
        return cfg.request_timeout_sec
    return min(cfg.request_timeout_sec, timeout_sec)


class OpenAIChatLLM:
    """OpenAI Chat Completions and every server speaking the same protocol."""

    def __init__(self, cfg: LLMConfig) -> None:
        self.cfg = cfg
        self.provider = cfg.provider
        base = cfg.base_url or DEFAULT_BASE_URLS.get(cfg.provider, "")
        if not base:
            raise UnsupportedProviderError(f"base_url is required for provider {cfg.provider!r}")
        self.url = base.rstrip("/") + "/chat/completions"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.cfg.api_key:
            headers["Authorization"] = f"Bearer {self.cfg.api_key}"
        return headers

    def _post(
        self, payload: Dict[str, Any], stream: bool = False, timeout_sec: Optional[float] = None
    ) -> requests.Response:
        resp = requests.post(
            self.url,
            headers=self._headers(),
            json=payload,
            timeout=_http_timeout(self.cfg, timeout_sec),
            stream=stream,
        )
        _raise_for_status("OpenAI", resp)
        return resp

    def _complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[dict]] = None,
        timeout_sec: Optional[float] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.cfg.model,
            "temperature": self.cfg.temperature,
            "messages": messages,
        }
        if tools:
            payload["tools"] = tools
        data = self._post(payload, timeout_sec=timeout_sec).json()
        try:
            return data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError):
            raise GenerationError(f"OpenAI unexpected response: {str(data)[:500]}")

    async def generate(self, system: str, prompt: str, timeout_sec: Optional[float] = None) -> str:
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ]
        message = await asyncio.to_thread(self._complete, messages, None, timeout_sec)
        text = message.get("content") or ""
        if not text.strip():
            raise GenerationError("OpenAI returned no text content")
        return text

    async def chat(self, messages: List[Dict[str, Any]], tools: Optional[List[dict]] = None) -> Dict[str, Any]:
        """One non-streaming round; the returned message may carry ``tool_calls``."""
        return await asyncio.to_thread(self._complete, messages, tools)

    async def stream(self, messages: List[Dict[str, Any]]) -> AsyncIterator[str]:
        payload = {
            "model": self.cfg.model,
            "temperature": self.cfg.temperature,
            "messages": messages,
            "stream": True,
        }
        resp = await asyncio.to_thread(self._post, payload, True)
        lines = resp.iter_lines(decode_unicode=True)
        try:
            while True:
                line = await asyncio.to_thread(next, lines, None)
                if line is None:
                    break
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    break
                try:
                    chunk = json.loads(data)
                    delta = chunk["choices"][0].get("delta", {}).get("content")
                except (ValueError, KeyError, IndexError):
                    continue
                if delta:
                    yield delta
        finally:
            resp.close()


class AnthropicLLM:
    def __init__(self, cfg: LLMConfig) -> None:
        self.cfg = cfg
        self.provider = cfg.provider

    def _complete(self, system: str, prompt: str, timeout_sec: Optional[float] = None) -> str:
        headers = {
            "x-api-key": self.cfg.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        payload = {
            "model": self.cfg.model,
            "max_tokens": self.cfg.max_tokens,
            "temperature": self.cfg.temperature,
            "system": system,
            "messages": [{"role": "user", "content": [{"type": "text", "text": prompt}]}],
        }
        resp = requests.post(
            ANTHROPIC_URL, headers=headers, json=payload, timeout=_http_timeout(self.cfg, timeout_sec)
        )
        _raise_for_status("Anthropic", resp)
        data = resp.json()
        text = "".join(
            block.get("text", "") for block in data.get("content") or [] if block.get("type") == "text"
        )
        if not text.strip():
            raise GenerationError("Anthropic returned no text content")
        return text

    async def generate(self, system: str, prompt: str, timeout_sec: Optional[float] = None) -> str:
        return await asyncio.to_thread(self._complete, system, prompt, timeout_sec)


class GeminiLLM:
    def __init__(self, cfg: LLMConfig) -> None:
        self.cfg = cfg
        self.provider = cfg.provider

    def _complete(self, system: str, prompt: str, timeout_sec: Optional[float] = None) -> str:
        base = (self.cfg.base_url or GEMINI_BASE_URL).rstrip("/")
        url = f"{base}/v1beta/models/{self.cfg.model}:generateContent"
        payload = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.cfg.temperature,
                "maxOutputTokens": self.cfg.max_tokens,
            },
        }
        resp = requests.post(
            url,
            headers={"content-type": "application/json", "x-goog-api-key": self.cfg.api_key},
            json=payload,
            timeout=_http_timeout(self.cfg, timeout_sec),
        )
        _raise_for_status("Gemini", resp)
        data = resp.json()
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            raise GenerationError(f"Gemini unexpected response: {str(data)[:500]}")
        text = "".join(p.get("text", "") for p in parts)
        if not text.strip():
            raise GenerationError("Gemini returned no text content")
        return text

    async def generate(self, system: str, prompt: str, timeout_sec: Optional[float] = None) -> str:
        return await asyncio.to_thread(self._complete, system, prompt, timeout_sec)


PROVIDERS: Mapping[str, type] = MappingProxyType(
    {
        "openai": OpenAIChatLLM,
        "openai-compatible": OpenAIChatLLM,
        "ollama": OpenAIChatLLM,
        "deepseek": OpenAIChatLLM,
        "anthropic": AnthropicLLM,
        "google": GeminiLLM,
        "gemini": GeminiLLM,
    }
)


def init_llm(cfg: LLMConfig) -> GenerationCapability:
    provider = (cfg.provider or "").strip().lower()
    adapter = PROVIDERS.get(provider)
    if adapter is None:
        raise UnsupportedProviderError(f"Unsupported provider: {cfg.provider!r}")
    if provider != cfg.provider:
        cfg = replace(cfg, provider=provider)
    return adapter(cfg)


async def safe_invoke(
    logger: logging.Logger,
    llm: GenerationCapability,
    system: str,
    prompt: str,
    *,
    stage: str,
    timeout_sec: float,
    timeout_error: type = GenerationTimeoutError,
    failure_error: type = GenerationError,
) -> str:
    """Await one generation call bounded by ``timeout_sec``.

    No retries: expiry raises ``timeout_error``, provider and network failures
    raise ``failure_error`` chained to the cause.
    """
    logger.debug("%s: calling %s (timeout %ss, prompt %s chars)", stage, llm.provider, timeout_sec, len(prompt))
    try:
        return await asyncio.wait_for(llm.generate(system, prompt, timeout_sec=timeout_sec), timeout=timeout_sec)
    except GenerationTimeoutError:
        raise
    except (asyncio.TimeoutError, requests.Timeout) as exc:
        raise timeout_error(stage, timeout_sec) from exc
    except (GenerationError, requests.RequestException) as exc:
        if isinstance(exc, failure_error):
            raise
        raise failure_error(f"{stage} failed: {exc}") from exc
