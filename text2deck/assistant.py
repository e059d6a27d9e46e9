"""Multi-turn deck assistant with tool calling.

The model may edit the in-memory deck through three tools. A turn allows at
most ``max_rounds`` sequential tool rounds; after that the final answer is
streamed without tools.
"""
from __future__ import annotations

import json
from typing import Any, AsyncIterator, Callable, Dict, List

import requests

from . import deck_tools
from .errors import DeckEditError, GenerationError, UnsupportedProviderError
from .pipeline_common import CHAT_MAX_ROUNDS, logger

SYSTEM_PROMPT = """
You are a Slidev presentation assistant. The user's current deck (slides.md) is shown below.
Use the tools to change the deck; page indexes are 0-based and count slides only (headmatter and layout frontmatter belong to the slide after them).
Keep every <!-- slide_id: ... --> anchor line intact when you rewrite a page.
Answer briefly after making changes.
""".strip()

TOOLS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "update_page",
            "description": "Update the content of a specific slide page",
            "parameters": {
                "type": "object",
                "properties": {
                    "pageIndex": {"type": "integer", "description": "The index of the slide (0-based)"},
                    "markdown": {"type": "string", "description": "The new markdown content for the slide"},
                },
                "required": ["pageIndex", "markdown"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "insert_page",
            "description": "Insert a new slide page after a specific index",
            "parameters": {
                "type": "object",
                "properties": {
                    "afterIndex": {"type": "integer", "description": "The index to insert after"},
                    "layout": {"type": "string", "description": "The layout type (default, section, etc.)"},
                },
                "required": ["afterIndex", "layout"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "apply_theme",
            "description": "Apply a global theme to the presentation",
            "parameters": {
                "type": "object",
                "properties": {
                    "themeName": {"type": "string", "description": "The name of the theme"},
                },
                "required": ["themeName"],
            },
        },
    },
]


class ChatAssistant:
    def __init__(self, llm, deck_markdown: str = "", max_rounds: int = CHAT_MAX_ROUNDS) -> None:
        if not hasattr(llm, "chat") or not hasattr(llm, "stream"):
            raise UnsupportedProviderError(
                f"Provider {getattr(llm, 'provider', '?')!r} does not support tool calling; "
                "use an OpenAI-compatible backend for chat."
            )
        self.llm = llm
        self.deck_markdown = deck_markdown
        self.max_rounds = max(1, int(max_rounds))
        self.messages: List[Dict[str, Any]] = [{"role": "system", "content": ""}]
        self._handlers: Dict[str, Callable[[Dict[str, Any]], str]] = {
            "update_page": self._update_page,
            "insert_page": self._insert_page,
            "apply_theme": self._apply_theme,
        }

    def _system_message(self) -> Dict[str, Any]:
        pages = deck_tools.page_count(self.deck_markdown)
        return {
            "role": "system",
            "content": f"{SYSTEM_PROMPT}\n\nCURRENT DECK ({pages} pages):\n{self.deck_markdown}",
        }

    def _update_page(self, args: Dict[str, Any]) -> str:
        self.deck_markdown = deck_tools.update_page(self.deck_markdown, int(args["pageIndex"]), str(args["markdown"]))
        return "Page updated successfully."

    def _insert_page(self, args: Dict[str, Any]) -> str:
        self.deck_markdown = deck_tools.insert_page(
            self.deck_markdown, int(args["afterIndex"]), str(args.get("layout") or "default")
        )
        return "Page inserted successfully."

    def _apply_theme(self, args: Dict[str, Any]) -> str:
        self.deck_markdown = deck_tools.apply_theme(self.deck_markdown, str(args["themeName"]))
        return "Theme applied."

    def execute_tool(self, name: str, arguments: str) -> str:
        """Run one tool call; failures come back as text for the model to read."""
        handler = self._handlers.get(name)
        if handler is None:
            return "Unknown tool"
        try:
            args = json.loads(arguments or "{}")
            if not isinstance(args, dict):
                raise ValueError("arguments must be a JSON object")
            result = handler(args)
        except (ValueError, KeyError, TypeError, DeckEditError) as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return f"Error: {exc}"
        logger.info("Tool %s applied.", name)
        return result

    async def _chat_round(self) -> Dict[str, Any]:
        try:
            return await self.llm.chat(self.messages, TOOLS)
        except requests.RequestException as exc:
            raise GenerationError(f"Chat request failed: {exc}") from exc

    async def run_turn(self, user_text: str) -> AsyncIterator[str]:
        """Yield the assistant's reply for one user message."""
        self.messages[0] = self._system_message()
        self.messages.append({"role": "user", "content": user_text})

        for round_no in range(1, self.max_rounds + 1):
            message = await self._chat_round()
            tool_calls = message.get("tool_calls") or []
            if not tool_calls:
                content = message.get("content") or ""
                self.messages.append({"role": "assistant", "content": content})
                if content:
                    yield content
                return
            logger.debug("Tool round %s/%s: %s call(s).", round_no, self.max_rounds, len(tool_calls))
            self.messages.append({"role": "assistant", "content": message.get("content"), "tool_calls": tool_calls})
            for call in tool_calls:
                fn = call.get("function") or {}
                result = self.execute_tool(fn.get("name", ""), fn.get("arguments") or "{}")
                self.messages.append({"role": "tool", "tool_call_id": call.get("id"), "content": result})
            self.messages[0] = self._system_message()

        logger.info("Tool round limit (%s) reached; streaming the final answer.", self.max_rounds)
        chunks: List[str] = []
        try:
            async for chunk in self.llm.stream(self.messages):
                chunks.append(chunk)
                yield chunk
        except requests.RequestException as exc:
            raise GenerationError(f"Chat stream failed: {exc}") from exc
        self.messages.append({"role": "assistant", "content": "".join(chunks)})
