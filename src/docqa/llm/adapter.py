"""Adapter abstractions for text completion providers."""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterator, Optional

import httpx

from docqa.config import ModelSettings, get_settings

LOGGER = logging.getLogger(__name__)


class CompletionError(RuntimeError):
    """Raised when the completion backend fails to produce an answer."""


class CompletionService(ABC):
    """Common contract for streaming text completion backends."""

    @abstractmethod
    def complete(self, prompt: str, conversation_id: Optional[str] = None) -> Iterator[str]:
        """Yield completion tokens for the provided prompt."""

    def generate(self, prompt: str, conversation_id: Optional[str] = None) -> str:
        """Return the full completion as a single string."""

        return "".join(self.complete(prompt, conversation_id))


class MockCompletionService(CompletionService):
    """Deterministic backend used in tests and offline runs.

    Without ``responses`` it echoes the last line of the prompt prefixed with
    ``MOCK_ANSWER:``. Prompts are recorded in ``prompts``.
    """

    def __init__(self, responses: Optional[Callable[[str], str]] = None) -> None:
        self._responses = responses
        self.prompts: list[str] = []

    def complete(self, prompt: str, conversation_id: Optional[str] = None) -> Iterator[str]:
        self.prompts.append(prompt)
        if self._responses is not None:
            text = self._responses(prompt)
        else:
            lines = [line for line in prompt.strip().splitlines() if line.strip()]
            text = f"MOCK_ANSWER: {lines[-1] if lines else ''}"
        for index, token in enumerate(text.split(" ")):
            yield token if index == 0 else f" {token}"


class OpenAICompatibleCompletionService(CompletionService):
    """Streams chat completions from an OpenAI compatible HTTP endpoint."""

    def __init__(
        self,
        settings: Optional[ModelSettings] = None,
        *,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings or get_settings().models
        headers = {}
        if self.settings.llm_api_key:
            headers["Authorization"] = f"Bearer {self.settings.llm_api_key}"
        self._client = client or httpx.Client(
            base_url=self.settings.llm_base_url,
            headers=headers,
            timeout=self.settings.llm_timeout,
        )

    def complete(self, prompt: str, conversation_id: Optional[str] = None) -> Iterator[str]:
        payload = {
            "model": self.settings.llm_model,
            "stream": True,
            "messages": [{"role": "user", "content": prompt}],
        }
        if conversation_id:
            payload["user"] = conversation_id
        try:
            with self._client.stream("POST", "/chat/completions", json=payload) as response:
                response.raise_for_status()
                for line in response.iter_lines():
                    token = _parse_stream_line(line)
                    if not token:
                        continue
                    yield token
        except httpx.HTTPError as exc:
            LOGGER.error("Completion request failed: %s", exc)
            raise CompletionError(f"Completion request failed: {exc}") from exc


def _parse_stream_line(line: str) -> Optional[str]:
    """Extract the delta text from one server-sent event line."""

    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data or data == "[DONE]":
        return None
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError:
        LOGGER.warning("Skipping malformed stream chunk: %s", data[:80])
        return None
    choices = chunk.get("choices") or []
    if not choices:
        return None
    delta = choices[0].get("delta") or {}
    return delta.get("content") or ""


def create_completion_service(settings: Optional[ModelSettings] = None) -> CompletionService:
    settings = settings or get_settings().models
    if settings.llm_backend == "mock":
        return MockCompletionService()
    if settings.llm_backend == "openai":
        return OpenAICompatibleCompletionService(settings)
    raise ValueError(f"Unsupported LLM_BACKEND '{settings.llm_backend}'")
