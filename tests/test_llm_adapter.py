"""Unit tests for completion service implementations."""
from __future__ import annotations

import json

import httpx
import pytest

from docqa.config import ModelSettings
from docqa.llm import (
    CompletionError,
    MockCompletionService,
    OpenAICompatibleCompletionService,
    create_completion_service,
    get_completion_service,
)


def test_mock_completion_echoes_last_prompt_line() -> None:
    service = MockCompletionService()

    prompt = "Context here.\n\nExplain the difference between contracts and torts.\n"

    assert service.generate(prompt) == "MOCK_ANSWER: Explain the difference between contracts and torts."
    assert service.prompts == [prompt]


def test_mock_completion_streams_tokens() -> None:
    tokens = list(MockCompletionService(responses=lambda prompt: "one two three").complete("q"))

    assert tokens == ["one", " two", " three"]


def _sse(*chunks: str) -> bytes:
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": chunk}}]})
        for chunk in chunks
    ]
    lines.extend([": keep-alive", "data: not-json", "data: [DONE]"])
    return ("\n\n".join(lines) + "\n\n").encode("utf-8")


def test_openai_compatible_service_streams_deltas() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        captured["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, content=_sse("Hel", "lo", "!"))

    settings = ModelSettings(llm_backend="openai", llm_model="test-model", llm_api_key="secret")
    client = httpx.Client(
        base_url="http://llm.test/v1",
        headers={"Authorization": "Bearer secret"},
        transport=httpx.MockTransport(handler),
    )
    service = OpenAICompatibleCompletionService(settings, client=client)

    assert list(service.complete("Say hello", conversation_id="conv-1")) == ["Hel", "lo", "!"]
    assert captured["path"] == "/v1/chat/completions"
    assert captured["body"]["model"] == "test-model"
    assert captured["body"]["stream"] is True
    assert captured["body"]["messages"] == [{"role": "user", "content": "Say hello"}]
    assert captured["body"]["user"] == "conv-1"
    assert captured["auth"] == "Bearer secret"


def test_openai_compatible_service_wraps_http_errors() -> None:
    client = httpx.Client(
        base_url="http://llm.test/v1",
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
    )
    service = OpenAICompatibleCompletionService(ModelSettings(llm_backend="openai"), client=client)

    with pytest.raises(CompletionError):
        service.generate("anything")


def test_factory_selects_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    assert isinstance(create_completion_service(ModelSettings(llm_backend="mock")), MockCompletionService)
    assert isinstance(
        create_completion_service(ModelSettings(llm_backend="openai")),
        OpenAICompatibleCompletionService,
    )
    with pytest.raises(ValueError):
        create_completion_service(ModelSettings(llm_backend="carrier-pigeon"))

    assert isinstance(get_completion_service(), MockCompletionService)
    assert get_completion_service() is get_completion_service()
