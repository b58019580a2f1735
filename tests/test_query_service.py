from __future__ import annotations

import pytest

from docqa.config import RetrievalSettings
from docqa.errors import ValidationError
from docqa.llm import MockCompletionService
from docqa.models import Segment
from docqa.services import QueryService

ALL_STAGES = {
    "enable_transform": True,
    "enable_expand": True,
    "enable_retrieve": True,
    "enable_post_process": True,
    "enable_augment": True,
}


@pytest.fixture
def populated(registry):
    registry.get_or_create("kb1").add(
        [
            Segment(text="Refunds are issued within 30 days of purchase.", metadata={"file_name": "policy.txt"}),
            Segment(text="The office is closed on public holidays.", metadata={"file_name": "hours.txt"}),
        ]
    )
    return registry


def _service(registry, embedder, completion=None, **settings) -> QueryService:
    return QueryService(
        registry=registry,
        completion=completion or MockCompletionService(),
        embedder=embedder,
        settings=RetrievalSettings(**settings),
    )


def test_no_stages_sends_question_verbatim(populated, store, embedder) -> None:
    completion = MockCompletionService()
    service = _service(populated, embedder, completion)

    result = service.answer("What is the refund window?", "KB1")

    assert completion.prompts == ["What is the refund window?"]
    assert result.answer == "MOCK_ANSWER: What is the refund window?"
    assert result.collection == "kb1"
    assert result.fast_path is True
    assert result.sources == []
    assert store.search_calls == 0


@pytest.mark.parametrize("collection", ["missing", "empty"])
def test_missing_or_empty_collection_takes_fast_path(collection, registry, store, embedder) -> None:
    registry.get_or_create("empty")
    completion = MockCompletionService()
    service = _service(registry, embedder, completion, **ALL_STAGES)

    result = service.answer("Anything there?", collection)

    assert result.fast_path is True
    assert completion.prompts == ["Anything there?"]
    assert store.search_calls == 0


def test_unavailable_store_still_answers(populated, store, embedder) -> None:
    store.available = False
    completion = MockCompletionService()

    result = _service(populated, embedder, completion, **ALL_STAGES).answer("Still there?", "kb1")

    assert result.fast_path is True
    assert result.answer == "MOCK_ANSWER: Still there?"


def test_all_stages_produce_augmented_prompt(populated, embedder) -> None:
    def respond(prompt: str) -> str:
        if "different versions" in prompt:
            return "refund days purchase\nrefunds issued days"
        if "Rewritten query" in prompt:
            return "refunds issued within days"
        return "Within 30 days."

    completion = MockCompletionService(responses=respond)
    service = _service(populated, embedder, completion, similarity_threshold=0.4, **ALL_STAGES)

    result = service.answer("how long do i have for refunds??", "kb1")

    final_prompt = completion.prompts[-1]
    assert final_prompt.startswith("Context information is below.")
    assert "Refunds are issued within 30 days of purchase." in final_prompt
    assert "Query: refunds issued within days" in final_prompt
    assert result.answer == "Within 30 days."
    assert result.fast_path is False
    assert [segment.source for segment in result.sources] == ["policy.txt"]


def test_retrieve_only_lists_documents_with_distance(populated, embedder) -> None:
    completion = MockCompletionService()
    service = _service(populated, embedder, completion, enable_retrieve=True, similarity_threshold=0.0, top_k=1)

    result = service.answer("refunds issued within 30 days", "kb1")

    prompt = completion.prompts[-1]
    assert "distance=" in prompt
    assert "policy.txt" in prompt
    assert "Question: refunds issued within 30 days" in prompt
    assert len(result.sources) == 1


def test_blank_question_is_rejected(populated, embedder) -> None:
    with pytest.raises(ValidationError):
        _service(populated, embedder).answer("   ", "kb1")


def test_invalid_collection_name_is_rejected(populated, embedder) -> None:
    with pytest.raises(ValidationError):
        _service(populated, embedder).answer("question", "!!!")


def test_stream_yields_tokens(populated, embedder) -> None:
    service = _service(populated, embedder)

    tokens = list(service.stream("Stream this answer", "kb1"))

    assert len(tokens) > 1
    assert "".join(tokens) == "MOCK_ANSWER: Stream this answer"


def test_history_is_compressed_before_retrieval(populated, embedder) -> None:
    def respond(prompt: str) -> str:
        if "Standalone query" in prompt:
            return "refunds issued within days"
        if "Rewritten query" in prompt:
            return "and how long?"
        return "ok"

    completion = MockCompletionService(responses=respond)
    service = _service(
        populated,
        embedder,
        completion,
        enable_transform=True,
        enable_retrieve=True,
        enable_augment=True,
        similarity_threshold=0.4,
    )

    result = service.answer("and how long?", "kb1", history=["Tell me about refunds."])

    assert any("Tell me about refunds." in prompt for prompt in completion.prompts)
    assert [segment.source for segment in result.sources] == ["policy.txt"]
