from __future__ import annotations

import logging
from unittest.mock import Mock

import pytest

from docqa.llm import MockCompletionService
from docqa.models import Query, Segment
from docqa.retrieval import (
    CompressionQueryTransformer,
    ConcatenationDocumentJoiner,
    ContextualQueryAugmenter,
    LoggingDocumentPostProcessor,
    MultiQueryExpander,
    RewriteQueryTransformer,
    VectorStoreDocumentRetriever,
    build_filter_expression,
)


def _failing_completion() -> Mock:
    completion = Mock()
    completion.generate.side_effect = RuntimeError("backend down")
    return completion


def test_rewrite_uses_completion_output() -> None:
    completion = MockCompletionService(responses=lambda prompt: "  refund window length  ")
    query = Query(text="hey so how long do I have to get my money back??")

    rewritten = RewriteQueryTransformer(completion).transform(query)

    assert rewritten.text == "refund window length"
    assert query.text.startswith("hey so")
    assert "vector store" in completion.prompts[0]
    assert query.text in completion.prompts[0]


@pytest.mark.parametrize("completion", [MockCompletionService(responses=lambda prompt: "   "), _failing_completion()])
def test_rewrite_keeps_original_on_blank_or_error(completion) -> None:
    query = Query(text="original")

    assert RewriteQueryTransformer(completion).transform(query) is query


def test_compression_without_history_is_noop() -> None:
    completion = MockCompletionService()
    query = Query(text="and for shoes?")

    assert CompressionQueryTransformer(completion).transform(query) is query
    assert completion.prompts == []


def test_compression_folds_history() -> None:
    completion = MockCompletionService(responses=lambda prompt: "return policy for shoes")
    query = Query(text="and for shoes?", history=("What is the return policy?",))

    compressed = CompressionQueryTransformer(completion).transform(query)

    assert compressed.text == "return policy for shoes"
    assert compressed.history == query.history
    assert "What is the return policy?" in completion.prompts[0]


def test_expander_includes_original_first() -> None:
    completion = MockCompletionService(responses=lambda prompt: "variant one\n\nvariant two\nvariant three\n")

    queries = MultiQueryExpander(completion, number_of_queries=3).expand(Query(text="base"))

    assert [query.text for query in queries] == ["base", "variant one", "variant two", "variant three"]


def test_expander_without_original() -> None:
    completion = MockCompletionService(responses=lambda prompt: "a\nb")

    queries = MultiQueryExpander(completion, number_of_queries=2, include_original=False).expand(Query(text="q"))

    assert [query.text for query in queries] == ["a", "b"]


@pytest.mark.parametrize("completion", [MockCompletionService(responses=lambda prompt: "only one"), _failing_completion()])
def test_expander_falls_back_to_original(completion) -> None:
    query = Query(text="q")

    assert MultiQueryExpander(completion, number_of_queries=3).expand(query) == [query]


def test_expander_rejects_non_positive_count() -> None:
    with pytest.raises(ValueError):
        MultiQueryExpander(MockCompletionService(), number_of_queries=0)


def test_retriever_applies_threshold_and_filter(embedder) -> None:
    handle = Mock()
    handle.search.return_value = [
        Segment(text="close", metadata={"file_name": "a"}, distance=0.1),
        Segment(text="far", metadata={"file_name": "b"}, distance=0.95),
    ]
    where = build_filter_expression(category="hr", is_active=True)
    retriever = VectorStoreDocumentRetriever(
        handle, embedder, top_k=5, similarity_threshold=0.2, filter_expression=where
    )

    results = retriever.retrieve(Query(text="close match"))

    assert [segment.text for segment in results] == ["close"]
    vector, top_k, passed_filter = handle.search.call_args.args
    assert len(vector) == embedder.dimension
    assert top_k == 5
    assert passed_filter == {"$and": [{"category": "hr"}, {"is_active": True}]}


def test_retriever_skips_blank_query(embedder) -> None:
    handle = Mock()

    assert VectorStoreDocumentRetriever(handle, embedder).retrieve(Query(text="  ")) == []
    handle.search.assert_not_called()


def test_joiner_deduplicates_by_text_and_source() -> None:
    shared = Segment(text="refunds within 30 days", metadata={"file_name": "policy.txt"})
    same_text_other_source = Segment(text="refunds within 30 days", metadata={"file_name": "faq.txt"})
    unique = Segment(text="returns need a receipt", metadata={"file_name": "policy.txt"})

    joined = ConcatenationDocumentJoiner().join(
        {
            Query(text="refund policy"): [[shared, unique]],
            Query(text="return policy"): [[Segment(text=shared.text, metadata=dict(shared.metadata)), same_text_other_source]],
        }
    )

    assert joined == [shared, unique, same_text_other_source]


def test_post_processor_logs_and_keeps_documents(caplog: pytest.LogCaptureFixture) -> None:
    documents = [Segment(text="a"), Segment(text="b")]

    with caplog.at_level(logging.INFO, logger="docqa.retrieval.stages"):
        processed = LoggingDocumentPostProcessor().process(Query(text="q"), documents)

    assert processed == documents
    assert "Retrieved 2 documents" in caplog.text
    assert LoggingDocumentPostProcessor(max_documents=1).process(Query(text="q"), documents) == documents[:1]


def test_augmenter_embeds_context_and_query() -> None:
    augmented = ContextualQueryAugmenter().augment(
        Query(text="How long is the refund window?"),
        [Segment(text="Refunds within 30 days."), Segment(text="Receipt required {sic}.")],
    )

    assert "Refunds within 30 days.\nReceipt required {sic}." in augmented.text
    assert "Query: How long is the refund window?" in augmented.text


def test_augmenter_empty_context_modes() -> None:
    query = Query(text="anything")

    assert ContextualQueryAugmenter(allow_empty_context=True).augment(query, []) is query
    refused = ContextualQueryAugmenter(allow_empty_context=False).augment(query, [])
    assert "outside your knowledge base" in refused.text


def test_augmenter_requires_placeholders() -> None:
    with pytest.raises(ValueError):
        ContextualQueryAugmenter(template="no placeholders")


@pytest.mark.parametrize(
    ("category", "is_active", "expected"),
    [
        (None, None, None),
        ("", None, None),
        ("hr", None, {"category": "hr"}),
        (None, False, {"is_active": False}),
        ("hr", True, {"$and": [{"category": "hr"}, {"is_active": True}]}),
    ],
)
def test_build_filter_expression(category, is_active, expected) -> None:
    assert build_filter_expression(category, is_active) == expected
