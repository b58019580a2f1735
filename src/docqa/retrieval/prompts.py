"""Prompt templates used by the retrieval stages and the query service."""

import re

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")

REWRITE_PROMPT = (
    "Given a user query, rewrite it to provide better results when querying a {target}.\n"
    "Remove any irrelevant information, and ensure the query is concise and specific.\n\n"
    "Original query:\n{query}\n\n"
    "Rewritten query:\n"
)

COMPRESSION_PROMPT = (
    "Given the following conversation history and a follow-up query, your task is to "
    "synthesize a concise, standalone query that incorporates the context from the history.\n"
    "Ensure the standalone query is clear, specific, and maintains the user's intent.\n\n"
    "Conversation history:\n{history}\n\n"
    "Follow-up query:\n{query}\n\n"
    "Standalone query:\n"
)

MULTI_QUERY_PROMPT = (
    "You are an expert at information retrieval and search optimization.\n"
    "Your task is to generate {number} different versions of the given query.\n\n"
    "Each variant must cover different perspectives or aspects of the topic, while "
    "maintaining the core intent of the original query. The goal is to expand the search "
    "space and improve the chances of finding relevant information.\n\n"
    "Do not explain your choices or add any other text.\n"
    "Provide the query variants separated by newlines.\n\n"
    "Original query: {query}\n\n"
    "Query variants:\n"
)

CONTEXT_PROMPT = (
    "Context information is below.\n\n"
    "---------------------\n"
    "{context}\n"
    "---------------------\n\n"
    "Given the context information and no prior knowledge, answer the query.\n\n"
    "Follow these rules:\n\n"
    "1. If the answer is not in the context, just say that you don't know.\n"
    "2. Avoid statements like \"Based on the context...\" or \"The provided information...\".\n\n"
    "Query: {query}\n\n"
    "Answer:\n"
)

EMPTY_CONTEXT_PROMPT = (
    "The user query is outside your knowledge base.\n"
    "Politely inform the user that you can't answer it.\n"
)

DOCUMENTS_PROMPT = (
    "Answer the question using the reference documents below. "
    "Lower distance means a closer match.\n\n"
    "{documents}\n\n"
    "Question: {query}\n"
)


def fill(template: str, **values: str) -> str:
    """Substitute ``{name}`` placeholders without interpreting other braces."""

    return _PLACEHOLDER_RE.sub(lambda match: values.get(match.group(1), match.group(0)), template)
