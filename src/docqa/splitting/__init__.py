"""Segment splitting strategies."""

from .registry import SplitterRegistry
from .strategies import (
    HierarchicalTextSplitter,
    ParagraphTextSplitter,
    RecursiveTextSplitter,
    SentenceTextSplitter,
    SplitStrategy,
    TextSplitter,
    TokenWindowSplitter,
    build_splitter,
)

__all__ = [
    "HierarchicalTextSplitter",
    "ParagraphTextSplitter",
    "RecursiveTextSplitter",
    "SentenceTextSplitter",
    "SplitStrategy",
    "SplitterRegistry",
    "TextSplitter",
    "TokenWindowSplitter",
    "build_splitter",
]
