"""Text splitters that break documents into retrieval-sized segments."""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from docqa.models import Scalar, Segment

LOGGER = logging.getLogger(__name__)

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"(?<=[.!?。！？])\s+")


class SplitStrategy(str, Enum):
    """Named splitting presets selectable from manifests and uploads."""

    COMMON = "COMMON"
    CONTRACT = "CONTRACT"
    LONG = "LONG"
    SHORT = "SHORT"
    PAPER = "PAPER"
    TOKEN = "TOKEN"

    @classmethod
    def parse(cls, token: "str | SplitStrategy") -> "SplitStrategy":
        if isinstance(token, SplitStrategy):
            return token
        key = (token or "").strip().upper()
        if key == "SPRING":
            return cls.TOKEN
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown split strategy: {token!r}") from None


class TextSplitter(ABC):
    """Pure text to segments function."""

    @abstractmethod
    def split(self, text: str) -> List[str]:
        """Return ordered chunks of ``text``."""

    def split_blocks(
        self,
        blocks: Sequence[str],
        base_metadata: Optional[Mapping[str, Scalar]] = None,
    ) -> List[Segment]:
        """Split raw reader blocks, tagging each chunk with the base metadata."""

        segments: List[Segment] = []
        for page, block in enumerate(blocks, start=1):
            for chunk in self.split(block):
                metadata: Dict[str, Scalar] = dict(base_metadata or {})
                if len(blocks) > 1:
                    metadata["page"] = page
                metadata["chunk_index"] = len(segments)
                segments.append(Segment(text=chunk, metadata=metadata))
        return segments


def _split_paragraphs(text: str) -> List[str]:
    return _PARAGRAPH_RE.split(text)


def _split_lines(text: str) -> List[str]:
    return text.split("\n")


def _split_sentences(text: str) -> List[str]:
    return _SENTENCE_RE.split(text)


def _split_words(text: str) -> List[str]:
    return text.split()


Level = Tuple[Callable[[str], List[str]], str]

PARAGRAPH: Level = (_split_paragraphs, "\n\n")
LINE: Level = (_split_lines, "\n")
SENTENCE: Level = (_split_sentences, " ")
WORD: Level = (_split_words, " ")


class HierarchicalTextSplitter(TextSplitter):
    """Greedy splitter that descends through finer boundaries as needed.

    Units at the first level are packed into chunks of at most ``max_chars``.
    A unit that is too long is split again at the next level, finally by raw
    characters. Each chunk after the first starts with up to ``overlap_chars``
    from the tail of its predecessor, as long as the chunk still fits.
    """

    def __init__(self, max_chars: int, overlap_chars: int, levels: Sequence[Level]) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        if overlap_chars < 0 or overlap_chars >= max_chars:
            raise ValueError("overlap_chars must be in [0, max_chars)")
        self.max_chars = max_chars
        self.overlap_chars = overlap_chars
        self.levels = tuple(levels)

    def split(self, text: str) -> List[str]:
        text = (text or "").strip()
        if not text:
            return []
        return self._merge(self._pieces(text, 0, ""))

    def _pieces(self, text: str, level: int, joiner: str) -> List[Tuple[str, str]]:
        if len(text) <= self.max_chars:
            return [(text, joiner)]
        if level >= len(self.levels):
            return [
                (text[start:start + self.max_chars], joiner if start == 0 else "")
                for start in range(0, len(text), self.max_chars)
            ]
        splitter, separator = self.levels[level]
        units = [unit.strip() for unit in splitter(text) if unit.strip()]
        if len(units) <= 1:
            return self._pieces(text, level + 1, joiner)
        pieces: List[Tuple[str, str]] = []
        for index, unit in enumerate(units):
            pieces.extend(self._pieces(unit, level + 1, joiner if index == 0 else separator))
        return pieces

    def _merge(self, pieces: Iterable[Tuple[str, str]]) -> List[str]:
        chunks: List[str] = []
        current = ""
        for piece, joiner in pieces:
            if not current:
                current = piece
                continue
            candidate = f"{current}{joiner}{piece}"
            if len(candidate) <= self.max_chars:
                current = candidate
                continue
            chunks.append(current)
            tail = self._overlap_tail(current)
            if tail and len(tail) + 1 + len(piece) <= self.max_chars:
                current = f"{tail} {piece}"
            else:
                current = piece
        if current:
            chunks.append(current)
        return chunks

    def _overlap_tail(self, chunk: str) -> str:
        if self.overlap_chars == 0:
            return ""
        tail = chunk[-self.overlap_chars:]
        if len(chunk) > self.overlap_chars and not chunk[-self.overlap_chars - 1].isspace():
            # Do not start the overlap in the middle of a word.
            space = tail.find(" ")
            tail = tail[space + 1:] if space != -1 else ""
        return tail.strip()


class RecursiveTextSplitter(HierarchicalTextSplitter):
    def __init__(self, max_chars: int = 500, overlap_chars: int = 50) -> None:
        super().__init__(max_chars, overlap_chars, (PARAGRAPH, LINE, SENTENCE, WORD))


class ParagraphTextSplitter(HierarchicalTextSplitter):
    def __init__(self, max_chars: int = 500, overlap_chars: int = 50) -> None:
        super().__init__(max_chars, overlap_chars, (PARAGRAPH, SENTENCE, WORD))


class SentenceTextSplitter(HierarchicalTextSplitter):
    def __init__(self, max_chars: int = 200, overlap_chars: int = 20) -> None:
        super().__init__(max_chars, overlap_chars, (SENTENCE, WORD))


class TokenWindowSplitter(TextSplitter):
    """Fixed windows of whitespace-delimited tokens."""

    def __init__(self, chunk_tokens: int = 800) -> None:
        if chunk_tokens <= 0:
            raise ValueError("chunk_tokens must be positive")
        self.chunk_tokens = chunk_tokens

    def split(self, text: str) -> List[str]:
        tokens = (text or "").split()
        return [
            " ".join(tokens[start:start + self.chunk_tokens])
            for start in range(0, len(tokens), self.chunk_tokens)
        ]


def build_splitter(strategy: SplitStrategy) -> TextSplitter:
    if strategy is SplitStrategy.COMMON:
        return RecursiveTextSplitter(500, 50)
    if strategy is SplitStrategy.CONTRACT:
        return ParagraphTextSplitter(400, 40)
    if strategy is SplitStrategy.LONG:
        return ParagraphTextSplitter(1000, 100)
    if strategy is SplitStrategy.SHORT:
        return SentenceTextSplitter(200, 20)
    if strategy is SplitStrategy.PAPER:
        return ParagraphTextSplitter(500, 50)
    return TokenWindowSplitter()


__all__ = [
    "HierarchicalTextSplitter",
    "ParagraphTextSplitter",
    "RecursiveTextSplitter",
    "SentenceTextSplitter",
    "SplitStrategy",
    "TextSplitter",
    "TokenWindowSplitter",
    "build_splitter",
]
