"""Readers turning supported files into raw text blocks."""
from __future__ import annotations

import logging
import re
import unicodedata
from enum import Enum
from pathlib import Path
from typing import Dict, List, Protocol

from docx import Document as DocxDocument
from PyPDF2 import PdfReader

from docqa.errors import UnsupportedFormatError

LOGGER = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"[ \t]+")
_MULTIPLE_NEWLINES_RE = re.compile(r"\n{3,}")
_TRAILING_SPACE_RE = re.compile(r"[ \t]+\n")


def normalize_text(text: str) -> str:
    """Normalise whitespace and Unicode representation."""

    normalized = unicodedata.normalize("NFC", text)
    normalized = normalized.replace("\r\n", "\n").replace("\r", "\n")
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    normalized = _TRAILING_SPACE_RE.sub("\n", normalized)
    normalized = _MULTIPLE_NEWLINES_RE.sub("\n\n", normalized)
    return normalized.strip()


class DocumentFormat(str, Enum):
    """Supported document formats."""

    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"
    MD = "md"


def detect_format(file_name: str | Path) -> DocumentFormat:
    suffix = Path(file_name).suffix.lower().lstrip(".")
    try:
        return DocumentFormat(suffix)
    except ValueError:
        raise UnsupportedFormatError(f"Unsupported file format: {Path(file_name).name}") from None


class DocumentReader(Protocol):
    def read(self, path: Path) -> List[str]:
        ...


class PdfDocumentReader:
    """One block per PDF page."""

    def read(self, path: Path) -> List[str]:
        reader = PdfReader(str(path))
        blocks: List[str] = []
        for index, page in enumerate(reader.pages, start=1):
            try:
                text = page.extract_text() or ""
            except Exception as error:  # pragma: no cover - depends on pdf backend
                LOGGER.warning("Failed to extract text from %s page %s: %s", path.name, index, error)
                text = ""
            blocks.append(normalize_text(text))
        return blocks


class DocxDocumentReader:
    """Extract paragraph text from Microsoft Word documents."""

    def read(self, path: Path) -> List[str]:
        document = DocxDocument(str(path))
        text = "\n\n".join(paragraph.text for paragraph in document.paragraphs if paragraph.text)
        return [normalize_text(text)]


class TextDocumentReader:
    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    def read(self, path: Path) -> List[str]:
        text = path.read_text(encoding=self.encoding, errors="replace")
        return [normalize_text(text)]


_READERS: Dict[DocumentFormat, DocumentReader] = {
    DocumentFormat.PDF: PdfDocumentReader(),
    DocumentFormat.DOCX: DocxDocumentReader(),
    DocumentFormat.TXT: TextDocumentReader(),
    DocumentFormat.MD: TextDocumentReader(),
}


def read_document(path: str | Path) -> List[str]:
    """Read ``path`` with the reader registered for its extension.

    Raises :class:`UnsupportedFormatError` for unknown extensions.
    """

    file_path = Path(path)
    document_format = detect_format(file_path)
    blocks = _READERS[document_format].read(file_path)
    LOGGER.debug("Read %s blocks from %s", len(blocks), file_path.name)
    return blocks


__all__ = [
    "DocumentFormat",
    "DocumentReader",
    "DocxDocumentReader",
    "PdfDocumentReader",
    "TextDocumentReader",
    "detect_format",
    "normalize_text",
    "read_document",
]
