from __future__ import annotations

"""PDF text extraction and cleanup."""

import re

from chatrag.loaders.text import PageText
from chatrag.rag.errors import UnsupportedFormatError

_HYPHEN_BREAK_RE = re.compile(r"(\w)-\n(\w)")
_INLINE_SPACE_RE = re.compile(r"[ \t\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def _clean_pdf_text(text: str) -> str:
    """Clean PDF-extracted text while keeping paragraph breaks for chunking."""
    if not text:
        return ""
    cleaned = text.replace("\r\n", "\n")
    cleaned = _HYPHEN_BREAK_RE.sub(r"\1\2", cleaned)
    cleaned = _INLINE_SPACE_RE.sub(" ", cleaned)
    cleaned = "\n".join(line.strip() for line in cleaned.split("\n"))
    cleaned = _BLANK_LINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()


def load_pdf_pages(data: bytes) -> list[PageText]:
    """Extract text per page from PDF bytes."""
    import fitz

    try:
        reader = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        raise UnsupportedFormatError(f"Unable to open PDF: {exc}") from exc
    pages: list[PageText] = []
    try:
        for number, page in enumerate(reader, start=1):
            text = _clean_pdf_text(page.get_text() or "")
            if text:
                pages.append(PageText(text=text, page_number=number))
    except Exception as exc:
        raise UnsupportedFormatError(f"Failed to extract PDF text: {exc}") from exc
    finally:
        reader.close()
    return pages
