from __future__ import annotations

"""Plain text and markdown loaders for ingestion."""

from dataclasses import dataclass

from chatrag.rag.errors import UnsupportedFormatError


@dataclass(frozen=True)
class PageText:
    """Extracted text of one page; ``page_number`` is None for unpaged formats."""
    text: str
    page_number: int | None = None


def load_text_pages(data: bytes) -> list[PageText]:
    """Decode UTF-8 text bytes into a single unpaged page."""
    try:
        content = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise UnsupportedFormatError("Text file is not valid UTF-8") from exc
    content = content.replace("\r\n", "\n")
    if not content.strip():
        return []
    return [PageText(text=content)]
