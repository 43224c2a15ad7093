from __future__ import annotations

"""Dispatch document bytes to the loader for their file type."""

from pathlib import Path
from typing import Callable

from chatrag.loaders.pdf import load_pdf_pages
from chatrag.loaders.text import PageText, load_text_pages
from chatrag.rag.errors import UnsupportedFormatError

_LOADERS: dict[str, Callable[[bytes], list[PageText]]] = {
    ".pdf": load_pdf_pages,
    ".txt": load_text_pages,
    ".text": load_text_pages,
    ".md": load_text_pages,
    ".markdown": load_text_pages,
}


def supported_suffixes() -> set[str]:
    return set(_LOADERS)


def extract_pages(data: bytes, file_name: str) -> list[PageText]:
    """Extract plain-text pages from a document, keyed on its file suffix."""
    suffix = Path(file_name).suffix.lower()
    loader = _LOADERS.get(suffix)
    if loader is None:
        raise UnsupportedFormatError(f"Unsupported file type: {suffix or file_name}")
    return loader(data)
