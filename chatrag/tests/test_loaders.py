from __future__ import annotations

import fitz
import pytest
from botocore.exceptions import ClientError

from chatrag.loaders.extract import extract_pages, supported_suffixes
from chatrag.loaders.object_store import (
    LocalBlobStore,
    ObjectNotFoundError,
    ObjectStoreConfig,
    ObjectStoreError,
    S3BlobStore,
)
from chatrag.loaders.pdf import _clean_pdf_text
from chatrag.rag.errors import UnsupportedFormatError


def _pdf_bytes(pages: list[str]) -> bytes:
    document = fitz.open()
    for text in pages:
        page = document.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = document.tobytes()
    document.close()
    return data


def test_pdf_pages_are_numbered_from_one() -> None:
    data = _pdf_bytes(["Quarterly roadmap", "", "Hiring plan"])

    pages = extract_pages(data, "Plan.PDF")

    assert [page.page_number for page in pages] == [1, 3]
    assert "Quarterly roadmap" in pages[0].text
    assert "Hiring plan" in pages[1].text


def test_corrupt_pdf_is_unsupported() -> None:
    with pytest.raises(UnsupportedFormatError):
        extract_pages(b"not a pdf at all", "broken.pdf")


def test_text_and_markdown_are_unpaged() -> None:
    pages = extract_pages(b"# Notes\r\nDeploy on Tuesday", "notes.md")

    assert len(pages) == 1
    assert pages[0].page_number is None
    assert pages[0].text == "# Notes\nDeploy on Tuesday"
    assert extract_pages(b"   ", "blank.txt") == []


def test_unknown_suffix_and_bad_encoding_rejected() -> None:
    assert ".zip" not in supported_suffixes()
    with pytest.raises(UnsupportedFormatError):
        extract_pages(b"PK\x03\x04", "archive.zip")
    with pytest.raises(UnsupportedFormatError):
        extract_pages(b"\xff\xfe\xfa", "latin.txt")


def test_clean_pdf_text_keeps_paragraphs() -> None:
    raw = "Road-\nmap   for   Q3\n\n\n\nSecond  paragraph"

    assert _clean_pdf_text(raw) == "Roadmap for Q3\n\nSecond paragraph"


def test_local_blob_store_round_trip_and_escape(tmp_path) -> None:
    store = LocalBlobStore(root=tmp_path)
    store.put("c1/f1/plan.txt", b"hello")

    assert store.get("c1/f1/plan.txt") == b"hello"
    store.delete("c1/f1/plan.txt")
    with pytest.raises(ObjectNotFoundError):
        store.get("c1/f1/plan.txt")
    with pytest.raises(ObjectStoreError):
        store.put("../outside.txt", b"nope")


class _StubS3:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    def put_object(self, Bucket: str, Key: str, Body: bytes) -> None:
        self.objects[Key] = Body

    def get_object(self, Bucket: str, Key: str):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        return {"Body": _Body(self.objects[Key])}

    def delete_object(self, Bucket: str, Key: str) -> None:
        self.objects.pop(Key, None)


class _Body:
    def __init__(self, data: bytes) -> None:
        self._data = data

    def read(self) -> bytes:
        return self._data


def _s3_config(max_bytes: int | None = None) -> ObjectStoreConfig:
    return ObjectStoreConfig(
        bucket="workspace-files",
        endpoint_url=None,
        region="us-east-1",
        access_key=None,
        secret_key=None,
        session_token=None,
        max_bytes=max_bytes,
    )


def test_s3_blob_store_maps_missing_key() -> None:
    store = S3BlobStore(config=_s3_config(), client=_StubS3())
    store.put("c1/f1/plan.txt", b"hello")

    assert store.get("c1/f1/plan.txt") == b"hello"
    with pytest.raises(ObjectNotFoundError):
        store.get("c1/f2/missing.txt")


def test_s3_blob_store_enforces_max_bytes() -> None:
    store = S3BlobStore(config=_s3_config(max_bytes=3), client=_StubS3())
    store.put("big.txt", b"too large")

    with pytest.raises(ObjectStoreError):
        store.get("big.txt")
