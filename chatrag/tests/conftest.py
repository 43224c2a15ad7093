from __future__ import annotations

"""Shared pytest fixtures and test environment defaults."""

import os
import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

_WORKDIR = Path(tempfile.mkdtemp(prefix="chatrag-tests-"))

os.environ.setdefault("RAG_ALLOW_ANONYMOUS", "true")
os.environ["RAG_ANSWERER"] = "extractive"
os.environ.pop("RAG_API_KEY_MAP", None)
os.environ.pop("OPENAI_API_KEY", None)
os.environ["RAG_VECTORSTORE"] = "memory"
os.environ["RAG_BLOB_BACKEND"] = "local"
os.environ["EMBEDDING_PROVIDER"] = "hash"
os.environ["EMBEDDING_DIMENSION"] = "256"
os.environ["RAG_NAMESPACE"] = "workspace"
os.environ["RAG_WORKSPACE_DB_URI"] = f"sqlite:///{_WORKDIR / 'workspace.db'}"
os.environ["RAG_METADATA_DB_URI"] = f"sqlite:///{_WORKDIR / 'ingestion.db'}"
os.environ["RAG_BLOB_ROOT"] = str(_WORKDIR / "blobs")


import pytest


@pytest.fixture
def anyio_backend():
    return "asyncio"
