"""Shared pytest configuration and fixtures"""

import sys
from pathlib import Path

import pytest

# Add project root to path for keyword_search imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from keyword_search.bm25.document_store import DocumentStore  # noqa: E402
from keyword_search.registry import IndexRegistry  # noqa: E402
from keyword_search.storage import LocalArtifactStorage  # noqa: E402


PARIS = "Paris is the capital of France."
ROME = "Rome is the capital of Italy."


@pytest.fixture
def storage(tmp_path):
    """Local artifact storage in a fresh temporary directory"""
    return LocalArtifactStorage(str(tmp_path / "indexes"))


@pytest.fixture
def registry(storage):
    return IndexRegistry(storage)


@pytest.fixture
def make_store():
    """
    Build a DocumentStore from (title, content) pairs or plain strings.

    Plain strings get titles doc0, doc1, ...
    """
    def _make(*docs):
        store = DocumentStore()
        for i, doc in enumerate(docs):
            title, content = doc if isinstance(doc, tuple) else (f"doc{i}", doc)
            store.add(title, content)
        return store

    return _make


@pytest.fixture
def capitals_store(make_store):
    """Two short documents used across scorer/search tests"""
    return make_store(("paris.txt", PARIS), ("rome.txt", ROME))
