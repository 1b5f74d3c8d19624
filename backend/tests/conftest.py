"""
Shared fixtures; isolates the cached singletons between tests.
"""
import pytest

from apps.docs.storage import reset_storage
from apps.indexing.embedder import reset_embedder
from apps.indexing.stores import reset_chunk_store
from apps.rag.llm_client import reset_generator
from tests.fakes import FakeEmbedder, FakeGenerator


@pytest.fixture(autouse=True)
def isolated_singletons():
    """Every test starts with fresh embedder/generator/store/storage instances."""
    reset_embedder()
    reset_generator()
    reset_chunk_store()
    reset_storage()
    yield
    reset_embedder()
    reset_generator()
    reset_chunk_store()
    reset_storage()


@pytest.fixture
def upload_root(settings, tmp_path):
    settings.UPLOAD_ROOT = tmp_path / "uploads"
    reset_storage()
    return settings.UPLOAD_ROOT


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_generator():
    return FakeGenerator()
