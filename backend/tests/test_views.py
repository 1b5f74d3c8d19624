"""
Tests for the HTTP API.
"""
import json
from unittest.mock import patch

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from apps.docs.models import Document, DocumentStatus
from apps.indexing.ingestor import DocumentIngestor
from apps.indexing.models import DocumentChunk
from apps.indexing.stores import EncodedChunkStore
from apps.rag.llm_client import GenerationError
from tests.fakes import FakeEmbedder, FakeGenerator

pytestmark = pytest.mark.django_db

NOTES = b"Photosynthesis turns light into chemical energy in chloroplasts."


def upload(client, data=NOTES, name="notes.txt", content_type="text/plain", session_id="session-1"):
    payload = {"file": SimpleUploadedFile(name, data, content_type=content_type)}
    if session_id is not None:
        payload["sessionId"] = session_id
    return client.post("/api/docs/upload", payload)


def completed_document(session_id="session-1", data=NOTES, filename="notes.txt") -> Document:
    ingestor = DocumentIngestor(embedder=FakeEmbedder(), store=EncodedChunkStore())
    return ingestor.ingest(data, filename, "text/plain", session_id)


def post_json(client, url, body):
    return client.post(url, data=json.dumps(body), content_type="application/json")


class TestUpload:
    """Tests for POST /api/docs/upload."""

    def test_creates_pending_document(self, client, upload_root):
        """Should create a PENDING document and return 201."""
        response = upload(client)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["sessionId"] == "session-1"
        assert data["filename"] == "notes.txt"
        document = Document.objects.get(pk=data["id"])
        assert (upload_root / document.storage_path).exists()

    def test_rejects_unsupported_type(self, client, upload_root):
        """Should return 400 for an unsupported file type."""
        response = upload(client, data=b"\x89PNG", name="image.png", content_type="image/png")

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_FILE_TYPE"
        assert Document.objects.count() == 0

    def test_rejects_empty_file(self, client, upload_root):
        """Should return 400 for an empty file."""
        response = upload(client, data=b"")

        assert response.status_code == 400
        assert response.json()["code"] == "EMPTY_FILE"

    def test_requires_file(self, client, upload_root):
        """Should return 400 when no file is sent."""
        response = client.post("/api/docs/upload", {"sessionId": "session-1"})

        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_FILE"

    def test_requires_session(self, client, upload_root):
        """Should return 400 when no session id is sent."""
        response = upload(client, session_id=None)

        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_SESSION"

    def test_get_not_allowed(self, client):
        """Should return 405 for GET."""
        assert client.get("/api/docs/upload").status_code == 405


class TestDocuments:
    """Tests for listing, status, detail and delete."""

    def test_list_is_scoped_to_session(self, client, upload_root):
        """Should list only the session's documents."""
        upload(client, session_id="session-1")
        upload(client, session_id="session-2")

        response = client.get("/api/docs/", {"sessionId": "session-1"})

        assert response.status_code == 200
        documents = response.json()["documents"]
        assert len(documents) == 1
        assert documents[0]["sessionId"] == "session-1"

    def test_list_requires_session(self, client):
        """Should return 400 when listing without a session id."""
        assert client.get("/api/docs/").status_code == 400

    def test_status_of_completed_document(self, client, upload_root):
        """Should report COMPLETED with the chunk count."""
        document = completed_document()

        data = client.get(f"/api/docs/{document.id}/status").json()

        assert data["status"] == "COMPLETED"
        assert data["chunkCount"] == 1
        assert "errorMessage" not in data

    def test_status_of_failed_document_has_error(self, client, upload_root):
        """Should include the error message for a FAILED document."""
        document = completed_document(data=b"%PDF-1.4 broken", filename="notes.pdf")

        data = client.get(f"/api/docs/{document.id}/status").json()

        assert data["status"] == "FAILED"
        assert data["errorMessage"]

    def test_unknown_document_is_404(self, client):
        """Should return 404 for an unknown document."""
        response = client.get("/api/docs/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_detail(self, client, upload_root):
        """Should return the document fields."""
        document = completed_document()

        data = client.get(f"/api/docs/{document.id}").json()

        assert data["id"] == str(document.id)
        assert data["chunkCount"] == 1

    def test_delete_removes_document_chunks_and_file(self, client, upload_root):
        """Should delete the document and its stored upload."""
        document_id = upload(client).json()["id"]
        storage_path = Document.objects.get(pk=document_id).storage_path

        response = client.delete(f"/api/docs/{document_id}")

        assert response.status_code == 200
        assert not Document.objects.filter(pk=document_id).exists()
        assert not (upload_root / storage_path).exists()

    def test_delete_cascades_to_chunks(self, client, upload_root):
        """Should delete the document's chunks."""
        document = completed_document()

        client.delete(f"/api/docs/{document.id}")

        assert DocumentChunk.objects.count() == 0


class TestChunk:
    """Tests for GET /api/docs/<id>/chunks/<n>."""

    def test_returns_chunk_text(self, client, upload_root):
        """Should return the chunk text for a citation."""
        document = completed_document()

        response = client.get(f"/api/docs/{document.id}/chunks/0")

        assert response.status_code == 200
        data = response.json()
        assert data["text"] == NOTES.decode()
        assert data["filename"] == "notes.txt"

    def test_missing_chunk_is_404(self, client, upload_root):
        """Should return 404 for a chunk index that does not exist."""
        document = completed_document()

        response = client.get(f"/api/docs/{document.id}/chunks/5")

        assert response.status_code == 404
        assert response.json()["error"] == "Chunk not found"


class TestAsk:
    """Tests for POST /api/rag/ask."""

    def test_answers_from_notes(self, client, upload_root):
        """Should answer from notes with citations."""
        completed_document()

        with patch('apps.rag.retrieval.get_embedder', return_value=FakeEmbedder()), \
                patch('apps.rag.chat.get_generator', return_value=FakeGenerator(reply="In chloroplasts [1].")):
            response = post_json(client, "/api/rag/ask", {
                "question": "Where does photosynthesis happen?",
                "sessionId": "session-1",
            })

        assert response.status_code == 200
        data = response.json()
        assert data["label"] == "FROM_CONTEXT"
        assert data["answer"] == "📚 Answer from uploaded notes:\n\nIn chloroplasts [1]."
        assert len(data["citations"]) == 1
        assert data["citations"][0]["documentTitle"] == "notes.txt"

    def test_session_without_notes_answers_from_ai(self, client):
        """Should answer from AI for a session without notes."""
        with patch('apps.rag.retrieval.get_embedder', return_value=FakeEmbedder()), \
                patch('apps.rag.chat.get_generator', return_value=FakeGenerator(reply="Paris.")):
            response = post_json(client, "/api/rag/ask", {
                "question": "Capital of France?",
                "sessionId": "empty-session",
            })

        data = response.json()
        assert data["label"] == "FROM_GENERAL"
        assert data["citations"] == []

    def test_generator_failure_still_answers(self, client, upload_root):
        """Should return the apology answer when generation fails."""
        completed_document()
        generator = FakeGenerator(error=GenerationError("Completion API timed out"))

        with patch('apps.rag.retrieval.get_embedder', return_value=FakeEmbedder()), \
                patch('apps.rag.chat.get_generator', return_value=generator):
            response = post_json(client, "/api/rag/ask", {"question": "q", "sessionId": "session-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["label"] == "FROM_GENERAL"
        assert data["citations"] == []
        assert data["generationError"] == "Completion API timed out"

    @pytest.mark.parametrize("body", [
        {"sessionId": "session-1"},
        {"question": "   ", "sessionId": "session-1"},
        {"question": "q"},
    ])
    def test_invalid_requests(self, client, body):
        """Should return 400 for missing or invalid fields."""
        assert post_json(client, "/api/rag/ask", body).status_code == 400

    def test_invalid_json(self, client):
        """Should return 400 for a body that is not JSON."""
        response = client.post("/api/rag/ask", data="{not json", content_type="application/json")

        assert response.status_code == 400


class TestRetrieve:
    """Tests for POST /api/rag/retrieve."""

    def test_returns_scored_chunks(self, client, upload_root):
        """Should return the scored chunks."""
        completed_document()

        with patch('apps.rag.retrieval.get_embedder', return_value=FakeEmbedder()):
            response = post_json(client, "/api/rag/retrieve", {
                "query": "photosynthesis", "sessionId": "session-1", "topK": 3,
            })

        data = response.json()
        assert data["groundedInContext"] is True
        assert data["chunks"][0]["score"] == pytest.approx(1.0)

    def test_embedding_failure_is_503(self, client, upload_root):
        """Should return 503 when the query cannot be embedded."""
        completed_document()

        with patch('apps.rag.retrieval.get_embedder', return_value=FakeEmbedder(fail_on=0)):
            response = post_json(client, "/api/rag/retrieve", {"query": "q", "sessionId": "session-1"})

        assert response.status_code == 503

    @pytest.mark.parametrize("top_k", [0, 21, "5", True])
    def test_rejects_bad_top_k(self, client, top_k):
        """Should return 400 for an invalid topK."""
        response = post_json(client, "/api/rag/retrieve", {"query": "q", "sessionId": "s", "topK": top_k})

        assert response.status_code == 400


class TestHealth:
    """Tests for the health endpoints."""

    def test_healthz(self, client):
        """Should report healthy."""
        assert client.get("/healthz").json()["status"] == "healthy"

    def test_readyz_ignores_ollama_outage(self, client):
        """Should stay ready when only Ollama is down."""
        with patch('apps.rag.health.check_ollama', return_value=('degraded: down', True)):
            response = client.get("/readyz")

        assert response.status_code == 200
        assert response.json()["checks"]["database"] == "ok"
