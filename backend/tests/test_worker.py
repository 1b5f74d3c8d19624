"""
Tests for the background indexing worker.
"""
from datetime import timedelta

import pytest
from django.core.management import call_command

from apps.docs.models import Document, DocumentStatus
from apps.docs.storage import FileStorage
from apps.indexing.ingestor import DocumentIngestor
from apps.indexing.models import DocumentChunk
from apps.indexing.stores import EncodedChunkStore
from apps.indexing.worker import IndexingWorker
from tests.fakes import FakeEmbedder

pytestmark = pytest.mark.django_db

NOTES = b"The mitochondria is the powerhouse of the cell."


@pytest.fixture
def ingestor(upload_root):
    return DocumentIngestor(
        embedder=FakeEmbedder(),
        store=EncodedChunkStore(),
        storage=FileStorage(upload_root),
    )


@pytest.fixture
def worker(ingestor):
    return IndexingWorker(ingestor=ingestor, poll_interval=0)


class TestClaimDocument:
    """Tests for claiming pending documents."""

    def test_nothing_pending(self, worker):
        """Should claim nothing when no document is pending."""
        assert worker.claim_document() is None
        assert worker.run_once() is False

    def test_claims_oldest_pending_first(self, worker, ingestor):
        """Should claim the oldest pending document first."""
        older = ingestor.create_document(NOTES, "older.txt", "text/plain", "session-1")
        newer = ingestor.create_document(NOTES, "newer.txt", "text/plain", "session-1")
        Document.objects.filter(pk=newer.pk).update(created_at=older.created_at + timedelta(seconds=5))

        claimed = worker.claim_document()

        assert claimed.pk == older.pk
        assert Document.objects.get(pk=older.pk).status == DocumentStatus.PROCESSING
        assert Document.objects.get(pk=newer.pk).status == DocumentStatus.PENDING

    def test_skips_documents_already_processing(self, worker, ingestor):
        """Should not claim a document that is already PROCESSING."""
        document = ingestor.create_document(NOTES, "notes.txt", "text/plain", "session-1")
        ingestor.begin(document)

        assert worker.claim_document() is None


class TestRunOnce:
    """Tests for processing one claimed document."""

    def test_processes_document_and_removes_upload(self, worker, ingestor, upload_root):
        """Should complete the document and delete its upload."""
        document = ingestor.create_document(NOTES, "notes.txt", "text/plain", "session-1")

        assert worker.run_once() is True

        document.refresh_from_db()
        assert document.status == DocumentStatus.COMPLETED
        assert DocumentChunk.objects.filter(document=document).count() == 1
        assert not (upload_root / document.storage_path).exists()

    def test_missing_upload_fails_document(self, worker, ingestor, upload_root):
        """Should fail the document when its upload is missing."""
        document = ingestor.create_document(NOTES, "notes.txt", "text/plain", "session-1")
        (upload_root / document.storage_path).unlink()

        worker.run_once()

        document.refresh_from_db()
        assert document.status == DocumentStatus.FAILED
        assert document.error_message.startswith("Storage error")

    def test_embedding_failure_keeps_upload_for_inspection(self, upload_root):
        """Should keep the upload of a FAILED document."""
        ingestor = DocumentIngestor(
            embedder=FakeEmbedder(fail_on=0),
            store=EncodedChunkStore(),
            storage=FileStorage(upload_root),
        )
        document = ingestor.create_document(NOTES, "notes.txt", "text/plain", "session-1")

        IndexingWorker(ingestor=ingestor, poll_interval=0).run_once()

        document.refresh_from_db()
        assert document.status == DocumentStatus.FAILED
        assert (upload_root / document.storage_path).exists()

    def test_unexpected_pipeline_error_fails_document(self, worker, ingestor, monkeypatch):
        """Should fail the document when the pipeline raises outright."""
        document = ingestor.create_document(NOTES, "notes.txt", "text/plain", "session-1")

        def explode(doc, data):
            raise RuntimeError("boom")

        monkeypatch.setattr(ingestor, "run_pipeline", explode)

        assert worker.run_once() is True

        document.refresh_from_db()
        assert document.status == DocumentStatus.FAILED
        assert document.error_message == "Unexpected error: boom"

    def test_document_deleted_while_processing(self, worker, ingestor, monkeypatch):
        """Should not count a document deleted mid-processing as a worker error."""
        document = ingestor.create_document(NOTES, "notes.txt", "text/plain", "session-1")

        def delete_then_explode(doc, data):
            Document.objects.filter(pk=doc.pk).delete()
            raise RuntimeError("boom")

        monkeypatch.setattr(ingestor, "run_pipeline", delete_then_explode)

        assert worker.run_once() is True
        assert worker.consecutive_errors == 0
        assert not Document.objects.filter(pk=document.pk).exists()


class TestIngestFileCommand:
    """Tests for the ingest_file management command."""

    def test_ingests_local_file(self, tmp_path, upload_root, monkeypatch):
        """Should ingest a local file to COMPLETED."""
        monkeypatch.setattr('apps.indexing.ingestor.get_embedder', lambda: FakeEmbedder())
        path = tmp_path / "notes.txt"
        path.write_text("Cells are the basic unit of life.", encoding="utf-8")

        call_command("ingest_file", str(path), "--session", "cli-session")

        document = Document.objects.get(session_id="cli-session")
        assert document.status == DocumentStatus.COMPLETED
        assert document.content_type == "text/plain"
