"""
Tests for the document status machine and chunk immutability.
"""
import pytest

from apps.docs.models import Document, DocumentStatus, InvalidStatusTransition
from apps.indexing.models import DocumentChunk, ImmutableChunkError

pytestmark = pytest.mark.django_db


def make_document(**fields) -> Document:
    values = {
        'session_id': 'session-1',
        'filename': 'notes.txt',
        'content_type': 'text/plain',
        'size_bytes': 10,
        'content_hash': 'a' * 64,
    }
    values.update(fields)
    return Document.objects.create(**values)


class TestStatusTransitions:
    """Tests for Document.transition_to."""

    def test_new_document_is_pending(self):
        """Should start new documents as PENDING."""
        assert make_document().status == DocumentStatus.PENDING

    def test_forward_path_to_completed(self):
        """Should allow PENDING to PROCESSING to COMPLETED."""
        document = make_document()

        document.transition_to(DocumentStatus.PROCESSING)
        document.transition_to(DocumentStatus.COMPLETED, chunk_count=3)

        document.refresh_from_db()
        assert document.status == DocumentStatus.COMPLETED
        assert document.chunk_count == 3
        assert document.processed_at is not None

    def test_failed_records_error_message(self):
        """Should store the error message on FAILED."""
        document = make_document()
        document.transition_to(DocumentStatus.PROCESSING)

        document.transition_to(DocumentStatus.FAILED, error_message="Extraction error: bad file")

        document.refresh_from_db()
        assert document.status == DocumentStatus.FAILED
        assert document.error_message == "Extraction error: bad file"
        assert document.is_terminal

    @pytest.mark.parametrize("path", [
        [DocumentStatus.COMPLETED],
        [DocumentStatus.FAILED],
        [DocumentStatus.PROCESSING, DocumentStatus.PENDING],
        [DocumentStatus.PROCESSING, DocumentStatus.COMPLETED, DocumentStatus.PROCESSING],
        [DocumentStatus.PROCESSING, DocumentStatus.FAILED, DocumentStatus.COMPLETED],
    ])
    def test_rejects_non_forward_moves(self, path):
        """Should reject moves that are not a forward step."""
        document = make_document()

        with pytest.raises(InvalidStatusTransition):
            for status in path:
                document.transition_to(status)

    def test_stale_copy_cannot_overwrite_newer_status(self):
        """Should refuse a transition from a stale in-memory copy."""
        document = make_document()
        stale = Document.objects.get(pk=document.pk)

        document.transition_to(DocumentStatus.PROCESSING)

        with pytest.raises(InvalidStatusTransition):
            stale.transition_to(DocumentStatus.PROCESSING)


class TestStatusSurface:
    """Tests for the polling status dict."""

    def test_error_message_only_when_failed(self):
        """Should expose errorMessage only for FAILED documents."""
        document = make_document()
        assert 'errorMessage' not in document.status_dict()

        document.transition_to(DocumentStatus.PROCESSING)
        document.transition_to(DocumentStatus.FAILED, error_message="boom")

        data = document.status_dict()
        assert data['status'] == 'FAILED'
        assert data['errorMessage'] == "boom"

    def test_to_dict_hides_error_for_non_failed(self):
        """Should hide the error message for documents that did not fail."""
        document = make_document(error_message="left over")

        assert document.to_dict()['errorMessage'] is None


class TestChunkImmutability:
    """Tests for DocumentChunk write-once semantics."""

    def test_persisted_chunk_cannot_be_saved_again(self):
        """Should refuse to update a saved chunk."""
        chunk = DocumentChunk.objects.create(
            document=make_document(), chunk_index=0, text="text", token_count=1
        )

        chunk.text = "changed"
        with pytest.raises(ImmutableChunkError):
            chunk.save()

    def test_chunks_are_deleted_with_document(self):
        """Should delete chunks together with their document."""
        document = make_document()
        DocumentChunk.objects.create(document=document, chunk_index=0, text="text", token_count=1)

        document.delete()

        assert DocumentChunk.objects.count() == 0
