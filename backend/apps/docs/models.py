"""
Document model for NoteChat.

A Document is one uploaded file in a session. It owns its chunks
(see apps.indexing.models.DocumentChunk) and moves through a one-way
status machine while it is being ingested.
"""
import uuid
from django.db import models
from django.utils import timezone


class DocumentStatus(models.TextChoices):
    """Status of a document in the ingestion pipeline."""
    PENDING = 'PENDING', 'Waiting for ingestion'
    PROCESSING = 'PROCESSING', 'Currently ingesting'
    COMPLETED = 'COMPLETED', 'Ready for retrieval'
    FAILED = 'FAILED', 'Ingestion failed'


# Allowed forward moves; anything else is rejected
ALLOWED_TRANSITIONS = {
    DocumentStatus.PENDING: {DocumentStatus.PROCESSING},
    DocumentStatus.PROCESSING: {DocumentStatus.COMPLETED, DocumentStatus.FAILED},
    DocumentStatus.COMPLETED: set(),
    DocumentStatus.FAILED: set(),
}

TERMINAL_STATUSES = (DocumentStatus.COMPLETED, DocumentStatus.FAILED)


class InvalidStatusTransition(Exception):
    """Raised when a document status would move backwards or skip a step."""

    def __init__(self, document_id, current: str, target: str):
        super().__init__(
            f"Document {document_id} cannot move from {current} to {target}"
        )
        self.current = current
        self.target = target


class Document(models.Model):
    """
    A document uploaded into a session for grounding answers.

    The raw upload is kept on disk (storage_path) until the indexing
    worker has turned it into embedded chunks.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Session (conversation) the notes belong to
    session_id = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Session / conversation ID the document was uploaded into"
    )

    # File metadata
    filename = models.CharField(
        max_length=255,
        help_text="Original filename"
    )
    content_type = models.CharField(
        max_length=100,
        help_text="MIME type of the file"
    )
    size_bytes = models.PositiveIntegerField(
        help_text="File size in bytes"
    )
    content_hash = models.CharField(
        max_length=64,
        db_index=True,
        help_text="SHA-256 hash of file content"
    )

    # Storage location
    storage_path = models.CharField(
        max_length=500,
        blank=True,
        default='',
        help_text="Path to file on disk (relative to upload root)"
    )

    # Processing status
    status = models.CharField(
        max_length=20,
        choices=DocumentStatus.choices,
        default=DocumentStatus.PENDING,
        db_index=True,
        help_text="Current status in the ingestion pipeline"
    )
    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if ingestion failed"
    )
    chunk_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of chunks (authoritative once COMPLETED)"
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'documents'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['session_id', 'created_at'], name='documents_session_3f1c2a_idx'),
        ]

    def __str__(self):
        return f"{self.filename} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, target: str, **fields) -> None:
        """
        Move the document to ``target`` and persist ``fields`` with it.

        The UPDATE is conditional on the status we last read, so a
        concurrent worker that already moved the row makes this fail
        instead of silently overwriting a later state.

        Raises:
            InvalidStatusTransition: If the move is not a forward step or
                the stored status changed underneath us
        """
        current = DocumentStatus(self.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransition(self.id, current, target)

        if target in TERMINAL_STATUSES:
            fields.setdefault('processed_at', timezone.now())

        updated = Document.objects.filter(pk=self.pk, status=current).update(
            status=target, **fields
        )
        if not updated:
            stored = Document.objects.filter(pk=self.pk).values_list('status', flat=True).first()
            raise InvalidStatusTransition(self.id, stored or current, target)

        self.status = target
        for name, value in fields.items():
            setattr(self, name, value)

    def to_dict(self) -> dict:
        """Convert to the JSON shape used by the documents API."""
        return {
            'id': str(self.id),
            'sessionId': self.session_id,
            'filename': self.filename,
            'contentType': self.content_type,
            'sizeBytes': self.size_bytes,
            'contentHash': self.content_hash,
            'status': self.status,
            'chunkCount': self.chunk_count,
            'errorMessage': self.error_message if self.status == DocumentStatus.FAILED else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'processedAt': self.processed_at.isoformat() if self.processed_at else None,
        }

    def status_dict(self) -> dict:
        """Status surface consumed by polling clients."""
        data = {
            'id': str(self.id),
            'status': self.status,
            'chunkCount': self.chunk_count if self.status == DocumentStatus.COMPLETED else 0,
        }
        if self.status == DocumentStatus.FAILED:
            data['errorMessage'] = self.error_message or ''
        return data
