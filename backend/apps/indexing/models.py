"""
Document chunk model for storing text chunks.

The embedding lives either in ``encoded_embedding`` (encoded store) or in
apps.vectors.models.ChunkVector (pgvector store), never both.
"""
import uuid
from django.db import models

from apps.docs.models import Document


class ImmutableChunkError(Exception):
    """Raised when code tries to modify a chunk that is already persisted."""
    pass


class DocumentChunk(models.Model):
    """
    A text chunk from a document.

    Chunks are written once, in a single ingestion pass, and are
    deleted together with their document.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Link to parent document
    document = models.ForeignKey(
        Document,
        on_delete=models.CASCADE,
        related_name='chunks',
        help_text="The source document"
    )

    # Chunk ordering (0-indexed)
    chunk_index = models.PositiveIntegerField(
        help_text="Index of this chunk within the document (0-based)"
    )

    # Chunk text content
    text = models.TextField(
        help_text="The text content of this chunk"
    )
    token_count = models.PositiveIntegerField(
        help_text="Number of tokens in this chunk"
    )

    # JSON array literal, e.g. "[0.12, -0.5, ...]"
    encoded_embedding = models.TextField(
        null=True,
        blank=True,
        help_text="Embedding encoded as text (encoded vector store only)"
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'doc_chunks'
        ordering = ['document', 'chunk_index']
        # Unique constraint prevents duplicate chunks
        constraints = [
            models.UniqueConstraint(
                fields=['document', 'chunk_index'],
                name='unique_document_chunk'
            )
        ]
        indexes = [
            models.Index(fields=['document', 'chunk_index'], name='doc_chunks_documen_8b0e4d_idx'),
        ]

    def __str__(self):
        preview = self.text[:50] + '...' if len(self.text) > 50 else self.text
        return f"Chunk {self.chunk_index} of {self.document_id}: {preview}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableChunkError(f"Chunk {self.id} is already persisted")
        super().save(*args, **kwargs)
