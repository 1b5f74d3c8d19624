"""
Native vector column for chunk embeddings.

Only installed when VECTOR_STORE is "pgvector"; the extension must be
available in the target PostgreSQL database.
"""
from django.db import models
from pgvector.django import VectorField

from apps.indexing.models import DocumentChunk
from apps.vectors import VECTOR_DIMENSIONS


class ChunkVector(models.Model):
    """The embedding of one chunk, stored as a pgvector ``vector``."""
    chunk = models.OneToOneField(
        DocumentChunk,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name='vector',
        help_text="The chunk this embedding belongs to"
    )

    # nomic-embed-text and text-embedding-004 both produce 768 dimensions
    embedding = VectorField(
        dimensions=VECTOR_DIMENSIONS,
        help_text="Vector embedding of the chunk text"
    )

    class Meta:
        db_table = 'doc_chunk_vectors'

    def __str__(self):
        return f"Vector for chunk {self.chunk_id}"
