"""
Chunk stores.

A chunk store persists a document's embedded chunks in one step and
reads back every chunk of a session's COMPLETED documents. Two
implementations share the same interface:
- EncodedChunkStore: embeddings as JSON text, works on any database
- PgVectorChunkStore: embeddings in a native pgvector column

Which one is used is decided once from the VECTOR_STORE setting.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import transaction

from apps.docs.models import Document, DocumentStatus
from apps.indexing.models import DocumentChunk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbeddedChunk:
    """A chunk ready to be persisted."""
    index: int
    text: str
    token_count: int
    embedding: Sequence[float]


@dataclass(frozen=True)
class StoredChunk:
    """
    A persisted chunk as seen by retrieval.

    Holds the owning document's id and display data, never the
    Document object itself.
    """
    chunk_id: str
    document_id: str
    document_name: str
    document_created_at: datetime
    chunk_index: int
    text: str
    token_count: int
    embedding: Tuple[float, ...]


def encode_embedding(embedding: Sequence[float]) -> str:
    """Encode a vector as a JSON array literal, e.g. "[0.1, 0.2]"."""
    return json.dumps([float(x) for x in embedding])


def decode_embedding(encoded: Optional[str]) -> Tuple[float, ...]:
    """Decode a JSON array literal; empty or missing input gives ()."""
    if not encoded or not encoded.strip():
        return ()
    return tuple(float(x) for x in json.loads(encoded))


def check_contiguous(chunks: Sequence[EmbeddedChunk]) -> None:
    """
    Raises:
        ValueError: If chunk indices are not exactly 0..N-1 in order
    """
    for position, chunk in enumerate(chunks):
        if chunk.index != position:
            raise ValueError(
                f"Chunk indices must be contiguous from 0; "
                f"found {chunk.index} at position {position}"
            )


class BaseChunkStore(ABC):
    """Abstract base class for chunk stores."""

    name = "base"

    def save(self, document: Document, chunks: Sequence[EmbeddedChunk]) -> Document:
        """
        Persist all chunks of a document and mark it COMPLETED.

        Runs in one transaction: either every chunk is stored and the
        document is COMPLETED, or nothing is stored.

        Args:
            document: A document in PROCESSING state
            chunks: Embedded chunks with indices 0..N-1

        Returns:
            The updated document
        """
        check_contiguous(chunks)

        with transaction.atomic():
            rows = DocumentChunk.objects.bulk_create([
                DocumentChunk(
                    document=document,
                    chunk_index=chunk.index,
                    text=chunk.text,
                    token_count=chunk.token_count,
                    encoded_embedding=self._encoded_column(chunk),
                )
                for chunk in chunks
            ])
            self._write_vectors(rows, chunks)

            document.transition_to(
                DocumentStatus.COMPLETED,
                chunk_count=len(chunks),
                error_message=None,
            )

        logger.info(
            f"Stored {len(chunks)} chunks for document {document.id} ({self.name} store)"
        )
        return document

    def load_completed_chunks(self, session_id: str) -> List[StoredChunk]:
        """
        Load every chunk of the session's COMPLETED documents.

        Ordered by document creation time, then document id, then
        chunk index.
        """
        queryset = (
            DocumentChunk.objects
            .filter(document__session_id=session_id, document__status=DocumentStatus.COMPLETED)
            .select_related('document')
            .order_by('document__created_at', 'document_id', 'chunk_index')
        )
        queryset = self._with_vectors(queryset)

        chunks = [
            StoredChunk(
                chunk_id=str(row.id),
                document_id=str(row.document_id),
                document_name=row.document.filename,
                document_created_at=row.document.created_at,
                chunk_index=row.chunk_index,
                text=row.text,
                token_count=row.token_count,
                embedding=self._read_vector(row),
            )
            for row in queryset
        ]

        logger.debug(f"Loaded {len(chunks)} completed chunks for session {session_id}")
        return chunks

    def delete_document(self, document_id) -> bool:
        """
        Delete a document; its chunks (and vectors) go with it.

        Returns:
            True if a document was deleted, False if none existed
        """
        deleted, _ = Document.objects.filter(pk=document_id).delete()
        if deleted:
            logger.info(f"Deleted document {document_id} and its chunks")
        return bool(deleted)

    @abstractmethod
    def _encoded_column(self, chunk: EmbeddedChunk) -> Optional[str]:
        pass

    @abstractmethod
    def _write_vectors(self, rows: List[DocumentChunk], chunks: Sequence[EmbeddedChunk]) -> None:
        pass

    @abstractmethod
    def _with_vectors(self, queryset):
        pass

    @abstractmethod
    def _read_vector(self, row: DocumentChunk) -> Tuple[float, ...]:
        pass


class EncodedChunkStore(BaseChunkStore):
    """Stores embeddings as JSON text in doc_chunks.encoded_embedding."""

    name = "encoded"

    def _encoded_column(self, chunk):
        return encode_embedding(chunk.embedding)

    def _write_vectors(self, rows, chunks):
        pass

    def _with_vectors(self, queryset):
        return queryset

    def _read_vector(self, row):
        return decode_embedding(row.encoded_embedding)


class PgVectorChunkStore(BaseChunkStore):
    """Stores embeddings in doc_chunk_vectors.embedding (pgvector)."""

    name = "pgvector"

    def __init__(self):
        # Imported here so databases without the extension never load the model
        from apps.vectors.models import ChunkVector
        self.vector_model = ChunkVector

    def _encoded_column(self, chunk):
        return None

    def _write_vectors(self, rows, chunks):
        self.vector_model.objects.bulk_create([
            self.vector_model(chunk=row, embedding=list(chunk.embedding))
            for row, chunk in zip(rows, chunks)
        ])

    def _with_vectors(self, queryset):
        return queryset.select_related('vector')

    def _read_vector(self, row):
        try:
            vector = row.vector.embedding
        except self.vector_model.DoesNotExist:
            logger.warning(f"Chunk {row.id} has no stored vector")
            return ()
        return tuple(float(x) for x in vector)


# =============================================================================
# Store Factory
# =============================================================================

_store_instance: Optional[BaseChunkStore] = None


def build_chunk_store(kind: str) -> BaseChunkStore:
    """
    Build the chunk store named by ``kind``.

    Raises:
        ImproperlyConfigured: For an unknown kind, or "pgvector" without
            the apps.vectors app installed
    """
    if kind == 'encoded':
        return EncodedChunkStore()
    if kind == 'pgvector':
        if 'apps.vectors' not in settings.INSTALLED_APPS:
            raise ImproperlyConfigured("VECTOR_STORE=pgvector requires apps.vectors in INSTALLED_APPS")
        return PgVectorChunkStore()
    raise ImproperlyConfigured(f"Unknown VECTOR_STORE '{kind}' (expected 'encoded' or 'pgvector')")


def validate_vector_dimensions(kind: str, dimensions: int) -> None:
    """
    Check that the configured embedding width fits the selected store.

    The encoded store accepts any width; the pgvector column is fixed.

    Raises:
        ImproperlyConfigured: If dimensions is not positive, or differs
            from the pgvector column width when kind is "pgvector"
    """
    if dimensions <= 0:
        raise ImproperlyConfigured(f"EMBEDDING_DIMENSIONS must be positive, got {dimensions}")
    if kind == 'pgvector':
        from apps.vectors import VECTOR_DIMENSIONS

        if dimensions != VECTOR_DIMENSIONS:
            raise ImproperlyConfigured(
                f"EMBEDDING_DIMENSIONS={dimensions} does not match the pgvector column "
                f"({VECTOR_DIMENSIONS}); use VECTOR_STORE=encoded or add a migration"
            )


def get_chunk_store() -> BaseChunkStore:
    """Get the chunk store selected by VECTOR_STORE (lazy initialization)."""
    global _store_instance
    if _store_instance is None:
        _store_instance = build_chunk_store(settings.VECTOR_STORE)
        logger.info(f"Using {_store_instance.name} chunk store")
    return _store_instance


def reset_chunk_store():
    """Reset the cached store instance. Useful for testing."""
    global _store_instance
    _store_instance = None
