"""
Retrieval service for RAG queries.

Scores every completed chunk of a session against the query embedding
with cosine similarity, then keeps the best matches above a threshold.
Ordering is fully deterministic: score descending, then document
creation time, document id and chunk index.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import DatabaseError

from apps.indexing.embedder import BaseEmbedder, EmbeddingError, get_embedder
from apps.indexing.stores import BaseChunkStore, StoredChunk, get_chunk_store

logger = logging.getLogger(__name__)

# Maximum snippet length for citations
SNIPPET_MAX_LENGTH = 350


class RetrievalError(Exception):
    """Raised when a query cannot be scored (e.g. the query embedding failed)."""
    pass


@dataclass(frozen=True)
class ScoredChunk:
    """A stored chunk with its similarity to the query."""
    chunk: StoredChunk
    score: float

    def sort_key(self):
        return (
            -self.score,
            self.chunk.document_created_at,
            self.chunk.document_id,
            self.chunk.chunk_index,
        )

    def to_dict(self) -> dict:
        return {
            "docId": self.chunk.document_id,
            "chunkId": self.chunk.chunk_id,
            "chunkIndex": self.chunk.chunk_index,
            "documentTitle": self.chunk.document_name,
            "snippet": create_snippet(self.chunk.text),
            "score": round(self.score, 4),
        }


@dataclass
class RetrievalResult:
    """Result of a retrieval query."""
    query: str
    scored_chunks: List[ScoredChunk] = field(default_factory=list)

    @property
    def grounded_in_context(self) -> bool:
        return len(self.scored_chunks) > 0

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "query": self.query,
            "groundedInContext": self.grounded_in_context,
            "chunks": [c.to_dict() for c in self.scored_chunks],
        }


def create_snippet(text: str, max_length: int = SNIPPET_MAX_LENGTH) -> str:
    """
    Create a deterministic snippet from chunk text.

    - Takes first N characters
    - Adds ellipsis if truncated
    - Preserves word boundaries when possible

    Args:
        text: Full chunk text
        max_length: Maximum snippet length

    Returns:
        Truncated snippet string
    """
    if len(text) <= max_length:
        return text

    # Try to break at word boundary
    truncated = text[:max_length]
    last_space = truncated.rfind(' ')

    if last_space > max_length * 0.7:  # Only break at space if reasonable
        truncated = truncated[:last_space]

    return truncated.rstrip() + "…"


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors, in [-1, 1].

    Returns 0.0 when either vector has zero norm or the dimensions
    differ (the latter is logged, since stored vectors should all share
    one dimension).
    """
    if len(a) != len(b):
        logger.warning(f"Embedding dimension mismatch: {len(a)} vs {len(b)}")
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    # Rounding can push identical vectors just past 1
    return max(-1.0, min(1.0, score))


def validate_retrieval_settings(top_k: int, threshold: float) -> None:
    """
    Raises:
        ImproperlyConfigured: If top_k is not positive or threshold is
            outside [-1, 1]
    """
    if top_k is None or top_k <= 0:
        raise ImproperlyConfigured(f"RAG_TOP_K must be positive, got {top_k}")
    if threshold is None or math.isnan(threshold) or not -1.0 <= threshold <= 1.0:
        raise ImproperlyConfigured(
            f"RAG_SIMILARITY_THRESHOLD must be within [-1, 1], got {threshold}"
        )


class RetrievalEngine:
    """
    Linear-scan similarity search over a session's chunks.

    Collaborators and limits default to the configured singletons and
    settings.
    """

    def __init__(
        self,
        embedder: Optional[BaseEmbedder] = None,
        store: Optional[BaseChunkStore] = None,
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ):
        self._embedder = embedder
        self._store = store
        self.top_k = settings.RAG_TOP_K if top_k is None else top_k
        self.threshold = settings.RAG_SIMILARITY_THRESHOLD if threshold is None else threshold
        validate_retrieval_settings(self.top_k, self.threshold)

    @property
    def embedder(self) -> BaseEmbedder:
        return self._embedder or get_embedder()

    @property
    def store(self) -> BaseChunkStore:
        return self._store or get_chunk_store()

    def retrieve(
        self,
        query: str,
        candidate_chunks: Sequence[StoredChunk],
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> RetrievalResult:
        """
        Score candidates against the query and keep the best matches.

        Args:
            query: The user's question
            candidate_chunks: Chunks to score (a session's completed chunks)
            top_k: Maximum number of chunks to keep
            threshold: Minimum similarity a chunk needs to be kept

        Returns:
            RetrievalResult ordered best first, at most top_k long

        Raises:
            RetrievalError: If the query cannot be embedded
        """
        top_k = self.top_k if top_k is None else top_k
        threshold = self.threshold if threshold is None else threshold
        validate_retrieval_settings(top_k, threshold)

        if not candidate_chunks:
            logger.info("No candidate chunks, skipping query embedding")
            return RetrievalResult(query=query)

        try:
            query_embedding = self.embedder.embed(query)
        except EmbeddingError as e:
            logger.error(f"Query embedding failed: {e}")
            raise RetrievalError(f"Failed to embed query: {e}")

        scored = [
            ScoredChunk(chunk=chunk, score=cosine_similarity(query_embedding, chunk.embedding))
            for chunk in candidate_chunks
        ]
        scored.sort(key=ScoredChunk.sort_key)

        kept = [s for s in scored if s.score >= threshold][:top_k]

        logger.info(
            f"Retrieved {len(kept)} of {len(candidate_chunks)} chunks "
            f"(top_k={top_k}, threshold={threshold})"
        )
        if kept:
            logger.debug(f"Best score {kept[0].score:.4f}, worst kept {kept[-1].score:.4f}")

        return RetrievalResult(query=query, scored_chunks=kept)

    def retrieve_for_session(self, query: str, session_id: str, top_k: Optional[int] = None) -> RetrievalResult:
        """
        Retrieve against every completed chunk of a session.

        Raises:
            RetrievalError: If the chunks cannot be loaded or the query
                cannot be embedded
        """
        try:
            candidates = self.store.load_completed_chunks(session_id)
        except DatabaseError as e:
            logger.exception(f"Loading chunks for session {session_id} failed")
            raise RetrievalError(f"Chunk store unavailable: {e}")
        return self.retrieve(query, candidates, top_k=top_k)
