"""
Answer generation for RAG.

Chooses between a grounded directive (answer only from the retrieved
notes, cite with [i]) and a general-knowledge fallback, calls the
generator once and labels the result. Upstream failures never escape:
a failed retrieval falls back to general knowledge, a failed generation
turns into a fixed apology.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from apps.rag.llm_client import BaseGenerator, GenerationError, get_generator
from apps.rag.retrieval import (
    RetrievalEngine,
    RetrievalError,
    RetrievalResult,
    ScoredChunk,
    create_snippet,
)

logger = logging.getLogger(__name__)

LABEL_SEPARATOR = "\n\n"

APOLOGY_TEXT = (
    "Sorry, I couldn't generate an answer right now because the AI service "
    "is unavailable. Please try again in a moment."
)


class AnswerLabel(str, Enum):
    FROM_CONTEXT = "FROM_CONTEXT"
    FROM_GENERAL = "FROM_GENERAL"

    @property
    def prefix(self) -> str:
        return LABEL_PREFIXES[self]


LABEL_PREFIXES = {
    AnswerLabel.FROM_CONTEXT: "📚 Answer from uploaded notes:",
    AnswerLabel.FROM_GENERAL: "🤖 Answer not in uploaded notes, generated from AI:",
}


# Directive with strict citation rules
GROUNDED_DIRECTIVE = """You are a helpful study assistant. Answer the user's question based ONLY on the provided context from their uploaded notes.

STRICT RULES:
1. Use ONLY information from the provided context below.
2. If the answer cannot be found in the context, say explicitly: "I don't see information about that in your notes."
3. When citing information, use bracket notation like [1], [2] to reference the source chunks.
4. Be concise and factual.
5. Do not make up information or use external knowledge.

CONTEXT:
{context}

Answer the user's question using only the context above."""

FALLBACK_DIRECTIVE = """You are a helpful study assistant. The user asked a question but no relevant information was found in their uploaded notes.

INSTRUCTIONS:
1. Answer the question using your general knowledge.
2. Make clear that the answer comes from general AI knowledge, not from their uploaded notes.
3. If you are not sure about something, say so."""


@dataclass
class Citation:
    """A retained chunk referenced by a grounded answer."""
    index: int  # 1-based, matches [i] in the answer
    doc_id: str
    chunk_id: str
    chunk_index: int
    document_title: str
    score: float
    snippet: str

    @classmethod
    def from_scored_chunk(cls, index: int, scored: ScoredChunk) -> 'Citation':
        chunk = scored.chunk
        return cls(
            index=index,
            doc_id=chunk.document_id,
            chunk_id=chunk.chunk_id,
            chunk_index=chunk.chunk_index,
            document_title=chunk.document_name,
            score=scored.score,
            snippet=create_snippet(chunk.text),
        )

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "docId": self.doc_id,
            "chunkId": self.chunk_id,
            "chunkIndex": self.chunk_index,
            "documentTitle": self.document_title,
            "score": round(self.score, 4),
            "snippet": self.snippet,
        }


@dataclass
class GenerationAnswer:
    """A labeled answer, ready for the client."""
    text: str
    label: AnswerLabel
    citations: List[Citation] = field(default_factory=list)
    latency_ms: int = 0
    generation_error: Optional[str] = None

    @property
    def grounded(self) -> bool:
        return self.label == AnswerLabel.FROM_CONTEXT

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "answer": self.text,
            "label": self.label.value,
            "grounded": self.grounded,
            "citations": [c.to_dict() for c in self.citations],
            "latencyMs": self.latency_ms,
            "generationError": self.generation_error,
        }


def build_context_block(scored_chunks: List[ScoredChunk]) -> str:
    """
    Build a numbered context block from retained chunks.

    Format:
    [1] (document.pdf, chunk 3): The text content here...
    [2] (other.txt, chunk 1): More content...
    """
    parts = []
    for i, scored in enumerate(scored_chunks, 1):
        chunk = scored.chunk
        parts.append(f"[{i}] ({chunk.document_name}, chunk {chunk.chunk_index}): {chunk.text}")
    return "\n\n".join(parts)


def build_grounded_directive(scored_chunks: List[ScoredChunk]) -> str:
    return GROUNDED_DIRECTIVE.format(context=build_context_block(scored_chunks))


def format_answer(label: AnswerLabel, body: str) -> str:
    return f"{label.prefix}{LABEL_SEPARATOR}{body}"


class GenerationOrchestrator:
    """Turns a retrieval outcome into a labeled, cited answer."""

    def __init__(self, generator: Optional[BaseGenerator] = None, engine: Optional[RetrievalEngine] = None):
        self._generator = generator
        self._engine = engine

    @property
    def generator(self) -> BaseGenerator:
        return self._generator or get_generator()

    @property
    def engine(self) -> RetrievalEngine:
        if self._engine is None:
            self._engine = RetrievalEngine()
        return self._engine

    def answer(self, query: str, retrieval: Union[RetrievalResult, RetrievalError]) -> GenerationAnswer:
        """
        Generate an answer for a query from a retrieval outcome.

        Args:
            query: The user's question
            retrieval: The retrieval result, or the error retrieval raised

        Returns:
            GenerationAnswer; never raises for generator failures
        """
        started = time.monotonic()

        grounded = isinstance(retrieval, RetrievalResult) and retrieval.grounded_in_context
        if isinstance(retrieval, RetrievalError):
            logger.warning(f"Retrieval failed, answering from general knowledge: {retrieval}")

        if grounded:
            label = AnswerLabel.FROM_CONTEXT
            directive = build_grounded_directive(retrieval.scored_chunks)
            citations = [
                Citation.from_scored_chunk(i, scored)
                for i, scored in enumerate(retrieval.scored_chunks, 1)
            ]
        else:
            label = AnswerLabel.FROM_GENERAL
            directive = FALLBACK_DIRECTIVE
            citations = []

        logger.debug(f"Directive length: {len(directive)} chars, label {label.value}")

        generation_error = None
        try:
            body = self.generator.complete(directive, query)
        except GenerationError as e:
            logger.error(f"Generation failed: {e}")
            generation_error = str(e)
            label = AnswerLabel.FROM_GENERAL
            citations = []
            body = APOLOGY_TEXT

        latency_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Answer ready: label={label.value}, citations={len(citations)}, latency={latency_ms}ms"
        )

        return GenerationAnswer(
            text=format_answer(label, body),
            label=label,
            citations=citations,
            latency_ms=latency_ms,
            generation_error=generation_error,
        )

    def ask(self, query: str, session_id: str) -> GenerationAnswer:
        """Retrieve against the session's notes, then answer."""
        try:
            retrieval = self.engine.retrieve_for_session(query, session_id)
        except RetrievalError as e:
            retrieval = e
        return self.answer(query, retrieval)
