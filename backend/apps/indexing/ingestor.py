"""
Document ingestion pipeline.

Turns raw upload bytes into a queryable, embedded chunk set:
1. Validate size and type (before anything is created)
2. Hash the content and create a PENDING document
3. Extract text
4. Split text into overlapping token windows
5. Embed every window, in order
6. Persist all chunks and mark the document COMPLETED

Steps 3-6 run while the document is PROCESSING. Any failure in them,
expected or not, marks the document FAILED; no chunks are kept for it.
"""
import hashlib
import logging
import math
import numbers
from pathlib import Path
from typing import Optional

from django.conf import settings

from apps.docs.models import Document, DocumentStatus
from apps.docs.storage import FileStorage, get_storage
from apps.indexing.chunker import chunk_text
from apps.indexing.embedder import BaseEmbedder, EmbeddingError, get_embedder
from apps.indexing.extractor import ExtractionError, extract_text
from apps.indexing.stores import BaseChunkStore, EmbeddedChunk, get_chunk_store

logger = logging.getLogger(__name__)

# Map extensions to MIME types
EXTENSION_CONTENT_TYPES = {
    '.pdf': 'application/pdf',
    '.txt': 'text/plain',
    '.md': 'text/markdown',
    '.markdown': 'text/markdown',
    '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}

GENERIC_CONTENT_TYPES = ('application/octet-stream', 'binary/octet-stream', '')


class DocumentValidationError(Exception):
    """Raised when an upload is rejected before a document is created."""

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.code = code


def get_extension(filename: str) -> str:
    """Extract file extension from filename."""
    return Path(filename).suffix.lower()


def normalize_content_type(content_type: Optional[str], filename: str) -> str:
    """
    Normalize content type, using file extension as fallback.

    Drops parameters such as "; charset=utf-8". Some browsers/clients
    send generic MIME types, so those are replaced by the type implied
    by the extension.
    """
    normalized = (content_type or '').split(';')[0].strip().lower()

    if normalized in GENERIC_CONTENT_TYPES:
        return EXTENSION_CONTENT_TYPES.get(get_extension(filename), normalized)

    return normalized


def compute_content_hash(data: bytes) -> str:
    """Hex SHA-256 of the upload (64 characters)."""
    return hashlib.sha256(data).hexdigest()


class DocumentIngestor:
    """
    Orchestrates extraction, chunking, embedding and persistence.

    Collaborators default to the configured singletons; tests pass
    their own.
    """

    def __init__(
        self,
        embedder: Optional[BaseEmbedder] = None,
        store: Optional[BaseChunkStore] = None,
        storage: Optional[FileStorage] = None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        max_upload_size: Optional[int] = None,
    ):
        self._embedder = embedder
        self._store = store
        self._storage = storage
        self.chunk_size = chunk_size or settings.CHUNK_SIZE_TOKENS
        self.chunk_overlap = settings.CHUNK_OVERLAP_TOKENS if chunk_overlap is None else chunk_overlap
        self.max_upload_size = max_upload_size or settings.MAX_UPLOAD_SIZE

    @property
    def embedder(self) -> BaseEmbedder:
        return self._embedder or get_embedder()

    @property
    def store(self) -> BaseChunkStore:
        return self._store or get_chunk_store()

    @property
    def storage(self) -> FileStorage:
        return self._storage or get_storage()

    def validate(self, data: bytes, filename: str, content_type: Optional[str]) -> str:
        """
        Check an upload before anything is persisted.

        Returns:
            The normalized content type

        Raises:
            DocumentValidationError: If the file is empty, too large or of
                an unsupported type
        """
        if not data:
            raise DocumentValidationError('File is empty', 'EMPTY_FILE')

        if len(data) > self.max_upload_size:
            max_mb = self.max_upload_size // (1024 * 1024)
            raise DocumentValidationError(
                f'File too large. Maximum size is {max_mb}MB', 'FILE_TOO_LARGE'
            )

        if get_extension(filename) not in settings.ALLOWED_EXTENSIONS:
            raise DocumentValidationError(
                'Invalid file type. Allowed: PDF, TXT, MD, DOCX', 'INVALID_FILE_TYPE'
            )

        normalized = normalize_content_type(content_type, filename)
        if normalized not in settings.ALLOWED_CONTENT_TYPES:
            raise DocumentValidationError(
                f'Invalid content type: {normalized or "unknown"}. Allowed: PDF, TXT, MD, DOCX',
                'INVALID_CONTENT_TYPE'
            )

        return normalized

    def create_document(
        self,
        data: bytes,
        filename: str,
        content_type: Optional[str],
        session_id: str,
        keep_file: bool = True,
    ) -> Document:
        """
        Validate an upload and create its PENDING document.

        With ``keep_file`` the bytes are written to file storage so the
        indexing worker can pick the document up later.

        Raises:
            DocumentValidationError: If validation fails (nothing is created)
            StorageError: If the file cannot be stored
        """
        content_type = self.validate(data, filename, content_type)
        content_hash = compute_content_hash(data)

        document = Document.objects.create(
            session_id=session_id,
            filename=filename,
            content_type=content_type,
            size_bytes=len(data),
            content_hash=content_hash,
            status=DocumentStatus.PENDING,
        )

        if keep_file:
            try:
                document.storage_path = self.storage.save_bytes(
                    str(document.id), get_extension(filename), data
                )
            except Exception:
                document.delete()
                raise
            document.save(update_fields=['storage_path'])

        logger.info(
            f"Document created: {document.id} ({filename}, {len(data)} bytes, "
            f"session {session_id}, sha256 {content_hash[:12]})"
        )
        return document

    def begin(self, document: Document) -> Document:
        """Move a PENDING document to PROCESSING."""
        document.transition_to(DocumentStatus.PROCESSING)
        logger.info(f"Processing document {document.id} ({document.filename})")
        return document

    def run_pipeline(self, document: Document, data: bytes) -> Document:
        """
        Extract, chunk, embed and persist a PROCESSING document.

        Never raises for bad input, embedding failures or unexpected
        errors; those end in FAILED with the reason in error_message.

        Returns:
            The document in COMPLETED or FAILED state
        """
        try:
            text = extract_text(data, document.filename, document.content_type)

            windows = chunk_text(text, self.chunk_size, self.chunk_overlap)
            if not windows:
                raise ExtractionError("No chunks generated from text")

            logger.info(f"Document {document.id} chunked into {len(windows)} pieces")

            # Strictly sequential; the first failure aborts the document
            embedded = []
            for window in windows:
                embedded.append(EmbeddedChunk(
                    index=window.index,
                    text=window.text,
                    token_count=window.token_count,
                    embedding=self._embed_chunk(window.index, window.text),
                ))

            return self.store.save(document, embedded)

        except ExtractionError as e:
            return self._fail(document, f"Extraction error: {e}")
        except EmbeddingError as e:
            return self._fail(document, f"Embedding error: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error ingesting document {document.id}")
            return self.fail_if_processing(document, f"Unexpected error: {e}")

    def process(self, document: Document, data: bytes) -> Document:
        """Run a PENDING document through the whole pipeline."""
        self.begin(document)
        return self.run_pipeline(document, data)

    def ingest(self, data: bytes, filename: str, content_type: Optional[str], session_id: str) -> Document:
        """
        Validate, create and fully ingest an upload in the calling thread.

        Raises:
            DocumentValidationError: If validation fails (nothing is created)
        """
        document = self.create_document(data, filename, content_type, session_id, keep_file=False)
        return self.process(document, data)

    def _embed_chunk(self, index: int, text: str):
        try:
            embedding = self.embedder.embed(text)
        except EmbeddingError as e:
            raise EmbeddingError(f"Failed to embed chunk {index}: {e}")

        if not isinstance(embedding, (list, tuple)):
            raise EmbeddingError(
                f"Chunk {index} embedding is {type(embedding).__name__}, expected a list of floats"
            )

        expected = settings.EMBEDDING_DIMENSIONS
        if len(embedding) != expected:
            raise EmbeddingError(
                f"Chunk {index} embedding has {len(embedding)} dimensions, expected {expected}"
            )

        for position, value in enumerate(embedding):
            # bool is a Real subclass but never a valid component
            if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
                raise EmbeddingError(
                    f"Chunk {index} embedding has a non-numeric value at position {position}: {value!r}"
                )
        return [float(value) for value in embedding]

    def _fail(self, document: Document, error_message: str) -> Document:
        logger.error(f"Document {document.id} failed: {error_message}")
        document.transition_to(DocumentStatus.FAILED, error_message=error_message)
        return document

    def fail_if_processing(self, document: Document, error_message: str) -> Document:
        """
        Mark a document FAILED unless it already left PROCESSING or was deleted.

        Used after an unexpected error, when the stored state is unknown.
        """
        try:
            document.refresh_from_db(fields=['status'])
        except Document.DoesNotExist:
            logger.warning(f"Document {document.id} was deleted during processing")
            return document

        if document.status == DocumentStatus.PROCESSING:
            return self._fail(document, error_message)
        return document
