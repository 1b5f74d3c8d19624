"""
Deterministic token-window chunking for document ingestion.

Chunking is designed to be:
- Deterministic: Same input always produces same chunks
- Contiguous: Chunk indices run 0..N-1 without gaps
- Overlap-aware: Consecutive windows share a fixed number of tokens
"""
import re
import logging
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)

# Default chunking parameters
DEFAULT_CHUNK_SIZE = 250  # tokens per window
DEFAULT_CHUNK_OVERLAP = 40  # tokens shared with the previous window

TOKEN_PATTERN = re.compile(r'\S+')


@dataclass
class TextChunk:
    """A window of text with its index."""
    index: int
    text: str
    token_count: int
    start_char: int
    end_char: int

    @property
    def char_count(self) -> int:
        return len(self.text)


def validate_window(chunk_size: int, chunk_overlap: int) -> None:
    """
    Check that a window configuration makes progress.

    Raises:
        ValueError: If the size is not positive or the overlap is not
            in [0, chunk_size)
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError(
            f"chunk_overlap must be in [0, {chunk_size}), got {chunk_overlap}"
        )


def normalize_whitespace(text: str) -> str:
    """
    Normalize whitespace in text for consistent chunking.

    - Converts all whitespace sequences to single spaces
    - Preserves paragraph breaks (double newlines)
    - Strips leading/trailing whitespace

    Args:
        text: Raw text input

    Returns:
        Normalized text
    """
    # First, normalize line endings
    text = text.replace('\r\n', '\n').replace('\r', '\n')

    # Collapse blank lines (with stray spaces) to a single paragraph break
    text = re.sub(r'\n\s*\n', '\n\n', text)

    # Replace multiple spaces/tabs with single space
    text = re.sub(r'[^\S\n]+', ' ', text)

    # Clean up lines
    lines = text.split('\n')
    lines = [line.strip() for line in lines]
    text = '\n'.join(lines)

    # Remove excessive newlines (more than 2 in a row)
    text = re.sub(r'\n{3,}', '\n\n', text)

    return text.strip()


def count_tokens(text: str) -> int:
    """Count whitespace-delimited tokens."""
    return len(TOKEN_PATTERN.findall(text))


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    normalize: bool = True
) -> List[TextChunk]:
    """
    Split text into overlapping token windows.

    Each window covers ``chunk_size`` tokens and starts
    ``chunk_size - chunk_overlap`` tokens after the previous one. The
    window text is sliced from the source between its first and last
    token, so line and paragraph breaks inside a window are kept.
    The final window ends at the last token; no window consists only of
    overlap.

    Args:
        text: The text to chunk
        chunk_size: Window width in tokens
        chunk_overlap: Tokens shared by consecutive windows
        normalize: Whether to normalize whitespace first

    Returns:
        List of TextChunk objects with indices 0..N-1

    Raises:
        ValueError: If the window configuration is invalid
    """
    validate_window(chunk_size, chunk_overlap)

    if normalize:
        text = normalize_whitespace(text)

    spans = [m.span() for m in TOKEN_PATTERN.finditer(text)]
    if not spans:
        logger.warning("Empty text provided for chunking")
        return []

    step = chunk_size - chunk_overlap
    chunks = []
    start = 0

    while True:
        end = min(start + chunk_size, len(spans))
        start_char = spans[start][0]
        end_char = spans[end - 1][1]

        chunks.append(TextChunk(
            index=len(chunks),
            text=text[start_char:end_char],
            token_count=end - start,
            start_char=start_char,
            end_char=end_char,
        ))

        if end == len(spans):
            break
        start += step

    logger.info(
        f"Created {len(chunks)} chunks from {len(spans)} tokens "
        f"(size={chunk_size}, overlap={chunk_overlap})"
    )

    return chunks
