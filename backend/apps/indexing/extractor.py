"""
Text extraction from uploaded document bytes.

Supports:
- .txt: UTF-8 text (with fallback for encoding errors)
- .md: UTF-8 markdown
- .pdf: Best-effort text extraction using PyMuPDF
- .docx: Paragraph and table text using python-docx
"""
import io
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = 'application/pdf'
DOCX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'
MARKDOWN_CONTENT_TYPES = ('text/markdown', 'text/x-markdown')


class ExtractionError(Exception):
    """Raised when text extraction fails."""
    pass


def decode_text(data: bytes, filename: str) -> str:
    """
    Decode a plain text or markdown upload.

    Markdown is kept as-is; the chunker and embedder handle its syntax.
    """
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        logger.warning(f"UTF-8 decode failed for {filename}, using errors='ignore'")
        return data.decode('utf-8', errors='ignore')


def extract_text_from_pdf(data: bytes) -> str:
    """
    Extract text from a PDF using PyMuPDF.

    This is a best-effort extraction - scanned, image-based PDFs
    may not yield text. There is no OCR step.

    Raises:
        ExtractionError: If the PDF cannot be opened or parsed
    """
    import fitz  # PyMuPDF

    try:
        text_parts = []

        with fitz.open(stream=data, filetype='pdf') as doc:
            for page in doc:
                page_text = page.get_text()
                if page_text.strip():
                    text_parts.append(page_text)

        return "\n\n".join(text_parts)

    except Exception as e:
        raise ExtractionError(f"Failed to extract text from PDF: {e}")


def extract_text_from_docx(data: bytes) -> str:
    """
    Extract text from a Word document using python-docx.

    Paragraphs come first, then table cells row by row.

    Raises:
        ExtractionError: If the file is not a readable DOCX package
    """
    import docx

    try:
        document = docx.Document(io.BytesIO(data))
    except Exception as e:
        raise ExtractionError(f"Failed to open DOCX file: {e}")

    parts = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))

    return "\n\n".join(parts)


def extract_text(data: bytes, filename: str, content_type: Optional[str] = None) -> str:
    """
    Extract text from uploaded document bytes.

    Determines the extraction method based on content type, falling
    back to the file extension.

    Args:
        data: Raw file content
        filename: Original filename (used for the extension)
        content_type: Normalized MIME type

    Returns:
        Extracted, stripped text content

    Raises:
        ExtractionError: If extraction fails, yields no text, or the
            format is not supported
    """
    suffix = Path(filename).suffix.lower()

    logger.info(f"Extracting text from {filename} (suffix={suffix}, content_type={content_type})")

    if content_type == PDF_CONTENT_TYPE or suffix == '.pdf':
        text = extract_text_from_pdf(data)
    elif content_type == DOCX_CONTENT_TYPE or suffix == '.docx':
        text = extract_text_from_docx(data)
    elif content_type in MARKDOWN_CONTENT_TYPES or suffix in ('.md', '.markdown'):
        text = decode_text(data, filename)
    elif content_type == 'text/plain' or suffix == '.txt':
        text = decode_text(data, filename)
    else:
        raise ExtractionError(f"Unsupported file format: {suffix or content_type}")

    text = text.strip()
    if not text:
        raise ExtractionError("No text extracted from document")

    logger.info(f"Extracted {len(text)} characters from {filename}")
    return text
