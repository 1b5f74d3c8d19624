"""
File storage service for document uploads.

Keeps the raw bytes of an upload on the local filesystem until the
indexing worker has ingested them.
"""
import logging
from pathlib import Path
from typing import Optional
from django.conf import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class FileStorage:
    """
    Simple file storage for uploaded documents.

    Files are stored at: {UPLOAD_ROOT}/{document_id}.{extension}
    """

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or settings.UPLOAD_ROOT)
        self._ensure_root_exists()

    def _ensure_root_exists(self) -> None:
        """Create the upload root directory if it doesn't exist."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            logger.info(f"Upload root ensured at: {self.root}")
        except OSError as e:
            logger.error(f"Failed to create upload root {self.root}: {e}")
            raise StorageError(f"Cannot create upload directory: {e}")

    def save_bytes(self, document_id: str, extension: str, data: bytes) -> str:
        """
        Save an upload to storage.

        Args:
            document_id: UUID of the document
            extension: File extension (e.g., '.pdf')
            data: Raw file content

        Returns:
            Relative storage path (e.g., 'abc123.pdf')

        Raises:
            StorageError: If file cannot be saved
        """
        # Clean extension
        if extension and not extension.startswith('.'):
            extension = f'.{extension}'

        filename = f"{document_id}{extension}"
        filepath = self.root / filename

        try:
            filepath.write_bytes(data)
            logger.info(f"Saved file: {filename} ({len(data)} bytes)")
            return filename
        except OSError as e:
            logger.error(f"Failed to save file {filename}: {e}")
            raise StorageError(f"Failed to save file: {e}")

    def read_bytes(self, storage_path: str) -> bytes:
        """
        Read a stored upload.

        Raises:
            StorageError: If the file is missing or unreadable
        """
        filepath = self.root / storage_path
        if not storage_path or not filepath.exists():
            raise StorageError(f"File not found: {storage_path}")
        try:
            return filepath.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read file {storage_path}: {e}")

    def delete(self, storage_path: str) -> bool:
        """
        Delete a file from storage.

        Args:
            storage_path: Relative path to delete

        Returns:
            True if deleted, False if file didn't exist
        """
        if not storage_path:
            return False
        filepath = self.root / storage_path
        try:
            if filepath.exists():
                filepath.unlink()
                logger.info(f"Deleted file: {storage_path}")
                return True
            return False
        except OSError as e:
            logger.error(f"Failed to delete file {storage_path}: {e}")
            raise StorageError(f"Failed to delete file: {e}")


# Singleton instance
_storage: Optional[FileStorage] = None


def get_storage() -> FileStorage:
    """Get the file storage instance (lazy initialization)."""
    global _storage
    if _storage is None:
        _storage = FileStorage()
    return _storage


def reset_storage():
    """Reset the cached storage instance. Useful for testing."""
    global _storage
    _storage = None
