"""
Indexing worker - ingests uploaded documents in the background.

This worker:
1. Claims the oldest PENDING document atomically (SELECT FOR UPDATE SKIP LOCKED)
2. Moves it to PROCESSING
3. Loads the stored upload bytes
4. Runs the ingestion pipeline (extract, chunk, embed, store)

Several workers can run side by side; each document is claimed by one.

Run as: python manage.py run_worker
"""
import os
import time
import signal
import logging
from typing import Optional

from django.conf import settings
from django.db import transaction

from apps.docs.models import Document, DocumentStatus
from apps.docs.storage import StorageError
from apps.indexing.ingestor import DocumentIngestor

logger = logging.getLogger(__name__)

# Configuration
MAX_CONSECUTIVE_ERRORS = 5  # Stop if too many errors in a row


class IndexingWorker:
    """
    Worker that processes PENDING documents.

    Uses SELECT FOR UPDATE SKIP LOCKED for safe concurrent claiming.
    """

    def __init__(self, ingestor: Optional[DocumentIngestor] = None, poll_interval: Optional[float] = None):
        self.running = False
        self.consecutive_errors = 0
        self.ingestor = ingestor or DocumentIngestor()
        self.poll_interval = poll_interval if poll_interval is not None else settings.WORKER_POLL_INTERVAL

    def claim_document(self) -> Optional[Document]:
        """
        Atomically claim the next PENDING document and mark it PROCESSING.

        Returns:
            The claimed Document, or None if nothing is waiting
        """
        with transaction.atomic():
            document = (
                Document.objects
                .select_for_update(skip_locked=True)
                .filter(status=DocumentStatus.PENDING)
                .order_by('created_at')
                .first()
            )
            if document is None:
                return None

            self.ingestor.begin(document)

        logger.info(f"Claimed document {document.id} ({document.filename})")
        return document

    def process_document(self, document: Document) -> Document:
        """Load the stored upload and run the pipeline; never leaves PROCESSING behind."""
        try:
            data = self.ingestor.storage.read_bytes(document.storage_path)
        except StorageError as e:
            return self.ingestor._fail(document, f"Storage error: {e}")

        try:
            document = self.ingestor.run_pipeline(document, data)
        except Exception as e:
            logger.exception(f"Unexpected error processing document {document.id}")
            return self.ingestor.fail_if_processing(document, f"Unexpected error: {e}")

        if document.status == DocumentStatus.COMPLETED:
            # Chunks hold the text now; the raw upload is no longer needed
            self.ingestor.storage.delete(document.storage_path)
        return document

    def run_once(self) -> bool:
        """
        Try to claim and process one document.

        Returns:
            True if a document was processed, False if none was waiting
        """
        document = self.claim_document()

        if not document:
            return False

        self.process_document(document)
        self.consecutive_errors = 0
        return True

    def run(self):
        """
        Main worker loop.

        Continuously polls for documents and processes them.
        """
        logger.info("Starting indexing worker...")

        if not self.ingestor.embedder.ping():
            logger.error("Embedding backend unreachable. Documents will fail until it is up.")

        self.running = True

        # Set up signal handlers for graceful shutdown
        def handle_signal(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            self.running = False

        signal.signal(signal.SIGTERM, handle_signal)
        signal.signal(signal.SIGINT, handle_signal)

        while self.running:
            try:
                if self.run_once():
                    # Document was processed, immediately check for more
                    continue
                else:
                    # Nothing waiting, sleep before polling again
                    time.sleep(self.poll_interval)

            except Exception as e:
                logger.exception(f"Error in worker loop: {e}")
                self.consecutive_errors += 1

                if self.consecutive_errors >= MAX_CONSECUTIVE_ERRORS:
                    logger.error("Too many consecutive errors, stopping worker")
                    break

                # Back off on errors
                time.sleep(self.poll_interval * 2)

        logger.info("Worker stopped")


def main():
    """Entry point for the worker."""
    import django

    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
    django.setup()

    IndexingWorker().run()


if __name__ == '__main__':
    main()
