"""
Client-side polling for document ingestion status.

Polls GET /api/docs/<id>/status until the document reaches COMPLETED or
FAILED. The loop is bounded by ``max_attempts`` and can be stopped from
another thread through a ``threading.Event``.
"""
import logging
import threading
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_MAX_ATTEMPTS = 150

# Same values as DocumentStatus; this module must import without Django
TERMINAL_STATUSES = ('COMPLETED', 'FAILED')


class PollingError(Exception):
    """Base exception for status polling."""
    pass


class PollingTimeout(PollingError):
    """Raised when the document is still not terminal after max_attempts polls."""

    def __init__(self, document_id: str, attempts: int, last_status: Optional[str]):
        super().__init__(
            f"Document {document_id} not finished after {attempts} polls "
            f"(last status: {last_status})"
        )
        self.document_id = document_id
        self.attempts = attempts
        self.last_status = last_status


class PollingCancelled(PollingError):
    """Raised when the caller cancels the wait."""
    pass


class DocumentStatusPoller:
    """Polls the documents API for ingestion status."""

    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip('/')
        self.client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def get_status(self, document_id: str) -> dict:
        """
        Fetch the status surface of one document.

        Raises:
            httpx.HTTPStatusError: On a non-2xx response (e.g. 404)
        """
        response = self.client.get(f"{self.base_url}/api/docs/{document_id}/status")
        response.raise_for_status()
        return response.json()

    def wait_for_document(
        self,
        document_id: str,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        cancel_event: Optional[threading.Event] = None,
    ) -> dict:
        """
        Poll until the document is COMPLETED or FAILED.

        Args:
            document_id: Document to watch
            interval: Seconds between polls
            max_attempts: Upper bound on the number of polls
            cancel_event: Set it from another thread to stop waiting

        Returns:
            The final status dict (check its "status" for COMPLETED/FAILED)

        Raises:
            PollingTimeout: If max_attempts polls pass without a terminal status
            PollingCancelled: If cancel_event is set
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        cancel_event = cancel_event or threading.Event()
        last_status = None

        for attempt in range(1, max_attempts + 1):
            if cancel_event.is_set():
                raise PollingCancelled(f"Polling for document {document_id} cancelled")

            data = self.get_status(document_id)
            last_status = data.get('status')

            if last_status in TERMINAL_STATUSES:
                logger.info(f"Document {document_id} finished as {last_status} after {attempt} polls")
                return data

            logger.debug(f"Document {document_id} is {last_status} (poll {attempt}/{max_attempts})")

            # wait() returns early when cancelled
            if attempt < max_attempts and cancel_event.wait(interval):
                raise PollingCancelled(f"Polling for document {document_id} cancelled")

        raise PollingTimeout(document_id, max_attempts, last_status)
