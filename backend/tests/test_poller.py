"""
Tests for the bounded, cancellable status poller.
"""
import threading

import httpx
import pytest

from apps.docs.client import DocumentStatusPoller, PollingCancelled, PollingTimeout

DOC_ID = "11111111-2222-3333-4444-555555555555"


def poller_for(statuses, calls=None):
    """Poller whose server answers with ``statuses`` in turn (last one repeats)."""
    calls = calls if calls is not None else []

    def handler(request):
        calls.append(request.url.path)
        status = statuses[min(len(calls) - 1, len(statuses) - 1)]
        body = {"id": DOC_ID, "status": status, "chunkCount": 0}
        if status == "FAILED":
            body["errorMessage"] = "Extraction error: bad file"
        return httpx.Response(200, json=body)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    return DocumentStatusPoller("http://testserver/", client=client)


class TestWaitForDocument:
    """Tests for DocumentStatusPoller.wait_for_document."""

    def test_returns_when_completed(self):
        """Should return the status once the document is COMPLETED."""
        calls = []
        poller = poller_for(["PENDING", "PROCESSING", "COMPLETED"], calls)

        result = poller.wait_for_document(DOC_ID, interval=0, max_attempts=10)

        assert result["status"] == "COMPLETED"
        assert len(calls) == 3
        assert calls[0] == f"/api/docs/{DOC_ID}/status"

    def test_returns_failed_with_error(self):
        """Should return FAILED status with its error message."""
        poller = poller_for(["PROCESSING", "FAILED"])

        result = poller.wait_for_document(DOC_ID, interval=0, max_attempts=10)

        assert result["status"] == "FAILED"
        assert result["errorMessage"] == "Extraction error: bad file"

    def test_gives_up_after_max_attempts(self):
        """Should raise PollingTimeout after max_attempts polls."""
        calls = []
        poller = poller_for(["PROCESSING"], calls)

        with pytest.raises(PollingTimeout) as exc:
            poller.wait_for_document(DOC_ID, interval=0, max_attempts=4)

        assert len(calls) == 4
        assert exc.value.last_status == "PROCESSING"

    def test_cancelled_before_first_poll(self):
        """Should not poll at all when already cancelled."""
        calls = []
        poller = poller_for(["PENDING"], calls)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(PollingCancelled):
            poller.wait_for_document(DOC_ID, interval=0, max_attempts=5, cancel_event=cancel)

        assert calls == []

    def test_cancel_interrupts_wait(self):
        """Should stop waiting as soon as the event is set."""
        poller = poller_for(["PENDING"])
        cancel = threading.Event()
        timer = threading.Timer(0.05, cancel.set)
        timer.start()

        try:
            with pytest.raises(PollingCancelled):
                poller.wait_for_document(DOC_ID, interval=30, max_attempts=5, cancel_event=cancel)
        finally:
            timer.cancel()

    def test_http_errors_propagate(self):
        """Should let HTTP errors such as 404 propagate."""
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
        poller = DocumentStatusPoller("http://testserver", client=client)

        with pytest.raises(httpx.HTTPStatusError):
            poller.wait_for_document(DOC_ID, interval=0, max_attempts=3)

    def test_rejects_non_positive_attempts(self):
        """Should reject max_attempts below one."""
        with pytest.raises(ValueError):
            poller_for(["PENDING"]).wait_for_document(DOC_ID, max_attempts=0)
