"""
Tests for the polling client.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from pdfscan.client import ProcessPdfClient, poll_until_done
from pdfscan.exceptions import PipelineError, UnknownProcess, UploadRejected
from pdfscan.models import ErrorKind


def response(status_code: int, body=None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = "" if body is None else str(body)
    if body is None:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = body
    return resp


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.now += seconds


# ═══════════════════════════════════════════════════════════════════════════════
# POLLING
# ═══════════════════════════════════════════════════════════════════════════════


class TestPollUntilDone:
    """Test the poll loop."""

    def test_returns_terminal_status(self):
        statuses = iter([
            {"status": "processing", "progress": 10},
            {"status": "analyzing", "progress": 50},
            {"status": "completed", "progress": 100, "extractedText": "Hello World"},
        ])
        sleep = MagicMock()
        updates = []

        result = poll_until_done(
            lambda pid: next(statuses), "pdf-process-1-abc",
            sleep=sleep, on_update=updates.append,
        )

        assert result["extractedText"] == "Hello World"
        assert [u["progress"] for u in updates] == [10, 50, 100]
        assert sleep.call_count == 2
        sleep.assert_called_with(2.0)

    def test_failed_is_terminal(self):
        sleep = MagicMock()
        result = poll_until_done(
            lambda pid: {"status": "failed", "errorKind": "WebhookRejected"},
            "pdf-process-1-abc", sleep=sleep,
        )
        assert result["errorKind"] == "WebhookRejected"
        sleep.assert_not_called()

    def test_max_wait(self):
        clock = FakeClock()
        fetch = MagicMock(return_value={"status": "processing"})

        with pytest.raises(TimeoutError):
            poll_until_done(
                fetch, "pdf-process-1-abc",
                interval=2.0, max_wait=5.0,
                sleep=clock.sleep, clock=clock,
            )

        assert fetch.call_count == 4

    def test_lookup_errors_propagate(self):
        def fetch(pid):
            raise UnknownProcess(f"Process not found: {pid}")

        with pytest.raises(UnknownProcess):
            poll_until_done(fetch, "pdf-process-1-abc", sleep=MagicMock())


# ═══════════════════════════════════════════════════════════════════════════════
# HTTP CLIENT
# ═══════════════════════════════════════════════════════════════════════════════


class TestProcessPdfClient:
    """Test the requests-based client against a mocked session."""

    @pytest.fixture
    def pdf_file(self, tmp_path):
        path = tmp_path / "plan.pdf"
        path.write_bytes(b"%PDF-1.4\n(Hello World) Tj\n")
        return path

    def test_upload(self, pdf_file):
        session = MagicMock()
        session.post.return_value = response(202, {
            "success": True,
            "data": {"processId": "pdf-process-1-abc", "status": "processing"},
        })
        client = ProcessPdfClient("http://pdf.test/", token="t0k", session=session)

        process_id = client.upload(str(pdf_file), project_phase_id="7", notes="north ring")

        assert process_id == "pdf-process-1-abc"
        args, kwargs = session.post.call_args
        assert args == ("http://pdf.test/excavation/process-pdf",)
        assert kwargs["headers"] == {"Authorization": "Bearer t0k"}
        assert kwargs["data"] == {"projectPhaseId": "7", "notes": "north ring"}
        assert kwargs["files"]["pdf"][0] == "plan.pdf"

    def test_upload_rejected(self, pdf_file):
        session = MagicMock()
        session.post.return_value = response(400, {
            "success": False, "kind": "FileTooLarge", "error": "File exceeds 10 MB",
        })
        client = ProcessPdfClient("http://pdf.test", token="t0k", session=session)

        with pytest.raises(UploadRejected) as exc_info:
            client.upload(str(pdf_file))

        assert exc_info.value.kind == ErrorKind.FILE_TOO_LARGE

    def test_upload_unauthorized(self, pdf_file):
        session = MagicMock()
        session.post.return_value = response(401, {"success": False, "error": "Unauthorized"})
        client = ProcessPdfClient("http://pdf.test", token="bad", session=session)

        with pytest.raises(PipelineError, match="HTTP 401"):
            client.upload(str(pdf_file))

    def test_get_status(self):
        session = MagicMock()
        session.get.return_value = response(200, {
            "success": True, "data": {"status": "analyzing", "progress": 50},
        })
        client = ProcessPdfClient("http://pdf.test", token="t0k", session=session)

        assert client.get_status("pdf-process-1-abc") == {"status": "analyzing", "progress": 50}
        assert session.get.call_args[0][0] == (
            "http://pdf.test/excavation/process-pdf/status/pdf-process-1-abc"
        )

    def test_get_status_unknown(self):
        session = MagicMock()
        session.get.return_value = response(404, {"success": False, "kind": "UnknownProcess"})
        client = ProcessPdfClient("http://pdf.test", token="t0k", session=session)

        with pytest.raises(UnknownProcess):
            client.get_status("pdf-process-0-missing00")

    def test_wait_for_completion(self):
        session = MagicMock()
        session.get.side_effect = [
            response(200, {"data": {"status": "processing", "progress": 10}}),
            response(200, {"data": {"status": "completed", "progress": 100}}),
        ]
        client = ProcessPdfClient("http://pdf.test", token="t0k", session=session)

        record = client.wait_for_completion("pdf-process-1-abc", interval=0)

        assert record["status"] == "completed"
        assert session.get.call_count == 2
