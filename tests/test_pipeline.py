"""
Tests for the delivery pipeline (extraction + webhook + status records).
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import embed
from pdfscan.engine import ExtractionEngine
from pdfscan.exceptions import UnknownProcess, WebhookRejected
from pdfscan.models import (
    Confidence,
    DecoderName,
    ErrorKind,
    ExtractionResult,
    FileInfo,
    ProcessStatus,
)
from pdfscan.status import InMemoryStatusStore
from pdfscan.worker import DeliveryPipeline

FILE_INFO = FileInfo.from_upload("plan.pdf", 2048)
TEXT = "Excavation report for the north ring sector"


def fake_engine(text: str = TEXT) -> MagicMock:
    engine = MagicMock()
    engine.extract.return_value = ExtractionResult(
        text=text,
        decoder=DecoderName.READABLE_TEXT,
        confidence=Confidence.HIGH,
    )
    return engine


class RecordingStore(InMemoryStatusStore):
    """Keeps every (status, progress) pair written to storage."""

    def __init__(self):
        super().__init__()
        self.history = []

    def _put(self, record):
        self.history.append((record.status, record.progress))
        super()._put(record)


def run(pipeline: DeliveryPipeline, buffer: bytes = b"%PDF-1.4") -> str:
    process_id = pipeline.submit(buffer, FILE_INFO, {"pdfType": "plano"})
    assert pipeline.wait(process_id, timeout=10)
    return process_id


# ═══════════════════════════════════════════════════════════════════════════════
# BACKGROUND JOBS
# ═══════════════════════════════════════════════════════════════════════════════


class TestSubmit:
    """Test the background job lifecycle."""

    def test_completed_job(self, config, webhook):
        engine = fake_engine()
        pipeline = DeliveryPipeline(config, engine=engine, webhook=webhook)

        record = pipeline.get_status(run(pipeline))

        assert record.status == ProcessStatus.COMPLETED
        assert record.progress == 100
        assert record.extracted_text == TEXT
        assert record.decoder == DecoderName.READABLE_TEXT
        assert record.confidence == Confidence.HIGH
        assert record.remote_response == {"received": True}
        assert record.context == {"pdfType": "plano"}
        assert record.processing_time_ms is not None

        webhook.post.assert_called_once()
        payload = webhook.post.call_args[0][0]
        assert payload.text == TEXT
        assert payload.file_name == "plan.pdf"

    def test_hello_world_end_to_end(self, config, webhook):
        pipeline = DeliveryPipeline(config, webhook=webhook)
        record = pipeline.get_status(run(pipeline, embed(b"(Hello World) Tj")))
        assert record.status == ProcessStatus.COMPLETED
        assert record.extracted_text == "Hello World"
        assert isinstance(pipeline.engine, ExtractionEngine)

    def test_insufficient_text_skips_webhook(self, config, webhook):
        pipeline = DeliveryPipeline(config, engine=fake_engine("Too short"), webhook=webhook)

        record = pipeline.get_status(run(pipeline))

        assert record.status == ProcessStatus.FAILED
        assert record.error_kind == ErrorKind.INSUFFICIENT_TEXT
        assert record.extracted_text is None
        webhook.post.assert_not_called()

    def test_webhook_500_fails_job(self, config, webhook):
        webhook.post.side_effect = WebhookRejected(
            "Webhook responded with HTTP 500", status_code=500, body="error"
        )
        pipeline = DeliveryPipeline(config, engine=fake_engine(), webhook=webhook)

        process_id = run(pipeline)

        record = pipeline.get_status(process_id)
        assert record.status == ProcessStatus.FAILED
        assert record.error_kind == ErrorKind.WEBHOOK_REJECTED
        assert record.extracted_text is None
        assert pipeline.get_status(process_id).status == ProcessStatus.FAILED

    def test_unexpected_error_fails_job(self, config, webhook):
        engine = MagicMock()
        engine.extract.side_effect = RuntimeError("disk on fire")
        pipeline = DeliveryPipeline(config, engine=engine, webhook=webhook)

        record = pipeline.get_status(run(pipeline))

        assert record.status == ProcessStatus.FAILED
        assert record.error_kind == ErrorKind.PROCESSING_ERROR
        assert "disk on fire" in record.error

    def test_progress_during_delivery(self, config, webhook):
        seen = []
        pipeline = DeliveryPipeline(config, engine=fake_engine(), webhook=webhook)

        def capture(payload):
            record = next(iter(pipeline.store._records()))
            seen.append((record.status, record.progress))
            return webhook.post.return_value

        webhook.post.side_effect = capture
        run(pipeline)

        assert seen == [(ProcessStatus.ANALYZING, 75)]

    def test_unknown_process(self, config, webhook):
        pipeline = DeliveryPipeline(config, engine=fake_engine(), webhook=webhook)
        with pytest.raises(UnknownProcess):
            pipeline.get_status("pdf-process-0-nothing00")


class TestSubmitForDelivery:
    """Test delivery of already extracted text."""

    def test_delivers_without_extraction(self, config, webhook):
        engine = fake_engine()
        pipeline = DeliveryPipeline(config, engine=engine, webhook=webhook)

        process_id = pipeline.submit_for_delivery(TEXT, FILE_INFO)
        assert pipeline.wait(process_id, timeout=10)

        record = pipeline.get_status(process_id)
        assert record.status == ProcessStatus.COMPLETED
        assert record.extracted_text == TEXT
        engine.extract.assert_not_called()

    def test_walks_through_processing_first(self, config, webhook):
        store = RecordingStore()
        pipeline = DeliveryPipeline(config, engine=fake_engine(), store=store, webhook=webhook)

        process_id = pipeline.submit_for_delivery(TEXT, FILE_INFO)
        assert pipeline.wait(process_id, timeout=10)

        assert store.history == [
            (ProcessStatus.PROCESSING, 0),
            (ProcessStatus.ANALYZING, 50),
            (ProcessStatus.ANALYZING, 75),
            (ProcessStatus.COMPLETED, 100),
        ]

    def test_short_text_rejected(self, config, webhook):
        pipeline = DeliveryPipeline(config, engine=fake_engine(), webhook=webhook)
        process_id = pipeline.submit_for_delivery("   tiny  ", FILE_INFO)
        assert pipeline.wait(process_id, timeout=10)
        assert pipeline.get_status(process_id).error_kind == ErrorKind.INSUFFICIENT_TEXT


class TestProcessSync:
    """Test the inline variant."""

    def test_returns_final_record(self, config, webhook):
        pipeline = DeliveryPipeline(config, engine=fake_engine(), webhook=webhook)
        record = pipeline.process_sync(b"%PDF-1.4", FILE_INFO)
        assert record.status == ProcessStatus.COMPLETED
        assert record.extracted_text == TEXT

    def test_post_to_webhook_builds_payload(self, config, webhook):
        pipeline = DeliveryPipeline(config, engine=fake_engine(), webhook=webhook)
        result = pipeline.post_to_webhook("Hello World", FILE_INFO)
        assert result.status_code == 200
        payload = webhook.post.call_args[0][0]
        assert payload.text_length == 11
        assert payload.pages == 1
