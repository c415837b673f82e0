"""
Delivery Pipeline
=================
Runs extraction and webhook delivery for one upload in a background
thread and records every step in the status store.

Job lifecycle:
    processing (10%) → extraction → analyzing (50%) → minimum length check
    → delivering (75%) → webhook POST → completed (100%)

Any error ends the job as failed with its ErrorKind; text shorter than
the minimum is never sent to the webhook.

Usage:
    pipeline = DeliveryPipeline(PipelineConfig.from_env())
    process_id = pipeline.submit(pdf_bytes, FileInfo.from_upload(name, size))
    record = pipeline.get_status(process_id)
"""

from __future__ import annotations

import logging
import threading
import time
import traceback
from typing import Optional

from .engine import ExtractionEngine, PipelineConfig
from .exceptions import ExtractionFailure, PipelineError
from .models import (
    ErrorKind,
    ExtractionResult,
    FileInfo,
    ProcessRecord,
    ProcessStatus,
    WebhookPayload,
    WebhookResult,
)
from .status import InMemoryStatusStore, StatusStore
from .utils import format_processing_time
from .webhook import WebhookClient

logger = logging.getLogger(__name__)


class DeliveryPipeline:
    """
    Owns the engine, status store and webhook client of a service.

    Each submitted job gets its own daemon thread; a record is only ever
    changed by the thread that runs its job.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        engine: Optional[ExtractionEngine] = None,
        store: Optional[StatusStore] = None,
        webhook: Optional[WebhookClient] = None,
    ):
        self.config = config or PipelineConfig()
        self.engine = engine or ExtractionEngine(self.config)
        self.store = store or InMemoryStatusStore(ttl=self.config.record_ttl)
        self.webhook = webhook or WebhookClient(
            self.config.webhook_url, timeout=self.config.webhook_timeout
        )
        self._threads: dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

    # ─── Entry Points ─────────────────────────────────────────────────────

    def submit(
        self,
        buffer: bytes,
        file_info: FileInfo,
        context: Optional[dict[str, str]] = None,
    ) -> str:
        """Start extraction + delivery in the background; returns the process id."""
        record = self.store.create(file_info, context)
        self._spawn(record.process_id, self._run_job, buffer, file_info)
        return record.process_id

    def submit_for_delivery(
        self,
        text: str,
        file_info: FileInfo,
        context: Optional[dict[str, str]] = None,
    ) -> str:
        """Deliver already extracted text in the background."""
        record = self.store.create(file_info, context)
        self._spawn(
            record.process_id, self._run_delivery_job, text, file_info
        )
        return record.process_id

    def process_sync(
        self,
        buffer: bytes,
        file_info: FileInfo,
        context: Optional[dict[str, str]] = None,
    ) -> ProcessRecord:
        """Run the whole job in the calling thread and return its final record."""
        record = self.store.create(file_info, context)
        self._run_job(record.process_id, buffer, file_info)
        return self.store.get(record.process_id)

    def get_status(self, process_id: str) -> ProcessRecord:
        """Snapshot of a job; raises UnknownProcess for missing/expired ids."""
        return self.store.get(process_id)

    def post_to_webhook(self, text: str, file_info: FileInfo) -> WebhookResult:
        """Build the payload and POST it once."""
        payload = WebhookPayload.build(text, file_info)
        return self.webhook.post(payload)

    def wait(self, process_id: str, timeout: Optional[float] = None) -> bool:
        """Join a job thread. True when the job is no longer running."""
        with self._threads_lock:
            thread = self._threads.get(process_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def active_jobs(self) -> int:
        return self.store.active_count()

    # ─── Jobs ─────────────────────────────────────────────────────────────

    def _spawn(self, process_id: str, target, *args):
        thread = threading.Thread(
            target=self._run_tracked,
            args=(process_id, target, *args),
            daemon=True,
            name=f"pdfscan-{process_id}",
        )
        with self._threads_lock:
            self._threads[process_id] = thread
        thread.start()
        logger.info(f"Spawned worker thread for {process_id}")

    def _run_tracked(self, process_id: str, target, *args):
        try:
            target(process_id, *args)
        finally:
            with self._threads_lock:
                self._threads.pop(process_id, None)

    def _run_job(self, process_id: str, buffer: bytes, file_info: FileInfo):
        """Extraction followed by delivery."""
        start_time = time.time()
        try:
            self.store.advance(process_id, ProcessStatus.PROCESSING, 10)
            logger.info(f"Process {process_id}: extracting text from {file_info.name}")

            result = self.engine.extract(buffer, process_id=process_id)

            self.store.advance(process_id, ProcessStatus.ANALYZING, 50)
            self._deliver(process_id, result.text, file_info, start_time, result)
        except Exception as e:
            self._fail(process_id, e)

    def _run_delivery_job(self, process_id: str, text: str, file_info: FileInfo):
        """Delivery of text extracted elsewhere."""
        start_time = time.time()
        try:
            self.store.advance(process_id, ProcessStatus.ANALYZING, 50)
            self._deliver(process_id, text, file_info, start_time)
        except Exception as e:
            self._fail(process_id, e)

    def _deliver(
        self,
        process_id: str,
        text: str,
        file_info: FileInfo,
        start_time: float,
        result: Optional[ExtractionResult] = None,
    ):
        text = (text or "").strip()
        if len(text) < self.config.min_text_length:
            raise ExtractionFailure(
                f"Could not extract enough text from the PDF "
                f"({len(text)} chars, minimum {self.config.min_text_length})",
                kind=ErrorKind.INSUFFICIENT_TEXT,
            )

        self.store.advance(process_id, ProcessStatus.ANALYZING, 75)
        webhook_result = self.post_to_webhook(text, file_info)

        elapsed_ms = int((time.time() - start_time) * 1000)
        self.store.complete(
            process_id,
            text,
            decoder=result.decoder if result else None,
            confidence=result.confidence if result else None,
            remote_response=webhook_result.remote_response,
            processing_time_ms=elapsed_ms,
        )
        logger.info(
            f"Process {process_id} delivered in "
            f"{format_processing_time(elapsed_ms)}"
        )

    def _fail(self, process_id: str, error: Exception):
        if isinstance(error, PipelineError):
            kind = error.kind or ErrorKind.PROCESSING_ERROR
            message = error.message
        else:
            tb = traceback.format_exc()
            logger.error(f"Process {process_id} crashed: {error}\n{tb}")
            kind = ErrorKind.PROCESSING_ERROR
            message = f"Unexpected error: {error}"
        self.store.fail(process_id, kind, message)
