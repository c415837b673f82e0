"""
Process Status Store
====================
Keeps one ProcessRecord per job and enforces its lifecycle:

    processing → analyzing → completed
         └──────────┴──────→ failed

Rules (implemented once, in StatusStore):
    - status only moves forward; terminal records never change
    - progress never decreases
    - extracted_text is written only by the transition into completed
    - readers get copies, never the stored record
    - a terminal record expires `ttl` seconds after a reader first saw it

Subclasses supply storage through the _fetch / _put / _delete / _records
hooks, so an external key-value store can replace InMemoryStatusStore.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

from .exceptions import InvalidTransition, UnknownProcess
from .models import (
    Confidence,
    DecoderName,
    ErrorKind,
    FileInfo,
    ProcessRecord,
    ProcessStatus,
)
from .utils import generate_process_id

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0

_STATUS_RANK = {
    ProcessStatus.PROCESSING: 0,
    ProcessStatus.ANALYZING: 1,
    ProcessStatus.COMPLETED: 2,
    ProcessStatus.FAILED: 2,
}


class StatusStore(ABC):
    """Lifecycle rules over an abstract record storage."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.RLock()

    # ─── Storage Hooks ────────────────────────────────────────────────────

    @abstractmethod
    def _fetch(self, process_id: str) -> Optional[ProcessRecord]:
        """Stored record or None."""

    @abstractmethod
    def _put(self, record: ProcessRecord) -> None:
        """Insert or replace a record."""

    @abstractmethod
    def _delete(self, process_id: str) -> None:
        """Remove a record if present."""

    @abstractmethod
    def _records(self) -> Iterable[ProcessRecord]:
        """Every stored record."""

    # ─── Lifecycle ────────────────────────────────────────────────────────

    def create(
        self,
        file_info: FileInfo,
        context: Optional[dict[str, str]] = None,
    ) -> ProcessRecord:
        """Register a new job in `processing` and return a copy of its record."""
        with self._lock:
            self.purge_expired()
            process_id = generate_process_id()
            while self._fetch(process_id) is not None:
                process_id = generate_process_id()

            now = self._clock()
            record = ProcessRecord(
                process_id=process_id,
                status=ProcessStatus.PROCESSING,
                progress=0,
                file_info=file_info,
                context=dict(context or {}),
                created_at=now,
                updated_at=now,
            )
            self._put(record)
            logger.info(f"Process {process_id} created for {file_info.name}")
            return record.model_copy(deep=True)

    def get(self, process_id: str) -> ProcessRecord:
        """
        Snapshot of a record.

        The first read of a terminal record starts its expiry countdown.

        Raises:
            UnknownProcess: No record (or an expired one) for process_id.
        """
        with self._lock:
            self.purge_expired()
            record = self._fetch(process_id)
            if record is None:
                raise UnknownProcess(f"Process not found: {process_id}")
            if record.status.is_terminal and record.observed_at is None:
                record.observed_at = self._clock()
                self._put(record)
            return record.model_copy(deep=True)

    def advance(
        self,
        process_id: str,
        status: ProcessStatus,
        progress: Optional[int] = None,
    ) -> ProcessRecord:
        """
        Move a running job forward (processing → analyzing, progress only).

        Raises:
            UnknownProcess: No record for process_id.
            InvalidTransition: The change would regress or enter a terminal
                state (use complete() / fail() for those).
        """
        if status.is_terminal:
            raise InvalidTransition(
                f"Use complete() or fail() to finish {process_id}"
            )
        with self._lock:
            record = self._require_open(process_id, status)
            record.status = status
            if progress is not None:
                record.progress = max(record.progress, min(progress, 100))
            record.updated_at = self._clock()
            self._put(record)
            logger.debug(
                f"Process {process_id}: {status.value} ({record.progress}%)"
            )
            return record.model_copy(deep=True)

    def complete(
        self,
        process_id: str,
        extracted_text: str,
        decoder: Optional[DecoderName] = None,
        confidence: Optional[Confidence] = None,
        remote_response: Any = None,
        processing_time_ms: Optional[int] = None,
    ) -> ProcessRecord:
        """Terminal success: stores the delivered text."""
        with self._lock:
            record = self._require_open(process_id, ProcessStatus.COMPLETED)
            now = self._clock()
            record.status = ProcessStatus.COMPLETED
            record.progress = 100
            record.extracted_text = extracted_text
            record.text_length = len(extracted_text)
            record.decoder = decoder
            record.confidence = confidence
            record.remote_response = remote_response
            record.processing_time_ms = processing_time_ms
            record.updated_at = now
            record.completed_at = now
            self._put(record)
            logger.info(
                f"Process {process_id} completed ({record.text_length} chars)"
            )
            return record.model_copy(deep=True)

    def fail(
        self,
        process_id: str,
        kind: ErrorKind,
        message: str,
    ) -> ProcessRecord:
        """Terminal failure from any non-terminal state."""
        with self._lock:
            record = self._require_open(process_id, ProcessStatus.FAILED)
            now = self._clock()
            record.status = ProcessStatus.FAILED
            record.error_kind = kind
            record.error = message
            record.updated_at = now
            record.completed_at = now
            self._put(record)
            logger.warning(f"Process {process_id} failed [{kind.value}]: {message}")
            return record.model_copy(deep=True)

    # ─── Housekeeping ─────────────────────────────────────────────────────

    def purge_expired(self) -> int:
        """Drop terminal records observed more than `ttl` seconds ago."""
        with self._lock:
            now = self._clock()
            expired = [
                r.process_id for r in self._records()
                if r.status.is_terminal
                and r.observed_at is not None
                and now - r.observed_at >= self.ttl
            ]
            for process_id in expired:
                self._delete(process_id)
            if expired:
                logger.debug(f"Purged {len(expired)} expired process records")
            return len(expired)

    def active_count(self) -> int:
        """Number of jobs not yet in a terminal state."""
        with self._lock:
            return sum(1 for r in self._records() if not r.status.is_terminal)

    def _require_open(self, process_id: str, target: ProcessStatus) -> ProcessRecord:
        record = self._fetch(process_id)
        if record is None:
            raise UnknownProcess(f"Process not found: {process_id}")
        if record.status.is_terminal:
            raise InvalidTransition(
                f"Process {process_id} is already {record.status.value}"
            )
        if _STATUS_RANK[target] < _STATUS_RANK[record.status]:
            raise InvalidTransition(
                f"Process {process_id} cannot go from "
                f"{record.status.value} to {target.value}"
            )
        return record


class InMemoryStatusStore(StatusStore):
    """Dict-backed store; records live as long as the process."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(ttl=ttl, clock=clock)
        self._data: dict[str, ProcessRecord] = {}

    def _fetch(self, process_id: str) -> Optional[ProcessRecord]:
        return self._data.get(process_id)

    def _put(self, record: ProcessRecord) -> None:
        self._data[record.process_id] = record

    def _delete(self, process_id: str) -> None:
        self._data.pop(process_id, None)

    def _records(self) -> Iterable[ProcessRecord]:
        return list(self._data.values())

    def __len__(self) -> int:
        return len(self._data)
