"""
Data Models
===========
Pydantic models shared by the extraction engine, the delivery pipeline
and the HTTP service. Public JSON uses camelCase aliases.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field

from .utils import estimate_pages


# ─── Enums ────────────────────────────────────────────────────────────────────


class DecoderName(str, Enum):
    """Identity of a decoder in the extraction chain."""
    EXTERNAL = "external"
    HEX_UTF16 = "hex_utf16"
    READABLE_TEXT = "readable_text"
    STREAM_CONTENT = "stream_content"
    BASIC_FILTERED = "basic_filtered"


class Confidence(str, Enum):
    """How the final text was chosen."""
    HIGH = "high"  # accepted by the chain
    LOW = "low"    # best leftover after every decoder was exhausted


class ProcessStatus(str, Enum):
    """Lifecycle of an extraction-and-delivery job."""
    PROCESSING = "processing"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessStatus.COMPLETED, ProcessStatus.FAILED)


class ErrorKind(str, Enum):
    """Error kinds surfaced to callers."""
    INVALID_FILE_TYPE = "InvalidFileType"
    FILE_TOO_LARGE = "FileTooLarge"
    UNREADABLE_INPUT = "UnreadableInput"
    INSUFFICIENT_TEXT = "InsufficientText"
    WEBHOOK_REJECTED = "WebhookRejected"
    UNKNOWN_PROCESS = "UnknownProcess"
    SUBPROCESS_TIMEOUT = "SubprocessTimeout"
    PROCESSING_ERROR = "ProcessingError"


# ─── File Info ────────────────────────────────────────────────────────────────


class FileInfo(BaseModel):
    """Upload metadata, derived once per request."""
    name: str
    size_bytes: int = Field(ge=0, serialization_alias="sizeBytes")
    estimated_pages: int = Field(ge=0, serialization_alias="estimatedPages")

    @classmethod
    def from_upload(cls, name: str, size_bytes: int) -> "FileInfo":
        return cls(
            name=name,
            size_bytes=size_bytes,
            estimated_pages=estimate_pages(size_bytes),
        )


# ─── Extraction Models ───────────────────────────────────────────────────────


class ExtractionCandidate(BaseModel):
    """Sanitized text produced by one decoder."""
    decoder: DecoderName
    text: str = ""
    garbled: bool = False
    metadata_only: bool = False

    @computed_field
    @property
    def length(self) -> int:
        return len(self.text)

    @property
    def is_clean(self) -> bool:
        return bool(self.text) and not self.garbled and not self.metadata_only


class DecoderAttempt(BaseModel):
    """Log entry for one decoder run."""
    decoder: DecoderName
    raw_length: int = 0
    clean_length: int = 0
    garbled: bool = False
    metadata_only: bool = False
    accepted: bool = False
    error: Optional[str] = None


class ExtractionResult(BaseModel):
    """Outcome of running the decoder chain over one buffer."""
    text: str = ""
    decoder: Optional[DecoderName] = None
    confidence: Confidence = Confidence.LOW
    attempts: list[DecoderAttempt] = Field(default_factory=list)
    processing_time_ms: int = 0

    @computed_field
    @property
    def text_length(self) -> int:
        return len(self.text)


# ─── Webhook Models ──────────────────────────────────────────────────────────


def utc_timestamp() -> str:
    """UTC time like 2024-01-15T09:30:00.123Z (millisecond precision, Z suffix)."""
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return now.replace("+00:00", "Z")


class WebhookPayload(BaseModel):
    """JSON body posted to the webhook."""
    text: str
    file_name: str = Field(serialization_alias="fileName")
    file_size: int = Field(serialization_alias="fileSize")
    pages: int
    timestamp: str = Field(default_factory=utc_timestamp)
    text_length: int = Field(serialization_alias="textLength")

    @classmethod
    def build(cls, text: str, file_info: FileInfo) -> "WebhookPayload":
        return cls(
            text=text,
            file_name=file_info.name,
            file_size=file_info.size_bytes,
            pages=file_info.estimated_pages,
            text_length=len(text),
        )

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)


class WebhookResult(BaseModel):
    """Outcome of an accepted webhook delivery."""
    accepted: bool = True
    status_code: int
    remote_response: Any = None


# ─── Process Record ──────────────────────────────────────────────────────────


class ProcessRecord(BaseModel):
    """
    Mutable status of one extraction-and-delivery job.
    Only the owning job changes it; pollers get copies.
    """
    process_id: str
    status: ProcessStatus = ProcessStatus.PROCESSING
    progress: int = Field(default=0, ge=0, le=100)
    extracted_text: Optional[str] = None
    text_length: int = 0
    file_info: FileInfo
    decoder: Optional[DecoderName] = None
    confidence: Optional[Confidence] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    context: dict[str, str] = Field(default_factory=dict)
    remote_response: Any = None
    processing_time_ms: Optional[int] = None
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    completed_at: Optional[float] = None
    observed_at: Optional[float] = None

    def to_public(self) -> dict:
        """Status payload returned by the HTTP service."""
        data = {
            "processId": self.process_id,
            "status": self.status.value,
            "progress": self.progress,
            "fileInfo": self.file_info.model_dump(by_alias=True),
        }
        if self.status == ProcessStatus.COMPLETED:
            data["extractedText"] = self.extracted_text
            data["textLength"] = self.text_length
            data["decoder"] = self.decoder.value if self.decoder else None
            data["confidence"] = (
                self.confidence.value if self.confidence else None
            )
            data["processingTimeMs"] = self.processing_time_ms
        elif self.status == ProcessStatus.FAILED:
            data["errorKind"] = (
                self.error_kind.value if self.error_kind else None
            )
            data["error"] = self.error
        return data
