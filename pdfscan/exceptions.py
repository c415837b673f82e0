"""
Exceptions
==========
Every error that can reach a caller carries an ErrorKind and the HTTP
status the service maps it to. Decoder-level errors never leave the
extraction chain.
"""

from __future__ import annotations

from typing import Optional

from .models import ErrorKind


class PipelineError(Exception):
    """Base exception for all extraction and delivery errors."""

    kind: Optional[ErrorKind] = ErrorKind.PROCESSING_ERROR
    http_status: int = 500

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    def to_dict(self) -> dict:
        return {
            "success": False,
            "kind": self.kind.value if self.kind else None,
            "error": self.message,
        }


class UploadRejected(PipelineError):
    """Raised before decoding when the upload has the wrong type or size."""

    kind = ErrorKind.INVALID_FILE_TYPE
    http_status = 400


class ExtractionFailure(PipelineError):
    """Raised when a job cannot produce deliverable text."""

    kind = ErrorKind.UNREADABLE_INPUT
    http_status = 422


class WebhookRejected(PipelineError):
    """Raised when the webhook answers with a non-2xx status or is unreachable."""

    kind = ErrorKind.WEBHOOK_REJECTED
    http_status = 502

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UnknownProcess(PipelineError):
    """Raised when a status query names a process id with no record."""

    kind = ErrorKind.UNKNOWN_PROCESS
    http_status = 404


class ExternalDecoderError(PipelineError):
    """The out-of-process decoder failed; the chain falls through."""

    kind = None


class SubprocessTimeout(ExternalDecoderError):
    """The out-of-process decoder exceeded its time budget."""

    kind = ErrorKind.SUBPROCESS_TIMEOUT


class InvalidTransition(ValueError):
    """A status change would move a process record backwards."""


_HTTP_STATUS = {
    ErrorKind.INVALID_FILE_TYPE: 400,
    ErrorKind.FILE_TOO_LARGE: 400,
    ErrorKind.UNREADABLE_INPUT: 422,
    ErrorKind.INSUFFICIENT_TEXT: 422,
    ErrorKind.WEBHOOK_REJECTED: 502,
    ErrorKind.UNKNOWN_PROCESS: 404,
}


def http_status_for(kind: Optional[ErrorKind]) -> int:
    """HTTP status a failed job of this kind is reported with."""
    return _HTTP_STATUS.get(kind, 500)
