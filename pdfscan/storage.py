"""
Temporary File Storage
======================
Per-request scratch files for the out-of-process decoder, plus upload
validation. Source buffers are never persisted: every temp file written
here is removed by the caller in a `finally` block.

Directory Layout:
    <system tmp>/pdfscan/
    └── temp_<process id>.pdf   # one file per in-flight extraction
"""

from __future__ import annotations

import logging
import re
import tempfile
import uuid
from pathlib import Path
from typing import Optional, Union

from .exceptions import UploadRejected
from .models import ErrorKind
from .utils import format_file_size

logger = logging.getLogger(__name__)

DEFAULT_TEMP_DIR = Path(tempfile.gettempdir()) / "pdfscan"

PDF_MIME_TYPE = "application/pdf"
PDF_SIGNATURE = b"%PDF-"
SIGNATURE_WINDOW = 1024


# ─── Temp Files ───────────────────────────────────────────────────────────────


def temp_pdf_path(
    temp_dir: Union[str, Path, None] = None,
    process_id: Optional[str] = None,
) -> Path:
    """
    Unique temp file path for one request.
    Creates the directory if it doesn't exist.
    """
    base = Path(temp_dir) if temp_dir else DEFAULT_TEMP_DIR
    base.mkdir(parents=True, exist_ok=True)
    token = _sanitize_name(process_id) if process_id else uuid.uuid4().hex
    # process ids are unique, the suffix keeps retries of one id apart
    return base / f"temp_{token}_{uuid.uuid4().hex[:8]}.pdf"


def write_temp_pdf(
    buffer: bytes,
    temp_dir: Union[str, Path, None] = None,
    process_id: Optional[str] = None,
) -> Path:
    """Write a buffer to a fresh temp file and return its path."""
    path = temp_pdf_path(temp_dir, process_id)
    path.write_bytes(buffer)
    logger.debug(f"Temp PDF written: {path} ({format_file_size(len(buffer))})")
    return path


def remove_quietly(path: Union[str, Path, None]) -> bool:
    """Delete a temp file; a failure is logged, never raised."""
    if path is None:
        return False
    try:
        Path(path).unlink()
        logger.debug(f"Temp PDF removed: {path}")
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not remove temp file {path}: {e}")
        return False


# ─── Upload Validation ────────────────────────────────────────────────────────


def validate_pdf_upload(
    content: bytes,
    declared_type: Optional[str],
    max_file_size: int,
) -> None:
    """
    Reject an upload before any decoding.

    Raises:
        UploadRejected: InvalidFileType when the declared media type is not
            application/pdf or the %PDF- signature is missing from the first
            KiB; FileTooLarge when the content exceeds max_file_size.
    """
    media_type = (declared_type or "").split(";")[0].strip().lower()
    if media_type != PDF_MIME_TYPE:
        raise UploadRejected(
            f"Only PDF files are accepted (got {declared_type or 'unknown'})",
            kind=ErrorKind.INVALID_FILE_TYPE,
        )

    if len(content) > max_file_size:
        raise UploadRejected(
            f"File exceeds the {format_file_size(max_file_size)} limit",
            kind=ErrorKind.FILE_TOO_LARGE,
        )

    if PDF_SIGNATURE not in content[:SIGNATURE_WINDOW]:
        raise UploadRejected(
            "File does not look like a PDF (missing %PDF- header)",
            kind=ErrorKind.INVALID_FILE_TYPE,
        )


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _sanitize_name(name: str) -> str:
    """Sanitize a name for filesystem use."""
    return re.sub(r"[^A-Za-z0-9\-_]", "_", name)[:100]
