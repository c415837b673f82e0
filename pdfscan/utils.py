"""
Helpers
=======
Small formatting and identifier helpers with no package dependencies.
"""

from __future__ import annotations

import math
import random
import string
import time

# One page ≈ 50KB (rough heuristic, not exact)
BYTES_PER_PAGE = 50 * 1024

_ID_ALPHABET = string.ascii_lowercase + string.digits


def estimate_pages(size_bytes: int) -> int:
    """Estimate the page count from the file size."""
    return max(1, math.ceil(size_bytes / BYTES_PER_PAGE))


def generate_process_id() -> str:
    """Unique id of the form pdf-process-<epoch ms>-<9 chars>."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"pdf-process-{int(time.time() * 1000)}-{suffix}"


def format_file_size(size_bytes: int) -> str:
    return f"{size_bytes / 1024 / 1024:.2f} MB"


def format_processing_time(milliseconds: int) -> str:
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    return f"{milliseconds / 1000:.1f}s"


def preview(text: str, limit: int = 100) -> str:
    """Single-line preview of a text for log messages."""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[:limit] + "..."
