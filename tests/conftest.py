"""
Shared fixtures and buffers for the pdfscan test suite.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from pdfscan.engine import PipelineConfig
from pdfscan.models import WebhookResult

# High bytes that are neither ASCII text nor valid UTF-8 on their own
# (0x85 and 0xA0 read as whitespace once decoded, so they are left out).
FILLER = bytes(b for b in range(0x80, 0xC0) if b not in (0x85, 0xA0)) * 4

AUTH = {"Authorization": "Bearer test-token"}


def embed(payload: bytes) -> bytes:
    """Surround a payload with binary noise."""
    return FILLER + payload + FILLER


def utf16_hex(text: str) -> str:
    return "".join(f"{ord(c):04x}" for c in text)


@pytest.fixture
def config(tmp_path):
    return PipelineConfig(
        webhook_url="http://webhook.test/hook",
        use_external_decoder=False,
        temp_dir=str(tmp_path / "tmp"),
        log_level="WARNING",
    )


@pytest.fixture
def webhook():
    client = MagicMock()
    client.post.return_value = WebhookResult(
        status_code=200, remote_response={"received": True}
    )
    return client
