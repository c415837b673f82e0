"""
Webhook Client
==============
Delivers extracted text to the configured webhook with a single JSON POST.
No retries: a rejected delivery fails the job.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from .exceptions import WebhookRejected
from .models import WebhookPayload, WebhookResult

logger = logging.getLogger(__name__)


class WebhookClient:
    """POSTs WebhookPayloads to one URL."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._http = session or requests

    def post(self, payload: WebhookPayload) -> WebhookResult:
        """
        Send the payload once.

        Raises:
            WebhookRejected: Non-2xx answer (with status and body) or a
                transport error (without status).
        """
        body = payload.to_json()
        logger.info(
            f"Posting {body['textLength']} chars from {body['fileName']} "
            f"to webhook {self.url}"
        )

        try:
            resp = self._http.post(
                self.url,
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Webhook unreachable: {e}")
            raise WebhookRejected(f"Webhook request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            logger.error(
                f"Webhook rejected delivery (HTTP {resp.status_code}): "
                f"{resp.text[:500]}"
            )
            raise WebhookRejected(
                f"Webhook responded with HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )

        remote = self._read_response(resp)
        logger.info(f"Webhook accepted delivery (HTTP {resp.status_code}): {remote!r:.500}")
        return WebhookResult(
            accepted=True,
            status_code=resp.status_code,
            remote_response=remote,
        )

    @staticmethod
    def _read_response(resp) -> Any:
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text
