"""
Polling Client
==============
Client side of the upload/poll protocol: upload a PDF, then ask for its
status every `interval` seconds until the process is completed or failed.

Usage:
    client = ProcessPdfClient("http://localhost:5000", token="...")
    process_id = client.upload("plan.pdf", project_phase_id="12")
    record = client.wait_for_completion(process_id)
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional

import requests

from .exceptions import PipelineError, UnknownProcess, UploadRejected
from .models import ErrorKind, ProcessStatus

logger = logging.getLogger(__name__)

POLL_INTERVAL = 2.0
TERMINAL_STATUSES = (ProcessStatus.COMPLETED.value, ProcessStatus.FAILED.value)


def poll_until_done(
    fetch_status: Callable[[str], dict],
    process_id: str,
    interval: float = POLL_INTERVAL,
    max_wait: Optional[float] = None,
    on_update: Optional[Callable[[dict], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> dict:
    """
    Call `fetch_status(process_id)` until it reports a terminal status.

    Returns the last status dict. Raises TimeoutError once `max_wait`
    seconds pass without one; lookup errors propagate.
    """
    started = clock()
    while True:
        status = fetch_status(process_id)
        if on_update:
            on_update(status)
        if status.get("status") in TERMINAL_STATUSES:
            return status
        if max_wait is not None and clock() - started >= max_wait:
            raise TimeoutError(
                f"Process {process_id} still {status.get('status')} "
                f"after {max_wait:.0f}s"
            )
        sleep(interval)


class ProcessPdfClient:
    """Talks to the pdfscan HTTP service."""

    def __init__(
        self,
        base_url: str,
        token: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._http = session or requests

    @property
    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"}

    def upload(
        self,
        pdf_path: str,
        project_phase_id: Optional[str] = None,
        pdf_type: Optional[str] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> str:
        """Upload a PDF and return its process id."""
        path = Path(pdf_path)
        form = {
            "projectPhaseId": project_phase_id,
            "pdfType": pdf_type,
            "description": description,
            "notes": notes,
        }
        with open(path, "rb") as f:
            resp = self._http.post(
                f"{self.base_url}/excavation/process-pdf",
                headers=self._headers,
                files={"pdf": (path.name, f, "application/pdf")},
                data={k: v for k, v in form.items() if v},
                timeout=self.timeout,
            )

        data = self._json(resp)
        if resp.status_code == 400:
            raise UploadRejected(
                data.get("error", "Upload rejected"),
                kind=self._kind(data, ErrorKind.INVALID_FILE_TYPE),
            )
        if resp.status_code != 202:
            raise PipelineError(
                f"Upload failed (HTTP {resp.status_code}): "
                f"{data.get('error', resp.text[:200])}"
            )

        process_id = data["data"]["processId"]
        logger.info(f"Uploaded {path.name} as {process_id}")
        return process_id

    def get_status(self, process_id: str) -> dict:
        """Current status payload of a process."""
        resp = self._http.get(
            f"{self.base_url}/excavation/process-pdf/status/{process_id}",
            headers=self._headers,
            timeout=self.timeout,
        )
        data = self._json(resp)
        if resp.status_code == 404:
            raise UnknownProcess(data.get("error", f"Process not found: {process_id}"))
        if resp.status_code != 200:
            raise PipelineError(
                f"Status request failed (HTTP {resp.status_code}): "
                f"{data.get('error', resp.text[:200])}"
            )
        return data["data"]

    def wait_for_completion(
        self,
        process_id: str,
        interval: float = POLL_INTERVAL,
        max_wait: Optional[float] = None,
        on_update: Optional[Callable[[dict], None]] = None,
    ) -> dict:
        """Poll until the process is completed or failed."""
        return poll_until_done(
            self.get_status,
            process_id,
            interval=interval,
            max_wait=max_wait,
            on_update=on_update,
        )

    @staticmethod
    def _json(resp) -> dict:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _kind(data: dict, default: ErrorKind) -> ErrorKind:
        try:
            return ErrorKind(data.get("kind"))
        except ValueError:
            return default
