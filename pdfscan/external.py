"""
Out-of-Process Decoder
======================
Runs a real PDF text extractor in a child process with a time budget
and an output bound. The child gets the buffer through a per-request
temp file, which is deleted whether the run succeeds, fails or times out.

Usage:
    decoder = SubprocessDecoder(temp_dir="/tmp/pdfscan")
    text = decoder.extract(buffer, timeout=30.0, process_id="pdf-process-...")
"""

from __future__ import annotations

import json
import logging
import shlex
import subprocess
import sys
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence, Union

from .exceptions import ExternalDecoderError, SubprocessTimeout
from .storage import remove_quietly, write_temp_pdf

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = (sys.executable, "-m", "pdfscan.bridge")
DEFAULT_MAX_OUTPUT = 10 * 1024 * 1024
STDERR_KEEP = 64 * 1024
POLL_INTERVAL = 0.05
READ_CHUNK = 64 * 1024


class _PipeReader:
    """
    Drains one child pipe on a daemon thread, keeping at most `limit`
    bytes. `overflowed` is set as soon as the child writes past the limit.
    With stop_at_limit reading ends there so the caller can kill the child;
    otherwise the rest is read and dropped.
    """

    def __init__(self, stream, limit: int, stop_at_limit: bool = True):
        self.limit = limit
        self.stop_at_limit = stop_at_limit
        self.overflowed = threading.Event()
        self._chunks: list[bytes] = []
        self._size = 0
        self._stream = stream
        self._thread = threading.Thread(target=self._drain, daemon=True)
        self._thread.start()

    @property
    def data(self) -> bytes:
        return b"".join(self._chunks)

    def join(self, timeout: float):
        self._thread.join(timeout)

    def _drain(self):
        try:
            while True:
                chunk = self._stream.read1(READ_CHUNK)
                if not chunk:
                    return
                self._size += len(chunk)
                if self._size > self.limit:
                    self.overflowed.set()
                    if self.stop_at_limit:
                        return
                    continue
                self._chunks.append(chunk)
        except (OSError, ValueError):
            return
        finally:
            self._stream.close()


class ExternalDecoder(ABC):
    """Decoder backed by something outside this process."""

    @abstractmethod
    def extract(
        self,
        buffer: bytes,
        timeout: float,
        process_id: Optional[str] = None,
    ) -> str:
        """
        Return the text of the PDF in `buffer`.

        Raises:
            SubprocessTimeout: The extractor ran past `timeout` seconds.
            ExternalDecoderError: Any other failure.
        """


class SubprocessDecoder(ExternalDecoder):
    """
    Runs `python -m pdfscan.bridge <file>` (or a configured command) and
    reads its JSON result from stdout.
    """

    def __init__(
        self,
        command: Union[str, Sequence[str], None] = None,
        temp_dir: Union[str, Path, None] = None,
        max_output: int = DEFAULT_MAX_OUTPUT,
    ):
        if command is None:
            self.command = list(DEFAULT_COMMAND)
        elif isinstance(command, str):
            self.command = shlex.split(command)
        else:
            self.command = list(command)
        self.temp_dir = temp_dir
        self.max_output = max_output

    def extract(
        self,
        buffer: bytes,
        timeout: float,
        process_id: Optional[str] = None,
    ) -> str:
        temp_path = None
        try:
            temp_path = write_temp_pdf(buffer, self.temp_dir, process_id)
            stdout = self._run(temp_path, timeout)
            return self._parse_output(stdout)
        except OSError as e:
            raise ExternalDecoderError(f"Could not run extractor: {e}") from e
        finally:
            remove_quietly(temp_path)

    def _run(self, path: Path, timeout: float) -> bytes:
        cmd = [*self.command, str(path)]
        logger.debug(f"Running external extractor: {' '.join(cmd)}")

        proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        stdout = _PipeReader(proc.stdout, limit=self.max_output)
        stderr = _PipeReader(proc.stderr, limit=STDERR_KEEP, stop_at_limit=False)
        deadline = time.monotonic() + timeout
        try:
            while proc.poll() is None:
                if stdout.overflowed.wait(POLL_INTERVAL):
                    raise ExternalDecoderError(
                        f"External extractor output exceeds {self.max_output} bytes"
                    )
                if time.monotonic() >= deadline:
                    raise SubprocessTimeout(
                        f"External extractor timed out after {timeout:g}s"
                    )
        finally:
            if proc.poll() is None:
                proc.kill()
            proc.wait()
            # Readers finish at EOF once the child is gone
            grace = max(deadline - time.monotonic(), POLL_INTERVAL * 10)
            stdout.join(grace)
            stderr.join(POLL_INTERVAL * 10)

        if stdout.overflowed.is_set():
            raise ExternalDecoderError(
                f"External extractor output exceeds {self.max_output} bytes"
            )
        if stderr.data:
            logger.debug(
                f"External extractor stderr: "
                f"{stderr.data[:500].decode('utf-8', errors='replace')}"
            )
        if proc.returncode != 0 and not stdout.data.strip():
            raise ExternalDecoderError(
                f"External extractor exited with code {proc.returncode}"
            )
        return stdout.data

    def _parse_output(self, stdout: bytes) -> str:
        try:
            data = json.loads(stdout.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ExternalDecoderError(
                f"External extractor returned invalid JSON: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ExternalDecoderError("External extractor returned no object")
        if not data.get("success"):
            raise ExternalDecoderError(
                f"External extractor failed: {data.get('error', 'unknown error')}"
            )

        text = data.get("text") or ""
        logger.info(
            f"External extractor: {data.get('pages', '?')} pages, "
            f"{data.get('length', len(text))} chars"
        )
        return text
