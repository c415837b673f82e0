"""
Extraction Engine
=================
Builds the decoder chain from configuration and runs it over a buffer.

Usage:
    engine = ExtractionEngine(PipelineConfig.from_env())
    result = engine.extract(pdf_bytes)
    # result is an ExtractionResult with text, decoder and confidence

Architecture:
    bytes → [external] → hex_utf16 → readable_text → stream_content →
    basic_filtered → Sanitizer → ExtractionStateMachine → ExtractionResult
"""

from __future__ import annotations

import functools
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from .decoders import DECODER_CHAIN, Decoder
from .exceptions import ExtractionFailure
from .external import ExternalDecoder, SubprocessDecoder
from .models import DecoderName, ErrorKind, ExtractionResult
from .state_machine import DecoderStep, ExtractionStateMachine
from .utils import format_file_size, format_processing_time

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_URL = "https://n8n-jose.up.railway.app/webhook-test/pdfexca"
LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PipelineConfig:
    """Configuration for extraction and delivery."""

    # Webhook
    webhook_url: str = DEFAULT_WEBHOOK_URL
    webhook_timeout: float = 30.0

    # Upload limits
    max_file_size: int = 10 * 1024 * 1024
    min_text_length: int = 10

    # Decoder chain
    accept_length: int = 30
    external_accept_length: int = 50
    use_external_decoder: bool = True
    external_command: Optional[str] = None
    processing_timeout_ms: int = 30000
    max_buffer_size: int = 10 * 1024 * 1024
    temp_dir: str = str(Path(tempfile.gettempdir()) / "pdfscan")

    # Status records
    record_ttl: float = 300.0

    # HTTP auth; empty means any bearer token is let through
    api_tokens: list[str] = field(default_factory=list)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def processing_timeout(self) -> float:
        """Out-of-process decoder budget in seconds."""
        return self.processing_timeout_ms / 1000

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build a config from PDFSCAN_* environment variables."""
        defaults = cls()
        tokens = os.environ.get("PDFSCAN_API_TOKENS", "")
        return cls(
            webhook_url=(
                os.environ.get("PDFSCAN_WEBHOOK_URL")
                or os.environ.get("N8N_WEBHOOK_URL")
                or defaults.webhook_url
            ),
            webhook_timeout=float(
                os.environ.get("PDFSCAN_WEBHOOK_TIMEOUT", defaults.webhook_timeout)
            ),
            max_file_size=_env_int("PDFSCAN_MAX_FILE_SIZE", defaults.max_file_size),
            min_text_length=_env_int(
                "PDFSCAN_MIN_TEXT_LENGTH", defaults.min_text_length
            ),
            use_external_decoder=_env_bool(
                "PDFSCAN_EXTERNAL_DECODER", defaults.use_external_decoder
            ),
            external_command=os.environ.get("PDFSCAN_EXTERNAL_COMMAND") or None,
            processing_timeout_ms=_env_int(
                "PDFSCAN_PROCESSING_TIMEOUT_MS", defaults.processing_timeout_ms
            ),
            max_buffer_size=_env_int(
                "PDFSCAN_MAX_BUFFER_SIZE", defaults.max_buffer_size
            ),
            temp_dir=os.environ.get("PDFSCAN_TEMP_DIR") or defaults.temp_dir,
            record_ttl=float(
                os.environ.get("PDFSCAN_RECORD_TTL", defaults.record_ttl)
            ),
            api_tokens=[t.strip() for t in tokens.split(",") if t.strip()],
            log_level=os.environ.get("PDFSCAN_LOG_LEVEL", defaults.log_level),
            log_file=os.environ.get("PDFSCAN_LOG_FILE") or None,
        )


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure the pdfscan package logger (console, optional file)."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    package_logger = logging.getLogger("pdfscan")
    package_logger.setLevel(level)

    # Console handler
    if not package_logger.handlers:
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        package_logger.addHandler(console)

    # File handler
    if log_file:
        log_path = Path(log_file).absolute()
        already = any(
            isinstance(h, logging.FileHandler)
            and Path(h.baseFilename) == log_path
            for h in package_logger.handlers
        )
        if not already:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(
                logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
            )
            package_logger.addHandler(file_handler)


class ExtractionEngine:
    """
    Main text extraction engine.

    Chain order:
        1. Out-of-process decoder (when enabled; accept length 50)
        2. In-process byte-pattern decoders (accept length 30)

    Thread-safe: every extract() call runs its own state machine.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        external_decoder: Optional[ExternalDecoder] = None,
        decoders: Optional[Sequence[tuple[DecoderName, Decoder]]] = None,
    ):
        self.config = config or PipelineConfig()
        setup_logging(self.config.log_level, self.config.log_file)

        if external_decoder is None and self.config.use_external_decoder:
            external_decoder = SubprocessDecoder(
                command=self.config.external_command,
                temp_dir=self.config.temp_dir,
                max_output=self.config.max_buffer_size,
            )
        self.external_decoder = external_decoder
        self.decoders = list(decoders if decoders is not None else DECODER_CHAIN)

    def build_steps(self, process_id: Optional[str] = None) -> list[DecoderStep]:
        """Decoder steps in priority order for one extraction."""
        steps = []
        if self.external_decoder is not None:
            steps.append(DecoderStep(
                name=DecoderName.EXTERNAL,
                decode=functools.partial(
                    self.external_decoder.extract,
                    timeout=self.config.processing_timeout,
                    process_id=process_id,
                ),
                accept_length=self.config.external_accept_length,
            ))
        for name, decode in self.decoders:
            steps.append(DecoderStep(
                name=name,
                decode=decode,
                accept_length=self.config.accept_length,
            ))
        return steps

    def extract(
        self,
        buffer: bytes,
        process_id: Optional[str] = None,
    ) -> ExtractionResult:
        """
        Recover the best text from a PDF buffer.

        Raises:
            ExtractionFailure: UnreadableInput when `buffer` is not bytes-like.
        """
        if not isinstance(buffer, (bytes, bytearray, memoryview)):
            raise ExtractionFailure(
                f"Expected PDF bytes, got {type(buffer).__name__}",
                kind=ErrorKind.UNREADABLE_INPUT,
            )

        buffer = bytes(buffer)
        start_time = time.time()
        logger.info(
            f"Starting extraction ({format_file_size(len(buffer))})"
            + (f" for {process_id}" if process_id else "")
        )

        machine = ExtractionStateMachine(
            self.build_steps(process_id),
            min_text_length=self.config.min_text_length,
        )
        result = machine.run(buffer)
        result.processing_time_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"Extraction complete in "
            f"{format_processing_time(result.processing_time_ms)}: "
            f"{result.text_length} chars via "
            f"{result.decoder.value if result.decoder else 'none'} "
            f"({result.confidence.value} confidence)"
        )
        return result

    def extract_file(self, pdf_path: str) -> ExtractionResult:
        """
        Extract text from a PDF on disk.

        Raises:
            FileNotFoundError: If the PDF file doesn't exist.
        """
        path = Path(pdf_path)
        if not path.exists():
            raise FileNotFoundError(f"PDF not found: {pdf_path}")
        return self.extract(path.read_bytes())
