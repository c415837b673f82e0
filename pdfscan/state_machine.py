"""
Extraction State Machine
========================
Deterministic state machine that runs the decoder chain over one buffer
and picks the text to deliver.

    IDLE → TRYING_DECODER(i) → SANITIZING → ACCEPTED
                                          → TRY_NEXT_DECODER → TRYING_DECODER(i+1)
                                          → EXHAUSTED (after the last decoder)

A candidate is accepted when its sanitized text reaches the decoder's
accept length and is neither garbled (judged on the raw output as well)
nor metadata-only. When no decoder is accepted the best leftover
candidate is returned with low confidence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from .exceptions import SubprocessTimeout
from .models import (
    Confidence,
    DecoderAttempt,
    DecoderName,
    ExtractionCandidate,
    ExtractionResult,
)
from .sanitizer import is_garbled, is_only_metadata, sanitize
from .utils import preview

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT_LENGTH = 30
DEFAULT_MIN_TEXT_LENGTH = 10


class ExtractionState(Enum):
    """Orchestrator states."""
    IDLE = "IDLE"
    TRYING_DECODER = "TRYING_DECODER"
    SANITIZING = "SANITIZING"
    ACCEPTED = "ACCEPTED"
    TRY_NEXT_DECODER = "TRY_NEXT_DECODER"
    EXHAUSTED = "EXHAUSTED"


@dataclass
class DecoderStep:
    """One entry of the chain: a decoder and the length that accepts it."""
    name: DecoderName
    decode: Callable[[bytes], str]
    accept_length: int = DEFAULT_ACCEPT_LENGTH


class ExtractionStateMachine:
    """
    Runs decoder steps in priority order until one is accepted.

    Decoder errors are logged and treated as an empty candidate, so the
    machine always reaches ACCEPTED or EXHAUSTED.
    """

    def __init__(
        self,
        steps: Sequence[DecoderStep],
        min_text_length: int = DEFAULT_MIN_TEXT_LENGTH,
    ):
        self.steps = list(steps)
        self.min_text_length = min_text_length
        self.state = ExtractionState.IDLE
        self.decoder_index = -1
        self.candidates: list[ExtractionCandidate] = []
        self.attempts: list[DecoderAttempt] = []

    def reset(self):
        """Reset the state machine for a fresh run."""
        self.state = ExtractionState.IDLE
        self.decoder_index = -1
        self.candidates = []
        self.attempts = []

    def run(self, buffer: bytes) -> ExtractionResult:
        """Run the chain over a buffer."""
        self.reset()

        for index, step in enumerate(self.steps):
            self.decoder_index = index
            self._transition(ExtractionState.TRYING_DECODER, step.name)
            raw, error = self._try_decoder(step, buffer)

            self._transition(ExtractionState.SANITIZING, step.name)
            candidate = self._classify(step.name, raw)
            accepted = self._accepts(candidate, step)

            self.attempts.append(DecoderAttempt(
                decoder=step.name,
                raw_length=len(raw),
                clean_length=candidate.length,
                garbled=candidate.garbled,
                metadata_only=candidate.metadata_only,
                accepted=accepted,
                error=error,
            ))
            logger.info(
                f"Decoder {step.name.value}: {candidate.length} chars "
                f"(raw {len(raw)}), garbled={candidate.garbled}, "
                f"metadata_only={candidate.metadata_only}"
            )

            if accepted:
                self._transition(ExtractionState.ACCEPTED, step.name)
                return ExtractionResult(
                    text=candidate.text,
                    decoder=step.name,
                    confidence=Confidence.HIGH,
                    attempts=list(self.attempts),
                )

            self.candidates.append(candidate)
            self._transition(ExtractionState.TRY_NEXT_DECODER, step.name)

        self._transition(ExtractionState.EXHAUSTED)
        best = self.best_candidate()
        if best is None:
            logger.warning("No decoder recovered any text")
            return ExtractionResult(attempts=list(self.attempts))

        logger.info(
            f"All decoders exhausted, using {best.decoder.value} "
            f"({best.length} chars, low confidence): {preview(best.text)}"
        )
        return ExtractionResult(
            text=best.text,
            decoder=best.decoder,
            confidence=Confidence.LOW,
            attempts=list(self.attempts),
        )

    def best_candidate(self) -> Optional[ExtractionCandidate]:
        """
        Pick the leftover to return after exhaustion.

        Clean candidates (neither garbled nor metadata-only) win over dirty
        ones. Within the pool, the highest-priority candidate that reaches
        min_text_length wins, otherwise the longest.
        """
        non_empty = [c for c in self.candidates if c.text]
        if not non_empty:
            return None

        pool = [c for c in non_empty if c.is_clean] or non_empty
        for candidate in pool:
            if candidate.length >= self.min_text_length:
                return candidate
        return max(pool, key=lambda c: c.length)

    # ─── Steps ────────────────────────────────────────────────────────────

    def _try_decoder(self, step: DecoderStep, buffer: bytes) -> tuple[str, Optional[str]]:
        try:
            return step.decode(buffer) or "", None
        except SubprocessTimeout as e:
            logger.warning(f"Decoder {step.name.value} timed out: {e}")
            return "", str(e)
        except Exception as e:
            logger.warning(f"Decoder {step.name.value} failed: {e}")
            return "", str(e)

    def _classify(self, name: DecoderName, raw: str) -> ExtractionCandidate:
        text = sanitize(raw)
        if not text:
            return ExtractionCandidate(decoder=name)
        # Foreign-character ratio is measured before the charset filter drops them
        return ExtractionCandidate(
            decoder=name,
            text=text,
            garbled=is_garbled(raw) or is_garbled(text),
            metadata_only=is_only_metadata(text),
        )

    def _accepts(self, candidate: ExtractionCandidate, step: DecoderStep) -> bool:
        return candidate.is_clean and candidate.length >= step.accept_length

    def _transition(self, state: ExtractionState, decoder: Optional[DecoderName] = None):
        suffix = f" [{decoder.value}]" if decoder else ""
        logger.debug(f"{self.state.value} -> {state.value}{suffix}")
        self.state = state
