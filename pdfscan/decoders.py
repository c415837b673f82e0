"""
Byte-Pattern Decoders
=====================
In-process heuristics that recover candidate text from raw PDF bytes
without a PDF library. Each decoder is independent and side-effect free
and returns "" instead of raising on malformed input.

Priority order (see DECODER_CHAIN):
    1. hex_utf16       — <FEFF...> hex strings, 4 hex digits per UTF-16 unit
    2. readable_text   — operands of Tj / ' / " / TJ plus literal ASCII runs
    3. stream_content  — stream ... endstream payloads (inflated when possible)
    4. basic_filtered  — line scan that skips PDF metadata lines
"""

from __future__ import annotations

import functools
import logging
import re
import zlib
from typing import Callable

from .models import DecoderName
from .sanitizer import (
    CONTROL_CHARS,
    HAS_LETTER,
    is_garbled,
    is_metadata_line,
    remove_near_duplicates,
)

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes], str]

# ─── Patterns ─────────────────────────────────────────────────────────────────

# UTF-16 BE strings as written by most producers: <FEFF0048006F006C0061>
BOM_HEX_RUN = re.compile(r"feff((?:[0-9a-f]{4}){4,})", re.IGNORECASE)
BARE_HEX_RUN = re.compile(r"[0-9a-fA-F]{40,}")
TEXT_CHAR = re.compile(r"[\x20-\x7E\t\n\u00C0-\u024F\u1E00-\u1EFF]")

# Literal string operand, escapes included: (Hello \(World\))
PDF_STRING = r"\(((?:[^()\\]|\\.)*)\)"
SHOW_TEXT = re.compile(PDF_STRING + r"\s*(?:Tj|'|\")", re.DOTALL)
SHOW_TEXT_ARRAY = re.compile(r"\[((?:[^\[\]\\]|\\.)*)\]\s*TJ", re.DOTALL)
ARRAY_ELEMENT = re.compile(PDF_STRING + r"|(-?\d+(?:\.\d+)?)", re.DOTALL)
PDF_ESCAPE = re.compile(r"\\([nrtbf()\\]|[0-7]{1,3}|\r\n|\n|\r)?")

LITERAL_RUN = re.compile(r"[A-Za-z0-9\s\-_.,;:()]{5,}")
ASCII_WORDS = re.compile(r"[A-Za-z\s]{10,}")
READABLE_LATIN_RUN = re.compile(
    r"[A-Za-z\u00C0-\u024F\u1E00-\u1EFF\s\-_.,;:()]{5,}"
)

STREAM_PAYLOAD = re.compile(
    rb"(?<!end)stream(?:\r\n|\r|\n)?(.*?)(?:\r\n|\r|\n)?endstream",
    re.DOTALL,
)

_ESCAPES = {
    "n": "\n", "r": "\r", "t": "\t", "b": "\b", "f": "\f",
    "(": "(", ")": ")", "\\": "\\",
}

MIN_BOM_DECODED = 3
MIN_BARE_DECODED = 11
MIN_LITERAL_RUN = 5
MIN_STREAM_PAYLOAD = 21
MIN_STREAM_TEXT = 11
# TJ offsets at or below -200 (thousandths of an em) read as a word gap
KERNING_SPACE = 200


def _never_raises(name: DecoderName):
    """Turn any decoder exception into an empty candidate."""
    def decorator(func: Decoder) -> Decoder:
        @functools.wraps(func)
        def wrapper(buffer: bytes) -> str:
            try:
                return func(buffer)
            except Exception as e:
                logger.warning(f"Decoder {name.value} failed: {e}")
                return ""
        wrapper.decoder_name = name
        return wrapper
    return decorator


def _as_text(buffer: bytes) -> str:
    # latin-1 maps every byte to one char, so offsets stay aligned
    return bytes(buffer).decode("latin-1")


# ─── Shared Helpers ───────────────────────────────────────────────────────────


def _decode_utf16_hex(hex_string: str) -> str:
    """Read every 4 hex digits as one UTF-16 code unit, keeping text chars."""
    chars = []
    for i in range(0, len(hex_string) - 3, 4):
        char = chr(int(hex_string[i:i + 4], 16))
        if TEXT_CHAR.fullmatch(char):
            chars.append(char)
    return "".join(chars)


def _unescape_pdf_string(raw: str) -> str:
    def replace(match: re.Match) -> str:
        seq = match.group(1)
        if seq is None:
            return ""
        if seq in _ESCAPES:
            return _ESCAPES[seq]
        if seq[0].isdigit():
            return chr(int(seq, 8) & 0xFF)
        return ""  # escaped line break = continuation

    return CONTROL_CHARS.sub(" ", PDF_ESCAPE.sub(replace, raw))


def _join_array(content: str) -> str:
    parts = []
    for match in ARRAY_ELEMENT.finditer(content):
        if match.group(1) is not None:
            parts.append(_unescape_pdf_string(match.group(1)))
        elif float(match.group(2)) <= -KERNING_SPACE:
            parts.append(" ")
    return "".join(parts)


def extract_show_text(content: str) -> str:
    """
    Collect the string operands of the text-show operators in reading
    order: (..) Tj, (..) ', (..) " and [(..) -250 (..)] TJ.
    """
    found: list[tuple[int, str]] = []

    for match in SHOW_TEXT.finditer(content):
        found.append((match.start(), _unescape_pdf_string(match.group(1))))
    for match in SHOW_TEXT_ARRAY.finditer(content):
        found.append((match.start(), _join_array(match.group(1))))

    found.sort(key=lambda item: item[0])
    pieces = [
        " ".join(text.split())
        for _, text in found
        if any(c.isalnum() for c in text)
    ]
    return " ".join(pieces).strip()


def _ascii_words(content: str) -> str:
    runs = [
        " ".join(m.split())
        for m in ASCII_WORDS.findall(content)
        if HAS_LETTER.search(m)
    ]
    return " ".join(r for r in runs if len(r) >= MIN_LITERAL_RUN)


# ─── 1. Hex / UTF-16 ──────────────────────────────────────────────────────────


@_never_raises(DecoderName.HEX_UTF16)
def decode_hex_utf16(buffer: bytes) -> str:
    """Decode BOM-prefixed and long bare hex runs as UTF-16 text."""
    text = _as_text(buffer)
    decoded: dict[str, None] = {}

    for match in BOM_HEX_RUN.finditer(text):
        value = _decode_utf16_hex(match.group(1)).strip()
        if len(value) >= MIN_BOM_DECODED:
            decoded.setdefault(value)

    for match in BARE_HEX_RUN.finditer(text):
        run = match.group(0)
        if len(run) % 4:
            continue
        value = _decode_utf16_hex(run).strip()
        if len(value) >= MIN_BARE_DECODED and HAS_LETTER.search(value):
            decoded.setdefault(value)

    if not decoded:
        return ""
    return remove_near_duplicates("\n".join(decoded))


# ─── 2. Readable Text ─────────────────────────────────────────────────────────


@_never_raises(DecoderName.READABLE_TEXT)
def decode_readable_text(buffer: bytes) -> str:
    """Show-operator strings first, then literal ASCII runs elsewhere."""
    text = _as_text(buffer)
    shown = extract_show_text(text)

    remainder = SHOW_TEXT_ARRAY.sub(" ", SHOW_TEXT.sub(" ", text))
    runs: dict[str, None] = {}
    for match in LITERAL_RUN.finditer(remainder):
        run = " ".join(match.group(0).split())
        if len(run) >= MIN_LITERAL_RUN and HAS_LETTER.search(run):
            runs.setdefault(run)

    return "\n".join(filter(None, [shown, *runs]))


# ─── 3. Stream Content ────────────────────────────────────────────────────────


def _inflate(payload: bytes) -> bytes:
    try:
        return zlib.decompressobj().decompress(payload)
    except zlib.error:
        return b""


def _decode_stream_payload(payload: bytes) -> str:
    inflated = _inflate(payload)
    if inflated:
        content = inflated.decode("latin-1")
        decoded = extract_show_text(content) or _ascii_words(content)
        if decoded:
            return decoded

    content = payload.decode("latin-1")
    decoded = extract_show_text(content) or _ascii_words(content)
    if decoded:
        return decoded

    # Latin-1 bytes read back as UTF-8
    reinterpreted = " ".join(payload.decode("utf-8", errors="ignore").split())
    if (
        len(reinterpreted) >= MIN_STREAM_TEXT
        and HAS_LETTER.search(reinterpreted)
        and not is_garbled(reinterpreted)
    ):
        return reinterpreted
    return ""


@_never_raises(DecoderName.STREAM_CONTENT)
def decode_stream_content(buffer: bytes) -> str:
    """Decode each stream ... endstream payload that yields text."""
    streams = []
    for match in STREAM_PAYLOAD.finditer(bytes(buffer)):
        payload = match.group(1)
        if len(payload) < MIN_STREAM_PAYLOAD:
            continue
        decoded = _decode_stream_payload(payload)
        if len(decoded) >= MIN_STREAM_TEXT and HAS_LETTER.search(decoded):
            streams.append(decoded)
    return "\n".join(streams)


# ─── 4. Basic Filtered ────────────────────────────────────────────────────────


@_never_raises(DecoderName.BASIC_FILTERED)
def decode_basic_filtered(buffer: bytes) -> str:
    """Readable runs from every line that is not PDF metadata."""
    text = bytes(buffer).decode("utf-8", errors="ignore")
    kept = []

    for line in text.splitlines():
        trimmed = line.strip()
        if not trimmed or is_metadata_line(trimmed):
            continue
        pieces = [
            m.strip() for m in READABLE_LATIN_RUN.findall(trimmed)
            if len(m.strip()) > 3
        ]
        readable = " ".join(pieces).strip()
        if len(readable) > 3:
            kept.append(readable)

    return "\n".join(kept)


DECODER_CHAIN: list[tuple[DecoderName, Decoder]] = [
    (DecoderName.HEX_UTF16, decode_hex_utf16),
    (DecoderName.READABLE_TEXT, decode_readable_text),
    (DecoderName.STREAM_CONTENT, decode_stream_content),
    (DecoderName.BASIC_FILTERED, decode_basic_filtered),
]
