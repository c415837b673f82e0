"""
Text Sanitizer
==============
Turns a raw decoder candidate into clean, de-duplicated text and
classifies it.

Pipeline (sanitize):
    control chars → line endings → PDF tokens → CAD export noise →
    character set → whitespace → duplicate lines

Classification:
    - is_garbled: too many foreign characters, long single-char runs,
      or nothing but digits
    - is_only_metadata: most lines look like PDF structure, not prose
"""

from __future__ import annotations

import logging
import re

from .utils import preview

logger = logging.getLogger(__name__)

# ─── Thresholds ───────────────────────────────────────────────────────────────

MIN_LINE_LENGTH = 5
SIMILARITY_THRESHOLD = 0.7
GARBLED_RATIO = 0.5
METADATA_RATIO = 0.7

# ─── Character Classes ────────────────────────────────────────────────────────

# Printable ASCII, tab/newline, Latin-1 letters, Latin Extended-A/B, Latin Extended Additional
DISALLOWED_CHARS = re.compile(r"[^\x20-\x7E\n\t\u00C0-\u024F\u1E00-\u1EFF]")
WEIRD_CHARS = re.compile(r"[^\x20-\x7E\u00C0-\u024F\u1E00-\u1EFF\s]")
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F-\x9F]")
HAS_LETTER = re.compile(r"[A-Za-z\u00C0-\u024F\u1E00-\u1EFF]")
WHITESPACE = re.compile(r"\s+")
HORIZONTAL_SPACE = re.compile(r"[ \t\f\v]+")
DIGITS_ONLY = re.compile(r"[\d\s]*")
REPEATED_CHAR = re.compile(r"(\S)\1{9,}")

# ─── PDF Structural Tokens ───────────────────────────────────────────────────

FILE_MARKERS = re.compile(r"%?PDF-\d\.\d|%%EOF")
OBJECT_REFERENCE = re.compile(r"\b\d+\s+\d+\s+R\b")
STRUCTURAL_TOKENS = re.compile(
    r"\b(?:obj|endobj|stream|endstream|xref|trailer|startxref)\b"
)
METADATA_KEYS = re.compile(
    r"/?\b(?:ModDate|CreationDate|Producer|Creator)\b"
    r"|/(?:Parent|Count|First|Last|Next|Prev|Title)\b"
)
# Needs at least one a-f letter so long plain numbers (dates, codes) survive
HEX_BLOB = re.compile(r"\b(?=[0-9]*[a-fA-F])[0-9a-fA-F]{8,}\b")
REPEATED_WORD = re.compile(r"\b(\w+)(?:\s+\1\b){2,}")
REPEATED_PHRASE = re.compile(r"\b(.{10,30})\s+\1\s+\1")

# ─── CAD Export Noise ─────────────────────────────────────────────────────────

TOOL_NOISE_PATTERNS = [
    re.compile(r"AutoCAD\s+SHX\s+Text\s*", re.IGNORECASE),
    re.compile(r"AutoCAD\s*", re.IGNORECASE),
    re.compile(r"\(Adobe[^)]*\)", re.IGNORECASE),
    re.compile(r"\(UCS[^)]*\)", re.IGNORECASE),
    re.compile(r"\bdef\s+", re.IGNORECASE),
    # PDF date strings, e.g. D:20240115093000+01'00'
    re.compile(r"D:\d{14}(?:Z|[+\-]\d{2}'?\d{2}'?)?"),
    re.compile(r"SHX\s+Text\s*", re.IGNORECASE),
    # Layer / block codes: 12_COTAS, EJE_A_1
    re.compile(r"\b\d+_\w+"),
    re.compile(r"\b[A-Z]{2,}_[A-Z\d_]+"),
]

# ─── Metadata Detection ──────────────────────────────────────────────────────

# Any of these inside a line marks the line as PDF structure
METADATA_INDICATORS = [
    re.compile(r"PDF-1\.\d"),
    re.compile(r"\bLinearized\b"),
    re.compile(r"\bstartxref\b"),
    re.compile(r"%%EOF|\bEOF\b"),
    re.compile(r"\bxref\b"),
    re.compile(r"\btrailer\b"),
    re.compile(r"\bendobj\b"),
    re.compile(r"\bFilter\b"),
    re.compile(r"\bFlateDecode\b"),
    re.compile(r"\bDeviceRGB\b"),
    re.compile(r"\bMediaBox\b"),
    re.compile(r"\bCropBox\b"),
    re.compile(r"\bResources\b"),
    re.compile(r"\bExtGState\b"),
    re.compile(r"\bProcSet\b"),
    re.compile(r"/Border\b"),
    re.compile(r"/Contents\b"),
    re.compile(r"/Subtype\b"),
    re.compile(r"\b\d+\s+\d+\s+obj\b"),
    re.compile(r"\b\d+\s+\d+\s+R\b"),
    re.compile(r"^\d+\s+\d+\s+[nf]$"),
]

# Whole-line shapes skipped by the basic filtered decoder
METADATA_LINE_SHAPES = [
    re.compile(r"^%?PDF-1\."),
    re.compile(r"^%%EOF"),
    re.compile(r"^<<|^>>"),
    re.compile(r"^/[A-Za-z]"),
    re.compile(r"^\d+\s+\d+\s+obj\b"),
    re.compile(r"^\d+\s+\d+\s+R\b"),
    re.compile(r"^\d+\s+\d+\s+[nf]\s*$"),
    re.compile(r"^(?:startxref|EOF|xref|trailer|endobj|stream|endstream)$"),
    re.compile(
        r"^(?:Filter|FlateDecode|DeviceRGB|MediaBox|CropBox|Resources|"
        r"ExtGState|ProcSet)\b"
    ),
    re.compile(r"^Border\s+\d+"),
    re.compile(r"^Contents\("),
    re.compile(r"^Subtype\s+(?:Square|Text)"),
    re.compile(r"^Name\("),
    re.compile(r"^Linearized\s+\d+"),
    re.compile(r"^[LOET]\s+\d+"),
    re.compile(r"^(?:Size|Root|Info)\s+\d+"),
    re.compile(r"^h\s+[A-Za-z0-9,\s]+$"),
    re.compile(r"^Xop\d+"),
]


# ─── Cleaning Steps ───────────────────────────────────────────────────────────


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def strip_pdf_tokens(text: str) -> str:
    """Remove object references, structural keywords, hex blobs and word stutter."""
    text = FILE_MARKERS.sub(" ", text)
    text = OBJECT_REFERENCE.sub(" ", text)
    text = STRUCTURAL_TOKENS.sub(" ", text)
    text = METADATA_KEYS.sub(" ", text)
    text = HEX_BLOB.sub(" ", text)
    text = REPEATED_WORD.sub(r"\1", text)
    text = REPEATED_PHRASE.sub(r"\1", text)
    return text


def filter_tool_noise(text: str) -> str:
    """Strip CAD export boilerplate (AutoCAD SHX text, dates, layer codes)."""
    for pattern in TOOL_NOISE_PATTERNS:
        text = pattern.sub("", text)
    return text


def restrict_charset(text: str) -> str:
    return DISALLOWED_CHARS.sub("", text)


def normalize_whitespace(text: str) -> str:
    """Collapse spaces, trim lines, keep at most one blank line."""
    text = HORIZONTAL_SPACE.sub(" ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def deduplicate_lines(text: str, min_length: int = MIN_LINE_LENGTH) -> str:
    """
    Keep the first occurrence of every line.

    Lines are compared lower-cased with whitespace collapsed; lines shorter
    than min_length or without a letter are dropped. Single blank lines
    between kept lines survive. Applying this twice changes nothing.
    """
    seen: set[str] = set()
    kept: list[str] = []

    for line in text.split("\n"):
        cleaned = line.strip()
        if not cleaned:
            if kept and kept[-1] != "":
                kept.append("")
            continue
        if len(cleaned) < min_length or not HAS_LETTER.search(cleaned):
            continue
        normalized = WHITESPACE.sub(" ", cleaned).lower()
        if normalized in seen:
            continue
        seen.add(normalized)
        kept.append(cleaned)

    while kept and kept[-1] == "":
        kept.pop()
    return "\n".join(kept)


def sanitize(text: str) -> str:
    """Run the full cleaning pipeline over a raw candidate."""
    if not text:
        return ""

    text = CONTROL_CHARS.sub(" ", text)
    text = normalize_line_endings(text)
    text = strip_pdf_tokens(text)
    text = filter_tool_noise(text)
    text = restrict_charset(text)
    text = normalize_whitespace(text)
    return deduplicate_lines(text)


# ─── Near-Duplicate Sentences ─────────────────────────────────────────────────

SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+|\n+")


def is_similar(
    first: str,
    second: str,
    threshold: float = SIMILARITY_THRESHOLD,
) -> bool:
    """Shared-word similarity between two normalized sentences."""
    if first == second:
        return True

    words1 = first.split()
    words2 = second.split()
    if not words1 or not words2:
        return False
    if abs(len(words1) - len(words2)) > 3:
        return False

    other = set(words2)
    common = [w for w in words1 if len(w) > 3 and w in other]
    return len(common) / max(len(words1), len(words2)) >= threshold


def remove_near_duplicates(
    text: str,
    threshold: float = SIMILARITY_THRESHOLD,
    min_length: int = MIN_LINE_LENGTH,
) -> str:
    """Drop sentences that mostly repeat an earlier one; one sentence per line."""
    kept: list[str] = []
    kept_normalized: list[str] = []

    for sentence in SENTENCE_BREAK.split(text):
        cleaned = sentence.strip()
        if len(cleaned) < min_length:
            continue
        normalized = WHITESPACE.sub(" ", cleaned).lower()
        if any(is_similar(normalized, other, threshold)
               for other in kept_normalized):
            continue
        kept.append(cleaned)
        kept_normalized.append(normalized)

    return "\n".join(kept)


# ─── Classification ───────────────────────────────────────────────────────────


def is_garbled(text: str) -> bool:
    """True when the text is too corrupted to be worth delivering."""
    if DIGITS_ONLY.fullmatch(text or ""):
        return True

    weird_ratio = len(WEIRD_CHARS.findall(text)) / len(text)
    has_repeated_chars = REPEATED_CHAR.search(text) is not None
    garbled = weird_ratio > GARBLED_RATIO or has_repeated_chars

    if garbled:
        logger.debug(
            f"Garbled text (weird ratio {weird_ratio:.2f}, "
            f"repeated chars {has_repeated_chars}): {preview(text)}"
        )
    return garbled


def is_metadata_line(line: str) -> bool:
    """Whole-line PDF structure shapes (object headers, xref rows, dict keys)."""
    return any(p.search(line) for p in METADATA_LINE_SHAPES)


def is_only_metadata(text: str, ratio: float = METADATA_RATIO) -> bool:
    """True when at least `ratio` of the non-blank lines are PDF structure."""
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    if not lines:
        return False

    metadata_lines = sum(
        1 for line in lines
        if any(p.search(line) for p in METADATA_INDICATORS)
    )
    return metadata_lines / len(lines) >= ratio
