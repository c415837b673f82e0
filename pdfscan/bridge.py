"""
Extraction Bridge
=================
Subprocess script run by the out-of-process decoder.

Invoked as:
    python -m pdfscan.bridge <pdf_path>

The bridge:
    1. Opens the PDF with PyMuPDF
    2. Collects the text of every page
    3. Prints one JSON object to stdout
    4. Returns exit code 0 on success, 1 on failure

Contract:
    - Success: {"success": true, "text": "...", "pages": N, "length": N}
    - Failure: {"success": false, "error": "..."} and exit code 1
"""

from __future__ import annotations

import json
import os
import sys

import fitz  # PyMuPDF


def extract_text(pdf_path: str) -> dict:
    """Read every page of a PDF and return the bridge result dict."""
    doc = fitz.open(pdf_path)
    try:
        pages = []
        for page in doc:
            page_text = page.get_text("text").strip()
            if page_text:
                pages.append(page_text)
        text = "\n\n".join(pages)
        return {
            "success": True,
            "text": text,
            "pages": doc.page_count,
            "length": len(text),
        }
    finally:
        doc.close()


def _fail(message: str) -> None:
    print(json.dumps({"success": False, "error": message}, ensure_ascii=False))
    sys.exit(1)


def main(argv: list[str] | None = None):
    """Main entry point for the bridge subprocess."""
    args = sys.argv[1:] if argv is None else argv

    if len(args) < 1:
        _fail("Usage: python -m pdfscan.bridge <pdf_path>")

    pdf_path = args[0]
    if not os.path.exists(pdf_path):
        _fail(f"PDF file not found: {pdf_path}")

    try:
        result = extract_text(pdf_path)
    except Exception as e:
        _fail(f"{type(e).__name__}: {e}")

    print(json.dumps(result, ensure_ascii=False))
    sys.exit(0)


if __name__ == "__main__":
    main()
