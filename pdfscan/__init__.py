"""
PDF Text Extraction Service
===========================
Recovers readable text from raw PDF bytes and delivers it to a webhook.

Architecture:
    - Decoders: Independent byte-pattern heuristics (hex/UTF-16, show-text
      operators, content streams, filtered lines) plus an out-of-process
      PyMuPDF decoder
    - Sanitizer: Cleans candidates and classifies them as usable, garbled
      or metadata-only
    - State Machine: Tries decoders in priority order and picks the text
    - Delivery Pipeline: Posts the text to the webhook and tracks each job
      through processing → analyzing → completed
    - HTTP Service: Upload and status-polling endpoints

Version: 1.0.0
"""

__version__ = "1.0.0"
