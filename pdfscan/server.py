"""
HTTP Microservice
=================
Flask API in front of the delivery pipeline. The frontend uploads a PDF,
gets a process id back at once and polls the status route until the job
is completed or failed.

Endpoints:
    POST   /excavation/process-pdf               → Start extraction + delivery
    POST   /excavation/process-pdf/sync          → Same, answered when done
    GET    /excavation/process-pdf/status/<id>   → Process status
    GET    /api/health                           → Health check

Upload and status routes require an `Authorization: Bearer <token>` header.
"""

from __future__ import annotations

import functools
import logging
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from . import __version__
from .engine import PipelineConfig
from .exceptions import PipelineError, UploadRejected, http_status_for
from .models import ErrorKind, FileInfo, ProcessStatus
from .storage import validate_pdf_upload
from .worker import DeliveryPipeline

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

UPLOAD_FIELD = "pdf"
CONTEXT_FIELDS = ("projectPhaseId", "pdfType", "description", "notes")


def create_app(
    config: Optional[PipelineConfig] = None,
    pipeline: Optional[DeliveryPipeline] = None,
) -> Flask:
    """Create and configure the Flask app."""
    config = config or (pipeline.config if pipeline else PipelineConfig.from_env())
    app.config["PDF_PIPELINE_CONFIG"] = config
    app.config["PDF_PIPELINE"] = pipeline or DeliveryPipeline(config)
    return app


def _config() -> PipelineConfig:
    if "PDF_PIPELINE_CONFIG" not in app.config:
        create_app()
    return app.config["PDF_PIPELINE_CONFIG"]


def _pipeline() -> DeliveryPipeline:
    if "PDF_PIPELINE" not in app.config:
        create_app()
    return app.config["PDF_PIPELINE"]


# ─── Errors & Auth ────────────────────────────────────────────────────────────


@app.errorhandler(PipelineError)
def handle_pipeline_error(error: PipelineError):
    logger.info(f"{request.method} {request.path} → {error.http_status}: {error.message}")
    return jsonify(error.to_dict()), error.http_status


def require_token(view):
    """Reject requests without a bearer token (or with one not allowed)."""

    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            return jsonify({
                "success": False,
                "error": "Authentication required",
            }), 401

        allowed = _config().api_tokens
        if allowed and token not in allowed:
            return jsonify({
                "success": False,
                "error": "Invalid token",
            }), 401
        return view(*args, **kwargs)

    return wrapper


# ─── Health Check ─────────────────────────────────────────────────────────────


@app.route("/api/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "pdfscan",
        "version": __version__,
        "active_jobs": _pipeline().active_jobs(),
    })


# ─── Process Endpoints ───────────────────────────────────────────────────────


def _read_upload() -> tuple[bytes, FileInfo, dict[str, str]]:
    """Validated upload bytes, file info and form context."""
    file = request.files.get(UPLOAD_FIELD)
    if file is None or not file.filename:
        raise UploadRejected(
            f"No PDF file provided (field '{UPLOAD_FIELD}')",
            kind=ErrorKind.INVALID_FILE_TYPE,
        )

    max_size = _config().max_file_size
    # one byte past the limit is enough to reject
    content = file.stream.read(max_size + 1)
    validate_pdf_upload(content, file.mimetype, max_size)

    context = {
        key: request.form[key]
        for key in CONTEXT_FIELDS
        if request.form.get(key)
    }
    return content, FileInfo.from_upload(file.filename, len(content)), context


@app.route("/excavation/process-pdf", methods=["POST"])
@require_token
def process_pdf():
    """
    Start extracting a PDF and delivering its text.

    Returns a process id for status polling.
    """
    content, file_info, context = _read_upload()
    process_id = _pipeline().submit(content, file_info, context)

    return jsonify({
        "success": True,
        "message": "PDF accepted for processing",
        "data": {
            "processId": process_id,
            "status": ProcessStatus.PROCESSING.value,
            "fileInfo": file_info.model_dump(by_alias=True),
        },
    }), 202


@app.route("/excavation/process-pdf/sync", methods=["POST"])
@require_token
def process_pdf_sync():
    """
    Extract and deliver a PDF synchronously.

    For small PDFs or when the caller wants to wait.
    """
    content, file_info, context = _read_upload()
    record = _pipeline().process_sync(content, file_info, context)

    if record.status == ProcessStatus.FAILED:
        return jsonify({
            "success": False,
            "kind": record.error_kind.value if record.error_kind else None,
            "error": record.error,
            "data": record.to_public(),
        }), http_status_for(record.error_kind)

    return jsonify({"success": True, "data": record.to_public()}), 200


# ─── Process Status ──────────────────────────────────────────────────────────


@app.route("/excavation/process-pdf/status/<process_id>", methods=["GET"])
@require_token
def process_status(process_id: str):
    """Get the status of a process."""
    record = _pipeline().get_status(process_id)
    return jsonify({"success": True, "data": record.to_public()})


# ─── Run Server ──────────────────────────────────────────────────────────────


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
    config: Optional[PipelineConfig] = None,
):
    """Start the microservice server."""
    create_app(config)
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    run_server(debug=True)
