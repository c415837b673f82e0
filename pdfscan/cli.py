"""
CLI Interface
=============
Command-line interface for the extraction pipeline.

Usage:
    python -m pdfscan extract <pdf_path> [options]
    python -m pdfscan process <pdf_path> [options]
    python -m pdfscan upload <pdf_path> --url <service> --token <token>
    python -m pdfscan serve [options]
"""

from __future__ import annotations

import dataclasses
import json
import os
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from . import __version__
from .engine import ExtractionEngine, PipelineConfig
from .exceptions import PipelineError
from .models import ExtractionResult, FileInfo, ProcessStatus
from .utils import format_file_size, format_processing_time, preview

console = Console()

LOG_LEVELS = click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"])


def _build_config(log_level: str, no_external: bool, timeout_ms: int | None = None) -> PipelineConfig:
    config = PipelineConfig.from_env()
    config.log_level = log_level
    if no_external:
        config.use_external_decoder = False
    if timeout_ms is not None:
        config.processing_timeout_ms = timeout_ms
    return config


@click.group()
@click.version_option(version=__version__, prog_name="pdfscan")
def cli():
    """pdfscan: PDF text extraction and webhook delivery."""
    pass


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--no-external",
    is_flag=True,
    default=False,
    help="Skip the out-of-process decoder (byte-pattern decoders only)",
)
@click.option(
    "--timeout-ms",
    default=None,
    type=int,
    help="Time budget for the out-of-process decoder",
)
@click.option("--log-level", default="WARNING", type=LOG_LEVELS, help="Logging level")
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
def extract(
    pdf_path: str,
    no_external: bool,
    timeout_ms: int | None,
    log_level: str,
    json_output: bool,
):
    """Extract text from a PDF without delivering it."""
    if json_output:
        log_level = "ERROR"

    config = _build_config(log_level, no_external, timeout_ms)

    try:
        engine = ExtractionEngine(config)
        if json_output:
            result = engine.extract_file(pdf_path)
            print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
            return

        _banner("PDF Text Extraction", f"Extracting: {os.path.basename(pdf_path)}")
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("Running decoders...", total=None)
            result = engine.extract_file(pdf_path)

        _display_result(result)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    except PipelineError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(1)


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--webhook-url", default=None, help="Override the webhook URL")
@click.option("--no-external", is_flag=True, default=False, help="Skip the out-of-process decoder")
@click.option("--log-level", default="INFO", type=LOG_LEVELS, help="Logging level")
def process(pdf_path: str, webhook_url: str | None, no_external: bool, log_level: str):
    """Extract a PDF and deliver its text to the webhook."""
    from .worker import DeliveryPipeline

    config = _build_config(log_level, no_external)
    if webhook_url:
        config.webhook_url = webhook_url

    with open(pdf_path, "rb") as f:
        buffer = f.read()
    file_info = FileInfo.from_upload(os.path.basename(pdf_path), len(buffer))

    _banner("PDF Processing", f"{file_info.name} → {config.webhook_url}")

    record = DeliveryPipeline(config).process_sync(buffer, file_info)

    if record.status == ProcessStatus.FAILED:
        console.print(
            f"[red]Failed[/] [{record.error_kind.value if record.error_kind else '?'}]: "
            f"{record.error}"
        )
        sys.exit(1)

    console.print(
        f"[green]Delivered[/] {record.text_length} chars "
        f"via {record.decoder.value if record.decoder else 'n/a'} "
        f"in {format_processing_time(record.processing_time_ms or 0)}"
    )
    if record.remote_response is not None:
        console.print(f"[dim]Webhook response:[/] {preview(str(record.remote_response), 300)}")


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--url", "base_url", default="http://localhost:5000", help="Service base URL")
@click.option("--token", envvar="PDFSCAN_TOKEN", required=True, help="Bearer token")
@click.option("--project-phase-id", default=None, help="Project phase the PDF belongs to")
@click.option("--pdf-type", default=None, help="Document type label")
@click.option("--interval", default=2.0, type=float, help="Polling interval (seconds)")
@click.option("--max-wait", default=None, type=float, help="Give up after this many seconds")
def upload(
    pdf_path: str,
    base_url: str,
    token: str,
    project_phase_id: str | None,
    pdf_type: str | None,
    interval: float,
    max_wait: float | None,
):
    """Upload a PDF to a running service and poll until it finishes."""
    from .client import ProcessPdfClient

    client = ProcessPdfClient(base_url, token)

    try:
        process_id = client.upload(
            pdf_path, project_phase_id=project_phase_id, pdf_type=pdf_type
        )
        console.print(f"[cyan]Process:[/] {process_id}")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("processing", total=100)

            def on_update(status: dict):
                progress.update(
                    task,
                    completed=status.get("progress", 0),
                    description=status.get("status", ""),
                )

            status = client.wait_for_completion(
                process_id, interval=interval, max_wait=max_wait, on_update=on_update
            )
    except (PipelineError, TimeoutError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    if status["status"] == ProcessStatus.FAILED.value:
        console.print(f"[red]Failed[/] [{status.get('errorKind')}]: {status.get('error')}")
        sys.exit(1)

    console.print(f"[green]Completed[/] {status.get('textLength', 0)} chars")
    console.print(Panel(preview(status.get("extractedText") or "", 500), title="Extracted text"))


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP microservice server."""
    from .server import run_server

    config = PipelineConfig.from_env()
    _banner("pdfscan Microservice", f"Starting on {host}:{port}")
    _display_config(config)

    run_server(host=host, port=port, debug=debug, config=config)


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _banner(title: str, subtitle: str):
    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]{title} v{__version__}[/]\n[dim]{subtitle}[/]",
            border_style="cyan",
        )
    )
    console.print()


def _display_result(result: ExtractionResult):
    """Show the decoder attempts and a preview of the chosen text."""
    table = Table(title="Decoder Attempts", border_style="cyan")
    table.add_column("Decoder", style="bold")
    table.add_column("Raw", justify="right")
    table.add_column("Clean", justify="right")
    table.add_column("Garbled", justify="center")
    table.add_column("Metadata", justify="center")
    table.add_column("Result")

    for attempt in result.attempts:
        if attempt.accepted:
            outcome = "[green]accepted[/]"
        elif attempt.error:
            outcome = f"[red]{preview(attempt.error, 40)}[/]"
        else:
            outcome = "[dim]next[/]"
        table.add_row(
            attempt.decoder.value,
            str(attempt.raw_length),
            str(attempt.clean_length),
            "✗" if attempt.garbled else "",
            "✗" if attempt.metadata_only else "",
            outcome,
        )
    console.print(table)

    color = "green" if result.confidence.value == "high" else "yellow"
    console.print(
        f"[{color}]{result.text_length} chars[/] via "
        f"{result.decoder.value if result.decoder else 'none'} "
        f"([{color}]{result.confidence.value}[/] confidence, "
        f"{format_processing_time(result.processing_time_ms)})"
    )
    if result.text:
        console.print(Panel(preview(result.text, 500), title="Extracted text"))


def _display_config(config: PipelineConfig):
    table = Table(title="Configuration", border_style="cyan")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    for f in dataclasses.fields(config):
        value = getattr(config, f.name)
        if f.name == "api_tokens":
            value = f"{len(value)} configured" if value else "any bearer token"
        elif f.name in ("max_file_size", "max_buffer_size"):
            value = format_file_size(value)
        table.add_row(f.name, str(value))
    console.print(table)
    console.print()


if __name__ == "__main__":
    cli()
