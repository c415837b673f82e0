"""
pdfscan Service Entry Point
===========================
Runs the upload/status HTTP service with configuration taken from the
environment (PDFSCAN_*), optionally overridden on the command line.

Usage:
    python main.py                                  # 0.0.0.0:5000
    python main.py --port 8000 --no-external        # byte-pattern decoders only
    python main.py --webhook-url http://hook.local/in --debug
"""

import argparse
import logging

from pdfscan.engine import PipelineConfig, setup_logging
from pdfscan.server import app, create_app

logger = logging.getLogger("pdfscan.main")


def build_config(args: argparse.Namespace) -> PipelineConfig:
    config = PipelineConfig.from_env()
    if args.webhook_url:
        config.webhook_url = args.webhook_url
    if args.no_external:
        config.use_external_decoder = False
    if args.debug:
        config.log_level = "DEBUG"
    return config


def main():
    parser = argparse.ArgumentParser(description="pdfscan extraction service")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    parser.add_argument("--port", type=int, default=5000, help="Bind port")
    parser.add_argument("--webhook-url", default=None, help="Override the webhook URL")
    parser.add_argument(
        "--no-external",
        action="store_true",
        help="Disable the out-of-process PyMuPDF decoder",
    )
    parser.add_argument("--debug", action="store_true", help="Debug mode")
    args = parser.parse_args()

    config = build_config(args)
    setup_logging(config.log_level, config.log_file)
    if config.max_file_size <= 0:
        parser.error("PDFSCAN_MAX_FILE_SIZE must be positive")

    create_app(config)

    logger.info(f"Webhook URL: {config.webhook_url}")
    logger.info(
        f"Decoders: {'external + ' if config.use_external_decoder else ''}"
        "byte-pattern chain"
    )
    if not config.api_tokens:
        logger.warning("PDFSCAN_API_TOKENS not set: any bearer token is accepted")
    logger.info(f"Listening on {args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
