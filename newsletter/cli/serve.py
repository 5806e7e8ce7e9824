#!/usr/bin/env python3
"""Run the newsletter API with uvicorn.

Usage:
    newsletter-api [--host HOST] [--port PORT] [--reload]

Host and port default to API_HOST / API_PORT from the environment or .env.
"""
import argparse

import uvicorn

from newsletter.config import get_settings


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Run the newsletter subscription API.")
    parser.add_argument("--host", default=settings.api_host, help="Interface to bind")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Port to bind (0 picks a free port)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    return parser


def main(argv=None):
    """Entry point for CLI."""
    args = build_parser().parse_args(argv)
    # log_config=None keeps uvicorn's loggers on the structlog handler
    uvicorn.run(
        "newsletter.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
