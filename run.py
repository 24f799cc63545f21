#!/usr/bin/env python3
"""Run the PeerLearn API server.

Usage:
    python run.py [--host HOST] [--port PORT] [--reload] [--workers N]

Examples:
    python run.py                      # Run with defaults from PEERLEARN_* settings
    python run.py --port 8080          # Run on port 8080
    python run.py --reload             # Run with auto-reload for development
"""

import argparse

import uvicorn

from peerlearn.config import get_settings


def main():
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Run the PeerLearn API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py                      Run with defaults
  python run.py --host 0.0.0.0       Listen on all interfaces
  python run.py --reload             Enable auto-reload (development)
  python run.py --workers 4          Run with 4 worker processes
        """,
    )

    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Host to bind to (default: {settings.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to bind to (default: {settings.port})",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload on code changes (development mode)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (default: 1)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        default=settings.log_level.lower(),
        help="Uvicorn logging level",
    )

    args = parser.parse_args()

    print(f"PeerLearn starting at http://{args.host}:{args.port} (docs at /docs)")

    uvicorn.run(
        "peerlearn.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers if not args.reload else 1,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
