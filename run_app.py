#!/usr/bin/env python3
"""
Goal Mania Backend Runner
=========================

Usage:
    python run_app.py                    # Development server with auto-reload
    python run_app.py --mode prod        # Production mode, several workers
    python run_app.py --port 8001        # Custom port
    python run_app.py --host 127.0.0.1   # Custom host
"""

import argparse
import sys

import uvicorn

from goalmania.core.config import settings


def run(host: str, port: int, mode: str) -> None:
    print(f"\nStarting {settings.APP_NAME} ({mode}) on {host}:{port}")
    print(f"API Docs: http://localhost:{port}/docs\n")

    if mode == "prod":
        uvicorn.run(
            "goalmania.main:app",
            host=host,
            port=port,
            workers=settings.WORKERS,
            log_level="info",
            proxy_headers=True,
        )
    else:
        uvicorn.run(
            "goalmania.main:app",
            host=host,
            port=port,
            reload=True,
            log_level="debug" if settings.DEBUG else "info",
        )


def main() -> int:
    parser = argparse.ArgumentParser(description="Goal Mania Backend Runner")
    parser.add_argument("--mode", choices=["dev", "prod"], default="dev", help="Server mode (default: dev)")
    parser.add_argument("--host", default=settings.HOST, help=f"Host to bind to (default: {settings.HOST})")
    parser.add_argument("--port", type=int, default=settings.PORT, help=f"Port to bind to (default: {settings.PORT})")

    args = parser.parse_args()
    run(args.host, args.port, args.mode)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nServer stopped")
        sys.exit(0)
