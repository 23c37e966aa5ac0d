#!/usr/bin/env python3
"""
Startup script for the Rainmaker Arena API.

Starts the FastAPI server; the app's lifespan builds the round engine and
starts the scheduler (unless ENABLE_SCHEDULER=false).

Usage:
    python run_api.py

    Or with custom settings:
    python run_api.py --host 0.0.0.0 --port 8000 --reload
"""

import argparse
import socket
import sys

import uvicorn

from config.settings import settings


def is_port_in_use(host: str, port: int) -> bool:
    """Check if a port is already in use."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host if host != "0.0.0.0" else "127.0.0.1", port))
            return False
        except OSError:
            return True


def find_available_port(host: str, start_port: int, max_attempts: int = 10) -> int:
    """Find an available port starting from start_port."""
    for i in range(max_attempts):
        port = start_port + i
        if not is_port_in_use(host, port):
            return port
    return -1


def main():
    """Run the FastAPI application."""
    parser = argparse.ArgumentParser(description="Start Rainmaker Arena API")
    parser.add_argument(
        "--host",
        type=str,
        default=settings.API_HOST,
        help=f"Host to bind to (default: {settings.API_HOST})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.API_PORT,
        help=f"Port to bind to (default: {settings.API_PORT})",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["critical", "error", "warning", "info", "debug", "trace"],
        help="Uvicorn log level (default: info)",
    )
    parser.add_argument(
        "--auto-port",
        action="store_true",
        help="Automatically find available port if default is in use",
    )

    args = parser.parse_args()

    # Check port availability
    port = args.port
    if is_port_in_use(args.host, port):
        if args.auto_port:
            new_port = find_available_port(args.host, port)
            if new_port == -1:
                print(f"ERROR: No available ports found starting from {port}")
                sys.exit(1)
            print(f"WARNING: Port {port} is in use, using port {new_port} instead")
            port = new_port
        else:
            print(f"ERROR: Port {port} is already in use!")
            print(f"  Use a different port: python run_api.py --port {port + 1}")
            print(f"  Or auto-select one:   python run_api.py --auto-port")
            sys.exit(1)

    print("=" * 60)
    print("Rainmaker Arena API")
    print("=" * 60)
    print(f"Host: {args.host}")
    print(f"Port: {port}")
    print(f"Reload: {args.reload}")
    print(f"Assets: {', '.join(settings.TRACKED_ASSETS)}")
    print(f"Round duration: {settings.ROUND_DURATION_SECONDS}s")
    print(f"Scheduler: {'enabled' if settings.ENABLE_SCHEDULER else 'disabled'}")
    print("=" * 60)
    print()
    print(f"API docs: http://{args.host}:{port}/docs")
    print(f"WebSocket: ws://{args.host}:{port}/ws")
    print()

    # A single worker: rounds live in process memory
    uvicorn.run(
        "arena.api.main:app",
        host=args.host,
        port=port,
        reload=args.reload,
        log_level=args.log_level,
        workers=1,
    )


if __name__ == "__main__":
    main()
