"""CLI entry point for Claw Workflows."""

import argparse
import os
import sys


def main():
    """Main entry point for the workflow engine server."""
    parser = argparse.ArgumentParser(
        prog="claw-workflows",
        description="Claw Workflows - workflow automation engine for the OpenClaw desktop",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8766,
        help="Port to run the server on (default: 8766)"
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--storage",
        choices=["memory", "json"],
        help="Workflow storage backend (default: memory)"
    )
    parser.add_argument(
        "--expose",
        action="store_true",
        help="Allow any CORS origin; non-localhost API calls then need the bearer token"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--version", "-v",
        action="store_true",
        help="Show version and exit"
    )

    args = parser.parse_args()

    if args.version:
        from claw_workflows import __version__
        print(f"Claw Workflows v{__version__}")
        return 0

    # Configuration is read from the environment at import time
    if args.storage:
        os.environ["CLAW_WORKFLOWS_STORAGE"] = args.storage
    if args.expose:
        os.environ["CLAW_WORKFLOWS_EXPOSE"] = "1"
    if args.debug:
        os.environ["CLAW_WORKFLOWS_DEBUG"] = "1"

    print(f"""
  Claw Workflows
  Server:    http://{args.host}:{args.port}
  API docs:  http://{args.host}:{args.port}/docs
    """)
    print("  Press Ctrl+C to stop the server.\n")

    import uvicorn
    uvicorn.run(
        "claw_workflows.app.main:app",
        host=args.host,
        port=args.port,
        log_level="debug" if args.debug else "info",
    )

    return 0


if __name__ == "__main__":
    sys.exit(main())
