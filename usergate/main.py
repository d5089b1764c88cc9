"""
Usergate - Main entry point.

Runs the API server with uvicorn on the configured host and port.
"""

from __future__ import annotations

import argparse

import uvicorn

from usergate.config import get_settings


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()
    
    parser = argparse.ArgumentParser(prog="usergate", description="Run the Usergate API server")
    parser.add_argument("--host", default=settings.api_host)
    parser.add_argument("--port", type=int, default=settings.api_port)
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    args = parser.parse_args(argv)
    
    uvicorn.run(
        "usergate.api.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
