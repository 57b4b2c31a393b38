"""
CLI entry point for the Todo API server.
"""

import argparse
import logging
import os
import sys

import uvicorn

from todo_api.settings import get_settings


def main() -> None:
    """Main entry point for the CLI."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Todo API - todos and categories over HTTP")
    parser.add_argument("--host", default=settings.host, help="Address to bind (default: %(default)s)")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to bind (default: %(default)s)")
    parser.add_argument(
        "--db-path",
        help="Path to the SQLite database (default: SQLITE_DB_PATH or ./data/todos.db)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.db_path:
        # The app factory reads settings from the environment
        os.environ["PERSISTENCE_BACKEND"] = "sqlite"
        os.environ["SQLITE_DB_PATH"] = args.db_path

    try:
        uvicorn.run(
            "todo_api.main:create_app",
            factory=True,
            host=args.host,
            port=args.port,
            log_config=None,
        )
    except KeyboardInterrupt:
        logging.info("Server stopped by user")
        sys.exit(0)
    except Exception as e:
        logging.exception(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
