"""Script to launch the AI chat backend."""

from __future__ import annotations

import argparse
import logging
import os
import sys

import uvicorn

# Ensure src/ is on sys.path (so imports work when run directly)
SRC_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from chat_backend.config import load_settings  # noqa: E402
from chat_backend.server import create_app  # noqa: E402

logger = logging.getLogger("chat_backend.run")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the AI chat backend.")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a YAML config file (default: $CHAT_BACKEND_CONFIG or config/default.yaml)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=os.environ.get("HOST", "127.0.0.1"),
        help="Host to bind the server to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the server to (default: $PORT or 3001)",
    )
    args = parser.parse_args()

    settings = load_settings(args.config)
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)-24s | %(message)s",
    )
    port = args.port or settings.port

    app = create_app(settings=settings)
    logger.info("AI Chat Backend running on http://%s:%d", args.host, port)
    logger.info("Health check: http://%s:%d/api/health", args.host, port)

    uvicorn.run(app, host=args.host, port=port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
