"""Command line entry point that runs the relay API under uvicorn."""

from __future__ import annotations

import argparse
import logging
import sys

from ratbridge.backend.config import load_settings
from ratbridge.backend.errors import ConfigError

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rat Game Bridge relay service")
    parser.add_argument("--host", default=None, help="Bind address (default: RATBRIDGE_HOST)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: RATBRIDGE_PORT)")
    parser.add_argument("--log-level", default=None, help="Log level (default: RATBRIDGE_LOG_LEVEL)")
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    configure_logging((args.log_level or settings.log_level).upper())

    import uvicorn

    from ratbridge.backend.api import create_app
    from ratbridge.backend.runtime import build_runtime

    try:
        runtime = build_runtime(settings)
    except ConfigError as exc:
        logger.error(f"Configuration error: {exc}")
        return 2

    uvicorn.run(
        create_app(runtime=runtime),
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
