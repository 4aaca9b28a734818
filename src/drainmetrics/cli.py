"""Console entry point running the drain receiver under uvicorn."""

import logging
import sys

import uvicorn

from drainmetrics.app import create_app
from drainmetrics.config import ConfigError, Settings


def main() -> None:
    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        print(f"drainmetrics: {exc}", file=sys.stderr)
        sys.exit(2)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
