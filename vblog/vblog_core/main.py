"""
vblog core - main entry point.

Bootstraps the core against the configured database: creates the schema,
initializes counters from existing data, primes the caches and reports
what was loaded. Useful as a startup check and after imports.

Usage:
    python -m vblog.vblog_core.main

Configuration is entirely via environment variables.
See config.py for all available settings.
"""

from __future__ import annotations

import asyncio
import logging
import sys

import json_log_formatter

from .config import CoreConfig
from .core import BlogCore

logger = logging.getLogger(__name__)


def setup_logging(config: CoreConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Core configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


async def run(config: CoreConfig) -> dict[str, int]:
    """Bootstrap the core once and return cached record counts."""
    core = BlogCore(config)
    try:
        await core.bootstrap()
        return core.cache.sizes()
    finally:
        await core.close()


def main() -> None:
    """Main entry point."""
    try:
        config = CoreConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    try:
        sizes = asyncio.run(run(config))
    except Exception as e:
        logger.error(f"Bootstrap failed: {e}", exc_info=True)
        sys.exit(1)

    print(f"Bootstrapped {config.storage.db_path}")
    for name, count in sizes.items():
        print(f"  {name}: {count}")


if __name__ == "__main__":
    main()
