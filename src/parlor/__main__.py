"""Console entrypoint. Loads config, connects one session and runs the console."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from parlor import __version__
from parlor.config import Config, cfg, load_config_with_env
from parlor.console import Console
from parlor.core.errors import ConfigError
from parlor.session import ConnectionSession

# Third-party libraries to intercept and route through loguru
_INTERCEPTED_LIBRARIES = ["pydle", "pydle.client", "pydle.connection", "pydle.features.ircv3.cap"]


def _intercept_logging(level: str) -> None:
    """Route pydle's stdlib logging into loguru at `level`."""

    class InterceptHandler(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            try:
                log_level: str | int = logger.level(record.levelname).name
            except ValueError:
                log_level = record.levelno
            msg = record.getMessage().replace("{", "{{").replace("}", "}}")
            logger.patch(
                lambda r: r.update(
                    name=record.name,
                    function=record.funcName,
                    line=record.lineno,
                ),
            ).opt(exception=record.exc_info).log(log_level, msg)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for lib in _INTERCEPTED_LIBRARIES:
        lib_logger = logging.getLogger(lib)
        lib_logger.handlers = [InterceptHandler()]
        lib_logger.propagate = False
        lib_logger.setLevel(level)


def _safe_message_filter(record: Any) -> bool:
    """Escape braces/angles in log messages to prevent format/tag errors."""
    if isinstance(record.get("message"), str):
        msg = record["message"]
        msg = msg.replace("{", "{{").replace("}", "}}").replace("<", "\\<")
        record["message"] = msg
    return True


def setup_logging(verbose: bool = False, default: str = "WARNING") -> None:
    """Configure loguru on stderr; stdout belongs to the console.

    verbose=True or LOG_LEVEL=DEBUG enables DEBUG; otherwise LOG_LEVEL or `default`.
    """
    level = default
    if verbose:
        level = "DEBUG"
    else:
        env_level = (os.environ.get("LOG_LEVEL") or "").upper()
        if env_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
            level = env_level

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=("<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}"),
        filter=_safe_message_filter,
    )
    _intercept_logging(level)


def reload_config(config_path: Path) -> Config:
    """Load config from path and update global cfg."""
    data = load_config_with_env(config_path)
    cfg.reload(data)
    return cfg


def main() -> None:
    parser = argparse.ArgumentParser(description="parlor: IRC chat client")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=None,
        help="Server name to connect to (default: first auto_connect server)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    if not args.config.exists():
        logger.error("Config file not found: {}", args.config)
        sys.exit(1)

    try:
        config = reload_config(args.config)
        server = config.server(args.server)
        server.validate()
    except ConfigError as exc:
        logger.error("Invalid config ({}): {}", exc.code, exc)
        sys.exit(1)
    logger.info("Config loaded from {}; server {}", args.config, server.server_name)

    try:
        asyncio.run(_run(config, server.server_name, args.config))
    except KeyboardInterrupt:
        logger.info("Interrupted")


async def _run(config: Config, server_name: str, config_path: Path) -> None:
    session = ConnectionSession(
        config.server(server_name),
        queue_size=config.queue_size,
        script_delay=config.script_delay,
        whois_ttl=config.whois_cache_ttl_seconds,
    )
    console = Console(
        session,
        max_attempts=config.reconnect_max_attempts,
        backoff_max=config.reconnect_backoff_max,
        buffer_size=config.bus_buffer_size,
    )
    loop = asyncio.get_running_loop()
    pending: set[asyncio.Task] = set()

    async def apply_reload() -> None:
        try:
            new_config = reload_config(config_path)
            await session.update_config(new_config.server(server_name))
        except ConfigError as exc:
            logger.error("Config reload failed ({}): {}", exc.code, exc)
            return
        logger.info("Config reloaded (SIGHUP)")

    def on_sighup(*a: object, **kw: object) -> None:
        def schedule() -> None:
            task = loop.create_task(apply_reload())
            pending.add(task)
            task.add_done_callback(pending.discard)

        loop.call_soon_threadsafe(schedule)

    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, on_sighup)

    async with session:
        await console.run()
    logger.info("Session closed")


if __name__ == "__main__":
    main()
