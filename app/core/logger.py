"""Logging setup for the coach server and CLI.

Every module logs through the shared loguru `logger` with keyword context,
e.g. `logger.info("Coach turn finalized", entry_id=..., blocks=...)`. The
context lands in `{extra}` on text sinks and in `record.extra` on JSON sinks.
"""

import sys
from pathlib import Path

from loguru import logger

from app.config.settings import settings

# Per-module minimum levels; HTTP client internals are noisy at DEBUG.
MODULE_LEVELS: dict[str | None, str | bool] = {
    "httpx": "WARNING",
    "httpcore": "WARNING",
}

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level> {extra}"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message} {extra}"


def setup_logger(
    level: str | None = None,
    log_file: str | None = None,
    json_logs: bool | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """Replace loguru's default sink with the coach sinks.

    Args:
        level: Minimum level; defaults to `LOG_LEVEL`
        log_file: Optional rotating log file; defaults to `LOG_FILE`
        json_logs: Emit one JSON object per line on stderr; defaults to `LOG_JSON`
        rotation: Log rotation size (e.g., "10 MB", "1 day")
        retention: Log retention period (e.g., "7 days", "1 month")
    """
    level = level or settings.log_level
    log_file = log_file if log_file is not None else settings.log_file
    json_logs = settings.log_json if json_logs is None else json_logs

    logger.remove()

    if json_logs:
        logger.add(sys.stderr, level=level, serialize=True, filter=MODULE_LEVELS)
    else:
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True, filter=MODULE_LEVELS)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path,
            format=FILE_FORMAT,
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            encoding="utf-8",
            filter=MODULE_LEVELS,
        )

    logger.bind(json_logs=json_logs, log_file=log_file).info(f"Logger initialized with level={level}")
