"""
============================================================================
UPTIME ENGINE - LOGGING UTILITY
============================================================================
Loguru-based logging with a console sink and an optional rotating
file sink. Modules obtain a named logger through get_logger().
============================================================================
"""

import sys
from typing import Optional

from loguru import logger

from config.settings import LoggingSettings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(settings: Optional[LoggingSettings] = None) -> None:
    """
    Configure loguru sinks from settings.

    Args:
        settings: Logging settings (environment defaults if omitted)
    """
    settings = settings or LoggingSettings()

    # Remove default loguru handler
    logger.remove()
    logger.configure(extra={"name": "root"})

    log_level = settings.level.value

    if settings.to_console:
        logger.add(
            sys.stdout,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=settings.colorize,
            backtrace=True,
            diagnose=False,
        )

    if settings.to_file:
        settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.file_path,
            format=FILE_FORMAT,
            level=log_level,
            rotation=settings.rotation,
            retention=settings.retention,
            compression="zip",
            serialize=settings.serialize,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    logger.bind(name="logging").info(
        f"Logging initialized: level={log_level}, "
        f"console={settings.to_console}, file={settings.to_file}"
    )


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Logger name (usually the component)

    Returns:
        Logger instance
    """
    return logger.bind(name=name or "root")

