"""Loguru-based logging configuration.

Provides:
- Colorized console output on stderr
- A rotating log file for probe runs
- Intercept handler for standard logging compatibility

Environment Variables:
- CAPPROBE_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR). Default: INFO
- CAPPROBE_LOG_DIR: Log directory path. Default: ~/.llm-tabs/logs
"""

import logging
import os
import sys
from pathlib import Path

from loguru import logger

# Environment variables
LOG_LEVEL = os.environ.get("CAPPROBE_LOG_LEVEL", "INFO").upper()
LOG_DIR = Path(os.environ.get("CAPPROBE_LOG_DIR", Path.home() / ".llm-tabs" / "logs"))

# Track if logging has been configured to avoid duplicate setup
_logging_configured = False


def setup_logging(level: str | None = None) -> None:
    """Configure Loguru logging.

    Sets up:
    - Console output (stderr) with colorized format
    - capprobe.log file, rotated at 10 MB and retained for 7 days

    Args:
        level: Overrides CAPPROBE_LOG_LEVEL (the CLI passes DEBUG for --verbose)
    """
    global _logging_configured
    if _logging_configured:
        return
    _logging_configured = True

    log_level = (level or LOG_LEVEL).upper()

    LOG_DIR.mkdir(parents=True, exist_ok=True)

    # Remove default handler
    logger.remove()

    logger.add(
        sys.stderr,
        level=log_level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    logger.add(
        LOG_DIR / "capprobe.log",
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        rotation="10 MB",
        retention="7 days",
    )


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to Loguru.

    httpx and httpcore log through the standard library; this routes
    their records through our Loguru configuration.
    """

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record by forwarding to Loguru."""
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = str(record.levelno)

        # Find caller from where the logged message originated
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def intercept_standard_logging() -> None:
    """Redirect all standard logging to Loguru."""
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # Request lines from every probe are noise at INFO
    for name in ["httpx", "httpcore"]:
        logging.getLogger(name).setLevel(logging.WARNING)
