"""
Centralized logging setup and configuration.

Console runs log informational messages to stdout and warnings/errors to
stderr. Cron runs can redirect everything to a log file instead, with a
timestamp on every line.
"""

import logging
import sys
from typing import Optional


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
CONSOLE_FORMAT = "[%(levelname)s] %(message)s"


class ColoredFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to log output.

    Colors are only applied when the target stream is a terminal.
    """

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, fmt: str = None, use_colors: bool = True, stream=None):
        """
        Initialize the formatter.

        Args:
            fmt: Log message format string
            use_colors: Whether to use colors in output
            stream: Stream the handler writes to, checked for a tty
        """
        super().__init__(fmt or CONSOLE_FORMAT)
        stream = stream if stream is not None else sys.stdout
        self.use_colors = use_colors and hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        original_levelname = record.levelname
        original_msg = record.msg

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            reset = self.COLORS["RESET"]
            record.levelname = f"{color}{record.levelname}{reset}"
            if original_levelname in ("WARNING", "ERROR", "CRITICAL"):
                record.msg = f"{color}{record.msg}{reset}"

        result = super().format(record)

        record.levelname = original_levelname
        record.msg = original_msg

        return result


class _MaxLevelFilter(logging.Filter):
    """Only pass records strictly below a level."""

    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


class StructuredLogger(logging.Logger):
    """
    Extended logger with additional utility methods.
    """

    def section(self, title: str) -> None:
        """Log a section header."""
        self.info("=" * 60)
        self.info(title)
        self.info("=" * 60)

    def subsection(self, title: str) -> None:
        """Log a subsection header."""
        self.info(f"--- {title} ---")

    def success(self, message: str) -> None:
        """Log a success message (INFO level with special formatting)."""
        self.info(f"[OK] {message}")

    def failure(self, message: str) -> None:
        """Log a failure message (ERROR level with special formatting)."""
        self.error(f"[FAIL] {message}")


# Global logger instance
_logger: Optional[StructuredLogger] = None


def setup_logger(
    name: str = "CertRenewal",
    verbose: bool = False,
    use_colors: bool = True,
    log_file: Optional[str] = None,
    stdout=None,
    stderr=None,
) -> StructuredLogger:
    """
    Setup and configure the global logger.

    Args:
        name: Logger name
        verbose: Enable debug-level logging
        use_colors: Enable colored console output
        log_file: When set, log only to this file (silent cron mode)
        stdout: Stream for informational messages (default: sys.stdout)
        stderr: Stream for warnings and errors (default: sys.stderr)

    Returns:
        Configured StructuredLogger instance
    """
    global _logger

    logging.setLoggerClass(StructuredLogger)
    logger = logging.getLogger(name)
    logger.__class__ = StructuredLogger

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)
    else:
        out_stream = stdout if stdout is not None else sys.stdout
        err_stream = stderr if stderr is not None else sys.stderr

        out_handler = logging.StreamHandler(out_stream)
        out_handler.setLevel(level)
        out_handler.addFilter(_MaxLevelFilter(logging.WARNING))
        out_handler.setFormatter(ColoredFormatter(use_colors=use_colors, stream=out_stream))
        logger.addHandler(out_handler)

        err_handler = logging.StreamHandler(err_stream)
        err_handler.setLevel(logging.WARNING)
        err_handler.setFormatter(ColoredFormatter(use_colors=use_colors, stream=err_stream))
        logger.addHandler(err_handler)

    _logger = logger
    return logger


def get_logger() -> StructuredLogger:
    """
    Get the global logger instance, creating a console logger on first use.

    Returns:
        The configured StructuredLogger instance
    """
    global _logger

    if _logger is None:
        _logger = setup_logger()

    return _logger
