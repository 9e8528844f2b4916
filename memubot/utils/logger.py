"""
Logging utilities for MEmu Gather Bot
Provides structured logging with file rotation and different log levels
"""

import io
import logging
import logging.handlers
import os
import sys
from pathlib import Path

# Create logs directory if it doesn't exist
LOGS_DIR = Path(os.getenv("MEMUBOT_LOGS_DIR", Path(__file__).parent.parent.parent / "logs"))
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Default log format
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"

# Logger registry to avoid duplicate handlers
_loggers = {}


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that safely handles Unicode encoding errors"""

    def emit(self, record):
        try:
            msg = self.format(record)
            self.stream.write(msg + self.terminator)
            self.flush()
        except UnicodeEncodeError:
            try:
                msg = self.format(record)
                safe_msg = msg.encode('ascii', errors='replace').decode('ascii')
                self.stream.write(safe_msg + self.terminator)
                self.flush()
            except Exception:
                self.handleError(record)
        except Exception:
            self.handleError(record)


def _console_stream():
    """Wrap stdout in a UTF-8 writer when possible"""
    try:
        if hasattr(sys.stdout, 'buffer'):
            return io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace',
                                    line_buffering=True)
    except (AttributeError, io.UnsupportedOperation):
        pass
    return sys.stdout


def get_logger(name: str, level: str = None,
               log_file: str = "memubot.log",
               console_output: bool = True,
               detailed: bool = False) -> logging.Logger:
    """
    Get a configured logger instance

    Args:
        name: Logger name (usually __name__)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Defaults to MEMUBOT_LOG_LEVEL or INFO.
        log_file: Log file name in logs/ directory
        console_output: Whether to output to console
        detailed: Whether to use detailed format

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    level = level or os.getenv("MEMUBOT_LOG_LEVEL", "INFO")

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    formatter = logging.Formatter(DETAILED_FORMAT if detailed else DEFAULT_FORMAT)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            LOGS_DIR / log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console_output:
        console_handler = SafeStreamHandler(_console_stream())
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    # Prevent propagation to root logger
    logger.propagate = False

    _loggers[name] = logger
    return logger


def set_level(level: str) -> None:
    """Change the level of every logger created so far"""
    numeric = getattr(logging, level.upper(), logging.INFO)
    for logger in _loggers.values():
        logger.setLevel(numeric)
