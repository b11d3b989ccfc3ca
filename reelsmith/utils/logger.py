"""
Logging Configuration
Application logger plus per-job log sinks that feed the progress stream
"""

import asyncio
import logging
import sys
from typing import Optional, Protocol


class LogBuffer(Protocol):
    """Anything that accepts log lines for a job (the event broker)"""

    def append_log(self, job_id: str, line: str) -> bool:
        ...


class LogSink:
    """Logging interface passed into every pipeline stage"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or get_logger()

    def debug(self, message: str):
        self._emit(logging.DEBUG, message)

    def info(self, message: str):
        self._emit(logging.INFO, message)

    def warning(self, message: str):
        self._emit(logging.WARNING, message)

    def error(self, message: str):
        self._emit(logging.ERROR, message)

    def _emit(self, level: int, message: str):
        self._logger.log(level, message, stacklevel=3)


class JobLogSink(LogSink):
    """
    Log sink bound to one job.

    Lines go to the application logger (prefixed with the short job id) and
    are appended to the job's buffer, which broadcasts them to observers.
    Calls made from executor threads are marshalled onto the event loop.
    """

    def __init__(
        self,
        buffer: LogBuffer,
        job_id: str,
        logger: Optional[logging.Logger] = None,
        broadcast_level: int = logging.INFO,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        super().__init__(logger)
        self.job_id = job_id
        self._buffer = buffer
        self._broadcast_level = broadcast_level
        self._loop = loop

    def bind_loop(self, loop: asyncio.AbstractEventLoop):
        """Set the loop used for thread-safe appends."""
        self._loop = loop

    def _emit(self, level: int, message: str):
        self._logger.log(level, f"[{self.job_id[:8]}] {message}", stacklevel=3)
        if level < self._broadcast_level:
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None or self._loop is None or not self._loop.is_running():
            self._buffer.append_log(self.job_id, message)
        else:
            self._loop.call_soon_threadsafe(self._buffer.append_log, self.job_id, message)


def setup_logger(name: str = "reelsmith", level: int = logging.INFO) -> logging.Logger:
    """Set up and configure the application logger"""
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(module)s | %(message)s",
        datefmt="%H:%M:%S"
    )
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    return logger


def get_logger(name: str = "reelsmith") -> logging.Logger:
    """Get the configured logger instance"""
    return logging.getLogger(name)
