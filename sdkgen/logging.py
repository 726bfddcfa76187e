"""Logging utilities for sdkgen runs."""

from __future__ import annotations

import logging
import threading
from typing import List

_LOGGER_NAME = "sdkgen"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the sdkgen hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(*, verbose: bool = False) -> logging.Logger:
    """Attach the console handler operators read while webhooks are processed.

    Run narratives go to blob storage through :class:`RunLog`, so the
    process itself only logs to the console.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # The CLI and the service may both configure logging in one process.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(
        logging.Formatter("%(asctime)s [sdkgen] %(levelname)s %(threadName)s %(message)s")
    )
    logger.addHandler(console)
    return logger


class RunLog:
    """Buffered narrative log for one orchestrator run or one repository workflow.

    Every line is kept in memory so it can be uploaded as a ``logs.txt`` blob,
    and is forwarded to the module logger for operators watching the process.
    """

    ERROR_PREFIX = "ERROR: "

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or get_logger("run")
        self._lines: List[str] = []
        self._lock = threading.Lock()

    @property
    def lines(self) -> List[str]:
        with self._lock:
            return list(self._lines)

    def info(self, message: str) -> None:
        self._append(message)
        self._logger.info(message)

    def error(self, message: str) -> None:
        self._append(f"{self.ERROR_PREFIX}{message}")
        self._logger.error(message)

    def text(self) -> str:
        lines = self.lines
        return "\n".join(lines) + ("\n" if lines else "")

    def _append(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)


__all__ = ["RunLog", "configure_logging", "get_logger"]
