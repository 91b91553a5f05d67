from __future__ import annotations

import logging
from pathlib import Path

from dependency_injector.resources import Resource

from .handlers import build_json_file_handler, build_human_console_handler


LOG_FILE_NAME = "appvet.jsonl"


class ServiceLogger(Resource):
    """Structured logger shared by intake, scanning and the API.

    Writes one JSON object per line to ``<logs_dir>/appvet.jsonl`` and,
    optionally, human-readable lines to the console. Thread-safe through the
    stdlib handlers, which matters because engines log from worker threads.
    """

    def init(
        self,
        *,
        logs_dir: Path | None = None,
        logger_name: str = "appvet",
        console_output: bool = False,
        level: str = "INFO",
        max_bytes: int = 0,
        backup_count: int = 0,
    ) -> "ServiceLogger":
        """Configure handlers.

        Args:
            logs_dir: Directory for the JSONL log file; no file handler if None
            logger_name: Logger name
            console_output: Whether to enable console output
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            max_bytes: Rotate the JSONL file at this size (0 disables)
            backup_count: Rotated files to keep

        Returns:
            Self for dependency_injector Resource pattern
        """
        numeric_level = getattr(logging, level.upper())
        self._logger = logging.getLogger(logger_name)
        self._logger.setLevel(numeric_level)
        self._logger.propagate = False

        self._logger.handlers.clear()
        self._handlers = []

        if logs_dir is not None:
            file_handler = build_json_file_handler(
                logs_dir / LOG_FILE_NAME,
                level=numeric_level,
                max_bytes=max_bytes,
                backup_count=backup_count,
            )
            self._logger.addHandler(file_handler)
            self._handlers.append(file_handler)

        if console_output:
            console_handler = build_human_console_handler(level=numeric_level)
            self._logger.addHandler(console_handler)
            self._handlers.append(console_handler)

        return self

    def shutdown(self, resource: "ServiceLogger") -> None:
        """Flush and close handlers so log files can be moved or deleted."""
        for handler in self._handlers:
            handler.flush()
            handler.close()

        self._logger.handlers.clear()

    def debug(self, message: str, **kwargs) -> None:
        if kwargs:
            self._logger.debug(message, extra=kwargs)
        else:
            self._logger.debug(message)

    def info(self, message: str, **kwargs) -> None:
        if kwargs:
            self._logger.info(message, extra=kwargs)
        else:
            self._logger.info(message)

    def warning(self, message: str, **kwargs) -> None:
        if kwargs:
            self._logger.warning(message, extra=kwargs)
        else:
            self._logger.warning(message)

    def error(self, message: str, exc_info: bool = False, **kwargs) -> None:
        if kwargs:
            self._logger.error(message, extra=kwargs, exc_info=exc_info)
        else:
            self._logger.error(message, exc_info=exc_info)

    def exception(self, message: str, **kwargs) -> None:
        if kwargs:
            self._logger.exception(message, extra=kwargs)
        else:
            self._logger.exception(message)
