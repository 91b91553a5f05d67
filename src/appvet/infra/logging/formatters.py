from __future__ import annotations

import logging

from pythonjsonlogger.json import JsonFormatter

from ...shared.to_jsonable import to_jsonable


class JSONFormatter(JsonFormatter):
    """JSON formatter using python-json-logger.

    Structured fields passed via ``extra`` become top-level keys; values the
    encoder cannot handle (enums, datetimes, dataclasses) go through
    ``to_jsonable`` first.
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        for key, value in list(log_record.items()):
            log_record[key] = to_jsonable(value)

        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['message'] = record.getMessage()


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    def __init__(self) -> None:
        super().__init__(
            fmt='%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
