from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence, Tuple

LOGGER = logging.getLogger(__name__)

Record = Sequence[Tuple[str, object]]


def format_record(fields: Record) -> str:
    """``key,value`` pairs flattened into one comma separated line."""
    parts = []
    for key, value in fields:
        parts.append(key)
        parts.append(f"{value:g}" if isinstance(value, float) else str(value))
    return ",".join(parts)


class ProgressLogWriter:
    """Emits progress records to the logger and to an optional log file."""

    def __init__(self, log_file: Optional[Path] = None):
        self.log_file = log_file
        self._file = None
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            self._file = log_file.open("a", encoding="utf-8")

    def write(self, fields: Record) -> str:
        line = format_record(fields)
        LOGGER.info(line)
        if self._file is not None:
            self._file.write(line + "\n")
            self._file.flush()
        return line

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "ProgressLogWriter":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


__all__ = ["ProgressLogWriter", "format_record"]
