"""Process-wide logger with optional file and console output."""

from __future__ import annotations

import logging
import logging.handlers
import sys
import threading
import time
from pathlib import Path
from typing import Optional

LOGGER_NAME = "sunkv"
MAX_FILE_BYTES = 1024 * 1024 * 100
BACKUP_COUNT = 3
FILE_STRATEGIES = ("fixed", "per_run", "daily")

_FORMAT = "[%(asctime)s.%(msecs)03d] [%(name)s] [%(levelname)s] [%(threadName)s] %(message)s"
_DATE_FORMAT = "%H:%M:%S"

_LEVELS_BY_NAME = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "ERR": logging.ERROR,
}


class Logger:
    """Owns the handlers of one named ``logging.Logger``."""

    _instance: Optional["Logger"] = None
    _instance_lock = threading.Lock()

    def __init__(self, name: str = LOGGER_NAME) -> None:
        self.logger = logging.getLogger(name)
        self.logger.propagate = False
        self.logger.setLevel(logging.INFO)
        self._file_path = ""
        self._resolved_file_path = ""
        self._file_strategy = "fixed"
        self._console_enabled = False
        self._rebuild()

    @classmethod
    def instance(cls) -> "Logger":
        """The shared process-wide logger."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)

    def level(self) -> int:
        return self.logger.level

    def set_level_from_name(self, level_name: str) -> None:
        """Set the level by name; unknown names mean INFO."""
        self.logger.setLevel(_LEVELS_BY_NAME.get(level_name.upper(), logging.INFO))

    def set_file(self, filename: str) -> None:
        """Log to ``filename``; an empty name turns file output off."""
        self._file_path = str(filename)
        self._resolved_file_path = ""
        self._rebuild()

    def set_console_enabled(self, enabled: bool) -> None:
        self._console_enabled = bool(enabled)
        self._rebuild()

    def set_file_strategy(self, strategy_name: str) -> None:
        """Choose fixed, per_run or daily file naming; unknown names mean fixed."""
        strategy = strategy_name.lower()
        self._file_strategy = strategy if strategy in FILE_STRATEGIES else "fixed"
        self._resolved_file_path = ""
        self._rebuild()

    def resolve_file_path(self) -> str:
        """The file path after applying the naming strategy."""
        if not self._file_path or self._file_strategy == "fixed":
            return self._file_path
        now = time.localtime()
        if self._file_strategy == "per_run":
            suffix = time.strftime("%Y%m%d_%H%M%S", now)
        else:
            suffix = time.strftime("%Y%m%d", now)
        path = Path(self._file_path)
        return str(path.parent / f"{path.stem}_{suffix}{path.suffix}")

    def _rebuild(self) -> None:
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        handlers = []
        if self._file_path:
            if not self._resolved_file_path:
                self._resolved_file_path = self.resolve_file_path()
            parent = Path(self._resolved_file_path).parent
            parent.mkdir(parents=True, exist_ok=True)
            handlers.append(
                logging.handlers.RotatingFileHandler(
                    self._resolved_file_path,
                    maxBytes=MAX_FILE_BYTES,
                    backupCount=BACKUP_COUNT,
                    encoding="utf-8",
                )
            )
        if self._console_enabled or not handlers:
            handlers.append(logging.StreamHandler(sys.stdout))

        formatter = logging.Formatter(_FORMAT, _DATE_FORMAT)
        for handler in handlers:
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)


def get_logger() -> logging.Logger:
    """The ``logging.Logger`` behind the shared instance."""
    return Logger.instance().logger