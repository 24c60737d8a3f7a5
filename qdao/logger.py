"""
QDAO Logging
============

Every module logs through ``get_logger(__name__)``. The first call wires the
root logger once: a Rich console handler with governance-aware highlighting
and, when enabled, a size-rotated log file. ``configure_logging`` re-applies
settings later, e.g. from the ``[logging]`` section of qdao.toml.

    >>> from qdao.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Proposal #1 → QUEUED")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    DEFAULT_LOG_DATE_FORMAT,
    DEFAULT_LOG_FORMAT,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_DATE_FORMAT,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_MAX_FILE_SIZE,
    LOG_TO_FILE,
)

# Default rotating log file, relative to the checkout
PROJECT_ROOT = Path(__file__).parent.parent
LOG_FILE_PATH = PROJECT_ROOT / "logs" / "qdao.log"

QDAO_THEME = Theme(
    {
        "qdao.address":       "cyan",
        "qdao.amount":        "bold white",
        "qdao.arrow":         "bold yellow",
        "qdao.logger_name":   "magenta",
        "qdao.level_debug":   "bold dim",
        "qdao.level_info":    "bold green",
        "qdao.level_warning": "bold yellow",
        "qdao.level_error":   "bold red",
        "qdao.tag":           "bold magenta",
        "qdao.state_done":    "bold green",
        "qdao.state_failed":  "bold red",
        "qdao.state_open":    "bold yellow",
        "qdao.timestamp":     "bold cyan",
    }
)


class QDAOLogHighlighter(RegexHighlighter):
    """Colours identities, amounts, numbered records and proposal states."""

    base_style = "qdao."
    highlights = [
        r"(?P<timestamp>^\S+ UTC)",
        r"(?P<address>\b0x[0-9a-fA-F]{6,}\b)",
        r"(?P<arrow>→|->)",
        r"(?P<amount>\bamount=\d+)",
        r"(?P<tag>\b(?:Proposal|Request|Schedule) #\d+)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<level_error>\b(?:ERROR|CRITICAL)\b)",
        r"\bINFO - (?P<logger_name>qdao[\w.]*)",
        r"(?P<state_done>\b(?:SUCCEEDED|EXECUTED)\b)",
        r"(?P<state_failed>\bFAILED\b)",
        r"(?P<state_open>\b(?:PENDING|ACTIVE|QUEUED)\b)",
    ]


class TerminalSafeFormatter(logging.Formatter):
    """
    Formatter that drops terminal escape sequences and control characters.

    Applied to every record, since proposal descriptions and fund request
    notes are user-supplied free text.
    """

    _escape_sequences = re.compile(r"\x1b(?:\[[0-?]*[ -/]*[@-~]|[@-Z\\-_])")
    _control_chars = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        return cls._control_chars.sub("", cls._escape_sequences.sub("", text))

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


def build_formatter(log_format: str, date_format: str) -> TerminalSafeFormatter:
    """
    Formatter for *log_format* / *date_format*, timestamps in UTC.

    A malformed format string from ``.env`` falls back to the defaults with
    a note on stderr.
    """
    try:
        formatter = TerminalSafeFormatter(
            fmt=log_format, datefmt=f"{date_format} UTC", validate=True
        )
        time.strftime(date_format)
    except (ValueError, TypeError) as exc:
        print(f"qdao.logger: invalid log format ({exc}), using defaults", file=sys.stderr)
        formatter = TerminalSafeFormatter(
            fmt=DEFAULT_LOG_FORMAT, datefmt=f"{DEFAULT_LOG_DATE_FORMAT} UTC"
        )
    formatter.converter = time.gmtime
    return formatter


class LogManager:
    """
    Process-wide logging setup (singleton).

    ``configure`` is idempotent until ``reconfigure`` is called.
    """

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._configured = False
                instance._handlers = []
                cls._instance = instance
        return cls._instance

    @property
    def is_configured(self) -> bool:
        return self._configured

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install handlers on the root logger.

        Args:
            log_level:      Level name; defaults to LOG_LEVEL from ``.env``
            log_file:       Rotating log file; defaults to ``logs/qdao.log``
            console_output: Attach the console handler
            file_output:    Attach the file handler; defaults to LOG_TO_FILE
        """
        with self._lock:
            if self._configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            formatter = build_formatter(LOG_FORMAT, LOG_DATE_FORMAT)

            root = logging.getLogger()
            root.setLevel(level)
            for handler in self._handlers:
                root.removeHandler(handler)
                handler.close()
            self._handlers = []

            if console_output:
                self._handlers.append(self._console_handler(level, formatter))

            if LOG_TO_FILE if file_output is None else file_output:
                path = Path(log_file) if log_file else LOG_FILE_PATH
                path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setLevel(level)
                file_handler.setFormatter(formatter)
                self._handlers.append(file_handler)

            for handler in self._handlers:
                root.addHandler(handler)

            self._configured = True

    @staticmethod
    def _console_handler(level: int, formatter: logging.Formatter) -> logging.Handler:
        if LOG_CONSOLE_HIGHLIGHTING:
            handler: logging.Handler = RichHandler(
                console=Console(theme=QDAO_THEME, highlight=False),
                highlighter=QDAOLogHighlighter(),
                keywords=[],
                markup=False,
                rich_tracebacks=True,
                show_time=False,
                show_level=False,
                show_path=False,
            )
        else:
            handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        return handler

    def reconfigure(self, **kwargs) -> None:
        with self._lock:
            self._configured = False
        self.configure(**kwargs)

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Logger for *name*, configuring the root logger on first use."""
    return _manager.get_logger(name)


def configure_logging(
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
    file_output: Optional[bool] = None,
) -> None:
    """Replace the current handlers, e.g. after loading qdao.toml."""
    _manager.reconfigure(log_level=log_level, log_file=log_file, file_output=file_output)


_manager.configure()
