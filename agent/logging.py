"""
Logging configuration for SheetPilot.

Two logging destinations:

  - Console: DEBUG if --verbose, WARNING+ otherwise. ``console_format``
    config options:
      - "full"   — same structured format as the file handler
      - "simple" — (default) bare messages for DEBUG/INFO, [LEVEL] prefix for WARNING+
      - "clean"  — no console output at all (file logging still active)
  - File: always DEBUG, one file per server run, attached with ``attach_log_file``.
    Format: "timestamp | level | name | turn_id | tag | message"

Log files are stored in <data_dir>/logs/.
"""

import contextvars
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from config import get_data_dir


LOGGER_NAME = "sheetpilot"

# Log directory
LOG_DIR = get_data_dir() / "logs"

_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(turn_id)s | %(log_tag)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Task-local: concurrent requests log their own turn id
_turn_id: contextvars.ContextVar[str] = contextvars.ContextVar("sheetpilot_turn_id", default="")


def tagged(tag: str) -> dict:
    """Return ``extra`` dict for logger calls: ``logger.debug("...", extra=tagged("x"))``."""
    return {"log_tag": tag}


# Module-level state (shared across re-inits)
_turn_filter: Optional["_TurnFilter"] = None


class _TurnFilter(logging.Filter):
    """Injects turn_id and a default log_tag into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "turn_id"):
            record.turn_id = _turn_id.get() or "-"
        if not hasattr(record, "log_tag"):
            record.log_tag = ""
        return True


class _ConsoleFormatter(logging.Formatter):
    """Console formatter: shows [LEVEL] prefix only for WARNING and above."""

    def format(self, record: logging.LogRecord) -> str:
        text = record.getMessage()
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        if record.levelno >= logging.WARNING:
            return f"  [{record.levelname}] {text}"
        return f"  {text}"


def attach_log_file(run_id: str) -> Path:
    """Attach a file handler for this server run and return the log file path.

    Creates or appends to sheetpilot_{run_id}.log. Turn ids reach the file
    through the turn filter.
    """
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    log_file = LOG_DIR / f"sheetpilot_{run_id}.log"

    logger = logging.getLogger(LOGGER_NAME)
    # Remove any existing file handler
    for handler in [h for h in logger.handlers if isinstance(h, logging.FileHandler)]:
        logger.removeHandler(handler)
        handler.close()

    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(file_handler)

    logger.info("=" * 60)
    logger.info(f"Log opened at {datetime.now().isoformat()}")
    return log_file


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure console logging for the service.

    Args:
        verbose: If True, show DEBUG level on console; otherwise WARNING+.

    Returns:
        Configured logger instance.
    """
    global _turn_filter

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture everything, filter at handler level
    logger.handlers.clear()

    if _turn_filter is None:
        _turn_filter = _TurnFilter()
    if _turn_filter not in logger.filters:
        logger.addFilter(_turn_filter)

    import config as _config
    console_format = _config.get("console_format", "simple")

    if console_format != "clean":
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        if console_format == "full":
            console_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
        else:
            console_handler.setFormatter(_ConsoleFormatter())
        logger.addHandler(console_handler)

    return logger


def set_turn_id(turn_id: str) -> None:
    """Set the turn ID included in subsequent log lines."""
    global _turn_filter
    if _turn_filter is None:
        _turn_filter = _TurnFilter()
        logging.getLogger(LOGGER_NAME).addFilter(_turn_filter)
    _turn_id.set(turn_id)


def log_error(
    message: str,
    exc: Optional[BaseException] = None,
    context: Optional[dict] = None,
) -> None:
    """Log *message* at ERROR with one indented line per *context* item.

    When *exc* is given its traceback is attached to the record, so both the
    console and the log file show it.
    """
    details = "".join(f"\n  {key}: {value}" for key, value in (context or {}).items())
    logging.getLogger(LOGGER_NAME).error(
        f"{message}{details}",
        exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
        extra=tagged("error"),
    )


def log_tool_call(tool_name: str, raw_arguments: str) -> None:
    """Log a tool call for debugging.

    Args:
        tool_name: Name of the tool being called
        raw_arguments: JSON argument string as proposed by the model
    """
    preview = raw_arguments if len(raw_arguments) <= 500 else raw_arguments[:497] + "..."
    logging.getLogger(LOGGER_NAME).debug(
        f"Tool call: {tool_name}({preview})", extra=tagged("tool_call")
    )


def log_tool_result(tool_name: str, error: Optional[str], elapsed_ms: int) -> None:
    """Log a tool result.

    Args:
        tool_name: Name of the tool
        error: Error message carried by the result, if any
        elapsed_ms: Handler wall time in milliseconds
    """
    logger = logging.getLogger(LOGGER_NAME)
    if error is None:
        logger.debug(
            f"Tool result: {tool_name} -> success ({elapsed_ms} ms)",
            extra=tagged("tool_result"),
        )
    else:
        logger.warning(
            f"Tool result: {tool_name} -> error: {error} ({elapsed_ms} ms)",
            extra=tagged("tool_result"),
        )

