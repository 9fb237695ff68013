"""
Centralized logging configuration for the relay dispatcher.

Uses rotating file handler with logs stored in a logs/ directory.
Includes colored console output for debug mode.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


_VERBOSE: bool = False
# Base directory for logs. Defaults to the project root and is replaced by
# setup_logging(log_dir=...) so get_log_dir() always reports the active
# location of the RotatingFileHandler.
_BASE_DIR: Path = Path(__file__).parent.parent.parent
_LOG_DIR: Optional[Path] = None


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',       # Cyan
        'INFO': '\033[32m',        # Green
        'WARNING': '\033[33m',     # Yellow
        'ERROR': '\033[31m',       # Red
        'CRITICAL': '\033[35m',    # Magenta
    }
    FAULT_COLOR = '\033[38;5;208m'
    RESET = '\033[0m'
    BOLD = '\033[1m'

    def format(self, record):
        original_levelname = record.levelname

        # Handler faults get their own color regardless of level
        if '[FAULT]' in str(record.msg):
            color = self.FAULT_COLOR
        else:
            color = self.COLORS.get(record.levelname)

        if color is None:
            return super().format(record)

        record.levelname = f"{self.BOLD}{color}{record.levelname}{self.RESET}"
        try:
            message = super().format(record)
        finally:
            record.levelname = original_levelname
        return f"{color}{message}{self.RESET}"


class SuppressingStreamHandler(logging.StreamHandler):
    """Stream handler that suppresses consecutive duplicate sources.

    Repeated DEBUG/INFO lines from the same logger/level are collapsed into a
    single summary line like "[N Suppressed: CHECK LOG]" while file logs
    remain unaffected. Busy frames produce many dispatch lines from the same
    logger, which is what this keeps off the console.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._last_name: str | None = None
        self._last_level: int | None = None
        self._suppress_count: int = 0
        self._last_record: logging.LogRecord | None = None

    @property
    def suppressed_count(self) -> int:
        return self._suppress_count

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._emit_with_suppression(record)
        except Exception:
            self.handleError(record)

    def _emit_with_suppression(self, record: logging.LogRecord) -> None:
        if record.levelno >= logging.WARNING:
            self._flush_summary()
            self._emit_record(record)
            self._reset_source()
            return

        name = record.name
        level = record.levelno

        if self._last_name is not None and name == self._last_name and level == self._last_level:
            self._suppress_count += 1
            if self._last_record is None:
                self._last_record = record
            return

        self._flush_summary()
        self._emit_record(record)
        self._last_name = name
        self._last_level = level
        self._suppress_count = 0
        self._last_record = record

    def _reset_source(self) -> None:
        self._last_name = None
        self._last_level = None
        self._suppress_count = 0
        self._last_record = None

    def _emit_record(self, record: logging.LogRecord) -> None:
        """Emit a single record to the underlying stream with Unicode-safe fallback.

        When the console encoding cannot represent some characters we degrade
        the console line using replacement characters instead of raising a
        logging error. File logs keep the original text.
        """

        try:
            msg = self.format(record)
            stream = self.stream
            if stream is None:
                return
            text = msg + self.terminator
            try:
                stream.write(text)
            except UnicodeEncodeError:
                encoding = getattr(stream, "encoding", None) or "ascii"
                stream.write(text.encode(encoding, errors="replace").decode(encoding, errors="replace"))
            self.flush()
        except Exception:
            self.handleError(record)

    def _flush_summary(self) -> None:
        if self._suppress_count <= 0 or self._last_record is None:
            self._suppress_count = 0
            self._last_record = None
            return

        last = self._last_record
        summary = logging.LogRecord(
            last.name,
            last.levelno,
            last.pathname,
            last.lineno,
            f"[{self._suppress_count} Suppressed: CHECK LOG]",
            args=None,
            exc_info=None,
        )
        summary.created = last.created
        summary.msecs = last.msecs
        summary.relativeCreated = last.relativeCreated
        self._emit_record(summary)

        self._suppress_count = 0
        self._last_record = None

    def close(self) -> None:
        try:
            self._flush_summary()
        finally:
            super().close()


def get_log_dir() -> Path:
    """Return the directory used for log files."""

    if _LOG_DIR is not None:
        return _LOG_DIR
    return _BASE_DIR / "logs"


def setup_logging(debug: bool = False, verbose: bool = False,
                  log_dir: Optional[Path] = None) -> None:
    """
    Configure application logging with file rotation.

    Args:
        debug: If True, set log level to DEBUG and enable console output.
        verbose: Enables additional high-volume debug logs (per-delivery
            dispatch lines, provider payloads). Implies debug.
        log_dir: Directory for relay.log. Defaults to <project>/logs.
    """
    global _VERBOSE, _LOG_DIR

    debug_enabled = debug or verbose
    if log_dir is not None:
        _LOG_DIR = Path(log_dir)

    target_dir = get_log_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_file = target_dir / "relay.log"

    level = logging.DEBUG if debug_enabled else logging.INFO
    fmt = '%(asctime)s - %(name)-30s - %(levelname)-8s - %(message)s'

    # File handler with rotation (1MB max, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(logging.Formatter(fmt, datefmt='%Y-%m-%d %H:%M:%S'))
    file_handler.setLevel(level)

    console_handler = SuppressingStreamHandler(sys.stdout)
    if debug_enabled and sys.stdout.isatty():
        console_handler.setFormatter(ColoredFormatter(fmt, datefmt='%H:%M:%S'))
    else:
        console_handler.setFormatter(logging.Formatter(fmt, datefmt='%H:%M:%S'))
    console_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)

    if debug_enabled:
        root_logger.addHandler(console_handler)

    # asyncio chatter only shows up when verbose logging is requested
    logging.getLogger("asyncio").setLevel(logging.DEBUG if verbose else logging.INFO)

    _VERBOSE = bool(verbose)

    root_logger.info(
        "Relay logging initialized (debug=%s, verbose=%s, file=%s)",
        debug_enabled,
        _VERBOSE,
        log_file,
    )


_SHORT_NAME_OVERRIDES = {
    "relay.events.dispatcher": "relay.dispatcher",
    "relay.rendezvous.broker": "relay.rendezvous",
    "relay.scheduling.frame_scheduler": "relay.frames",
    "relay.scheduling.qt_scheduler": "relay.frames.qt",
}


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with optional short-name overrides for noisy modules."""
    actual = _SHORT_NAME_OVERRIDES.get(name, name)
    return logging.getLogger(actual)


def is_verbose_logging() -> bool:
    """Return True when verbose debug logging is enabled globally."""

    return _VERBOSE
