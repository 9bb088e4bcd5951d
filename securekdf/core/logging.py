"""
Secure Logging Module
=====================

Logging for the KDF with key material kept out of every record.

Security Features:
- Password, salt and derived-key values are redacted from messages
- Raw byte arguments are logged by length only
- Log files are owner-readable only and rotate by size
- Optional JSON output for log shippers

Library modules log through ``logging.getLogger("securekdf.<area>")`` and
never attach handlers themselves; applications call ``configure_logging``
once with the ``logging`` section of SecureConfig.
"""

from __future__ import annotations

import json
import logging
import os
import re
import stat
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Final, Iterable, Optional, Pattern

from securekdf.core.config import LoggingConfig
from securekdf.core.memory.secure_memory import SecureBuffer


ROOT_LOGGER_NAME: Final[str] = "securekdf"

_REDACTED: Final[str] = "[REDACTED]"

# (label, pattern) pairs; a match is replaced by "<label>=[REDACTED]"
_KEY_MATERIAL_PATTERNS: Final[tuple[tuple[str, Pattern[str]], ...]] = (
    ("password", re.compile(r'(?i)\b(?:password|passphrase|passwd|pwd)\s*[=:]\s*["\']?[^\s"\',]+["\']?')),
    ("salt", re.compile(r'(?i)\bsalt\s*[=:]\s*["\']?(?:0x)?[0-9a-f]+["\']?')),
    ("key", re.compile(r'(?i)\b(?:derived[_-]?key|private[_-]?key|secret)\s*[=:]\s*["\']?[^\s"\',]+["\']?')),
    ("token", re.compile(r'(?i)\b(?:token|bearer)\s*[=:]\s*["\']?[^\s"\',]+["\']?')),
    # Digests and keys rendered as hex (128 bits or more)
    ("hex", re.compile(r'(?i)\b(?:0x)?[0-9a-f]{32,}\b')),
    # Base64 blobs of 30+ bytes
    ("base64", re.compile(r'[A-Za-z0-9+/]{40,}={0,2}')),
)

_CONSOLE_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_CONSOLE_DATE_FORMAT: Final[str] = "%H:%M:%S"


def _describe_bytes(value: Any) -> str:
    return f"<{len(value)} bytes>"


class SecureLogFilter(logging.Filter):
    """
    Scrub key material from records before any handler sees them.

    String messages and arguments are matched against the key-material
    patterns; ``bytes``-like arguments (including SecureBuffers) are
    replaced by their length so a stray ``%s`` never prints a key.
    """

    def __init__(self, name: str = "", extra_patterns: Optional[Iterable[Pattern[str]]] = None) -> None:
        super().__init__(name)
        self._extra_patterns = tuple(extra_patterns or ())

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.scrub(record.msg)

        if isinstance(record.args, dict):
            record.args = {key: self._scrub_arg(value) for key, value in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(self._scrub_arg(value) for value in record.args)

        # Never drop the record, only sanitize it
        return True

    def _scrub_arg(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.scrub(value)
        if isinstance(value, (bytes, bytearray, memoryview, SecureBuffer)):
            return _describe_bytes(value)
        return value

    def scrub(self, text: str) -> str:
        """Return ``text`` with key material replaced by [REDACTED]."""
        for label, pattern in _KEY_MATERIAL_PATTERNS:
            text = pattern.sub(f"{label}={_REDACTED}", text)
        for pattern in self._extra_patterns:
            text = pattern.sub(_REDACTED, text)
        return text


class StructuredLogFormatter(logging.Formatter):
    """One JSON object per record, with KDF context when supplied."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            "thread": record.threadName,
        }

        # logger.info("...", extra={"kdf": params.describe()})
        kdf_context = getattr(record, "kdf", None)
        if kdf_context is not None:
            entry["kdf"] = kdf_context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class SecureRotatingFileHandler(RotatingFileHandler):
    """
    Size-rotated log file, readable by its owner only.

    Raises:
        ValueError: If the path contains ``..`` components
    """

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
    ) -> None:
        if ".." in Path(filename).parts:
            raise ValueError("Log path cannot contain path traversal sequences")

        path = Path(filename).resolve()
        path.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        self._restrict_permissions()

    def _open(self):
        stream = super()._open()
        self._restrict_permissions()
        return stream

    def _restrict_permissions(self) -> None:
        if os.name != "nt" and os.path.exists(self.baseFilename):
            os.chmod(self.baseFilename, stat.S_IRUSR | stat.S_IWUSR)  # 600


def _build_handlers(
    name: str,
    config: LoggingConfig,
    log_dir: Optional[Path],
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if config.enable_console:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt=_CONSOLE_DATE_FORMAT))
        handlers.append(console)

    if config.enable_file and log_dir is not None:
        file_handler = SecureRotatingFileHandler(
            log_dir / f"{name.replace('.', '_')}.log",
            max_bytes=config.max_file_size_bytes,
            backup_count=config.backup_count,
        )
        if config.enable_json:
            file_handler.setFormatter(StructuredLogFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(config.format, datefmt=config.date_format))
        handlers.append(file_handler)

    return handlers


def get_secure_logger(
    name: str,
    config: Optional[LoggingConfig] = None,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    Get a logger with secret filtering on every handler.

    Handlers are attached only the first time a name is requested.

    Args:
        name: Logger name
        config: Logging settings; SecureConfig's defaults if None
        log_dir: Directory for the log file (no file output if None)
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    if config is None:
        config = LoggingConfig()

    logger.setLevel(config.level.upper())

    secret_filter = SecureLogFilter()
    for handler in _build_handlers(name, config, log_dir):
        handler.addFilter(secret_filter)
        logger.addHandler(handler)

    # Records stop here; the root logger never sees unfiltered copies
    logger.propagate = False
    return logger


def configure_logging(
    config: LoggingConfig,
    log_dir: Optional[Path] = None,
    name: str = ROOT_LOGGER_NAME,
) -> logging.Logger:
    """
    (Re)configure the package logger from a LoggingConfig.

    Every ``securekdf.*`` module logger propagates here and inherits its
    handlers and filtering. Existing handlers are closed and replaced.
    """
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    return get_secure_logger(name, config, log_dir)
