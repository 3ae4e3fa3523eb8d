"""
Structured logging for Change Guardian.

Provides:
- Console output (colorized if supported)
- File output (JSON lines for parsing)
- Context tracking (component name, file being checked)
- Error categorization

Usage:
    from change_guardian.core.logger import setup_logger, ComponentLogger

    # Setup at start
    setup_logger("change_guardian", log_file=Path(".change-guardian/logs/system.log"))

    # Use throughout
    log = ComponentLogger("GUARDIAN")
    log.info("Snapshot created")
    log.error("Integrity violation", file_path=Path("src/app.js"), error_code="INT-01")
"""

import logging
import json
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional, Dict, Any
from dataclasses import dataclass, asdict


ROOT_LOGGER_NAME = "change_guardian"

ERROR_CODES = {
    # Git / snapshot errors
    "GIT-01": "Git not installed",
    "GIT-02": "Not a git repository",
    "GIT-03": "Git timeout",
    "GIT-04": "Stash operation failed",
    "GIT-05": "Snapshot already active",

    # Integrity errors
    "INT-01": "Excessive line loss",
    "INT-02": "Symbols vanished",
    "INT-03": "Integrity check indeterminate",

    # Audit errors
    "AUD-01": "Stage failed",
    "AUD-02": "Stage timeout",
    "AUD-03": "External auditor unavailable",

    # Configuration errors
    "CFG-01": "Malformed config file",
    "CFG-02": "Invalid config value",
}

CONTEXT_FIELDS = ('component', 'file_path', 'error_code', 'operation')


@dataclass
class LogContext:
    """Context information for log entries."""
    component: Optional[str] = None
    file_path: Optional[str] = None
    error_code: Optional[str] = None
    operation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}


class ContextFilter(logging.Filter):
    """Add context information to log records."""

    def __init__(self, default_context: Optional[LogContext] = None):
        super().__init__()
        self.context = default_context or LogContext()

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.context.to_dict().items():
            if not hasattr(record, key):
                setattr(record, key, value)

        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, None)

        return True


class ColoredFormatter(logging.Formatter):
    """Colorized console formatter."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    ICONS = {
        'DEBUG': '🔍',
        'INFO': '✅',
        'WARNING': '⚠️ ',
        'ERROR': '❌',
        'CRITICAL': '🚨',
    }

    def __init__(self, use_colors: bool = True, use_icons: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()
        self.use_icons = use_icons

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        icon = self.ICONS.get(level, '') if self.use_icons else ''

        parts = []

        if icon:
            parts.append(icon)

        if self.use_colors:
            color = self.COLORS.get(level, '')
            reset = self.COLORS['RESET']
            parts.append(f"{color}{level}{reset}")
        else:
            parts.append(level)

        if getattr(record, 'component', None):
            parts.append(f"[{record.component}]")
        if getattr(record, 'file_path', None):
            parts.append(f"({record.file_path})")

        parts.append(record.getMessage())

        if getattr(record, 'error_code', None):
            error_desc = ERROR_CODES.get(record.error_code, "Unknown error")
            parts.append(f"[{record.error_code}: {error_desc}]")

        return ' '.join(parts)


class JSONFormatter(logging.Formatter):
    """JSON formatter for file logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.now().isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
        }

        for field in CONTEXT_FIELDS:
            if getattr(record, field, None) is not None:
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    log_file: Optional[Path] = None,
    level: int = logging.INFO,
    console: bool = True,
    use_colors: bool = True,
    use_icons: bool = True
) -> logging.Logger:
    """
    Setup logger with file and console output.

    Args:
        name: Logger name
        log_file: Path to log file (JSON lines)
        level: Logging level
        console: Enable console output
        use_colors: Use ANSI colors in console
        use_icons: Use emoji icons in console

    Returns:
        Configured logger instance

    Example:
        >>> logger = setup_logger(log_file=Path("guardian.log"))
        >>> logger.info("Starting audit", extra={"component": "AUDIT"})
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers and filters so repeated setup is idempotent
    logger.handlers.clear()
    for existing in list(logger.filters):
        logger.removeFilter(existing)

    # On handlers: records propagated from child loggers skip logger filters
    context_filter = ContextFilter()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.addFilter(context_filter)
        console_handler.setFormatter(ColoredFormatter(use_colors, use_icons))
        logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.addFilter(context_filter)
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get existing logger or create new one."""
    return logging.getLogger(name)


def parse_level(level_name: str, default: int = logging.INFO) -> int:
    """Map a level name from config ("DEBUG", "info", ...) to a logging level."""
    value = logging.getLevelName(str(level_name).upper())
    return value if isinstance(value, int) else default


class ComponentLogger:
    """
    Logger wrapper that tags every record with a component name.

    Mirrors the component-scoped loggers the guardian tools print with, e.g.
    ``[GIT-INTEGRITY]`` or ``[AUDIT]``.
    """

    def __init__(self, component: str, logger: Optional[logging.Logger] = None):
        """
        Initialize component logger.

        Args:
            component: Component tag shown in console output
            logger: Optional base logger (uses the package logger if not provided)
        """
        self.component = component
        self._logger = logger or get_logger()

    def _log(
        self,
        level: int,
        message: str,
        file_path: Optional[Path] = None,
        error_code: Optional[str] = None,
        **kwargs
    ):
        extra = {
            'component': self.component,
            'file_path': str(file_path) if file_path else None,
            'error_code': error_code,
            **kwargs
        }
        self._logger.log(level, message, extra=extra)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, **kwargs)
