# Logging configuration - rotating log file, console, and error forwarding
# Errors can be forwarded to the tablet's alert banner via a callback

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Union

LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
LOG_FILE = LOG_DIR / "order_sync.log"
LOG_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
LOG_BACKUP_COUNT = 5
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Libraries that log every HTTP request at INFO
NOISY_LOGGERS = ("urllib3", "requests")

_error_alert_callback: Optional[Callable[[str, str], None]] = None


def set_error_alert_callback(callback: Optional[Callable[[str, str], None]]):
    """Set a callback(message, level) invoked for ERROR and CRITICAL records."""
    global _error_alert_callback
    _error_alert_callback = callback


class ErrorAlertHandler(logging.Handler):
    """Forwards ERROR and CRITICAL records to the alert callback"""

    def emit(self, record: logging.LogRecord):
        if record.levelno < logging.ERROR or _error_alert_callback is None:
            return
        try:
            _error_alert_callback(self.format(record), record.levelname)
        except Exception:
            self.handleError(record)


def setup_logging(
    log_path: Optional[Union[str, Path]] = None,
    level: Union[int, str] = logging.INFO,
    console: bool = True,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
) -> logging.Logger:
    """Install file, console and alert handlers on the root logger. Safe to call twice."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    log_path = Path(log_path or LOG_FILE)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    file_handler = RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    alert_handler = ErrorAlertHandler()
    alert_handler.setLevel(logging.ERROR)
    alert_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(alert_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root
