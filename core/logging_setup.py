"""Root logger configuration for the replay CLI and tests."""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def teardown_logging(logger: Optional[logging.Logger] = None) -> None:
    """Detach and close every handler on ``logger`` (root by default)."""
    target = logger or logging.getLogger()
    for handler in list(target.handlers):
        target.removeHandler(handler)
        handler.flush()
        handler.close()


def setup_logging(
    log_level: Union[str, int] = 'INFO',
    logs_dir: Optional[Path] = None,
    console_output: bool = True,
    log_file_name: str = 'replay.log',
) -> logging.Logger:
    """
    Route all replay loggers through the root logger.

    The file handler rotates ``logs_dir/log_file_name`` and records DEBUG and
    above; the console handler writes INFO and above to stdout. Calling this
    again replaces the handlers of the previous call.

    Args:
        log_level: Root level, by name or number
        logs_dir: Directory for the log file, defaults to ./logs
        console_output: Also log to stdout
        log_file_name: Name of the log file inside logs_dir

    Returns:
        The configured root logger
    """
    level = _resolve_level(log_level)
    logs_dir = Path(logs_dir) if logs_dir is not None else Path.cwd() / 'logs'
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    teardown_logging(root)
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = logs_dir / log_file_name
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding='utf-8',
        delay=True,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if console_output:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(logging.INFO)
        console.setFormatter(formatter)
        root.addHandler(console)

    root.debug("Logging to %s at %s", log_file, logging.getLevelName(level))
    return root
