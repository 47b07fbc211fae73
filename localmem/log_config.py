"""Logging configuration for localmem.

Uses loguru. configure_logging() runs once at import with settings from
the environment and may be called again (e.g. by ``localmem serve
--log-level``) to reinstall the sinks.

Sinks:
- stderr, filtered by the console level and per-component overrides
- <log dir>/localmem_<date>.log at DEBUG, rotated at 10 MB, kept 7 days,
  compressed; skipped when the log dir cannot be created

Environment variables:
- LOCALMEM_LOG_LEVEL: console level (default: INFO)
- LOCALMEM_LOG_DIR: log directory (default: ~/.localmem/logs)
- LOCALMEM_LOG_STORE / LOCALMEM_LOG_SEARCH / LOCALMEM_LOG_AUTH: level for
  loggers whose name contains "memory" / "search" / "auth"
"""

import os
import sys
from contextlib import contextmanager
from pathlib import Path
from time import perf_counter

from loguru import logger

DEFAULT_LOG_LEVEL = "INFO"
CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[name]}:{function}:{line} | {message}"

# logger-name fragment -> env var holding its level override
COMPONENT_ENV_VARS = {
    "memory": "LOCALMEM_LOG_STORE",
    "search": "LOCALMEM_LOG_SEARCH",
    "auth": "LOCALMEM_LOG_AUTH",
}

_console_level = DEFAULT_LOG_LEVEL
_component_levels: dict[str, str] = {}


def _level_no(level: str) -> int | None:
    try:
        return logger.level(level).no
    except ValueError:
        return None


def _console_filter(record) -> bool:
    """Apply the component override matching the logger name, else the console level."""
    name = record["extra"].get("name", "")
    for component, level in _component_levels.items():
        if component in name:
            threshold = _level_no(level)
            if threshold is not None:
                return record["level"].no >= threshold

    threshold = _level_no(_console_level)
    return threshold is None or record["level"].no >= threshold


def console_level() -> str:
    """The console level currently in effect."""
    return _console_level


def configure_logging(level: str | None = None, log_dir: Path | None = None) -> None:
    """Install the stderr and file sinks, replacing any existing ones.

    Args:
        level: Console level (default: LOCALMEM_LOG_LEVEL or INFO)
        log_dir: Directory for the rotating file sink (default: LOCALMEM_LOG_DIR)
    """
    global _console_level, _component_levels

    _console_level = (level or os.getenv("LOCALMEM_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
    _component_levels = {
        component: os.getenv(env_var, "").upper()
        for component, env_var in COMPONENT_ENV_VARS.items()
        if os.getenv(env_var)
    }

    logger.remove()
    logger.configure(extra={"name": "localmem"})
    logger.add(sys.stderr, level=0, filter=_console_filter, format=CONSOLE_FORMAT, colorize=True)

    log_dir = log_dir or Path(os.getenv("LOCALMEM_LOG_DIR", str(Path.home() / ".localmem" / "logs")))
    try:
        log_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
    except OSError as e:
        logger.bind(name="log_config").warning(f"File logging disabled, cannot create {log_dir}: {e}")
        return

    logger.add(
        log_dir / "localmem_{time:YYYY-MM-DD}.log",
        level="DEBUG",
        format=FILE_FORMAT,
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
    )


configure_logging()


def get_logger(name: str):
    """Get a logger with the given name bound to context.

    Args:
        name: Module or component name

    Returns:
        Logger instance with name bound
    """
    return logger.bind(name=name)


@contextmanager
def log_timing(operation: str, log_instance=None, level: str = "debug"):
    """Context manager for timing operations with automatic logging.

    Yields:
        dict with 'elapsed_ms' key (populated after context exits)

    Example:
        with log_timing("search", log) as timing:
            hits = rank(records)
        # timing['elapsed_ms'] now contains the elapsed time
    """
    log_fn = log_instance or logger
    timing = {"elapsed_ms": 0.0}
    start = perf_counter()
    try:
        yield timing
    finally:
        timing["elapsed_ms"] = (perf_counter() - start) * 1000
        getattr(log_fn, level)(f"{operation}: {timing['elapsed_ms']:.1f}ms")


__all__ = ["logger", "configure_logging", "console_level", "get_logger", "log_timing"]
