"""Logging configuration for shellsense.

All modules log through children of the ``shellsense`` logger. The CLI
configures that logger once; ``log_levels`` in the config raises or lowers
individual subsystems, e.g. ``{"terminal": "DEBUG"}`` to trace escape
sequence handling without drowning in trigger logs.
"""

import logging
from pathlib import Path
from typing import Mapping

from shellsense.config import Config

PACKAGE_LOGGER = "shellsense"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured: logging.Logger | None = None
_module_loggers: list[logging.Logger] = []


def _level(name: str) -> int | None:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else None


def _module_logger_name(name: str) -> str:
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return name
    return f"{PACKAGE_LOGGER}.{name}"


def apply_module_levels(levels: Mapping[str, str]) -> list[str]:
    """Set per-subsystem log levels.

    Args:
        levels: Subsystem (``triggers``, ``terminal.normalizer`` or a full
            ``shellsense.*`` name) to level name.

    Returns:
        Logger names whose level could not be parsed (left unchanged).
    """
    rejected = []
    for name, level_name in levels.items():
        target = logging.getLogger(_module_logger_name(str(name)))
        level = _level(str(level_name))
        if level is None:
            rejected.append(target.name)
            continue
        target.setLevel(level)
        _module_loggers.append(target)
    return rejected


def setup_logging(config: Config) -> logging.Logger:
    """Configure the package logger from config. Later calls are no-ops.

    Args:
        config: Configuration with log_level, log_file and log_levels.

    Returns:
        The ``shellsense`` logger.
    """
    global _configured

    if _configured is not None:
        return _configured

    package = logging.getLogger(PACKAGE_LOGGER)
    package.setLevel(_level(config.log_level) or logging.INFO)
    package.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    for handler in handlers:
        handler.setFormatter(formatter)
        package.addHandler(handler)
    package.propagate = False

    for name in apply_module_levels(config.log_levels):
        package.warning("Ignoring unknown log level for %s", name)

    _configured = package
    return package


def reset_logging() -> None:
    """Undo setup_logging. Used by tests."""
    global _configured
    for module_logger in _module_loggers:
        module_logger.setLevel(logging.NOTSET)
    _module_loggers.clear()
    if _configured is not None:
        for handler in _configured.handlers:
            handler.close()
        _configured.handlers.clear()
        _configured.propagate = True
        _configured = None
