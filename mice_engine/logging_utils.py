"""
Logging utilities for mice_engine.

Structured key/value logging through structlog, routed into the standard
library `logging` tree under the "mice_engine" logger so that applications
control levels and handlers the usual way.
"""

import logging
import sys

import structlog

ROOT_LOGGER = "mice_engine"

_SHARED_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def _configure_structlog(json_output):
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=_SHARED_PROCESSORS + [renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_logging(level="INFO", log_file=None, json_output=False, console_output=True):
    """
    Set up logging for the engine.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file to write logs to
        json_output: Render events as JSON lines instead of key=value text
        console_output: Attach a stderr handler

    Returns:
        The configured "mice_engine" stdlib logger
    """
    _configure_structlog(json_output)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper()))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter('%(message)s')

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name=None):
    """Get a structured logger bound under the mice_engine logger tree."""
    if not structlog.is_configured():
        # Quiet library default: WARNING and above reach logging's last resort.
        _configure_structlog(json_output=False)
        root = logging.getLogger(ROOT_LOGGER)
        if root.level == logging.NOTSET:
            root.setLevel(logging.WARNING)

    if name is None:
        name = ROOT_LOGGER
    elif not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return structlog.get_logger(name)
