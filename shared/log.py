"""
KashflowSync logging helpers.

All components log through the standard logging module under the
"KashflowSync" logger hierarchy. This module provides a factory to create
bound log functions with a component name, eliminating the need to look up
loggers and level constants in every module.

Usage:
    from shared.log import create_logger
    log_trace, log_debug, log_info, log_warn, log_error = create_logger("Orchestrator")
    log_info("Sync started")  # -> logger "KashflowSync.Orchestrator"

configure_logging() installs the single root handler, either structured JSON
(python-json-logger) or plain text.
"""

import logging

from pythonjsonlogger import json as jsonlogger

ROOT_LOGGER_NAME = "KashflowSync"

# Finer than DEBUG, used for per-document chatter
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def create_logger(component: str = ""):
    """Create log functions bound to a component logger.

    Args:
        component: Component name suffix. If provided, logger becomes
                   "KashflowSync.{component}", otherwise "KashflowSync".

    Returns:
        Tuple of (log_trace, log_debug, log_info, log_warn, log_error) functions.
        Each accepts a message plus optional keyword ``extra`` fields.
    """
    name = f"{ROOT_LOGGER_NAME}.{component}" if component else ROOT_LOGGER_NAME
    logger = logging.getLogger(name)

    def log_trace(msg, **extra): logger.log(TRACE, msg, extra=extra or None)
    def log_debug(msg, **extra): logger.debug(msg, extra=extra or None)
    def log_info(msg, **extra): logger.info(msg, extra=extra or None)
    def log_warn(msg, **extra): logger.warning(msg, extra=extra or None)
    def log_error(msg, **extra): logger.error(msg, extra=extra or None)

    return log_trace, log_debug, log_info, log_warn, log_error


def configure_logging(log_level: str, json_output: bool = True) -> None:
    """Configure root logger output.

    JSON format: {"ts": "...", "level": "...", "name": "...", "msg": "...", ...extra}

    Args:
        log_level: Logging level string (e.g., "info", "debug", "trace").
        json_output: Emit structured JSON lines instead of plain text.
    """
    if log_level.lower() == "trace":
        level = TRACE
    else:
        level = getattr(logging, log_level.upper(), logging.INFO)

    if json_output:
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "ts",
                "levelname": "level",
                "message": "msg",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    # Clear any existing handlers to avoid duplicate output
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
