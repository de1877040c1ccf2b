"""Logging configuration for the application."""

import logging
import sys
import os
from typing import Optional

import config

LOGGER_NAME = "CanvasGrader"

_logger: Optional[logging.Logger] = None

def setup_logger(verbose: bool = False) -> logging.Logger:
    """Sets up and returns the application logger.

    Always logs to a file. A console handler is attached in DEBUG mode or
    when the run is verbose, since the console otherwise carries the live
    output of the test commands.

    Args:
        verbose: Enable debug level and console logging for this run.

    Returns:
        logging.Logger: The configured application logger.
    """
    global _logger
    level = logging.DEBUG if verbose else config.LOG_LEVEL
    want_console = bool(config.DEBUG) or verbose

    logger = _logger or logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    formatter = logging.Formatter(config.LOG_FORMAT)

    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        try:
            # Ensure the log directory exists if LOG_FILE includes directories
            log_dir = os.path.dirname(config.LOG_FILE)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir)

            fh = logging.FileHandler(config.LOG_FILE, mode='a', encoding='utf-8')
            fh.setFormatter(formatter)
            logger.addHandler(fh)
        except (OSError, IOError) as e:
            # Continue without file logging if it fails
            print(f"Failed to create file handler for {config.LOG_FILE}: {e}", file=sys.stderr)

    has_console = any(type(h) is logging.StreamHandler for h in logger.handlers)
    if want_console and not has_console:
        ch = logging.StreamHandler(sys.stdout)
        ch.setFormatter(formatter)
        logger.addHandler(ch)

    for handler in logger.handlers:
        handler.setLevel(level)

    if _logger is None:
        _logger = logger
        if config.DEBUG:
            logger.debug("Logger initialized in DEBUG mode.")
        else:
            logger.info("Logger initialized.")
    elif verbose:
        logger.debug("Verbose logging enabled.")

    return logger

def get_logger() -> logging.Logger:
    """Returns the singleton logger instance, setting it up if necessary."""
    if _logger is None:
        return setup_logger()
    return _logger
