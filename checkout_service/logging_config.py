"""
logging_config.py — Centralized Logging Configuration for the Checkout Service

This module configures unified logging behavior for the entire application.
It ensures that all modules log messages consistently to both console and file.

Features:
    • Combined console and file logging output
    • Process ID tagging for multi-process visibility
    • Standardized log format for all modules
    • Reduced verbosity for the HTTP client stack (httpx, httpcore)
"""

import logging
import os
import sys

LOG_LEVEL = os.environ.get("CHECKOUT_LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("CHECKOUT_LOG_FILE", "checkout.log")


def setup_logging(level: str = LOG_LEVEL, log_file: str = LOG_FILE):
    """
    Configures the global logging system for the application.

    The configuration includes:
        - Log level: INFO unless CHECKOUT_LOG_LEVEL says otherwise
        - Log format: timestamp, log level, process ID, logger name and message
        - Output destinations:
            1. File: 'checkout.log' (persistent log, disabled with an empty CHECKOUT_LOG_FILE)
            2. Console (stdout): real-time logs, Docker/Kubernetes compatible
        - Reduced verbosity for httpx and httpcore, which log every request at INFO
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=log_format, handlers=handlers)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a logger for a given module or component name.

    Args:
        name (str): The logger name, typically the module's __name__.

    Returns:
        logging.Logger: A logger that follows the global format and handlers.
    """
    return logging.getLogger(name)
