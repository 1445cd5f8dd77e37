# filename: src/llm_generation/utils/logging.py
"""
Logging utilities.

This module provides functions for managing logging across the generation
engine: basic logger setup, and structured logging of configurations and
generation statistics.

Purpose:
    To provide consistent and configurable logging. The engine itself only
    emits records through module-level loggers; `setup_logger` is called once
    at the application's entry point (the CLI) to attach handlers.
"""

import logging                          # Python's standard logging library.
import sys                              # Used for the stdout console handler.
from pathlib import Path                # For object-oriented filesystem paths.
from typing import Any, Optional, Union # Type hinting.


def setup_logger(
    name: Optional[str] = None,
    log_file: Optional[Union[str, Path]] = None,
    log_level: Union[str, int] = logging.INFO,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure and return a logger with console and optional file handlers.

    Args:
        name: The name of the logger. If `None`, the root logger is configured.
        log_file: Optional path of a file that also receives log records.
                  Its parent directory is created if it doesn't exist.
        log_level: The minimum logging level, as a name ("INFO") or number (20).
        format_string: Optional custom format. Defaults to
                       `"%(asctime)s - %(name)s - %(levelname)s - %(message)s"`.

    Returns:
        The configured `logging.Logger` instance.
    """
    if isinstance(log_level, str):
        log_level = log_level.upper()

    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # Clear existing handlers to prevent duplicate messages if called multiple times.
    logger.handlers = []

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(format_string)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Retrieve an existing logger instance by name (root logger if `None`)."""
    return logging.getLogger(name)


def log_metrics(
    metrics: dict[str, Any],
    step: Optional[int] = None,
    prefix: str = "",
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a dictionary of metrics as a single formatted line.

    Args:
        metrics: Metric names mapped to values. Floats are shown with 4 decimals.
        step: Optional step number included at the front of the line.
        prefix: Optional prefix added to each metric name (e.g., "generate_").
        logger: The logger to use. Defaults to the root logger.
    """
    if logger is None:
        logger = logging.getLogger()

    parts = []
    if step is not None:
        parts.append(f"Step {step}")

    for key, value in sorted(metrics.items()):
        if isinstance(value, float):
            parts.append(f"{prefix}{key}: {value:.4f}")
        else:
            parts.append(f"{prefix}{key}: {value}")

    logger.info(" | ".join(parts))


def log_config(
    config: Union[dict[str, Any], Any],
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a configuration object or dictionary, one key per line.

    Objects exposing `to_dict` are converted with it; other objects fall back
    to `__dict__`.
    """
    if logger is None:
        logger = logging.getLogger()

    if hasattr(config, "to_dict"):
        config_dict = config.to_dict()
    elif hasattr(config, "__dict__"):
        config_dict = config.__dict__
    else:
        config_dict = config

    logger.info("Configuration:")
    for key, value in config_dict.items():
        logger.info(f"  {key}: {value}")
