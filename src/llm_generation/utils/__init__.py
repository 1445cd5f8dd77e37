# filename: src/llm_generation/utils/__init__.py
"""
Utility modules for the generation engine.

Re-exports the logging and reproducibility helpers so downstream modules can
import them directly from `llm_generation.utils`.
"""

from llm_generation.utils.logging import (
    setup_logger,
    get_logger,
    log_metrics,
    log_config,
)

from llm_generation.utils.reproducibility import (
    set_seed,
    set_deterministic,
)

__all__ = [
    # Logging Utilities
    "setup_logger",
    "get_logger",
    "log_metrics",
    "log_config",
    # Reproducibility Utilities
    "set_seed",
    "set_deterministic",
]
