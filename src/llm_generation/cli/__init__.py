# filename: src/llm_generation/cli/__init__.py
"""
Command-line interface for the generation engine.

Re-exports the `generate_command` click command and the `main` entry point
registered as the `llm-generate` console script.
"""

from llm_generation.cli.generate import generate_command, main

__all__ = [
    "generate_command", # The click command.
    "main",             # Console-script entry point.
]
