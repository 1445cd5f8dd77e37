# filename: src/llm_generation/config/__init__.py
"""
Configuration modules for the generation engine.

This `__init__.py` file serves as the public API for the `llm_generation.config`
package. It re-exports the configuration dataclasses and utility functions so
callers can write `from llm_generation.config import GenerationConfig`
instead of reaching into `llm_generation.config.config`.
"""

from llm_generation.config.config import (
    Config,             # The top-level configuration composing all others.
    ModelConfig,        # Architecture of the reference transformer model.
    TokenizerConfig,    # Tokenizer type and special tokens.
    GenerationConfig,   # Decoding options of one `generate` call.
    LoggingConfig,      # Console/file logging settings.
)

from llm_generation.config.utils import (
    load_config,       # Load a Config from YAML or JSON.
    save_config,       # Save a Config to YAML or JSON.
    merge_configs,     # Deep-merge an override dict into a Config.
    parse_overrides,   # Parse dot-list overrides into a nested dict.
    validate_config,   # Cross-component validation with warnings.
    load_hydra_config, # Compose a configuration with Hydra.
    hydra_to_config,   # Convert a Hydra DictConfig into a Config.
)

__all__ = [
    "Config",
    "ModelConfig",
    "TokenizerConfig",
    "GenerationConfig",
    "LoggingConfig",
    "load_config",
    "save_config",
    "merge_configs",
    "parse_overrides",
    "validate_config",
    "load_hydra_config",
    "hydra_to_config",
]
