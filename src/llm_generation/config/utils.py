# filename: src/llm_generation/config/utils.py
"""
Utilities for configuration management.

This module provides helper functions for loading, saving, merging, and validating
configuration files for the generation engine. It supports standard YAML/JSON
files, OmegaConf dot-list overrides (``generation.num_beams=4``), and Hydra
composition over the packaged ``hydra/config.yaml``.

Purpose:
    To streamline the handling of configuration objects: reading them from
    files, applying command-line overrides, and checking them before any model
    is loaded.

Generation Fit:
    These utilities are used by `llm_generation.cli.generate` to assemble the
    `Config` of a run. Decoding options end up in a frozen `GenerationConfig`,
    so every override passes through its validation.
"""

import json                                         # For reading and writing JSON configuration files.
import yaml                                         # For reading and writing YAML configuration files.
from pathlib import Path                            # For handling filesystem paths.
from typing import Dict, Any, Optional, Union, List # Type hints.
import logging                                      # For logging messages.
from omegaconf import OmegaConf, DictConfig         # Hydra's configuration objects.
from hydra import compose, initialize_config_dir    # Specific Hydra functions for composing configurations.

from llm_generation.config.config import Config     # Import the main configuration dataclass.


logger = logging.getLogger(__name__) # Initialize a logger for this module.


def load_config(config_path: Union[str, Path]) -> Config:
    """
    Load configuration from a YAML or JSON file and convert it into a `Config` object.

    Args:
        config_path: Path to the configuration file (e.g., 'configs/beam.yaml').

    Returns:
        A `Config` object populated with the settings from the file.

    Raises:
        FileNotFoundError: If the specified configuration file does not exist.
        ValueError: If the file extension is not supported (neither .yaml/.yml nor .json).
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    if config_path.suffix in (".yaml", ".yml"):
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    elif config_path.suffix == ".json":
        with open(config_path, "r") as f:
            config_dict = json.load(f)
    else:
        raise ValueError(f"Unsupported configuration file format: {config_path.suffix}. "
                         "Only .yaml, .yml, and .json are supported.")

    return Config.from_dict(config_dict or {})


def save_config(config: Config, config_path: Union[str, Path]) -> None:
    """
    Save a `Config` object to a YAML or JSON file.

    Args:
        config: The `Config` object to save.
        config_path: Destination path. Parent directories are created if needed.

    Raises:
        ValueError: If the file extension is not supported.
    """
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True) # Create parent directories if needed.

    config_dict = config.to_dict()

    if config_path.suffix in (".yaml", ".yml"):
        with open(config_path, "w") as f:
            yaml.dump(config_dict, f, default_flow_style=False) # Block style for readability.
    elif config_path.suffix == ".json":
        with open(config_path, "w") as f:
            json.dump(config_dict, f, indent=2)
    else:
        raise ValueError(f"Unsupported configuration file format: {config_path.suffix}. "
                         "Only .yaml, .yml, and .json are supported for saving.")

    logger.info(f"Configuration saved to {config_path}")


def merge_configs(base_config: Config, override_config: Dict[str, Any]) -> Config:
    """
    Merge an override dictionary into a base `Config` object.

    This performs a deep merge; values in `override_config` take precedence.
    The result is a new `Config`, so the frozen `GenerationConfig` is rebuilt
    and re-validated.

    Args:
        base_config: The base `Config` object to merge into.
        override_config: A (possibly nested) dictionary of overrides.

    Returns:
        A new `Config` object with the merged settings.
    """
    base_dict = base_config.to_dict()
    merged_dict = _deep_merge(base_dict, override_config)
    return Config.from_dict(merged_dict)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two dictionaries.

    If a key exists in both and both values are dictionaries, they are merged
    recursively. Otherwise, the value from `override` wins.
    """
    merged = base.copy()

    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value

    return merged


def parse_overrides(overrides: Optional[List[str]]) -> Dict[str, Any]:
    """
    Parse dot-list overrides such as ``generation.top_k=20`` into a nested dictionary.

    Values are typed by OmegaConf's YAML grammar, so ``true`` becomes a bool
    and ``0.9`` a float.
    """
    if not overrides:
        return {}
    for item in overrides:
        if "=" not in item:
            raise ValueError(f"Invalid override '{item}'. Expected the form key.path=value.")
    return OmegaConf.to_container(OmegaConf.from_dotlist(list(overrides)), resolve=True)


def validate_config(config: Config) -> None:
    """
    Validate the entire `Config` object for consistency and correctness.

    Args:
        config: The `Config` object to validate.

    Raises:
        ValueError: If any validation rule is violated.
    """
    config.validate() # Call the internal validation method of the Config object.

    if config.generation.do_sample and config.generation.num_beams == 1 and config.generation.top_k == 0 \
            and config.generation.top_p == 1.0 and config.generation.temperature == 1.0:
        logger.warning(
            "Sampling without temperature, top_k or top_p filtering draws from the full distribution."
        )

    if not config.generation.do_sample and config.generation.temperature != 1.0:
        logger.warning("temperature only applies when do_sample is enabled; it will be ignored.")

    logger.info("Configuration validated successfully.")


def load_hydra_config(
    config_path: Optional[str] = None,
    config_name: str = "config",
    overrides: Optional[list] = None,
) -> DictConfig:
    """
    Load configuration using Hydra's composition capabilities.

    Args:
        config_path: Absolute path to the Hydra configuration directory. Defaults
                     to the `hydra` directory shipped inside this package.
        config_name: The name of the primary configuration file (without extension).
        overrides: Hydra-style overrides (e.g., ["generation.num_beams=4"]).

    Returns:
        A `DictConfig` object.
    """
    if config_path is None:
        config_path = str(Path(__file__).parent / "hydra")

    with initialize_config_dir(config_dir=config_path, version_base=None):
        cfg = compose(config_name=config_name, overrides=overrides or [])

    return cfg


def hydra_to_config(hydra_config: DictConfig) -> Config:
    """
    Convert a Hydra `DictConfig` object to the `Config` dataclass.

    Interpolations are resolved before conversion.
    """
    config_dict = OmegaConf.to_container(hydra_config, resolve=True)
    return Config.from_dict(config_dict)
