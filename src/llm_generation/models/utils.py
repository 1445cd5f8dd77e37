# filename: src/llm_generation/models/utils.py
"""
This module provides helper functions for the reference transformer models:
counting parameters, retrieving activation functions by name, building the
causal attention mask, and loading a saved model directory (`config.json`
plus `pytorch_model.bin`) for inference.
"""

## Imports
import json                                      # json: Reads the model's config.json.
import logging                                   # logging: Reports what was loaded.
from pathlib import Path                         # Path: Object-oriented filesystem paths.
from typing import Optional, Callable, Union     # Optional / Callable / Union: Type hints.
import torch                                     # torch: PyTorch deep learning framework.
import torch.nn as nn                            # torch.nn: PyTorch's neural network module.
import torch.nn.functional as F                  # torch.nn.functional: Functional activations.


logger = logging.getLogger(__name__)

CONFIG_NAME = "config.json"
WEIGHTS_NAME = "pytorch_model.bin"


def count_parameters(model: nn.Module, only_trainable: bool = False) -> int:
    """
    Count the total number of parameters in a PyTorch model.

    Args:
        model (nn.Module): The PyTorch neural network model.
        only_trainable (bool): If True, only counts parameters that have `requires_grad=True`.

    Returns:
        int: The total number of parameters (or trainable parameters) in the model.
    """
    if only_trainable:
        return sum(p.numel() for p in model.parameters() if p.requires_grad)
    return sum(p.numel() for p in model.parameters())


def get_activation_fn(activation: str) -> Callable:
    """
    Retrieve a PyTorch activation function based on its string name.

    Args:
        activation (str): The string name of the desired activation function.

    Returns:
        Callable: The PyTorch functional activation function.

    Raises:
        ValueError: If an unknown activation function name is provided.
    """
    activation_functions = {
        "relu": F.relu,
        "gelu": F.gelu,
        "gelu_new": lambda x: F.gelu(x, approximate="tanh"), # GELU approximation used by GPT-2.
        "swish": F.silu,
        "silu": F.silu,
        "tanh": torch.tanh,
    }

    if activation not in activation_functions:
        raise ValueError(f"Unknown activation function: {activation}")

    return activation_functions[activation]


def generate_square_subsequent_mask(size: int, device: Optional[torch.device] = None) -> torch.Tensor:
    """
    Generate a square subsequent mask for causal attention.

    Position `i` may attend to position `j` only if `j <= i`. Allowed entries
    are 0 and blocked entries are `-inf`, so the mask is added to attention
    scores directly.

    Args:
        size (int): The size of the square mask (sequence length).
        device (torch.device, optional): The device on which to create the mask.

    Returns:
        torch.Tensor: A float mask of shape (size, size).
    """
    mask = torch.full((size, size), float('-inf'), device=device)
    mask = torch.triu(mask, diagonal=1) # Upper triangle above the diagonal is blocked.
    return mask


def load_model(model_path: Union[str, Path], device: Union[str, torch.device] = "cpu"):
    """
    Build a `TransformerLM` from a saved model directory and move it to `device`.

    The directory must contain `config.json` (the `TransformerConfig` fields)
    and `pytorch_model.bin` (a state dict). The model is returned in eval mode.

    Raises:
        FileNotFoundError: If either file is missing.
    """
    from llm_generation.models.transformer import TransformerConfig, TransformerLM # Local import avoids a cycle.

    model_path = Path(model_path)
    config_file = model_path / CONFIG_NAME
    weights_file = model_path / WEIGHTS_NAME

    if not config_file.exists():
        raise FileNotFoundError(f"Model configuration not found: {config_file}")
    if not weights_file.exists():
        raise FileNotFoundError(f"Model weights not found: {weights_file}")

    with open(config_file, "r") as f:
        config_dict = json.load(f)
    config = TransformerConfig(**config_dict)

    model = TransformerLM(config)
    state_dict = torch.load(weights_file, map_location="cpu")
    model.load_state_dict(state_dict)
    model.to(device)
    model.eval()

    logger.info(
        f"Loaded {config.model_type} model from {model_path} "
        f"({count_parameters(model):,} parameters) on {device}"
    )
    return model


def save_model(model: nn.Module, model_path: Union[str, Path]) -> None:
    """Write `config.json` and `pytorch_model.bin` so that `load_model` can restore the model."""
    from dataclasses import asdict

    model_path = Path(model_path)
    model_path.mkdir(parents=True, exist_ok=True)

    with open(model_path / CONFIG_NAME, "w") as f:
        json.dump(asdict(model.config), f, indent=2)
    torch.save(model.state_dict(), model_path / WEIGHTS_NAME)
    logger.info(f"Model saved to {model_path}")
