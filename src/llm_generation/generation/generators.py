# filename: src/llm_generation/generation/generators.py
"""
Concrete generator façades.

- `GPT2Generator`: GPT-2 style models. `<|endoftext|>` serves as both the
  beginning- and end-of-sequence token, there is no padding token, and the
  key/value cache is used: once a cache exists only the newest token is fed
  to the model.
- `OpenAIGPTGenerator`: OpenAI GPT style models. No special tokens and no
  cache; the model sees the full context at every step, so generation must
  start from a prompt.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

import torch

from llm_generation.data import TokenizerWrapper
from llm_generation.generation.engine import LanguageGenerator
from llm_generation.models import load_model


logger = logging.getLogger(__name__)


class GPT2Generator(LanguageGenerator):
    """
    Generator for GPT-2 style models.

    Args:
        model: Model capability returning `logits` and `past_key_values`.
        tokenizer: `TokenizerWrapper` (or compatible) exposing `token_to_id`.
        device: Device of the input tensors; inferred from the model if omitted.
        bos_token / eos_token / pad_token: Special token strings resolved
            through the tokenizer. Tokens missing from the vocabulary resolve to None.
    """

    use_cache = True

    def __init__(
        self,
        model: Any,
        tokenizer: Any,
        device: Optional[Union[str, torch.device]] = None,
        bos_token: Optional[str] = "<|endoftext|>",
        eos_token: Optional[str] = "<|endoftext|>",
        pad_token: Optional[str] = None,
    ):
        bos_token_id = tokenizer.token_to_id(bos_token) if bos_token is not None else None
        eos_token_id = tokenizer.token_to_id(eos_token) if eos_token is not None else None
        pad_token_id = tokenizer.token_to_id(pad_token) if pad_token is not None else None

        super().__init__(
            model,
            tokenizer,
            bos_token_id=bos_token_id,
            eos_token_ids=[eos_token_id] if eos_token_id is not None else None,
            pad_token_id=pad_token_id,
            device=device,
        )
        logger.info(
            f"GPT2Generator ready (bos={self.bos_token_id}, eos={self.eos_token_ids}, pad={self.pad_token_id})"
        )

    def prepare_inputs_for_generation(
        self,
        input_ids: torch.Tensor,
        past: Optional[Any] = None,
        attention_mask: Optional[torch.Tensor] = None,
    ) -> dict[str, Any]:
        # The cache already encodes every position but the newest.
        if past is not None:
            input_ids = input_ids[:, -1:]
        return {"input_ids": input_ids, "past_key_values": past, "attention_mask": attention_mask}

    @classmethod
    def from_pretrained(
        cls,
        model_path: Union[str, Path],
        tokenizer_path: Union[str, Path],
        device: Union[str, torch.device] = "cpu",
        **kwargs,
    ) -> "GPT2Generator":
        """Load a model directory and a tokenizer directory and bind them."""
        model = load_model(model_path, device=device)
        tokenizer = TokenizerWrapper.load(tokenizer_path)
        return cls(model, tokenizer, device=device, **kwargs)


class OpenAIGPTGenerator(LanguageGenerator):
    """Generator for OpenAI GPT style models: full context each step, no special tokens."""

    use_cache = False

    def __init__(self, model: Any, tokenizer: Any, device: Optional[Union[str, torch.device]] = None):
        super().__init__(model, tokenizer, device=device)

    @classmethod
    def from_pretrained(
        cls,
        model_path: Union[str, Path],
        tokenizer_path: Union[str, Path],
        device: Union[str, torch.device] = "cpu",
    ) -> "OpenAIGPTGenerator":
        """Load a model directory and a tokenizer directory and bind them."""
        model = load_model(model_path, device=device)
        tokenizer = TokenizerWrapper.load(tokenizer_path)
        return cls(model, tokenizer, device=device)


GENERATOR_CLASSES = {
    "gpt2": GPT2Generator,
    "openai-gpt": OpenAIGPTGenerator,
}


def get_generator_class(model_type: str) -> type:
    """Generator class for a `model_type` ('gpt2' or 'openai-gpt')."""
    if model_type not in GENERATOR_CLASSES:
        raise ValueError(f"Unknown model_type: {model_type}. Expected one of {sorted(GENERATOR_CLASSES)}")
    return GENERATOR_CLASSES[model_type]
