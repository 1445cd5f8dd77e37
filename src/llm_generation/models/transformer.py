# filename: src/llm_generation/models/transformer.py
"""
Transformer model architecture.

This module defines the reference Model Capability of the generation engine:
1.  **TransformerConfig**: hyperparameters of the decoder-only model.
2.  **TransformerLM**: a GPT-style decoder-only language model made of
    token and positional embeddings, a stack of `TransformerDecoderLayer`s,
    a final layer norm and a language modeling head tied to the token
    embeddings.

Generation Fit:
    `TransformerLM.forward` is a pure function of its inputs and weights. It
    accepts an optional Past Cache (one `(key, value)` pair per layer) and
    returns the updated cache alongside the logits instead of storing it on
    the module, so the decoding loop owns the cache for the whole call and
    two concurrent `generate` calls never share mutable model state.
"""

import logging                                  # Imports the logging module for emitting log messages.
from typing import Optional, Tuple, Any         # Imports type hints for better code readability and type checking.
from dataclasses import dataclass               # Imports dataclass for defining configuration objects.
import torch                                    # Imports the PyTorch library.
import torch.nn as nn                           # Imports the neural network module from PyTorch.

from llm_generation.models.layers import TransformerDecoderLayer         # Imports the decoder layer.
from llm_generation.models.embeddings import TokenAndPositionalEmbedding # Imports the embedding layer.
from llm_generation.models.utils import generate_square_subsequent_mask  # Imports the causal mask helper.


logger = logging.getLogger(__name__) # Initializes a logger for this module.

PastKeyValues = Tuple[Tuple[torch.Tensor, torch.Tensor], ...]


@dataclass
class TransformerConfig:
    """
    Configuration for the transformer language model.

    Attributes:
        - `vocab_size` (int): Size of the vocabulary.
        - `hidden_size` (int): Dimensionality of the embeddings and hidden states.
        - `num_hidden_layers` (int): Number of decoder layers.
        - `num_attention_heads` (int): Number of attention heads in each layer.
        - `intermediate_size` (int): Dimensionality of the feed-forward layer.
        - `max_position_embeddings` (int): Maximum sequence length the model can handle.
        - `hidden_dropout_prob` (float): Dropout probability for hidden states.
        - `attention_probs_dropout_prob` (float): Dropout probability for attention weights.
        - `layer_norm_eps` (float): Epsilon for layer normalization.
        - `initializer_range` (float): Standard deviation for weight initialization.
        - `use_cache` (bool): Whether `forward` returns the key/value cache by default.
        - `hidden_act` (str): Activation function name for the feed-forward network.
        - `model_type` (str): 'gpt2' or 'openai-gpt'; selects the generator façade.
        - `tie_word_embeddings` (bool): Tie the LM head to the token embeddings.
    """

    vocab_size: int = 50257
    hidden_size: int = 768
    num_hidden_layers: int = 12
    num_attention_heads: int = 12
    intermediate_size: int = 3072           # Typically 4 * hidden_size.
    max_position_embeddings: int = 1024
    hidden_dropout_prob: float = 0.1
    attention_probs_dropout_prob: float = 0.1
    layer_norm_eps: float = 1e-5
    initializer_range: float = 0.02
    use_cache: bool = True
    hidden_act: str = "gelu_new"
    model_type: str = "gpt2"
    tie_word_embeddings: bool = True

    def __post_init__(self):
        if self.hidden_size % self.num_attention_heads != 0:
            raise ValueError("hidden_size must be divisible by num_attention_heads")

    @classmethod
    def from_model_config(cls, config: Any) -> "TransformerConfig":
        """
        Create a `TransformerConfig` from a `ModelConfig` (or any object with
        the same attribute names). Optional attributes fall back to defaults.
        """
        return cls(
            vocab_size=config.vocab_size,
            hidden_size=config.hidden_size,
            num_hidden_layers=config.num_hidden_layers,
            num_attention_heads=config.num_attention_heads,
            intermediate_size=config.intermediate_size,
            max_position_embeddings=config.max_position_embeddings,
            hidden_dropout_prob=config.hidden_dropout_prob,
            attention_probs_dropout_prob=config.attention_probs_dropout_prob,
            initializer_range=config.initializer_range,
            layer_norm_eps=getattr(config, "layer_norm_eps", 1e-5),
            use_cache=getattr(config, "use_cache", True),
            hidden_act=getattr(config, "hidden_act", "gelu_new"),
            model_type=getattr(config, "model_type", "gpt2"),
            tie_word_embeddings=getattr(config, "tie_word_embeddings", True),
        )


class TransformerLM(nn.Module):
    """
    Transformer-based Language Model (decoder-only).

    Purpose:
        Maps token ids to next-token logits for every position. It is the
        concrete Model Capability bound by `GPT2Generator` and
        `OpenAIGPTGenerator`.

    Inputs to `__init__`:
        - `config` (TransformerConfig): Architecture and hyperparameters.

    Outputs of `forward`:
        - `dict[str, Any]`:
            - `logits` (torch.Tensor): `[batch_size, seq_length, vocab_size]`.
            - `past_key_values` (Optional[tuple]): One `(key, value)` pair per
              layer, each `[batch_size, num_heads, past + seq_length, head_dim]`,
              or `None` when `use_cache` is off.
    """

    def __init__(self, config: TransformerConfig):
        super().__init__()
        self.config = config

        self.embeddings = TokenAndPositionalEmbedding(config)
        self.drop = nn.Dropout(config.hidden_dropout_prob)

        self.h = nn.ModuleList([
            TransformerDecoderLayer(config) for _ in range(config.num_hidden_layers)
        ])

        self.ln_f = nn.LayerNorm(config.hidden_size, eps=config.layer_norm_eps)
        self.lm_head = nn.Linear(config.hidden_size, config.vocab_size, bias=False)

        self.apply(self._init_weights)

        if config.tie_word_embeddings:
            self.lm_head.weight = self.embeddings.token_embedding.embedding.weight

    def _init_weights(self, module):
        """
        Initialize the weights: normal distribution for linear and embedding
        layers, zero bias and unit scale for layer norms.
        """
        if isinstance(module, nn.Linear):
            module.weight.data.normal_(mean=0.0, std=self.config.initializer_range)
            if module.bias is not None:
                module.bias.data.zero_()
        elif isinstance(module, nn.Embedding):
            module.weight.data.normal_(mean=0.0, std=self.config.initializer_range)
            if module.padding_idx is not None:
                module.weight.data[module.padding_idx].zero_()
        elif isinstance(module, nn.LayerNorm):
            module.bias.data.zero_()
            module.weight.data.fill_(1.0)

    def _build_attention_mask(
        self,
        attention_mask: Optional[torch.Tensor],
        batch_size: int,
        past_length: int,
        current_length: int,
        dtype: torch.dtype,
        device: torch.device,
    ) -> torch.Tensor:
        """
        Combine the causal mask with the padding mask into one additive mask
        of shape `[batch_size or 1, 1, current_length, past_length + current_length]`.

        `attention_mask` may cover the full (past + current) length or only the
        current tokens, in which case the cached positions count as real tokens.
        """
        total_length = past_length + current_length
        min_value = torch.finfo(dtype).min

        # Rows of the causal mask for the current queries only.
        causal_mask = generate_square_subsequent_mask(total_length, device=device)[-current_length:, :]
        mask = causal_mask.to(dtype).clamp(min=min_value)[None, None, :, :]

        if attention_mask is not None:
            if attention_mask.shape[1] == current_length and past_length > 0:
                past_padding_mask = torch.ones(
                    batch_size, past_length, dtype=attention_mask.dtype, device=device
                )
                attention_mask = torch.cat([past_padding_mask, attention_mask], dim=1)
            elif attention_mask.shape[1] != total_length:
                raise ValueError(
                    f"attention_mask covers {attention_mask.shape[1]} positions; expected "
                    f"{total_length} (past + current) or {current_length} (current only)"
                )

            padding_mask = (1.0 - attention_mask.to(dtype)) * min_value
            mask = (mask + padding_mask[:, None, None, :]).clamp(min=min_value)

        return mask

    def forward(
        self,
        input_ids: torch.Tensor,                        # [batch_size, sequence_length].
        attention_mask: Optional[torch.Tensor] = None,  # [batch_size, total or current length], 1 for real tokens.
        past_key_values: Optional[PastKeyValues] = None,
        use_cache: Optional[bool] = None,
    ) -> dict[str, Any]:
        """
        Forward pass for the Transformer Language Model.

        Args:
            input_ids: Input token IDs (batch_size, sequence_length)
            attention_mask: Padding mask for the full or the current sequence
            past_key_values: Cache returned by a previous call, or None
            use_cache: Whether to return the updated cache (defaults to config.use_cache)

        Returns:
            Dictionary with `logits` and `past_key_values`
        """
        use_cache = use_cache if use_cache is not None else self.config.use_cache

        batch_size, current_length = input_ids.shape
        past_length = past_key_values[0][0].shape[2] if past_key_values is not None else 0

        hidden_states = self.embeddings(input_ids, past_length=past_length)
        hidden_states = self.drop(hidden_states)

        mask = self._build_attention_mask(
            attention_mask,
            batch_size=batch_size,
            past_length=past_length,
            current_length=current_length,
            dtype=hidden_states.dtype,
            device=input_ids.device,
        )

        presents = () if use_cache else None
        for i, layer_module in enumerate(self.h):
            past_key_value = past_key_values[i] if past_key_values is not None else None
            layer_outputs = layer_module(
                hidden_states,
                attention_mask=mask,
                past_key_value=past_key_value,
                use_cache=use_cache,
            )
            hidden_states = layer_outputs["hidden_states"]
            if use_cache:
                presents += (layer_outputs["past_key_value"],)

        hidden_states = self.ln_f(hidden_states)
        logits = self.lm_head(hidden_states)

        return {"logits": logits, "past_key_values": presents}

    def num_parameters(self, only_trainable: bool = False) -> int:
        """
        Returns the number of parameters in the model.
        """
        if only_trainable:
            return sum(p.numel() for p in self.parameters() if p.requires_grad)
        return sum(p.numel() for p in self.parameters())
