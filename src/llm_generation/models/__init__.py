# filename: src/llm_generation/models/__init__.py
"""
Model modules for the generation engine.

This `__init__.py` file re-exports the reference Model Capability
(`TransformerLM` and its configuration), the layers it is built from, the
DistilBERT-style encoder blocks, and the model helper functions.
"""

from llm_generation.models.transformer import TransformerLM, TransformerConfig
from llm_generation.models.embeddings import (
    TokenEmbedding,
    PositionalEmbedding,
    TokenAndPositionalEmbedding,
)
from llm_generation.models.layers import (
    LayerNorm,
    MultiHeadAttention,
    FeedForward,
    TransformerDecoderLayer,
    TransformerEncoderLayer,
    TransformerEncoder,
)
from llm_generation.models.utils import (
    count_parameters,
    get_activation_fn,
    generate_square_subsequent_mask,
    load_model,
    save_model,
)


__all__ = [
    "TransformerLM",
    "TransformerConfig",
    "TokenEmbedding",
    "PositionalEmbedding",
    "TokenAndPositionalEmbedding",
    "LayerNorm",
    "MultiHeadAttention",
    "FeedForward",
    "TransformerDecoderLayer",
    "TransformerEncoderLayer",
    "TransformerEncoder",
    "count_parameters",
    "get_activation_fn",
    "generate_square_subsequent_mask",
    "load_model",
    "save_model",
]
