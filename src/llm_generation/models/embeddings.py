# filename: src/llm_generation/models/embeddings.py
"""
Embedding layers for the reference transformer models.

This module converts token ids into the continuous input representation of a
transformer: a token embedding summed with a learned absolute positional
embedding, followed by layer normalization and dropout.

Generation Fit:
    During incremental decoding the model only receives the newest token, so
    the positional embedding has to be offset by the number of positions that
    are already held in the Past Cache. `TokenAndPositionalEmbedding.forward`
    therefore takes a `past_length` argument; position ids run from
    `past_length` to `past_length + seq_length - 1`.
"""

import logging                          # Imports the logging module for warnings about out-of-range ids.
from typing import Optional, Any        # Imports type hints for better code clarity and type checking.
import torch                            # Imports the PyTorch library, essential for building neural networks.
import torch.nn as nn                   # Imports the neural network module from PyTorch.


logger = logging.getLogger(__name__)


class TokenEmbedding(nn.Module):
    """
    Token embedding layer.

    Purpose:
        Converts input token IDs into dense, continuous vector representations.
        Each unique token in the vocabulary is mapped to a fixed-size vector.

    Inputs:
        - `vocab_size` (int): The total number of unique tokens in the vocabulary.
        - `embedding_dim` (int): The dimensionality of the token embeddings.
        - `dropout_prob` (float): The dropout probability applied to the embeddings.
        - `padding_idx` (Optional[int]): If provided, the embeddings corresponding
          to this index will be zeroed out.

    Outputs:
        - `embeddings` (torch.Tensor): A tensor of shape
          `[batch_size, seq_length, embedding_dim]` representing the embedded tokens.
    """

    def __init__(
        self,
        vocab_size: int,                   # The size of the vocabulary.
        embedding_dim: int,                # The dimension of the embedding vectors.
        dropout_prob: float = 0.1,         # The probability for dropout.
        padding_idx: Optional[int] = None, # Optional index for padding tokens.
    ):
        super().__init__()

        self.embedding = nn.Embedding(vocab_size, embedding_dim, padding_idx=padding_idx)
        self.dropout = nn.Dropout(dropout_prob)

        nn.init.normal_(self.embedding.weight, mean=0.0, std=0.02)   # Initializes embedding weights from a normal distribution.
        if padding_idx is not None:
            with torch.no_grad():
                self.embedding.weight[padding_idx].fill_(0)          # Sets the embedding for the padding index to all zeros.

    def forward(self, input_ids: torch.Tensor) -> torch.Tensor:
        embeddings = self.embedding(input_ids)   # Looks up embeddings for the given input IDs.
        embeddings = self.dropout(embeddings)
        return embeddings


class PositionalEmbedding(nn.Module):
    """
    Learnable absolute positional embeddings.

    Inputs:
        - `max_position_embeddings` (int): Size of the position lookup table.
        - `embedding_dim` (int): Dimensionality of the positional embeddings.
        - `dropout_prob` (float): Dropout probability applied to the embeddings.

    Outputs:
        - `embeddings` (torch.Tensor): `[batch_size, seq_length, embedding_dim]`.
    """

    def __init__(
        self,
        max_position_embeddings: int, # The maximum number of positions (sequence length) to embed.
        embedding_dim: int,           # The dimension of the positional embedding vectors.
        dropout_prob: float = 0.1,    # The probability for dropout.
    ):
        super().__init__()

        self.position_embeddings = nn.Embedding(max_position_embeddings, embedding_dim)
        self.dropout = nn.Dropout(dropout_prob)

        nn.init.normal_(self.position_embeddings.weight, mean=0.0, std=0.02)

    def forward(self, position_ids: torch.Tensor) -> torch.Tensor:
        embeddings = self.position_embeddings(position_ids) # Looks up positional embeddings for the given position IDs.
        embeddings = self.dropout(embeddings)
        return embeddings


class TokenAndPositionalEmbedding(nn.Module):
    """
    Combines token embeddings with positional embeddings.

    Purpose:
        Produces the input representation of the decoder stack by summing token
        and positional embeddings, then applying layer normalization and dropout.
        Position ids are offset by the length of the cached prefix so that an
        incremental call embeds the newest token at its true position.

    Inputs:
        - `config` (Any): A configuration object (e.g., `TransformerConfig`) that
          contains `vocab_size`, `hidden_size`, `max_position_embeddings`,
          `hidden_dropout_prob` and `layer_norm_eps`.

    Outputs:
        - `embeddings` (torch.Tensor): `[batch_size, sequence_length, hidden_size]`.
    """

    def __init__(self, config: Any):
        super().__init__()
        self.config = config

        self.token_embedding = TokenEmbedding(
            vocab_size=config.vocab_size,
            embedding_dim=config.hidden_size,
            dropout_prob=config.hidden_dropout_prob,
            padding_idx=None,
        )
        self.position_embedding = PositionalEmbedding(
            max_position_embeddings=config.max_position_embeddings,
            embedding_dim=config.hidden_size,
            dropout_prob=config.hidden_dropout_prob,
        )

        self.layer_norm = nn.LayerNorm(config.hidden_size, eps=config.layer_norm_eps)
        self.dropout = nn.Dropout(config.hidden_dropout_prob)

    def forward(self, input_ids: torch.Tensor, past_length: int = 0) -> torch.Tensor:
        """
        Forward pass for token and positional embeddings.

        Args:
            input_ids: Input token IDs (batch_size, sequence_length)
            past_length: Number of positions already held in the cache

        Returns:
            Combined embeddings (batch_size, sequence_length, hidden_size)
        """
        seq_length = input_ids.shape[1]
        max_pos = self.config.max_position_embeddings

        position_ids = torch.arange(
            past_length, past_length + seq_length, dtype=torch.long, device=input_ids.device
        )
        # Positions past the table repeat the last valid position.
        if past_length + seq_length > max_pos:
            logger.warning(
                f"Sequence of {past_length + seq_length} positions exceeds max_position_embeddings "
                f"({max_pos}); clamping positions to {max_pos - 1}"
            )
        position_ids = position_ids.clamp(max=max_pos - 1)
        position_ids = position_ids.unsqueeze(0).expand_as(input_ids)

        invalid_tokens = input_ids >= self.config.vocab_size
        if invalid_tokens.any():
            logger.warning(
                f"Found {int(invalid_tokens.sum())} token ids outside the vocabulary "
                f"({input_ids[invalid_tokens].unique().tolist()}); mapping them to id 0"
            )
            input_ids = torch.where(invalid_tokens, torch.zeros_like(input_ids), input_ids)

        token_embeddings = self.token_embedding(input_ids)
        position_embeddings = self.position_embedding(position_ids)

        embeddings = token_embeddings + position_embeddings # Combines token and positional embeddings by summation.
        embeddings = self.layer_norm(embeddings)
        embeddings = self.dropout(embeddings)

        return embeddings
