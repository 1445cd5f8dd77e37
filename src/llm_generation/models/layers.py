# filename: src/llm_generation/models/layers.py
"""
Transformer layer implementations.

This module provides the building blocks of the reference models consumed by
the generation engine:
1.  **Layer Normalization**: normalization across the feature dimension.
2.  **Multi-Head Attention**: scaled dot-product self-attention with an
    optional key/value cache and optional attention-weight output.
3.  **Feed-Forward Network (FFN)**: position-wise two-layer MLP.
4.  **TransformerDecoderLayer**: pre-norm GPT-style decoder block. Its
    attention returns the concatenated `(key, value)` of past and current
    positions so the caller can thread the Past Cache forward.
5.  **TransformerEncoderLayer / TransformerEncoder**: post-norm DistilBERT-style
    encoder blocks (attention, add & norm, feed-forward, add & norm), able to
    collect every intermediate hidden state and attention map.

None of these modules keep state across calls: the cache goes in as an
argument and comes back out as a return value.
"""

from typing import Optional, Tuple, Any # Imports type hints for better code readability and type checking.
import torch                            # Imports the PyTorch library.
import torch.nn as nn                   # Imports the neural network module from PyTorch.
import torch.nn.functional as F         # Imports functional interface, used for softmax.

from llm_generation.models.utils import get_activation_fn # Imports a utility function to retrieve activation functions.


class LayerNorm(nn.Module):
    """
    Layer normalization with optional bias.

    Inputs:
        - `hidden_size` (int): The size of the last dimension to normalize.
        - `eps` (float): Added to the variance for numerical stability.
        - `bias` (bool): Whether to include a learnable bias parameter.

    Outputs:
        - `x` (torch.Tensor): The normalized tensor, with the same shape as the input.
    """

    def __init__(self, hidden_size: int, eps: float = 1e-12, bias: bool = True):
        super().__init__()
        self.weight = nn.Parameter(torch.ones(hidden_size))                  # Learnable scale.
        self.bias = nn.Parameter(torch.zeros(hidden_size)) if bias else None # Learnable shift.
        self.eps = eps

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        mean = x.mean(-1, keepdim=True)
        var = x.var(-1, keepdim=True, unbiased=False) # Population variance.
        x = (x - mean) / torch.sqrt(var + self.eps)
        x = self.weight * x
        if self.bias is not None:
            x = x + self.bias
        return x


class MultiHeadAttention(nn.Module):
    """
    Multi-head self-attention.

    Purpose:
        Computes scaled dot-product attention over `num_attention_heads`
        parallel heads. When `past_key_value` is given, the cached keys and
        values are prepended to the current ones, so a single new token can
        attend to the full history without recomputing it.

    Inputs:
        - `hidden_size` (int): Dimensionality of the input and output features.
        - `num_attention_heads` (int): Number of heads; must divide `hidden_size`.
        - `attention_probs_dropout_prob` (float): Dropout on the attention weights.

    Outputs (of `forward`):
        - `attention_output` (torch.Tensor): `[batch_size, seq_length, hidden_size]`.
        - `present` (Optional[Tuple[Tensor, Tensor]]): Concatenated `(key, value)`
          shaped `[batch_size, num_heads, total_length, head_dim]` if `use_cache`.
        - `attention_probs` (Optional[Tensor]): `[batch_size, num_heads, seq_length, total_length]`
          if `output_attentions`.
    """

    def __init__(
        self,
        hidden_size: int,                          # The dimension of the input and output features.
        num_attention_heads: int,                  # The number of parallel attention heads.
        attention_probs_dropout_prob: float = 0.1, # Dropout rate for attention probabilities.
    ):
        super().__init__()

        if hidden_size % num_attention_heads != 0:
            raise ValueError(
                f"hidden_size ({hidden_size}) must be divisible by num_attention_heads ({num_attention_heads})"
            )

        self.hidden_size = hidden_size
        self.num_attention_heads = num_attention_heads
        self.head_dim = hidden_size // num_attention_heads
        self.scale = self.head_dim ** -0.5

        # Query, Key, Value projections
        self.q_proj = nn.Linear(hidden_size, hidden_size)
        self.k_proj = nn.Linear(hidden_size, hidden_size)
        self.v_proj = nn.Linear(hidden_size, hidden_size)

        self.out_proj = nn.Linear(hidden_size, hidden_size)
        self.attn_dropout = nn.Dropout(attention_probs_dropout_prob)

    def _split_heads(self, x: torch.Tensor) -> torch.Tensor:
        # [batch_size, seq_length, hidden_size] -> [batch_size, num_heads, seq_length, head_dim]
        batch_size, seq_length, _ = x.shape
        return x.view(batch_size, seq_length, self.num_attention_heads, self.head_dim).transpose(1, 2)

    def forward(
        self,
        hidden_states: torch.Tensor,                                        # [batch_size, seq_length, hidden_size].
        attention_mask: Optional[torch.Tensor] = None,                      # Additive mask broadcastable to the scores.
        past_key_value: Optional[Tuple[torch.Tensor, torch.Tensor]] = None, # Cached key and value tensors.
        use_cache: bool = False,
        output_attentions: bool = False,
    ) -> Tuple[torch.Tensor, Optional[Tuple[torch.Tensor, torch.Tensor]], Optional[torch.Tensor]]:
        batch_size = hidden_states.shape[0]

        query = self._split_heads(self.q_proj(hidden_states))
        key = self._split_heads(self.k_proj(hidden_states))
        value = self._split_heads(self.v_proj(hidden_states))

        if past_key_value is not None:
            past_key, past_value = past_key_value
            key = torch.cat([past_key, key], dim=2)       # Concatenates along the sequence dimension.
            value = torch.cat([past_value, value], dim=2)

        present = (key, value) if use_cache else None

        # [batch_size, num_heads, seq_length, key_length]
        attention_scores = torch.matmul(query, key.transpose(-2, -1)) * self.scale

        if attention_mask is not None:
            attention_scores = attention_scores + attention_mask

        attention_probs = F.softmax(attention_scores, dim=-1)
        attention_probs = self.attn_dropout(attention_probs)

        attention_output = torch.matmul(attention_probs, value)
        attention_output = attention_output.transpose(1, 2).contiguous().view(
            batch_size, -1, self.hidden_size
        )
        attention_output = self.out_proj(attention_output)

        return attention_output, present, (attention_probs if output_attentions else None)


class FeedForward(nn.Module):
    """
    Position-wise feed-forward network: two linear layers with an activation
    and dropout in between.

    Inputs:
        - `hidden_size` (int): The input and output dimensionality of the FFN.
        - `intermediate_size` (int): The dimensionality of the hidden layer.
        - `hidden_act` (str): The name of the activation function (e.g., "gelu", "relu").
        - `hidden_dropout_prob` (float): The dropout probability applied within the FFN.
    """

    def __init__(
        self,
        hidden_size: int,
        intermediate_size: int,
        hidden_act: str = "gelu",
        hidden_dropout_prob: float = 0.1,
    ):
        super().__init__()

        self.fc1 = nn.Linear(hidden_size, intermediate_size) # hidden_size -> intermediate_size.
        self.fc2 = nn.Linear(intermediate_size, hidden_size) # intermediate_size -> hidden_size.
        self.act_fn = get_activation_fn(hidden_act)
        self.dropout = nn.Dropout(hidden_dropout_prob)

    def forward(self, hidden_states: torch.Tensor) -> torch.Tensor:
        hidden_states = self.fc1(hidden_states)
        hidden_states = self.act_fn(hidden_states)
        hidden_states = self.fc2(hidden_states)
        hidden_states = self.dropout(hidden_states)
        return hidden_states


class TransformerDecoderLayer(nn.Module):
    """
    Pre-norm transformer decoder layer with attention and feed-forward.

    Purpose:
        A single GPT-style decoder block. Layer normalization is applied
        before each sub-layer and both sub-layers are wrapped in residual
        connections. Multiple instances are stacked inside `TransformerLM`.

    Inputs:
        - `config` (Any): A `TransformerConfig` (or compatible object) with
          `hidden_size`, `num_attention_heads`, `intermediate_size`,
          `hidden_act`, dropout rates and `layer_norm_eps`.

    Outputs:
        - `dict[str, Any]`:
            - `hidden_states` (torch.Tensor): The output hidden states.
            - `past_key_value` (Optional[Tuple[Tensor, Tensor]]): This layer's cache entry.
            - `attention` (Optional[Tensor]): Attention weights if requested.
    """

    def __init__(self, config: Any):
        super().__init__()

        self.config = config

        self.attention = MultiHeadAttention(
            hidden_size=config.hidden_size,
            num_attention_heads=config.num_attention_heads,
            attention_probs_dropout_prob=config.attention_probs_dropout_prob,
        )
        self.feed_forward = FeedForward(
            hidden_size=config.hidden_size,
            intermediate_size=config.intermediate_size,
            hidden_act=config.hidden_act,
            hidden_dropout_prob=config.hidden_dropout_prob,
        )

        self.ln_1 = LayerNorm(config.hidden_size, eps=config.layer_norm_eps) # Before attention.
        self.ln_2 = LayerNorm(config.hidden_size, eps=config.layer_norm_eps) # Before feed-forward.

        self.dropout = nn.Dropout(config.hidden_dropout_prob)

    def forward(
        self,
        hidden_states: torch.Tensor,
        attention_mask: Optional[torch.Tensor] = None,
        past_key_value: Optional[Tuple[torch.Tensor, torch.Tensor]] = None,
        use_cache: bool = False,
        output_attentions: bool = False,
    ) -> dict[str, Any]:
        # Self-attention with residual connection
        residual = hidden_states
        hidden_states = self.ln_1(hidden_states)
        attention_output, present, attention = self.attention(
            hidden_states,
            attention_mask=attention_mask,
            past_key_value=past_key_value,
            use_cache=use_cache,
            output_attentions=output_attentions,
        )
        hidden_states = residual + self.dropout(attention_output)

        # Feed-forward with residual connection
        residual = hidden_states
        hidden_states = self.ln_2(hidden_states)
        hidden_states = residual + self.feed_forward(hidden_states)

        return {"hidden_states": hidden_states, "past_key_value": present, "attention": attention}


class TransformerEncoderLayer(nn.Module):
    """
    Post-norm encoder block in the DistilBERT layout.

    `output = LN(x + Attention(x))` followed by `output = LN(output + FFN(output))`.
    Returns the new hidden states and the attention weights of this block.
    """

    def __init__(self, config: Any):
        super().__init__()

        self.attention = MultiHeadAttention(
            hidden_size=config.hidden_size,
            num_attention_heads=config.num_attention_heads,
            attention_probs_dropout_prob=config.attention_probs_dropout_prob,
        )
        self.sa_layer_norm = nn.LayerNorm(config.hidden_size, eps=config.layer_norm_eps)
        self.ffn = FeedForward(
            hidden_size=config.hidden_size,
            intermediate_size=config.intermediate_size,
            hidden_act=config.hidden_act,
            hidden_dropout_prob=config.hidden_dropout_prob,
        )
        self.output_layer_norm = nn.LayerNorm(config.hidden_size, eps=config.layer_norm_eps)

    def forward(
        self,
        hidden_states: torch.Tensor,
        attention_mask: Optional[torch.Tensor] = None,
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        attention_output, _, attention = self.attention(
            hidden_states, attention_mask=attention_mask, output_attentions=True
        )
        hidden_states = self.sa_layer_norm(hidden_states + attention_output)
        hidden_states = self.output_layer_norm(hidden_states + self.ffn(hidden_states))
        return hidden_states, attention


class TransformerEncoder(nn.Module):
    """
    Stack of `TransformerEncoderLayer`s.

    Inputs:
        - `config` (Any): Layer hyperparameters plus `num_hidden_layers`.
        - `output_hidden_states` (bool): Collect the input of every layer and the final output.
        - `output_attentions` (bool): Collect the attention weights of every layer.

    Outputs of `forward`:
        - `dict[str, Any]` with `last_hidden_state`, `hidden_states` (tuple or None)
          and `attentions` (tuple or None).
    """

    def __init__(self, config: Any, output_hidden_states: bool = False, output_attentions: bool = False):
        super().__init__()
        self.output_hidden_states = output_hidden_states
        self.output_attentions = output_attentions
        self.layers = nn.ModuleList([TransformerEncoderLayer(config) for _ in range(config.num_hidden_layers)])

    def forward(
        self,
        hidden_states: torch.Tensor,                   # [batch_size, seq_length, hidden_size].
        attention_mask: Optional[torch.Tensor] = None, # [batch_size, seq_length], 1 for real tokens.
    ) -> dict[str, Any]:
        additive_mask = None
        if attention_mask is not None:
            # [batch_size, seq_length] -> [batch_size, 1, 1, seq_length]
            additive_mask = (1.0 - attention_mask[:, None, None, :].to(hidden_states.dtype)) \
                * torch.finfo(hidden_states.dtype).min

        all_hidden_states = () if self.output_hidden_states else None
        all_attentions = () if self.output_attentions else None

        for layer in self.layers:
            if all_hidden_states is not None:
                all_hidden_states += (hidden_states,)
            hidden_states, attention = layer(hidden_states, attention_mask=additive_mask)
            if all_attentions is not None:
                all_attentions += (attention,)

        if all_hidden_states is not None:
            all_hidden_states += (hidden_states,)

        return {
            "last_hidden_state": hidden_states,
            "hidden_states": all_hidden_states,
            "attentions": all_attentions,
        }
