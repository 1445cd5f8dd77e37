# filename: src/llm_generation/generation/batching.py
"""
Batch expansion.

Replicates each logical input row for the requested return sequences and
beams. Rows are materialized as independent copies (`contiguous`) so that the
decoding loop can update one row without touching another.
"""

import logging
from typing import Optional

import torch


logger = logging.getLogger(__name__)


def default_attention_mask(input_ids: torch.Tensor, pad_token_id: Optional[int] = None) -> torch.Tensor:
    """1 for real tokens and 0 for padding; all ones when no padding id is configured."""
    if pad_token_id is not None:
        return input_ids.ne(pad_token_id).long()
    return torch.ones_like(input_ids)


def expand_inputs(
    input_ids: torch.Tensor,
    attention_mask: torch.Tensor,
    num_return_sequences: int,
    num_beams: int,
    do_sample: bool,
) -> tuple[torch.Tensor, torch.Tensor, int]:
    """
    Expand `[batch, cur_len]` inputs to `[effective_batch_size * num_beams, cur_len]`.

    When sampling, `effective_batch_size = batch * num_return_sequences`;
    otherwise it stays `batch` and the return sequences are drawn from the
    beams. Copies of one input are adjacent rows.

    Returns:
        The expanded input ids, the expanded attention mask and the effective batch size.
    """
    batch_size, cur_len = input_ids.shape

    if do_sample:
        effective_batch_size = batch_size * num_return_sequences
        effective_batch_mult = num_return_sequences
    else:
        effective_batch_size = batch_size
        effective_batch_mult = 1

    if num_return_sequences > 1 or num_beams > 1:
        num_copies = effective_batch_mult * num_beams
        input_ids = (
            input_ids.unsqueeze(1)
            .expand(batch_size, num_copies, cur_len)
            .contiguous()
            .view(effective_batch_size * num_beams, cur_len)
        )
        attention_mask = (
            attention_mask.unsqueeze(1)
            .expand(batch_size, num_copies, cur_len)
            .contiguous()
            .view(effective_batch_size * num_beams, cur_len)
        )
        logger.debug(f"Expanded {batch_size} input row(s) to {input_ids.shape[0]} rows")

    return input_ids, attention_mask, effective_batch_size
