# filename: src/llm_generation/generation/prompt.py
"""
Prompt encoding.

Turns the optional prompt text of a `generate` call into the initial
`[1, L]` token-id tensor of the decoding loop. Prompts longer than
`max_length` lose their oldest tokens, so the most recent context is what the
model conditions on. Without a prompt the row starts from the
beginning-of-sequence id alone.
"""

import logging
from typing import Optional, Union

import torch


logger = logging.getLogger(__name__)


def truncate_sequence(token_ids: list[int], max_length: int) -> list[int]:
    """Drop tokens from the front of `token_ids` until at most `max_length` remain."""
    num_truncated_tokens = len(token_ids) - max_length
    if num_truncated_tokens <= 0:
        return token_ids
    logger.warning(
        f"Prompt has {len(token_ids)} tokens, more than max_length={max_length}; "
        f"dropping the first {num_truncated_tokens}"
    )
    return token_ids[num_truncated_tokens:]


def encode_prompt(
    tokenizer,
    prompt_text: Optional[str],
    max_length: int,
    bos_token_id: Optional[int] = None,
    device: Union[str, torch.device] = "cpu",
) -> torch.Tensor:
    """
    Encode a prompt into a `[1, L]` long tensor with `1 <= L <= max_length`.

    Args:
        tokenizer: Object exposing `tokenize` and `convert_tokens_to_ids`.
        prompt_text: The prompt, or None to start from `bos_token_id`.
        max_length: Upper bound on the number of prompt ids kept.
        bos_token_id: Beginning-of-sequence id used when there is no usable prompt.
        device: Device of the returned tensor.

    Raises:
        ValueError: If there is no usable prompt and no `bos_token_id`.
    """
    token_ids: list[int] = []
    if prompt_text is not None:
        tokens = tokenizer.tokenize(prompt_text)
        token_ids = list(tokenizer.convert_tokens_to_ids(tokens))
        token_ids = truncate_sequence(token_ids, max_length)

    if not token_ids:
        if bos_token_id is None:
            if prompt_text is None:
                raise ValueError(
                    "A model with a beginning-of-sequence token must be used to start generation without a prompt"
                )
            raise ValueError(
                f"Prompt {prompt_text!r} produced no tokens and the model has no beginning-of-sequence token"
            )
        token_ids = [bos_token_id]

    return torch.tensor([token_ids], dtype=torch.long, device=device)
