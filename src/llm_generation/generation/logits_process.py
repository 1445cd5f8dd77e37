# filename: src/llm_generation/generation/logits_process.py
"""
Penalty and filtering stage.

Pure transformations of one decoding step's `[rows, vocab_size]` logits,
applied in this order by `process_logits`:

1. repetition penalty (`repetition_penalty > 1`)
2. temperature scaling (sampling only, `temperature != 1`)
3. no-repeat-n-gram blocking (`no_repeat_ngram_size > 0`)
4. minimum-length enforcement (EOS banned while `cur_len < min_length`)
5. top-k then top-p filtering (sampling only)

Every function returns a new tensor and leaves its input untouched.
"""

from typing import Sequence

import torch
import torch.nn.functional as F

from llm_generation.config import GenerationConfig


def enforce_repetition_penalty(
    logits: torch.Tensor,
    prev_output_tokens: torch.Tensor,
    repetition_penalty: float,
) -> torch.Tensor:
    """
    Penalize every token already present in a row.

    A negative logit is multiplied by the penalty and a non-negative one is
    divided by it. Each distinct token is penalized once, however many times
    it occurs in `prev_output_tokens` (`[rows, cur_len]`).
    """
    if repetition_penalty == 1.0:
        return logits.clone()

    score = torch.gather(logits, 1, prev_output_tokens)
    score = torch.where(score < 0, score * repetition_penalty, score / repetition_penalty)
    # Duplicate indices write the same value, so repeats are penalized once.
    return logits.scatter(1, prev_output_tokens, score)


def apply_temperature(logits: torch.Tensor, temperature: float) -> torch.Tensor:
    """Divide all logits by `temperature`."""
    return logits / temperature


def calc_banned_ngram_tokens(
    prev_input_ids: torch.Tensor,
    num_hypos: int,
    no_repeat_ngram_size: int,
    cur_len: int,
) -> list[list[int]]:
    """
    For each row, list the tokens that would complete an n-gram already
    present in that row.

    The trailing `n - 1` tokens of a row are looked up among all n-grams
    seen so far; every token that followed the same prefix is banned.
    """
    if cur_len + 1 < no_repeat_ngram_size:
        # Not enough tokens yet to form a full n-gram.
        return [[] for _ in range(num_hypos)]

    generated_ngrams: list[dict[tuple, list[int]]] = [{} for _ in range(num_hypos)]
    for idx in range(num_hypos):
        gen_tokens = prev_input_ids[idx].tolist()
        generated_ngram = generated_ngrams[idx]
        for ngram in zip(*[gen_tokens[i:] for i in range(no_repeat_ngram_size)]):
            prev_ngram_tuple = tuple(ngram[:-1])
            generated_ngram[prev_ngram_tuple] = generated_ngram.get(prev_ngram_tuple, []) + [ngram[-1]]

    def _get_generated_ngrams(hypo_idx: int) -> list[int]:
        start_idx = cur_len + 1 - no_repeat_ngram_size
        ngram_idx = tuple(prev_input_ids[hypo_idx, start_idx:cur_len].tolist())
        return generated_ngrams[hypo_idx].get(ngram_idx, [])

    return [_get_generated_ngrams(hypo_idx) for hypo_idx in range(num_hypos)]


def ban_repeated_ngrams(
    logits: torch.Tensor,
    prev_input_ids: torch.Tensor,
    no_repeat_ngram_size: int,
    cur_len: int,
) -> torch.Tensor:
    """Set the logits of n-gram-completing tokens to negative infinity."""
    logits = logits.clone()
    num_hypos = logits.shape[0]
    banned_batch_tokens = calc_banned_ngram_tokens(prev_input_ids, num_hypos, no_repeat_ngram_size, cur_len)
    for i, banned_tokens in enumerate(banned_batch_tokens):
        if banned_tokens:
            logits[i, banned_tokens] = -float("inf")
    return logits


def enforce_min_length(
    logits: torch.Tensor,
    eos_token_ids: Sequence[int],
    cur_len: int,
    min_length: int,
) -> torch.Tensor:
    """Forbid every EOS id while the sequences are shorter than `min_length`."""
    logits = logits.clone()
    if eos_token_ids and cur_len < min_length:
        logits[:, list(eos_token_ids)] = -float("inf")
    return logits


def top_k_top_p_filtering(
    logits: torch.Tensor,
    top_k: int = 0,
    top_p: float = 1.0,
    filter_value: float = -float("inf"),
    min_tokens_to_keep: int = 1,
) -> torch.Tensor:
    """
    Filter a distribution of logits using top-k and/or nucleus (top-p) filtering.

    Args:
        logits: `[rows, vocab_size]` logits.
        top_k: If > 0, keep exactly the `top_k` highest logits per row.
        top_p: If strictly between 0 and 1, keep the smallest set of highest-probability
            tokens whose cumulative probability reaches `top_p`.
        filter_value: Value assigned to filtered-out logits.
        min_tokens_to_keep: Lower bound on the number of tokens kept per row.

    Returns:
        A new tensor with filtered entries replaced by `filter_value`.
    """
    logits = logits.clone()

    if top_k > 0:
        top_k = min(max(top_k, min_tokens_to_keep), logits.size(-1))
        top_values, top_indices = torch.topk(logits, top_k, dim=-1)
        # Scatter keeps exactly k entries even when values tie at the threshold.
        logits = torch.full_like(logits, filter_value).scatter(-1, top_indices, top_values)

    if 0.0 < top_p < 1.0:
        sorted_logits, sorted_indices = torch.sort(logits, descending=True, dim=-1)
        cumulative_probs = torch.cumsum(F.softmax(sorted_logits, dim=-1), dim=-1)

        # Remove tokens once the mass before them already reaches top_p.
        sorted_indices_to_remove = cumulative_probs >= top_p
        if min_tokens_to_keep > 1:
            sorted_indices_to_remove[..., :min_tokens_to_keep - 1] = False
        sorted_indices_to_remove[..., 1:] = sorted_indices_to_remove[..., :-1].clone()
        sorted_indices_to_remove[..., 0] = False

        indices_to_remove = sorted_indices_to_remove.scatter(1, sorted_indices, sorted_indices_to_remove)
        logits = logits.masked_fill(indices_to_remove, filter_value)

    return logits


def process_logits(
    logits: torch.Tensor,
    input_ids: torch.Tensor,
    cur_len: int,
    config: GenerationConfig,
    eos_token_ids: Sequence[int] = (),
) -> torch.Tensor:
    """
    Run the whole penalty and filtering stage for greedy decoding and sampling.

    Args:
        logits: `[rows, vocab_size]` logits of the last position.
        input_ids: `[rows, cur_len]` tokens generated so far (prompt included).
        cur_len: Current sequence length.
        config: Decoding options of the running call.
        eos_token_ids: End-of-sequence ids, banned while `cur_len < min_length`.
    """
    if config.repetition_penalty > 1.0:
        logits = enforce_repetition_penalty(logits, input_ids, config.repetition_penalty)

    if config.do_sample and config.temperature != 1.0:
        logits = apply_temperature(logits, config.temperature)

    if config.no_repeat_ngram_size > 0:
        logits = ban_repeated_ngrams(logits, input_ids, config.no_repeat_ngram_size, cur_len)

    if eos_token_ids and cur_len < config.min_length:
        logits = enforce_min_length(logits, eos_token_ids, cur_len, config.min_length)

    if config.do_sample:
        logits = top_k_top_p_filtering(logits, top_k=config.top_k, top_p=config.top_p)

    return logits
