# filename: src/llm_generation/generation/beam_search.py
"""
Beam search bookkeeping.

`BeamHypotheses` holds the finished hypotheses of one logical input, bounded
to `num_beams` entries and scored by length-normalized log-probability.
`select_beam_candidates` turns one step's log-probabilities into the
best (or sampled) continuations of every beam group, and
`finalize_beam_hypotheses` assembles the padded output batch once the loop
stops.
"""

from typing import Optional, Sequence

import torch
import torch.nn.functional as F

from llm_generation.generation.logits_process import top_k_top_p_filtering


class BeamHypotheses:
    """
    The n-best list of finished hypotheses for one input.

    A hypothesis scores `sum_logprobs / len(hyp) ** length_penalty`. When the
    list is full a new hypothesis must beat the worst score strictly, so among
    equal scores the earlier insertion is kept.
    """

    def __init__(self, num_beams: int, max_length: int, length_penalty: float, early_stopping: bool):
        self.max_length = max_length - 1  # ignoring bos_token
        self.length_penalty = length_penalty
        self.early_stopping = early_stopping
        self.num_beams = num_beams
        self.beams: list[tuple[float, torch.Tensor]] = []
        self.worst_score = 1e9

    def __len__(self) -> int:
        """Number of hypotheses in the list."""
        return len(self.beams)

    def add(self, hyp: torch.Tensor, sum_logprobs: float) -> None:
        """Add a new hypothesis to the list."""
        score = sum_logprobs / len(hyp) ** self.length_penalty
        if len(self) < self.num_beams or score > self.worst_score:
            self.beams.append((score, hyp))
            if len(self) > self.num_beams:
                # Drop the worst hypothesis; among equal scores the latest one goes.
                worst_idx = min(range(len(self.beams)), key=lambda idx: (self.beams[idx][0], -idx))
                del self.beams[worst_idx]
                self.worst_score = min(s for s, _ in self.beams)
            else:
                self.worst_score = min(score, self.worst_score)

    def is_done(self, best_sum_logprobs: float, cur_len: int) -> bool:
        """
        Whether this input needs no further decoding.

        With `early_stopping` the list is done as soon as it is full.
        Otherwise it is done once no live beam, scored at the current length,
        can beat the worst finished hypothesis.
        """
        if len(self) < self.num_beams:
            return False
        if self.early_stopping:
            return True
        cur_score = best_sum_logprobs / cur_len ** self.length_penalty
        return self.worst_score >= cur_score

    def best(self, n: int) -> list[torch.Tensor]:
        """The `n` highest-scoring hypotheses, best first; ties keep insertion order."""
        ranked = sorted(self.beams, key=lambda x: -x[0])
        return [hyp for _, hyp in ranked[:n]]


def select_beam_candidates(
    scores: torch.Tensor,
    beam_scores: torch.Tensor,
    batch_size: int,
    num_beams: int,
    do_sample: bool,
    top_k: int = 0,
    top_p: float = 1.0,
    num_eos_tokens: int = 1,
) -> tuple[torch.Tensor, torch.Tensor]:
    """
    Pick candidate continuations for every beam group.

    Each beam may spend up to `num_eos_tokens` candidates on EOS ids, so
    `num_beams * (1 + num_eos_tokens)` candidates (at least `2 * num_beams`)
    always contain `num_beams` continuations that do not end the sequence.

    Args:
        scores: `[batch_size * num_beams, vocab_size]` step log-probabilities.
        beam_scores: `[batch_size * num_beams]` running beam scores.
        do_sample: Draw candidates from the filtered distribution instead of
            taking the best ones.
        num_eos_tokens: Number of distinct end-of-sequence ids.

    Returns:
        `(next_scores, next_tokens)`, both `[batch_size, num_candidates]` and sorted
        by descending score. A token index `t` encodes beam `t // vocab_size`
        and token `t % vocab_size`.
    """
    vocab_size = scores.shape[-1]
    tokens_per_beam = max(2, 1 + num_eos_tokens)
    num_candidates = min(tokens_per_beam * num_beams, num_beams * vocab_size)
    next_scores = scores + beam_scores[:, None].expand_as(scores)

    if do_sample:
        # Every beam keeps enough tokens to both finish and continue.
        next_scores = top_k_top_p_filtering(
            next_scores, top_k=top_k, top_p=top_p, min_tokens_to_keep=tokens_per_beam
        )
        next_scores = next_scores.contiguous().view(batch_size, num_beams * vocab_size)

        probs = F.softmax(next_scores, dim=-1)
        # Sampling without replacement cannot draw more than the nonzero entries.
        num_samples = min(num_candidates, int((probs > 0).sum(dim=-1).min().item()))
        next_tokens = torch.multinomial(probs, num_samples=num_samples)
        next_scores = torch.gather(next_scores, -1, next_tokens)

        next_scores, next_scores_indices = torch.sort(next_scores, descending=True, dim=1, stable=True)
        next_tokens = torch.gather(next_tokens, -1, next_scores_indices)
    else:
        next_scores = next_scores.view(batch_size, num_beams * vocab_size)
        # Stable sort: equal scores favour the lower beam index, then the lower token id.
        next_scores, next_tokens = torch.sort(next_scores, descending=True, dim=1, stable=True)
        next_scores = next_scores[:, :num_candidates]
        next_tokens = next_tokens[:, :num_candidates]

    return next_scores, next_tokens


def finalize_beam_hypotheses(
    generated_hyps: Sequence[BeamHypotheses],
    num_return_sequences: int,
    max_length: int,
    pad_token_id: Optional[int],
    eos_token_ids: Sequence[int],
    do_sample: bool,
    input_ids: torch.Tensor,
) -> torch.Tensor:
    """
    Collect the best hypotheses of every input into one right-padded batch.

    Without sampling each input contributes `num_return_sequences` rows; with
    sampling the inputs were already replicated, so each contributes one row.
    A hypothesis shorter than `max_length` gets the primary EOS appended.
    """
    output_num_return_sequences_per_batch = 1 if do_sample else num_return_sequences

    best: list[torch.Tensor] = []
    for hypotheses in generated_hyps:
        best.extend(hypotheses.best(output_num_return_sequences_per_batch))

    sent_lengths = [len(hyp) for hyp in best]
    sent_max_len = max(sent_lengths)
    if eos_token_ids:
        sent_max_len = min(sent_max_len + 1, max_length)
    fill_value = pad_token_id if pad_token_id is not None else 0
    decoded = input_ids.new_full((len(best), sent_max_len), fill_value)
    for i, hypo in enumerate(best):
        decoded[i, : sent_lengths[i]] = hypo
        if sent_lengths[i] < max_length and eos_token_ids:
            decoded[i, sent_lengths[i]] = eos_token_ids[0]
    return decoded
