# filename: src/llm_generation/generation/engine.py
"""
Autoregressive generation engine.

This module defines `LanguageGenerator`, the abstract façade that binds a
model, a tokenizer and resolved special-token ids to the decoding loop.

Purpose:
    `generate` runs one complete decoding call: it resolves the decoding
    configuration, encodes the prompt, expands the batch for return sequences
    and beams, and then drives either the greedy/sampling loop or the beam
    search loop until every row is finished or `max_length` is reached.

Generation Fit:
    Concrete model families subclass `LanguageGenerator` and override
    `prepare_inputs_for_generation` (what the model sees at each step) and,
    when their cache layout differs, `reorder_cache`. Everything else is
    shared. Each call builds its own sequence batch, attention mask and Past
    Cache; nothing is kept on the generator between calls.
"""

import dataclasses
import logging
from typing import Any, Optional, Sequence, Union

import torch
import torch.nn as nn
import torch.nn.functional as F

from llm_generation.config import GenerationConfig
from llm_generation.generation.batching import default_attention_mask, expand_inputs
from llm_generation.generation.beam_search import (
    BeamHypotheses,
    finalize_beam_hypotheses,
    select_beam_candidates,
)
from llm_generation.generation.logits_process import (
    apply_temperature,
    ban_repeated_ngrams,
    enforce_min_length,
    enforce_repetition_penalty,
    process_logits,
)
from llm_generation.generation.prompt import encode_prompt


logger = logging.getLogger(__name__)


class LanguageGenerator:
    """
    Base class of every generator façade.

    Attributes:
        - `model`: Callable `model(input_ids, attention_mask=..., past_key_values=..., use_cache=...)`
          returning a dict with `logits` (`[rows, seq, vocab]`) and `past_key_values`.
        - `tokenizer`: Exposes `tokenize`, `convert_tokens_to_ids` and `batch_decode`.
        - `bos_token_id` (Optional[int]): Start id used when there is no prompt.
        - `eos_token_ids` (list[int]): End-of-sequence ids; the first one is primary.
        - `pad_token_id` (Optional[int]): Padding id; finished rows fall back to the primary EOS.
        - `device` (torch.device): Device the input tensors are created on.
        - `use_cache` (bool): Whether the model is asked for, and handed back, its cache.
    """

    use_cache: bool = False

    def __init__(
        self,
        model: Any,
        tokenizer: Any,
        bos_token_id: Optional[int] = None,
        eos_token_ids: Optional[Sequence[int]] = None,
        pad_token_id: Optional[int] = None,
        device: Optional[Union[str, torch.device]] = None,
    ):
        self.model = model
        self.tokenizer = tokenizer
        self.bos_token_id = bos_token_id
        self.eos_token_ids = list(eos_token_ids) if eos_token_ids else []
        self.pad_token_id = pad_token_id

        if device is None:
            device = self._infer_device(model)
        self.device = torch.device(device)

        if isinstance(model, nn.Module):
            model.eval()

    @staticmethod
    def _infer_device(model: Any) -> torch.device:
        if isinstance(model, nn.Module):
            for param in model.parameters():
                return param.device
        return torch.device("cpu")

    @property
    def max_position_embeddings(self) -> Optional[int]:
        """Context window of the model, when its config declares one."""
        return getattr(getattr(self.model, "config", None), "max_position_embeddings", None)

    def prepare_inputs_for_generation(
        self,
        input_ids: torch.Tensor,
        past: Optional[Any] = None,
        attention_mask: Optional[torch.Tensor] = None,
    ) -> dict[str, Any]:
        """Model inputs for one step. The default feeds the whole sequence."""
        return {"input_ids": input_ids, "past_key_values": past, "attention_mask": attention_mask}

    def reorder_cache(self, past: Any, beam_idx: torch.Tensor) -> Any:
        """Select the cache rows of the surviving beams, recursing through nested tuples."""
        if past is None:
            return None
        if isinstance(past, torch.Tensor):
            return past.index_select(0, beam_idx.to(past.device))
        return type(past)(self.reorder_cache(layer_past, beam_idx) for layer_past in past)

    def decode(self, sequences: torch.Tensor, skip_special_tokens: bool = True) -> list[str]:
        """Decode a `[num_sequences, seq_len]` tensor of generated ids into text."""
        return self.tokenizer.batch_decode(sequences, skip_special_tokens=skip_special_tokens)

    def _step(self, input_ids: torch.Tensor, past: Any, attention_mask: torch.Tensor) -> tuple[torch.Tensor, Any]:
        """Run the model once; return the last-position logits and the new cache."""
        model_inputs = self.prepare_inputs_for_generation(input_ids, past=past, attention_mask=attention_mask)
        outputs = self.model(**model_inputs, use_cache=self.use_cache)
        next_token_logits = outputs["logits"][:, -1, :]
        new_past = outputs.get("past_key_values") if self.use_cache else None
        return next_token_logits, new_past

    @torch.no_grad()
    def generate(
        self,
        prompt_text: Optional[str] = None,
        generation_config: Optional[GenerationConfig] = None,
        attention_mask: Optional[torch.Tensor] = None,
        **overrides,
    ) -> torch.LongTensor:
        """
        Generate sequences for a prompt.

        Args:
            prompt_text: Prompt to continue, or None to start from the BOS token.
            generation_config: Decoding options; defaults to `GenerationConfig()`.
            attention_mask: Optional mask for the encoded prompt (`[1, prompt_len]`).
            **overrides: Individual decoding options replacing those of
                `generation_config` for this call only (e.g. `max_length=30`).

        Returns:
            A `[num_sequences, seq_len]` long tensor with `seq_len <= max_length`:
            one row per return sequence, prompt ids included.

        Raises:
            ValueError: On an invalid decoding configuration or a `max_length`
                beyond the model's context window (both before any model call),
                or when there is neither a prompt nor a BOS token.
        """
        config = generation_config if generation_config is not None else GenerationConfig()
        if overrides:
            config = dataclasses.replace(config, **overrides)

        max_positions = self.max_position_embeddings
        if max_positions is not None and config.max_length > max_positions:
            raise ValueError(
                f"max_length ({config.max_length}) exceeds the model's context window "
                f"of {max_positions} positions"
            )

        input_ids = encode_prompt(
            self.tokenizer, prompt_text, config.max_length, bos_token_id=self.bos_token_id, device=self.device
        )

        if attention_mask is None:
            attention_mask = default_attention_mask(input_ids, self.pad_token_id)
        attention_mask = attention_mask.to(self.device)

        pad_token_id = self.pad_token_id
        if pad_token_id is None and self.eos_token_ids:
            pad_token_id = self.eos_token_ids[0]

        cur_len = input_ids.shape[-1]
        input_ids, attention_mask, effective_batch_size = expand_inputs(
            input_ids,
            attention_mask,
            num_return_sequences=config.num_return_sequences,
            num_beams=config.num_beams,
            do_sample=config.do_sample,
        )

        logger.info(
            f"Generating with {config.strategy} (prompt length {cur_len}, max_length {config.max_length}, "
            f"effective batch size {effective_batch_size}, num_beams {config.num_beams})"
        )

        if config.num_beams > 1:
            output = self._generate_beam_search(
                input_ids,
                cur_len=cur_len,
                config=config,
                pad_token_id=pad_token_id,
                batch_size=effective_batch_size,
                attention_mask=attention_mask,
            )
        else:
            output = self._generate_no_beam_search(
                input_ids,
                cur_len=cur_len,
                config=config,
                pad_token_id=pad_token_id,
                batch_size=effective_batch_size * config.num_beams,
                attention_mask=attention_mask,
            )

        logger.info(f"Generated {output.shape[0]} sequence(s) of length {output.shape[1]}")
        return output

    def _generate_no_beam_search(
        self,
        input_ids: torch.Tensor,
        cur_len: int,
        config: GenerationConfig,
        pad_token_id: Optional[int],
        batch_size: int,
        attention_mask: torch.Tensor,
    ) -> torch.Tensor:
        """
        Greedy decoding or sampling, one token per row and step.

        A row finishes the first time it emits an EOS id; from then on its new
        tokens are forced to `pad_token_id`. The loop stops when every row is
        finished or `max_length` is reached.
        """
        unfinished_sents = input_ids.new_ones(batch_size)
        sent_lengths = input_ids.new_full((batch_size,), config.max_length)
        eos_tensor = torch.tensor(self.eos_token_ids, dtype=input_ids.dtype, device=input_ids.device)

        past = None
        while cur_len < config.max_length:
            next_token_logits, past = self._step(input_ids, past, attention_mask)

            next_token_logits = process_logits(
                next_token_logits, input_ids, cur_len, config, eos_token_ids=self.eos_token_ids
            )

            if config.do_sample:
                probs = F.softmax(next_token_logits, dim=-1)
                next_token = torch.multinomial(probs, num_samples=1).squeeze(1)
            else:
                next_token = torch.argmax(next_token_logits, dim=-1)

            if self.eos_token_ids:
                tokens_to_add = next_token * unfinished_sents + pad_token_id * (1 - unfinished_sents)
            else:
                tokens_to_add = next_token

            input_ids = torch.cat([input_ids, tokens_to_add.unsqueeze(-1)], dim=-1)

            if self.eos_token_ids:
                eos_in_sents = torch.isin(tokens_to_add, eos_tensor)
                # Rows that were running and just produced EOS finish at this length.
                is_sents_unfinished_and_token_to_add_is_eos = unfinished_sents.mul(eos_in_sents.long()).bool()
                sent_lengths.masked_fill_(is_sents_unfinished_and_token_to_add_is_eos, cur_len + 1)
                unfinished_sents.mul_((~eos_in_sents).long())

            cur_len = cur_len + 1
            logger.debug(f"Step {cur_len}: {int(unfinished_sents.sum())}/{batch_size} rows unfinished")

            if unfinished_sents.max() == 0:
                break

            attention_mask = torch.cat([attention_mask, attention_mask.new_ones((attention_mask.shape[0], 1))], dim=-1)

        logger.debug(f"Sequence lengths: {sent_lengths.tolist()}")
        # Rows still running at max_length keep the default length.
        output_length = min(int(sent_lengths.max().item()), input_ids.shape[-1])
        return input_ids[:, :output_length]

    def _generate_beam_search(
        self,
        input_ids: torch.Tensor,
        cur_len: int,
        config: GenerationConfig,
        pad_token_id: Optional[int],
        batch_size: int,
        attention_mask: torch.Tensor,
    ) -> torch.Tensor:
        """
        Beam search over `batch_size` groups of `num_beams` rows.

        Each step scores `num_beams * vocab_size` continuations per group by
        cumulative log-probability, keeps the best `num_beams` that do not end
        in EOS, and retires EOS-ending candidates ranked within the first
        `num_beams` into the group's `BeamHypotheses`.
        """
        num_beams = config.num_beams
        eos_token_ids = self.eos_token_ids

        generated_hyps = [
            BeamHypotheses(num_beams, config.max_length, config.length_penalty, early_stopping=config.early_stopping)
            for _ in range(batch_size)
        ]

        beam_scores = torch.zeros((batch_size, num_beams), dtype=torch.float, device=input_ids.device)
        # Identical beams would yield identical candidates, so only the first beam starts live.
        if not config.do_sample:
            beam_scores[:, 1:] = -1e9
        beam_scores = beam_scores.view(-1)

        past = None
        done = [False for _ in range(batch_size)]

        while cur_len < config.max_length:
            next_token_logits, past = self._step(input_ids, past, attention_mask)
            vocab_size = next_token_logits.shape[-1]

            if config.repetition_penalty > 1.0:
                next_token_logits = enforce_repetition_penalty(next_token_logits, input_ids, config.repetition_penalty)

            if config.do_sample and config.temperature != 1.0:
                next_token_logits = apply_temperature(next_token_logits, config.temperature)

            scores = F.log_softmax(next_token_logits, dim=-1)  # (batch_size * num_beams, vocab_size)

            if eos_token_ids and cur_len < config.min_length:
                scores = enforce_min_length(scores, eos_token_ids, cur_len, config.min_length)

            if config.no_repeat_ngram_size > 0:
                scores = ban_repeated_ngrams(scores, input_ids, config.no_repeat_ngram_size, cur_len)

            next_scores, next_tokens = select_beam_candidates(
                scores,
                beam_scores,
                batch_size=batch_size,
                num_beams=num_beams,
                do_sample=config.do_sample,
                top_k=config.top_k,
                top_p=config.top_p,
                num_eos_tokens=len(eos_token_ids),
            )

            # (score, token_id, row index) for every row of the next step
            next_batch_beam: list[tuple[float, int, int]] = []

            for batch_idx in range(batch_size):
                if done[batch_idx]:
                    next_batch_beam.extend([(0, pad_token_id if pad_token_id is not None else 0, 0)] * num_beams)
                    continue

                next_sent_beam: list[tuple[float, int, int]] = []

                for beam_token_rank, (beam_token_id, beam_token_score) in enumerate(
                    zip(next_tokens[batch_idx].tolist(), next_scores[batch_idx].tolist())
                ):
                    beam_id = beam_token_id // vocab_size
                    token_id = beam_token_id % vocab_size
                    effective_beam_id = batch_idx * num_beams + beam_id

                    if token_id in eos_token_ids:
                        # Only candidates ranked within the first num_beams may finish.
                        if beam_token_rank >= num_beams:
                            continue
                        generated_hyps[batch_idx].add(input_ids[effective_beam_id].clone(), beam_token_score)
                    else:
                        next_sent_beam.append((beam_token_score, token_id, effective_beam_id))

                    if len(next_sent_beam) == num_beams:
                        break

                done[batch_idx] = done[batch_idx] or generated_hyps[batch_idx].is_done(
                    next_scores[batch_idx].max().item(), cur_len
                )

                if len(next_sent_beam) != num_beams:
                    raise RuntimeError(
                        f"Beam group {batch_idx} kept {len(next_sent_beam)} live beams instead of {num_beams}"
                    )
                next_batch_beam.extend(next_sent_beam)

            if all(done):
                break

            beam_scores = beam_scores.new_tensor([x[0] for x in next_batch_beam])
            beam_tokens = input_ids.new_tensor([x[1] for x in next_batch_beam])
            beam_idx = input_ids.new_tensor([x[2] for x in next_batch_beam])

            input_ids = input_ids[beam_idx, :]
            input_ids = torch.cat([input_ids, beam_tokens.unsqueeze(1)], dim=-1)
            attention_mask = attention_mask[beam_idx, :]
            attention_mask = torch.cat([attention_mask, attention_mask.new_ones((attention_mask.shape[0], 1))], dim=-1)

            if past is not None:
                past = self.reorder_cache(past, beam_idx)

            cur_len = cur_len + 1
            logger.debug(f"Step {cur_len}: {done.count(True)}/{batch_size} beam groups done")

        # Unfinished groups contribute their live beams as hypotheses.
        for batch_idx in range(batch_size):
            if done[batch_idx]:
                continue
            for beam_id in range(num_beams):
                effective_beam_id = batch_idx * num_beams + beam_id
                final_score = beam_scores[effective_beam_id].item()
                final_tokens = input_ids[effective_beam_id]
                generated_hyps[batch_idx].add(final_tokens, final_score)

        return finalize_beam_hypotheses(
            generated_hyps,
            num_return_sequences=config.num_return_sequences,
            max_length=config.max_length,
            pad_token_id=pad_token_id,
            eos_token_ids=eos_token_ids,
            do_sample=config.do_sample,
            input_ids=input_ids,
        )
