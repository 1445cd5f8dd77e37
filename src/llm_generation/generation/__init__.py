# filename: src/llm_generation/generation/__init__.py
"""
The autoregressive generation engine: prompt encoding, batch expansion, the
penalty and filtering stage, the greedy/sampling and beam search loops, and
the generator façades that bind a model and a tokenizer to them.
"""

from llm_generation.generation.prompt import encode_prompt, truncate_sequence
from llm_generation.generation.batching import default_attention_mask, expand_inputs
from llm_generation.generation.logits_process import (
    enforce_repetition_penalty,
    apply_temperature,
    calc_banned_ngram_tokens,
    ban_repeated_ngrams,
    enforce_min_length,
    top_k_top_p_filtering,
    process_logits,
)
from llm_generation.generation.beam_search import (
    BeamHypotheses,
    select_beam_candidates,
    finalize_beam_hypotheses,
)
from llm_generation.generation.engine import LanguageGenerator
from llm_generation.generation.generators import (
    GPT2Generator,
    OpenAIGPTGenerator,
    get_generator_class,
)

__all__ = [
    # Prompt encoding
    "encode_prompt",
    "truncate_sequence",
    # Batch expansion
    "default_attention_mask",
    "expand_inputs",
    # Penalty and filtering
    "enforce_repetition_penalty",
    "apply_temperature",
    "calc_banned_ngram_tokens",
    "ban_repeated_ngrams",
    "enforce_min_length",
    "top_k_top_p_filtering",
    "process_logits",
    # Beam search
    "BeamHypotheses",
    "select_beam_candidates",
    "finalize_beam_hypotheses",
    # Façades
    "LanguageGenerator",
    "GPT2Generator",
    "OpenAIGPTGenerator",
    "get_generator_class",
]
