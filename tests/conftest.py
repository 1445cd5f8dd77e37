"""Shared fixtures: a toy word-level tokenizer, scripted bigram models and a tiny TransformerLM."""

import logging
from typing import Optional, Sequence

import pytest
import torch

from llm_generation.config import TokenizerConfig
from llm_generation.data import build_tokenizer
from llm_generation.generation import LanguageGenerator
from llm_generation.models import TransformerConfig, TransformerLM


TOY_WORDS = [
    "<|endoftext|>", "<unk>", "Hello", "world", "the", "a", "cat", "dog",
    "sat", "on", "mat", "ran", "to", "park", "and", "then",
]
TOY_VOCAB = {word: idx for idx, word in enumerate(TOY_WORDS + [f"w{i}" for i in range(32 - len(TOY_WORDS))])}


class DigitTokenizer:
    """Whitespace tokenizer whose tokens are the decimal token ids themselves."""

    def tokenize(self, text: str) -> list[str]:
        return text.split()

    def convert_tokens_to_ids(self, tokens: Sequence[str]) -> list[int]:
        return [int(token) for token in tokens]

    def batch_decode(self, sequences, skip_special_tokens: bool = True) -> list[str]:
        return [" ".join(str(t) for t in row) for row in sequences.tolist()]


class BigramModel:
    """
    Scripted model whose next-token distribution depends only on the last token:
    `logits[..., t, :] = log(table[input_ids[..., t]])`.

    With `use_cache` the returned cache is the full token history, so a
    misordered cache shows up in `histories`.
    """

    def __init__(self, table: torch.Tensor):
        self.log_table = table.clamp_min(1e-12).log()
        self.calls = 0
        self.input_lengths: list[int] = []
        self.histories: list[torch.Tensor] = []

    def __call__(self, input_ids, attention_mask=None, past_key_values=None, use_cache=False):
        self.calls += 1
        self.input_lengths.append(input_ids.shape[1])
        history = input_ids if past_key_values is None else torch.cat([past_key_values, input_ids], dim=1)
        self.histories.append(history)
        if attention_mask is not None:
            assert attention_mask.shape == history.shape
        logits = self.log_table[input_ids]
        return {"logits": logits, "past_key_values": history if use_cache else None}


class ConstantModel:
    """Always prefers `favourite`, whatever the input."""

    def __init__(self, vocab_size: int, favourite: int):
        self.vocab_size = vocab_size
        self.favourite = favourite
        self.calls = 0

    def __call__(self, input_ids, attention_mask=None, past_key_values=None, use_cache=False):
        self.calls += 1
        logits = torch.zeros(input_ids.shape[0], input_ids.shape[1], self.vocab_size)
        logits[..., self.favourite] = 10.0
        return {"logits": logits, "past_key_values": None}


class ToyGenerator(LanguageGenerator):
    """Generator with explicitly given special-token ids."""

    def __init__(
        self,
        model,
        tokenizer=None,
        bos_token_id: Optional[int] = None,
        eos_token_ids: Optional[Sequence[int]] = None,
        pad_token_id: Optional[int] = None,
        use_cache: bool = False,
        last_token_only: bool = False,
    ):
        super().__init__(
            model,
            tokenizer if tokenizer is not None else DigitTokenizer(),
            bos_token_id=bos_token_id,
            eos_token_ids=eos_token_ids,
            pad_token_id=pad_token_id,
            device="cpu",
        )
        self.use_cache = use_cache
        self.last_token_only = last_token_only

    def prepare_inputs_for_generation(self, input_ids, past=None, attention_mask=None):
        if self.last_token_only and past is not None:
            input_ids = input_ids[:, -1:]
        return {"input_ids": input_ids, "past_key_values": past, "attention_mask": attention_mask}


def make_table(rows: dict, vocab_size: int = 8) -> torch.Tensor:
    """Bigram table with the given rows; unspecified rows are uniform."""
    table = torch.full((vocab_size, vocab_size), 1.0 / vocab_size)
    for token, distribution in rows.items():
        table[token] = 0.0
        for next_token, prob in distribution.items():
            table[token, next_token] = prob
    return table


@pytest.fixture
def beam_table() -> torch.Tensor:
    # Greedy from [1] picks 1 -> 2 -> 4 (p = 0.2); beam search finds 1 -> 3 -> 3 (p = 0.36).
    return make_table({
        1: {2: 0.5, 3: 0.4, 4: 0.1},
        2: {4: 0.4, 5: 0.3, 6: 0.3},
        3: {3: 0.9, 7: 0.1},
    })


@pytest.fixture
def toy_tokenizer():
    config = TokenizerConfig(
        tokenizer_type="wordlevel",
        unk_token="<unk>",
        bos_token="<|endoftext|>",
        eos_token="<|endoftext|>",
        pad_token=None,
    )
    return build_tokenizer(config, dict(TOY_VOCAB))


@pytest.fixture
def tiny_config() -> TransformerConfig:
    return TransformerConfig(
        vocab_size=32,
        hidden_size=16,
        num_hidden_layers=2,
        num_attention_heads=2,
        intermediate_size=32,
        max_position_embeddings=64,
        hidden_dropout_prob=0.0,
        attention_probs_dropout_prob=0.0,
    )


@pytest.fixture
def tiny_model(tiny_config) -> TransformerLM:
    torch.manual_seed(0)
    model = TransformerLM(tiny_config)
    model.eval()
    return model


@pytest.fixture
def restore_root_logger():
    """Remove handlers that `setup_logger` attaches to the root logger during a test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
