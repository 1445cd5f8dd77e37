import pytest
import torch

from llm_generation.generation import encode_prompt, truncate_sequence

from conftest import DigitTokenizer


def test_truncate_sequence_keeps_most_recent_tokens():
    assert truncate_sequence([1, 2, 3, 4, 5], 3) == [3, 4, 5]
    assert truncate_sequence([1, 2], 3) == [1, 2]


def test_encode_prompt_shape_and_dtype():
    input_ids = encode_prompt(DigitTokenizer(), "4 5 6", max_length=10)
    assert input_ids.dtype == torch.long
    assert input_ids.tolist() == [[4, 5, 6]]


def test_encode_prompt_truncates_long_prompt():
    input_ids = encode_prompt(DigitTokenizer(), "1 2 3 4 5 6", max_length=4)
    assert input_ids.tolist() == [[3, 4, 5, 6]]


def test_encode_prompt_without_prompt_uses_bos():
    assert encode_prompt(DigitTokenizer(), None, max_length=5, bos_token_id=7).tolist() == [[7]]


def test_encode_prompt_empty_prompt_falls_back_to_bos():
    assert encode_prompt(DigitTokenizer(), "   ", max_length=5, bos_token_id=7).tolist() == [[7]]


def test_encode_prompt_without_prompt_or_bos_fails():
    with pytest.raises(ValueError):
        encode_prompt(DigitTokenizer(), None, max_length=5)
    with pytest.raises(ValueError):
        encode_prompt(DigitTokenizer(), "", max_length=5)


def test_encode_prompt_with_word_tokenizer(toy_tokenizer):
    hello = toy_tokenizer.token_to_id("Hello")
    world = toy_tokenizer.token_to_id("world")
    assert encode_prompt(toy_tokenizer, "Hello world", max_length=5).tolist() == [[hello, world]]
