import pytest
import torch

from llm_generation.config import TokenizerConfig
from llm_generation.data import TokenizerWrapper, build_tokenizer

from conftest import TOY_VOCAB


def test_tokenize_and_convert(toy_tokenizer):
    tokens = toy_tokenizer.tokenize("Hello world")
    assert tokens == ["Hello", "world"]
    assert toy_tokenizer.convert_tokens_to_ids(tokens) == [TOY_VOCAB["Hello"], TOY_VOCAB["world"]]
    assert toy_tokenizer.encode("the cat") == [TOY_VOCAB["the"], TOY_VOCAB["cat"]]


def test_unknown_words_map_to_unk(toy_tokenizer):
    assert toy_tokenizer.encode("zebra") == [TOY_VOCAB["<unk>"]]


def test_special_token_ids(toy_tokenizer):
    assert toy_tokenizer.bos_token_id == TOY_VOCAB["<|endoftext|>"]
    assert toy_tokenizer.eos_token_id == TOY_VOCAB["<|endoftext|>"]
    assert toy_tokenizer.unk_token_id == TOY_VOCAB["<unk>"]
    assert toy_tokenizer.pad_token_id is None


def test_token_to_id(toy_tokenizer):
    assert toy_tokenizer.token_to_id("cat") == TOY_VOCAB["cat"]
    assert toy_tokenizer.token_to_id("zebra") is None
    assert toy_tokenizer.token_to_id(None) is None


def test_vocab_size(toy_tokenizer):
    assert toy_tokenizer.vocab_size == len(TOY_VOCAB)


def test_decode(toy_tokenizer):
    ids = [TOY_VOCAB["the"], TOY_VOCAB["dog"], TOY_VOCAB["<|endoftext|>"]]
    assert toy_tokenizer.decode(ids) == "the dog"
    assert toy_tokenizer.decode(torch.tensor(ids)) == "the dog"
    assert toy_tokenizer.batch_decode(torch.tensor([ids, ids])) == ["the dog", "the dog"]


def test_save_and_load(tmp_path, toy_tokenizer):
    toy_tokenizer.save(tmp_path)
    assert (tmp_path / "tokenizer.json").exists()

    loaded = TokenizerWrapper.load(tmp_path)
    assert loaded.config.tokenizer_type == "wordlevel"
    assert loaded.eos_token_id == toy_tokenizer.eos_token_id
    assert loaded.encode("Hello world") == toy_tokenizer.encode("Hello world")


def test_load_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        TokenizerWrapper.load(tmp_path)


def test_build_wordlevel_requires_unk_in_vocab():
    config = TokenizerConfig(tokenizer_type="wordlevel", unk_token="<unk>")
    with pytest.raises(ValueError):
        build_tokenizer(config, {"a": 0, "b": 1})


def test_build_bpe():
    config = TokenizerConfig(tokenizer_type="bpe")
    vocab = {"<|endoftext|>": 0, "a": 1, "b": 2, "ab": 3}
    tokenizer = build_tokenizer(config, vocab, merges=[("a", "b")])
    assert tokenizer.tokenize("ab") == ["ab"]
    assert tokenizer.eos_token_id == 0

    with pytest.raises(ValueError):
        build_tokenizer(config, vocab)
