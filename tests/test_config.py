import dataclasses
from pathlib import Path

import pytest

from llm_generation.config import (
    Config,
    GenerationConfig,
    TokenizerConfig,
    hydra_to_config,
    load_config,
    load_hydra_config,
    merge_configs,
    parse_overrides,
    save_config,
    validate_config,
)


def test_generation_config_defaults():
    config = GenerationConfig()
    assert config.max_length == 20
    assert config.num_beams == 1
    assert config.top_k == 50
    assert config.strategy == "greedy"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_length": 0},
        {"min_length": -1},
        {"temperature": 0.0},
        {"top_p": 1.5},
        {"top_k": -1},
        {"repetition_penalty": 0.5},
        {"length_penalty": 0.0},
        {"no_repeat_ngram_size": -2},
        {"num_return_sequences": 0},
        {"num_beams": 0},
        {"num_return_sequences": 2},
        {"num_beams": 2, "num_return_sequences": 3},
    ],
)
def test_generation_config_rejects_invalid_options(kwargs):
    with pytest.raises(ValueError):
        GenerationConfig(**kwargs)


def test_generation_config_accepts_sampled_return_sequences():
    assert GenerationConfig(do_sample=True, num_return_sequences=4).num_return_sequences == 4
    assert GenerationConfig(do_sample=True, num_beams=2, num_return_sequences=5).strategy == "beam-sample"
    assert GenerationConfig(num_beams=3, num_return_sequences=3).strategy == "beam-search"


def test_generation_config_is_frozen_and_replace_revalidates():
    config = GenerationConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.max_length = 5
    assert dataclasses.replace(config, max_length=5).max_length == 5
    with pytest.raises(ValueError):
        dataclasses.replace(config, temperature=-1.0)


def test_tokenizer_config_rejects_unknown_type():
    with pytest.raises(ValueError):
        TokenizerConfig(tokenizer_type="sentencepiece")


def test_config_dict_round_trip():
    config = Config()
    restored = Config.from_dict(config.to_dict())
    assert restored == config
    assert isinstance(restored.logging.log_file, Path)
    assert isinstance(config.to_dict()["logging"]["log_file"], str)


def test_config_from_dict_rejects_unknown_keys():
    with pytest.raises(TypeError):
        Config.from_dict({"generation": {"beam_width": 4}})


def test_config_validate_checks_context_window():
    config = Config.from_dict({"model": {"max_position_embeddings": 16}, "generation": {"max_length": 32}})
    with pytest.raises(ValueError):
        config.validate()

    config = Config.from_dict({"generation": {"min_length": 30, "max_length": 20}})
    with pytest.raises(ValueError):
        validate_config(config)


@pytest.mark.parametrize("suffix", [".yaml", ".json"])
def test_save_and_load_config(tmp_path, suffix):
    config = Config.from_dict({"generation": {"num_beams": 4, "num_return_sequences": 2}})
    path = tmp_path / "nested" / f"config{suffix}"
    save_config(config, path)
    assert load_config(path) == config


def test_load_config_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")
    bad = tmp_path / "config.toml"
    bad.write_text("x = 1")
    with pytest.raises(ValueError):
        load_config(bad)


def test_merge_configs_deep_merges_and_revalidates():
    base = Config()
    merged = merge_configs(base, {"generation": {"top_k": 10}})
    assert merged.generation.top_k == 10
    assert merged.generation.max_length == base.generation.max_length
    assert base.generation.top_k == 50

    with pytest.raises(ValueError):
        merge_configs(base, {"generation": {"num_return_sequences": 3}})


def test_parse_overrides_types_values():
    overrides = parse_overrides(["generation.do_sample=true", "generation.top_p=0.9", "model.model_type=openai-gpt"])
    assert overrides == {
        "generation": {"do_sample": True, "top_p": 0.9},
        "model": {"model_type": "openai-gpt"},
    }
    assert parse_overrides(None) == {}
    with pytest.raises(ValueError):
        parse_overrides(["generation.top_k"])


def test_hydra_composition():
    cfg = load_hydra_config(overrides=["generation.num_beams=4", "generation.early_stopping=true"])
    config = hydra_to_config(cfg)
    assert config.generation.num_beams == 4
    assert config.generation.early_stopping is True
    assert config.model.model_type == "gpt2"
