import logging

import pytest
import torch

from llm_generation.config import ModelConfig
from llm_generation.models import (
    MultiHeadAttention,
    TransformerConfig,
    TransformerEncoder,
    TransformerLM,
    count_parameters,
    load_model,
    save_model,
)
from llm_generation.models.utils import generate_square_subsequent_mask, get_activation_fn


def test_forward_shapes(tiny_model, tiny_config):
    input_ids = torch.randint(0, tiny_config.vocab_size, (2, 5))
    outputs = tiny_model(input_ids, use_cache=True)

    assert outputs["logits"].shape == (2, 5, tiny_config.vocab_size)
    past = outputs["past_key_values"]
    assert len(past) == tiny_config.num_hidden_layers
    key, value = past[0]
    head_dim = tiny_config.hidden_size // tiny_config.num_attention_heads
    assert key.shape == (2, tiny_config.num_attention_heads, 5, head_dim)
    assert value.shape == key.shape


def test_no_cache_returned_when_disabled(tiny_model):
    outputs = tiny_model(torch.tensor([[1, 2, 3]]), use_cache=False)
    assert outputs["past_key_values"] is None


def test_positions_past_the_table_are_clamped_with_a_warning(tiny_model, tiny_config, caplog):
    caplog.set_level(logging.WARNING, logger="llm_generation.models.embeddings")
    length = tiny_config.max_position_embeddings + 2
    outputs = tiny_model(torch.ones(1, length, dtype=torch.long), use_cache=False)
    assert outputs["logits"].shape == (1, length, tiny_config.vocab_size)
    assert "exceeds max_position_embeddings" in caplog.text


def test_incremental_decoding_matches_full_forward(tiny_model):
    input_ids = torch.tensor([[4, 8, 15, 16, 23]])
    with torch.no_grad():
        full = tiny_model(input_ids, use_cache=False)["logits"]

        prefix = tiny_model(input_ids[:, :3], use_cache=True)
        past = prefix["past_key_values"]
        step = tiny_model(input_ids[:, 3:4], past_key_values=past, use_cache=True)
        last = tiny_model(input_ids[:, 4:5], past_key_values=step["past_key_values"], use_cache=True)

    torch.testing.assert_close(prefix["logits"], full[:, :3], rtol=1e-4, atol=1e-5)
    torch.testing.assert_close(step["logits"][:, 0], full[:, 3], rtol=1e-4, atol=1e-5)
    torch.testing.assert_close(last["logits"][:, 0], full[:, 4], rtol=1e-4, atol=1e-5)


def test_full_and_current_attention_masks_agree(tiny_model):
    input_ids = torch.tensor([[1, 2, 3, 4]])
    with torch.no_grad():
        past = tiny_model(input_ids[:, :3], use_cache=True)["past_key_values"]
        full_mask = tiny_model(
            input_ids[:, 3:], attention_mask=torch.ones(1, 4, dtype=torch.long), past_key_values=past
        )["logits"]
        current_mask = tiny_model(
            input_ids[:, 3:], attention_mask=torch.ones(1, 1, dtype=torch.long), past_key_values=past
        )["logits"]
    torch.testing.assert_close(full_mask, current_mask)


def test_attention_mask_of_wrong_width_is_rejected(tiny_model):
    input_ids = torch.tensor([[1, 2, 3, 4]])
    past = tiny_model(input_ids[:, :3], use_cache=True)["past_key_values"]
    with pytest.raises(ValueError):
        tiny_model(input_ids[:, 3:], attention_mask=torch.ones(1, 2, dtype=torch.long), past_key_values=past)


def test_padded_keys_are_ignored(tiny_model):
    mask = torch.tensor([[0, 1, 1]])
    with torch.no_grad():
        first = tiny_model(torch.tensor([[0, 6, 7]]), attention_mask=mask)["logits"]
        second = tiny_model(torch.tensor([[9, 6, 7]]), attention_mask=mask)["logits"]
    torch.testing.assert_close(first[:, 1:], second[:, 1:])


def test_tied_embeddings(tiny_model):
    assert tiny_model.lm_head.weight.data_ptr() == tiny_model.embeddings.token_embedding.embedding.weight.data_ptr()


def test_parameter_count(tiny_model):
    assert tiny_model.num_parameters() == count_parameters(tiny_model)
    assert count_parameters(tiny_model, only_trainable=True) > 0


def test_config_from_model_config():
    model_config = ModelConfig(vocab_size=100, hidden_size=32, num_attention_heads=4, model_type="openai-gpt")
    config = TransformerConfig.from_model_config(model_config)
    assert config.vocab_size == 100
    assert config.model_type == "openai-gpt"


def test_config_rejects_indivisible_heads():
    with pytest.raises(ValueError):
        TransformerConfig(hidden_size=10, num_attention_heads=3)


def test_multi_head_attention_rejects_indivisible_heads():
    with pytest.raises(ValueError):
        MultiHeadAttention(hidden_size=10, num_attention_heads=3)


def test_save_and_load_model(tmp_path, tiny_model):
    save_model(tiny_model, tmp_path)
    loaded = load_model(tmp_path)
    assert not loaded.training
    assert loaded.config == tiny_model.config

    input_ids = torch.tensor([[1, 2, 3]])
    with torch.no_grad():
        torch.testing.assert_close(loaded(input_ids)["logits"], tiny_model(input_ids)["logits"])


def test_load_model_missing_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_model(tmp_path)


def test_encoder_outputs(tiny_config):
    torch.manual_seed(0)
    encoder = TransformerEncoder(tiny_config, output_hidden_states=True, output_attentions=True)
    encoder.eval()
    hidden_states = torch.randn(2, 4, tiny_config.hidden_size)
    outputs = encoder(hidden_states, attention_mask=torch.tensor([[1, 1, 1, 1], [1, 1, 0, 0]]))

    assert outputs["last_hidden_state"].shape == (2, 4, tiny_config.hidden_size)
    assert len(outputs["hidden_states"]) == tiny_config.num_hidden_layers + 1
    assert len(outputs["attentions"]) == tiny_config.num_hidden_layers
    # Masked keys receive no attention.
    attention = outputs["attentions"][0]
    assert torch.all(attention[1, :, :, 2:] < 1e-6)


def test_encoder_without_mask_matches_all_ones_mask(tiny_config):
    torch.manual_seed(0)
    encoder = TransformerEncoder(tiny_config)
    encoder.eval()
    hidden_states = torch.randn(1, 3, tiny_config.hidden_size)
    with torch.no_grad():
        unmasked = encoder(hidden_states)["last_hidden_state"]
        masked = encoder(hidden_states, attention_mask=torch.ones(1, 3))["last_hidden_state"]
    torch.testing.assert_close(unmasked, masked)
    assert encoder(hidden_states)["hidden_states"] is None


def test_causal_mask():
    mask = generate_square_subsequent_mask(3)
    assert mask[0, 1] == float("-inf")
    assert mask[1, 0] == 0
    assert torch.all(torch.diagonal(mask) == 0)


def test_activation_lookup():
    x = torch.tensor([-1.0, 0.0, 1.0])
    assert torch.equal(get_activation_fn("relu")(x), torch.tensor([0.0, 0.0, 1.0]))
    with pytest.raises(ValueError):
        get_activation_fn("unknown")
