import logging

import torch

from llm_generation.config import Config
from llm_generation.utils import (
    get_logger,
    log_config,
    log_metrics,
    set_deterministic,
    set_seed,
    setup_logger,
)


def test_setup_logger_writes_to_file(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    logger = setup_logger("llm_generation.test", log_file=log_file, log_level="debug")
    logger.debug("hello from the test")
    for handler in logger.handlers:
        handler.flush()

    assert get_logger("llm_generation.test") is logger
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 2
    assert "hello from the test" in log_file.read_text()

    # Calling it again replaces the handlers instead of stacking them.
    setup_logger("llm_generation.test")
    assert len(logger.handlers) == 1
    logger.handlers = []


def test_log_metrics_formats_one_line(caplog):
    caplog.set_level(logging.INFO)
    log_metrics({"elapsed_seconds": 0.123456, "num_sequences": 2}, step=3, prefix="generate_")
    assert "Step 3 | generate_elapsed_seconds: 0.1235 | generate_num_sequences: 2" in caplog.text


def test_log_config_logs_sections(caplog):
    caplog.set_level(logging.INFO)
    log_config(Config())
    assert "Configuration:" in caplog.text
    assert "generation:" in caplog.text


def test_set_seed_makes_sampling_reproducible():
    set_seed(123)
    first = torch.multinomial(torch.ones(10), 5)
    set_seed(123)
    second = torch.multinomial(torch.ones(10), 5)
    assert torch.equal(first, second)


def test_set_deterministic_toggles_torch():
    set_deterministic(True)
    assert torch.are_deterministic_algorithms_enabled()
    set_deterministic(False)
    assert not torch.are_deterministic_algorithms_enabled()
