# filename: src/llm_generation/cli/generate.py
"""
Generation command-line interface.

This module provides the `llm-generate` command: it loads a saved model
directory and a tokenizer, assembles the run configuration (defaults, an
optional YAML/JSON file, dot-list overrides and explicit decoding flags, in
increasing precedence), generates sequences for one prompt and prints them.

Purpose:
    To run the generation engine from the terminal without writing Python.
    The decoded sequences are printed to stdout and can optionally be written
    to a JSON file together with the token ids and the decoding options used.
"""

import dataclasses                # For exporting the decoding options.
import json                       # For writing the optional JSON output.
import logging                    # For logging information and status messages.
import time                       # For timing the generate call.
from pathlib import Path          # For handling file paths in an object-oriented way.
from typing import Optional       # Type hinting.
import click                      # Command-line interface creation library.
import torch                      # PyTorch, used for device detection.

from llm_generation.config import (
    Config,
    load_config,
    merge_configs,
    parse_overrides,
    validate_config,
)
from llm_generation.data import TokenizerWrapper
from llm_generation.generation import GPT2Generator, OpenAIGPTGenerator, get_generator_class
from llm_generation.models import load_model
from llm_generation.utils import setup_logger, set_seed, log_config, log_metrics


logger = logging.getLogger(__name__) # Initialize a logger for this module.


# Decoding flags that map one-to-one onto GenerationConfig fields.
DECODING_OPTIONS = (
    "min_length",
    "max_length",
    "do_sample",
    "early_stopping",
    "num_beams",
    "temperature",
    "top_k",
    "top_p",
    "repetition_penalty",
    "length_penalty",
    "no_repeat_ngram_size",
    "num_return_sequences",
)


def build_config(
    config_path: Optional[Path],
    overrides: tuple[str, ...],
    decoding_options: dict,
) -> Config:
    """
    Assemble the run configuration.

    Precedence, lowest first: dataclass defaults, the configuration file,
    dot-list overrides, explicit decoding flags. Flags left unset (None) do
    not override anything.
    """
    config = load_config(config_path) if config_path is not None else Config()

    override_dict = parse_overrides(list(overrides))
    flags = {
        key: decoding_options[key]
        for key in DECODING_OPTIONS
        if decoding_options.get(key) is not None
    }
    if flags:
        override_dict.setdefault("generation", {}).update(flags)

    if override_dict:
        config = merge_configs(config, override_dict)

    validate_config(config)
    return config


def resolve_device(device: str) -> str:
    if device == "auto":
        return "cuda" if torch.cuda.is_available() else "cpu"
    return device


@click.command()
@click.argument("model_path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--tokenizer",
    "-t",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Tokenizer directory (tokenizer.json). Defaults to MODEL_PATH.",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML or JSON configuration file.",
)
@click.option(
    "--override",
    "-o",
    "overrides",
    multiple=True,
    help="Dot-list override such as generation.num_beams=4. May be repeated.",
)
@click.option("--prompt", "-p", type=str, default=None, help="Prompt text. Omit to start from the BOS token.")
@click.option(
    "--model-type",
    type=click.Choice(["gpt2", "openai-gpt"]),
    default=None,
    help="Generator family. Defaults to the model_type stored with the model.",
)
@click.option("--max-length", type=int, default=None, help="Maximum total sequence length, prompt included.")
@click.option("--min-length", type=int, default=None, help="Minimum length before an EOS token may end a sequence.")
@click.option("--do-sample/--no-sample", default=None, help="Sample instead of greedy or beam decoding.")
@click.option("--early-stopping/--no-early-stopping", default=None, help="Stop beam groups once num_beams hypotheses are finished.")
@click.option("--num-beams", type=int, default=None, help="Number of beams (1 disables beam search).")
@click.option("--temperature", type=float, default=None, help="Sampling temperature.")
@click.option("--top-k", type=int, default=None, help="Top-k filtering when sampling (0 disables).")
@click.option("--top-p", type=float, default=None, help="Nucleus filtering threshold when sampling (1.0 disables).")
@click.option("--repetition-penalty", type=float, default=None, help="Penalty for already generated tokens (1.0 disables).")
@click.option("--length-penalty", type=float, default=None, help="Exponent of the beam score length normalization.")
@click.option("--no-repeat-ngram-size", type=int, default=None, help="Forbid repeating n-grams of this size (0 disables).")
@click.option("--num-return-sequences", type=int, default=None, help="Number of sequences to return.")
@click.option("--seed", type=int, default=42, help="Random seed for reproducible sampling.")
@click.option(
    "--device",
    type=click.Choice(["cuda", "cpu", "auto"]),
    default="auto",
    help="Device to run generation on.",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Optional JSON file receiving the generated ids and texts.",
)
def generate_command(
    model_path: Path,
    tokenizer: Optional[Path],
    config_path: Optional[Path],
    overrides: tuple[str, ...],
    prompt: Optional[str],
    model_type: Optional[str],
    seed: int,
    device: str,
    output: Optional[Path],
    **decoding_options,
) -> None:
    """
    Generate text with the model saved in MODEL_PATH.
    """
    try:
        config = build_config(config_path, overrides, decoding_options)
    except (TypeError, ValueError) as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    setup_logger(
        log_file=config.logging.log_file if config.logging.log_to_file else None,
        log_level=config.logging.log_level,
    )
    log_config(config)

    set_seed(seed)
    device = resolve_device(device)

    model = load_model(model_path, device=device)
    tokenizer_wrapper = TokenizerWrapper.load(tokenizer or model_path)

    model_type = model_type or model.config.model_type
    generator_class = get_generator_class(model_type)
    if generator_class is GPT2Generator:
        generator = GPT2Generator(
            model,
            tokenizer_wrapper,
            device=device,
            bos_token=config.tokenizer.bos_token,
            eos_token=config.tokenizer.eos_token,
            pad_token=config.tokenizer.pad_token,
        )
    else:
        generator = OpenAIGPTGenerator(model, tokenizer_wrapper, device=device)

    start_time = time.time()
    try:
        sequences = generator.generate(prompt, generation_config=config.generation)
    except ValueError as e:
        raise click.UsageError(str(e))
    elapsed = time.time() - start_time

    texts = generator.decode(sequences)
    for i, text in enumerate(texts):
        click.echo(f"[{i}] {text}")

    log_metrics(
        {
            "num_sequences": sequences.shape[0],
            "sequence_length": sequences.shape[1],
            "elapsed_seconds": elapsed,
        },
        prefix="generate_",
    )

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w") as f:
            json.dump(
                {
                    "prompt": prompt,
                    "model_type": model_type,
                    "generation": dataclasses.asdict(config.generation),
                    "sequences": sequences.tolist(),
                    "texts": texts,
                },
                f,
                indent=2,
            )
        logger.info(f"Results saved to {output}")


def main() -> None:
    """Console-script entry point."""
    generate_command()


if __name__ == "__main__":
    main()
