# filename: src/llm_generation/__init__.py
"""
LLM Generation

An autoregressive text generation engine: greedy decoding, sampling with
temperature, top-k and nucleus filtering, and beam search over transformer
language models.

This `__init__.py` file re-exports the most used entry points so that
`from llm_generation import GPT2Generator, GenerationConfig` works without
naming sub-modules.
"""

from llm_generation.config import Config, GenerationConfig, load_config
from llm_generation.data import TokenizerWrapper
from llm_generation.generation import LanguageGenerator, GPT2Generator, OpenAIGPTGenerator
from llm_generation.models import TransformerLM, TransformerConfig

__version__ = "0.1.0"

__all__ = [
    "Config",             # Top-level run configuration.
    "GenerationConfig",   # Decoding options of one generate call.
    "load_config",        # Load a Config from YAML or JSON.
    "TokenizerWrapper",   # Tokenizer capability.
    "LanguageGenerator",  # Abstract generator façade.
    "GPT2Generator",      # Cached, incremental generator.
    "OpenAIGPTGenerator", # Full-context generator.
    "TransformerLM",      # Reference language model.
    "TransformerConfig",  # Its configuration.
]
