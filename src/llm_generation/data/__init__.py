# filename: src/llm_generation/data/__init__.py
"""
This `__init__.py` file exposes the tokenizer capability of the generation
engine directly under the `llm_generation.data` namespace.
"""

from llm_generation.data.tokenizer import TokenizerWrapper, build_tokenizer

__all__ = [
    "TokenizerWrapper", # Wrapper consumed by the generator façades.
    "build_tokenizer",  # Builds a tokenizer from an existing vocabulary.
]
