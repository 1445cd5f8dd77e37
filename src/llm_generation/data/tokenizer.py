# filename: src/llm_generation/data/tokenizer.py
"""
This module provides the `TokenizerWrapper` class and the `build_tokenizer`
helper. Together they are the Vocabulary/Tokenizer Capability consumed by the
generation engine: splitting prompt text into tokens, mapping tokens to ids,
resolving special-token ids and decoding generated ids back to text.

The wrapper sits on top of Hugging Face's `tokenizers` library (wrapped in a
`transformers.PreTrainedTokenizerFast`) so that any tokenizer saved as a
`tokenizer.json` can be bound to a generator. `build_tokenizer` assembles a
tokenizer from an existing vocabulary; it never trains one.
"""

import logging                             # Imports the logging library for structured logging.
from typing import Optional, Union, Any    # Imports typing hints.
from pathlib import Path                   # Imports Path for object-oriented filesystem paths.
import json                                # Imports json for saving/loading tokenizer configuration.
from tokenizers import (                   # Imports tokenizer components from the `tokenizers` library.
    Tokenizer,
    pre_tokenizers,
    decoders,
)
from tokenizers.models import BPE, WordLevel        # Imports the supported tokenizer models.
from transformers import PreTrainedTokenizerFast    # Imports Hugging Face Transformers' fast tokenizer wrapper.
import torch                                        # Imports PyTorch for tensor inputs to decode.

from llm_generation.config import TokenizerConfig   # Imports the TokenizerConfig dataclass.


logger = logging.getLogger(__name__) # Initializes a logger for this module.


class TokenizerWrapper:
    """
    A wrapper class that provides a consistent interface over a fast tokenizer
    and exposes exactly the operations the generation engine consumes.

    Inputs:
    - tokenizer (Union[Tokenizer, PreTrainedTokenizerFast]): The underlying tokenizer object.
    - config (TokenizerConfig): Configuration specifying tokenizer type and special tokens.

    Outputs:
    - tokenize (list[str]): Splits text into ordered token strings.
    - convert_tokens_to_ids (list[int]): Maps token strings to ids.
    - token_to_id (Optional[int]): Id of a single token, `None` when it is not in the vocabulary.
    - encode (list[int]): Text to ids without special tokens.
    - decode / batch_decode (str / list[str]): Ids back to text.
    - vocab_size (int): Size of the vocabulary.
    - save / load: Persist and restore the tokenizer directory.
    """

    def __init__(self, tokenizer: Union[Tokenizer, PreTrainedTokenizerFast], config: TokenizerConfig):
        """
        Initializes the TokenizerWrapper, wrapping a raw `tokenizers.Tokenizer`
        in a `PreTrainedTokenizerFast` when necessary.
        """
        self.config = config

        if isinstance(tokenizer, Tokenizer):
            special_tokens = {                      # Only pass the special tokens the config defines.
                name: value
                for name, value in (
                    ("unk_token", config.unk_token),
                    ("pad_token", config.pad_token),
                    ("bos_token", config.bos_token),
                    ("eos_token", config.eos_token),
                )
                if value is not None
            }
            self._tokenizer = PreTrainedTokenizerFast(tokenizer_object=tokenizer, **special_tokens)
        else:
            self._tokenizer = tokenizer

        # Cache special token IDs for quick access. Tokens missing from the vocabulary resolve to None.
        self.pad_token_id = self.token_to_id(config.pad_token)
        self.unk_token_id = self.token_to_id(config.unk_token)
        self.bos_token_id = self.token_to_id(config.bos_token)
        self.eos_token_id = self.token_to_id(config.eos_token)

    def tokenize(self, text: str) -> list[str]:
        """
        Splits text into an ordered list of token strings. No special tokens are added.
        """
        return self._tokenizer.tokenize(text)

    def convert_tokens_to_ids(self, tokens: list[str]) -> list[int]:
        """
        Maps token strings to ids. Unknown tokens map to the unknown-token id.
        """
        return self._tokenizer.convert_tokens_to_ids(tokens)

    def token_to_id(self, token: Optional[str]) -> Optional[int]:
        """
        Returns the id of a single token, or `None` if the token is `None`
        or absent from the vocabulary (no fallback to the unknown token).
        """
        if token is None:
            return None
        return self._tokenizer.get_vocab().get(token)

    def encode(self, text: str, add_special_tokens: bool = False, **kwargs) -> list[int]:
        """
        Encodes text into a list of token IDs.
        """
        return self._tokenizer.encode(text, add_special_tokens=add_special_tokens, **kwargs)

    def decode(
        self,
        token_ids: Union[list[int], torch.Tensor], # The token IDs (list or 1D tensor) to decode.
        skip_special_tokens: bool = True,          # Whether to skip special tokens in the decoded text.
        **kwargs
    ) -> str:
        """
        Decodes a list of token IDs (or a 1D tensor) back into a single text string.
        """
        if isinstance(token_ids, torch.Tensor):
            token_ids = token_ids.tolist()
        return self._tokenizer.decode(token_ids, skip_special_tokens=skip_special_tokens, **kwargs)

    def batch_decode(
        self,
        token_ids: Union[list[list[int]], torch.Tensor], # A list of lists of token IDs (or a 2D tensor).
        skip_special_tokens: bool = True,
        **kwargs
    ) -> list[str]:
        """
        Decodes a batch of token IDs back into a list of text strings.
        """
        if isinstance(token_ids, torch.Tensor):
            token_ids = token_ids.tolist()
        return self._tokenizer.batch_decode(token_ids, skip_special_tokens=skip_special_tokens, **kwargs)

    @property
    def vocab_size(self) -> int:
        """
        Property to get the vocabulary size of the tokenizer.
        """
        return len(self._tokenizer)

    def save(self, path: Union[str, Path]) -> None:
        """
        Saves the tokenizer and its configuration to a directory on disk.

        Inputs:
        - path (Union[str, Path]): The directory where the tokenizer files will be saved.
        """
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)

        # Writes tokenizer.json, special_tokens_map.json and tokenizer_config.json.
        self._tokenizer.save_pretrained(str(path))

        # Our own config is stored separately so the special-token names survive a round trip.
        config_path = path / "generation_tokenizer_config.json"
        with open(config_path, "w") as f:
            json.dump(self.config.__dict__, f, indent=2, default=str)

    @classmethod
    def load(cls, path: Union[str, Path], config: Optional[TokenizerConfig] = None) -> "TokenizerWrapper":
        """
        Loads a tokenizer and its configuration from a directory on disk.

        Inputs:
        - path (Union[str, Path]): Directory containing tokenizer.json.
        - config (Optional[TokenizerConfig]): Overrides the configuration stored in `path`.
          When neither is available the default `TokenizerConfig` is used.

        Outputs:
        - TokenizerWrapper: An instance of the loaded TokenizerWrapper.
        """
        path = Path(path)
        tokenizer_file = path / "tokenizer.json"
        if not tokenizer_file.exists():
            raise FileNotFoundError(f"No tokenizer.json found in {path}")

        if config is None:
            config_path = path / "generation_tokenizer_config.json"
            if config_path.exists():
                with open(config_path, "r") as f:
                    config_dict = json.load(f)
                config = TokenizerConfig(**config_dict)
            else:
                logger.warning(f"No generation_tokenizer_config.json in {path}; using default special tokens.")
                config = TokenizerConfig()

        try:
            tokenizer = Tokenizer.from_file(str(tokenizer_file))
        except Exception as e:
            logger.error(f"Failed to load tokenizer from '{tokenizer_file}'. Error: {e}")
            raise

        return cls(tokenizer, config)


def build_tokenizer(
    config: TokenizerConfig,
    vocab: dict[str, int],
    merges: Optional[list[tuple[str, str]]] = None,
) -> TokenizerWrapper:
    """
    Constructs a tokenizer from an existing vocabulary (and BPE merges).

    Inputs:
    - config (TokenizerConfig): Tokenizer type and special tokens.
    - vocab (dict[str, int]): Token string to id mapping. Special tokens must be part of it.
    - merges (Optional[list[tuple[str, str]]]): BPE merge rules; required for 'bpe'.

    Outputs:
    - TokenizerWrapper: The wrapped tokenizer.
    """
    logger.info(f"Building {config.tokenizer_type} tokenizer from a vocabulary of {len(vocab)} tokens")

    if config.tokenizer_type == "wordlevel":
        if config.unk_token is not None and config.unk_token not in vocab:
            raise ValueError(f"Unknown token '{config.unk_token}' is missing from the vocabulary")
        model = WordLevel(vocab=vocab, unk_token=config.unk_token)
    elif config.tokenizer_type == "bpe":
        if merges is None:
            raise ValueError("A BPE tokenizer needs its merge rules")
        model = BPE(vocab=vocab, merges=merges, unk_token=config.unk_token)
    else:
        raise ValueError(f"Unknown tokenizer type: {config.tokenizer_type}")

    tokenizer = Tokenizer(model)
    tokenizer.pre_tokenizer = pre_tokenizers.Whitespace()
    if config.tokenizer_type == "bpe":
        tokenizer.decoder = decoders.BPEDecoder()

    wrapper = TokenizerWrapper(tokenizer, config)

    special_token_info = {
        'pad': wrapper.pad_token_id,
        'unk': wrapper.unk_token_id,
        'bos': wrapper.bos_token_id,
        'eos': wrapper.eos_token_id,
    }
    logger.info(f"Special token IDs: {special_token_info}")

    return wrapper
