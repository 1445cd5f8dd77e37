# filename: src/llm_generation/config/config.py
"""
Configuration dataclasses for the text generation engine.

This module defines a structured way to manage every configuration parameter
the generation engine needs: the architecture of the reference transformer
models, the tokenizer and its special tokens, the decoding options of a single
`generate` call, and logging settings.

Purpose:
    To centralize and organize all tunable parameters of the engine. Each
    concern gets its own dataclass, and the top-level `Config` composes them so
    a whole run can be loaded from (or saved to) one YAML/JSON file.

    The decoding options live in `GenerationConfig`, which is frozen and
    validated on construction. A malformed decoding configuration is therefore
    rejected before any tokenizer or model call happens, and a configuration
    instance can never change while a `generate` call is running.

Generation Fit:
    `GenerationConfig` is consumed by `LanguageGenerator.generate` on every
    call. `ModelConfig` and `TokenizerConfig` describe the model and vocabulary
    capabilities bound by the generator façades, and `LoggingConfig` is used
    by the CLI to set up logging.
"""

from dataclasses import dataclass, field, asdict    # Used for defining data classes. `field` for default factories.
from typing import Optional, Dict, Any              # Type hints for various data structures.
from pathlib import Path                            # For handling filesystem paths in an OS-agnostic way.


@dataclass
class ModelConfig:
    """
    Configuration for the reference transformer model architecture.

    This dataclass defines the architectural parameters of the transformer
    language model that serves as the Model Capability of the engine.

    Why it's needed: To define the structure of the network whose weights are loaded.
    How it fits into the engine: This configuration is converted into a
    `TransformerConfig` and passed to `TransformerLM`.
    """

    model_type: str = "gpt2"            # Generator family: 'gpt2' (cached, incremental) or 'openai-gpt' (full context).
    vocab_size: int = 50257             # Size of the vocabulary. Must match the tokenizer's vocab_size.
    hidden_size: int = 768              # Dimensionality of the embeddings and transformer layers.
    num_hidden_layers: int = 12         # Number of decoder layers.
    num_attention_heads: int = 12       # Number of attention heads in each multi-head attention block.
    intermediate_size: int = 3072       # Dimensionality of the feed-forward layer.
    max_position_embeddings: int = 1024 # The maximum sequence length that the model can handle.

    # Dropout probabilities (inactive at inference but part of the checkpoint description)
    hidden_dropout_prob: float = 0.1
    attention_probs_dropout_prob: float = 0.1

    # Layer normalization and initialization
    layer_norm_eps: float = 1e-5
    initializer_range: float = 0.02
    use_cache: bool = True              # Whether the model returns its key/value cache.

    hidden_act: str = "gelu_new"        # Activation used in the feed-forward layers.
    tie_word_embeddings: bool = True    # Whether to tie input and output word embeddings.

    def __post_init__(self):
        """Validate model configuration after initialization."""
        if self.hidden_size % self.num_attention_heads != 0:
            raise ValueError("hidden_size must be divisible by num_attention_heads")
        if self.model_type not in ("gpt2", "openai-gpt"):
            raise ValueError(f"Unknown model_type: {self.model_type}. Expected 'gpt2' or 'openai-gpt'.")


@dataclass
class TokenizerConfig:
    """
    Configuration for the vocabulary/tokenizer capability.

    Special tokens are optional: a model family without a beginning-of-sequence
    token simply leaves `bos_token` as None, and the generator will then refuse
    to start generation without a prompt.
    """

    tokenizer_type: str = "bpe"                 # 'bpe' or 'wordlevel'.
    unk_token: Optional[str] = "<|endoftext|>"  # Token for unknown words.
    pad_token: Optional[str] = None             # Padding token. Falls back to the primary EOS during generation.
    bos_token: Optional[str] = "<|endoftext|>"  # Beginning-of-sequence token.
    eos_token: Optional[str] = "<|endoftext|>"  # End-of-sequence token.
    tokenizer_dir: Optional[Path] = None        # Directory holding tokenizer.json / tokenizer_config.json.

    def __post_init__(self):
        """Validate configuration."""
        if self.tokenizer_type not in ("bpe", "wordlevel"):
            raise ValueError(f"Unknown tokenizer type: {self.tokenizer_type}")
        if self.tokenizer_dir is not None and not isinstance(self.tokenizer_dir, Path):
            self.tokenizer_dir = Path(self.tokenizer_dir)


@dataclass(frozen=True)
class GenerationConfig:
    """
    Decoding configuration for a single `generate` call.

    Purpose:
        Holds every recognized decoding option. The dataclass is frozen: a
        `generate` call reads one instance from start to finish, and per-call
        overrides produce a new instance through `dataclasses.replace`, which
        re-runs validation.

    Attributes:
        - `min_length` (int): Minimum total sequence length before an EOS token may end a row.
        - `max_length` (int): Maximum total sequence length (prompt included). Hard bound on steps.
        - `do_sample` (bool): Sample from the filtered distribution instead of taking the arg-max.
        - `early_stopping` (bool): Stop a beam group once `num_beams` hypotheses are finished.
        - `num_beams` (int): Number of beams; 1 disables beam search.
        - `temperature` (float): Logit divisor applied when sampling.
        - `top_k` (int): Keep only the k most likely tokens when sampling (0 disables).
        - `top_p` (float): Nucleus threshold when sampling (1.0 disables).
        - `repetition_penalty` (float): Penalty for tokens already present in a row (1.0 disables).
        - `length_penalty` (float): Exponent of the length normalization of beam scores.
        - `no_repeat_ngram_size` (int): Forbid repeating any n-gram of this size (0 disables).
        - `num_return_sequences` (int): Number of sequences returned per prompt.

    Raises:
        ValueError: If any option is out of range or the combination of
                    sampling, beams and return sequences is inconsistent.
    """

    min_length: int = 0
    max_length: int = 20
    do_sample: bool = False
    early_stopping: bool = False
    num_beams: int = 1
    temperature: float = 1.0
    top_k: int = 50
    top_p: float = 1.0
    repetition_penalty: float = 1.0
    length_penalty: float = 1.0
    no_repeat_ngram_size: int = 0
    num_return_sequences: int = 1

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check every option; the first violation raises `ValueError`."""
        if self.max_length < 1:
            raise ValueError(f"max_length must be at least 1, got {self.max_length}")
        if self.min_length < 0:
            raise ValueError(f"min_length must be non-negative, got {self.min_length}")
        if self.temperature <= 0:
            raise ValueError(f"temperature must be strictly positive, got {self.temperature}")
        if not 0 <= self.top_p <= 1:
            raise ValueError(f"top_p must be between 0 and 1, got {self.top_p}")
        if self.top_k < 0:
            raise ValueError(f"top_k must be non-negative, got {self.top_k}")
        if self.repetition_penalty < 1:
            raise ValueError(f"repetition_penalty must be at least 1, got {self.repetition_penalty}")
        if self.length_penalty <= 0:
            raise ValueError(f"length_penalty must be strictly positive, got {self.length_penalty}")
        if self.no_repeat_ngram_size < 0:
            raise ValueError(f"no_repeat_ngram_size must be non-negative, got {self.no_repeat_ngram_size}")
        if self.num_return_sequences < 1:
            raise ValueError(f"num_return_sequences must be at least 1, got {self.num_return_sequences}")
        if self.num_beams < 1:
            raise ValueError(f"num_beams must be at least 1, got {self.num_beams}")

        if not self.do_sample:
            if self.num_beams == 1 and self.num_return_sequences != 1:
                raise ValueError(
                    "num_return_sequences must be 1 for greedy decoding "
                    f"(got {self.num_return_sequences}); enable do_sample or beam search"
                )
            if self.num_beams > 1 and self.num_return_sequences > self.num_beams:
                raise ValueError(
                    f"num_return_sequences ({self.num_return_sequences}) must not exceed "
                    f"num_beams ({self.num_beams}) for beam search"
                )

    @property
    def strategy(self) -> str:
        """Human-readable name of the decoding strategy, used in log messages."""
        if self.num_beams > 1:
            return "beam-sample" if self.do_sample else "beam-search"
        return "sample" if self.do_sample else "greedy"


@dataclass
class LoggingConfig:
    """
    Configuration for console and file logging.

    Used by the CLI to call `setup_logger` once at start-up.
    """

    log_level: str = "INFO"     # Minimum logging level: 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'.
    log_to_file: bool = False   # Whether to also write logs to `log_file`.
    log_file: Path = field(default_factory=lambda: Path("./logs/generation.log"))

    def __post_init__(self):
        """Process paths after initialization."""
        if not isinstance(self.log_file, Path):
            self.log_file = Path(self.log_file)


@dataclass
class Config:
    """
    Main configuration containing all sub-configurations of a generation run.

    Why it's needed: Provides a hierarchical configuration object that can be
    serialized to and from YAML/JSON and composed by Hydra.
    How it fits into the engine: An instance of `Config` is the primary input
    of the `generate_command` CLI entry point.
    """

    model: ModelConfig = field(default_factory=ModelConfig)
    tokenizer: TokenizerConfig = field(default_factory=TokenizerConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "Config":
        """
        Create a `Config` instance from a dictionary.

        Missing sections fall back to their defaults; unknown keys inside a
        section raise `TypeError` from the dataclass constructor.
        """
        config_dict = config_dict or {}
        return cls(
            model=ModelConfig(**(config_dict.get("model") or {})),
            tokenizer=TokenizerConfig(**(config_dict.get("tokenizer") or {})),
            generation=GenerationConfig(**(config_dict.get("generation") or {})),
            logging=LoggingConfig(**(config_dict.get("logging") or {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the `Config` instance to a plain dictionary.

        `Path` values are converted to strings so the result serializes to
        JSON and YAML without custom encoders.
        """
        def _plain(section: Any) -> Dict[str, Any]:
            return {k: str(v) if isinstance(v, Path) else v for k, v in asdict(section).items()}

        return {
            "model": _plain(self.model),
            "tokenizer": _plain(self.tokenizer),
            "generation": _plain(self.generation),
            "logging": _plain(self.logging),
        }

    def validate(self) -> None:
        """
        Perform cross-component validation of the entire configuration.

        The generation length can never exceed the model's context window, so
        a `max_length` above `max_position_embeddings` is rejected here.
        """
        if self.generation.max_length > self.model.max_position_embeddings:
            raise ValueError(
                f"generation.max_length ({self.generation.max_length}) cannot exceed "
                f"model.max_position_embeddings ({self.model.max_position_embeddings})"
            )
        if self.generation.min_length > self.generation.max_length:
            raise ValueError(
                f"generation.min_length ({self.generation.min_length}) cannot exceed "
                f"generation.max_length ({self.generation.max_length})"
            )
