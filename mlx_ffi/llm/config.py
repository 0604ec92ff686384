"""
Configuration classes for mlx_ffi LLM generation.

This module provides configuration dataclasses for model loading and text
generation. Sampling options are immutable; they are validated when they are
marshalled for a native call, so a bad value is reported with the name of the
first offending field.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..exceptions import InvalidArgumentError


class StopHandling(str, Enum):
    """What happens to the matched text when a stop sequence is hit."""

    TRUNCATE = "truncate"  # drop the stop sequence from the output
    INCLUDE_STOP = "include_stop"  # keep it

    @property
    def native_value(self) -> int:
        return 0 if self is StopHandling.TRUNCATE else 1


@dataclass(frozen=True)
class SamplingOptions:
    """
    Sampling options for text generation.

    Args:
        temperature: Sampling temperature (>= 0, 0 = greedy)
        top_p: Nucleus sampling probability, in (0, 1]
        top_k: Top-k sampling parameter (>= 0, 0 = disabled)
        max_tokens: Maximum number of tokens to generate (> 0)
        repetition_penalty: Penalty for repeating tokens (> 0)
        seed: Random seed for reproducibility (>= 0), None for random
        stop_sequences: Sequences that stop generation, each non-empty
        stop_handling: Whether the matched stop sequence is kept in the output

    Example:
        >>> options = SamplingOptions(max_tokens=64, temperature=0.2, stop_sequences=["\\n\\n"])
        >>> greedy = options.replace(temperature=0.0)
    """

    temperature: float = 0.8
    top_p: float = 0.95
    top_k: int = 40
    max_tokens: int = 256
    repetition_penalty: float = 1.0
    seed: Optional[int] = None
    stop_sequences: tuple[str, ...] = ()
    stop_handling: StopHandling = StopHandling.TRUNCATE

    def __post_init__(self) -> None:
        # Accept lists and plain strings from callers; store immutable forms.
        object.__setattr__(self, "stop_sequences", tuple(self.stop_sequences))
        object.__setattr__(self, "stop_handling", StopHandling(self.stop_handling))

    def validate(self) -> None:
        """
        Check every field against its allowed range.

        Raises:
            InvalidArgumentError: For the first invalid field
        """
        # Written as negated comparisons so NaN is rejected too.
        if not self.temperature >= 0:
            raise InvalidArgumentError("temperature", self.temperature, "Must be >= 0.")
        if not 0 < self.top_p <= 1.0:
            raise InvalidArgumentError("top_p", self.top_p, "Must be > 0 and <= 1.")
        if self.top_k < 0:
            raise InvalidArgumentError("top_k", self.top_k, "Must be >= 0.")
        if self.max_tokens <= 0:
            raise InvalidArgumentError("max_tokens", self.max_tokens, "Must be > 0.")
        if not self.repetition_penalty > 0:
            raise InvalidArgumentError(
                "repetition_penalty", self.repetition_penalty, "Must be > 0."
            )
        if self.seed is not None and self.seed < 0:
            raise InvalidArgumentError("seed", self.seed, "Must be >= 0.")
        for i, stop in enumerate(self.stop_sequences):
            if not stop:
                raise InvalidArgumentError(
                    f"stop_sequences[{i}]", stop, "Stop sequences must be non-empty."
                )

    def replace(self, **changes: Any) -> SamplingOptions:
        """Return a copy with some fields changed."""
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "max_tokens": self.max_tokens,
            "repetition_penalty": self.repetition_penalty,
            "seed": self.seed,
            "stop_sequences": list(self.stop_sequences),
            "stop_handling": self.stop_handling.value,
        }

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> SamplingOptions:
        """Create from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__})


@dataclass
class ModelConfig:
    """
    Configuration for model loading.

    Args:
        model_directory: Directory holding the model weights and tokenizer
        library_path: Explicit path to the MLX C library (None = search)
        use_gpu_default_stream: Run on the default GPU stream instead of CPU
        default_options: Sampling options used when ``generate`` gets none

    Example:
        >>> config = ModelConfig(
        ...     model_directory="./Qwen2.5-0.5B-Instruct-4bit",
        ...     default_options=SamplingOptions(max_tokens=128),
        ... )
        >>> llm = MlxLlm.from_config(config)
    """

    model_directory: str = ""
    library_path: Optional[str] = None
    use_gpu_default_stream: bool = False
    default_options: SamplingOptions = field(default_factory=SamplingOptions)

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not self.model_directory:
            raise InvalidArgumentError(
                "model_directory", self.model_directory, "Must not be empty."
            )
        if isinstance(self.default_options, dict):
            self.default_options = SamplingOptions.from_dict(self.default_options)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "model_directory": self.model_directory,
            "library_path": self.library_path,
            "use_gpu_default_stream": self.use_gpu_default_stream,
            "default_options": self.default_options.to_dict(),
        }

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> ModelConfig:
        """Create config from dictionary."""
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__})

    def save(self, path: str) -> None:
        """Save config to JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> ModelConfig:
        """Load config from JSON file."""
        with open(path) as f:
            return cls.from_dict(json.load(f))
