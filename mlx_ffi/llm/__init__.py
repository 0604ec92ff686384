"""LLM runtime: model loading, tokenization and streaming generation."""

from .config import ModelConfig, SamplingOptions, StopHandling
from .engine import MlxLlm, shutdown_executor
from .generation import GenerationStep, LlmGeneration, NativeSamplingOptions
from .model import LlmModel

__all__ = [
    "MlxLlm",
    "LlmModel",
    "LlmGeneration",
    "GenerationStep",
    "NativeSamplingOptions",
    "SamplingOptions",
    "StopHandling",
    "ModelConfig",
    "shutdown_executor",
]
