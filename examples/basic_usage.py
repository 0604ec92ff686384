"""
mlx_ffi usage examples

This script demonstrates:
1. Array construction, arithmetic and host reads
2. Tokenization round trip
3. Streaming generation with sampling options
4. Stopping a stream early
5. Async streaming

Configuration (environment variables):
    MLX_FFI_LIBRARY   Path to libmlxc.dylib / libmlx.so if not on the loader path
    MLX_MODEL_DIR     Local MLX model directory for the LLM examples
"""

import asyncio
import os
from contextlib import closing

from mlx_ffi import Dtype, Mlx, MlxLlm, NativeCallError, SamplingOptions, StopHandling

MODEL_DIR = os.environ.get("MLX_MODEL_DIR", "./Qwen2.5-0.5B-Instruct-4bit")


def example_1_arrays():
    """Example 1: Arrays"""
    print("\n" + "=" * 80)
    print("Example 1: Arrays")
    print("=" * 80)

    mlx = Mlx.open()
    print(f"MLX version: {mlx.version()}")

    with mlx.from_float64([1.0, 2.0, 3.0], shape=[3]) as a, mlx.ones(
        [3], dtype=Dtype.FLOAT64
    ) as b:
        with a + b as c, c.sum() as total:
            print(f"a: {a.to_list()}")
            print(f"b: {b.to_list()}")
            print(f"c = a + b: {c.to_list()}")
            print(f"sum(c): {total.as_float64()}")


def example_2_tokenize(llm: MlxLlm):
    """Example 2: Tokenization round trip"""
    print("\n" + "=" * 80)
    print("Example 2: Tokenization")
    print("=" * 80)

    tokens = llm.tokenize("How do I make cake?", add_bos=True)
    print(f"Tokens: {tokens}")
    print(f"Decoded: {llm.decode(tokens)!r}")


def example_3_streaming(llm: MlxLlm):
    """Example 3: Streaming generation"""
    print("\n" + "=" * 80)
    print("Example 3: Streaming Generation")
    print("=" * 80)

    options = SamplingOptions(
        temperature=0.7,
        max_tokens=128,
        seed=42,
        stop_sequences=["\n\n"],
        stop_handling=StopHandling.TRUNCATE,
    )
    for piece in llm.generate("How do I make cake?", options):
        print(piece, end="", flush=True)
    print()


def example_4_early_stop(llm: MlxLlm):
    """Example 4: Stop after a few fragments; the model is free again afterwards"""
    print("\n" + "=" * 80)
    print("Example 4: Early Stop")
    print("=" * 80)

    with closing(llm.generate("Tell me a long story")) as stream:
        for i, piece in enumerate(stream):
            print(piece, end="", flush=True)
            if i == 4:
                break
    print(f"\nGeneration still active: {llm.generation_active}")


async def example_5_async(llm: MlxLlm):
    """Example 5: Async streaming"""
    print("\n" + "=" * 80)
    print("Example 5: Async Streaming")
    print("=" * 80)

    async for piece in llm.stream_async("Write a haiku about the sea."):
        print(piece, end="", flush=True)
    print()


def main():
    try:
        example_1_arrays()

        with MlxLlm.open(MODEL_DIR) as llm:
            example_2_tokenize(llm)
            example_3_streaming(llm)
            example_4_early_stop(llm)
            asyncio.run(example_5_async(llm))
    except NativeCallError as e:
        print(f"MLX call failed: {e}")
    except OSError as e:
        print(f"Failed to load MLX: {e}")
        print("Tip: set MLX_FFI_LIBRARY=/absolute/path/to/libmlxc.dylib")


if __name__ == "__main__":
    main()
