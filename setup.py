"""
mlx-ffi setup.py
"""

from pathlib import Path

from setuptools import find_packages, setup

# Project directory
PROJECT_DIR = Path(__file__).parent.resolve()

# Read long description from README
readme_path = PROJECT_DIR / "README.md"
long_description = ""
if readme_path.exists():
    with open(readme_path, encoding="utf-8") as f:
        long_description = f.read()

setup(
    name="mlx-ffi",
    version="0.1.0",
    description="Python bindings for the MLX C library with safe handle ownership and streaming LLM generation",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["mlx_ffi", "mlx_ffi.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: MacOS",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.20.0",
    ],
    extras_require={
        "hub": [
            "huggingface-hub>=0.20.0",
        ],
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "mypy>=1.0",
            "ruff>=0.1.0",
            "black>=23.0",
        ],
    },
    package_data={
        "mlx_ffi": ["py.typed", "*.so", "*.dylib", "*.dll"],
    },
    include_package_data=True,
    zip_safe=False,
)
