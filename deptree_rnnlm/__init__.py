"""Dependency-tree recurrent neural network language model."""

from importlib.metadata import PackageNotFoundError, version


try:  # pragma: no cover - metadata is provided at build time
    __version__ = version("deptree-rnnlm")
except PackageNotFoundError:  # pragma: no cover - fallback during development
    __version__ = "0.0.0.dev0"


__all__ = [
    "__version__",
]
