"""Exception hierarchy for the dependency-tree language model."""

from __future__ import annotations


class RnnTreeLMError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(RnnTreeLMError, UserWarning):
    """Inconsistent but recoverable configuration.

    Emitted through :func:`warnings.warn`; training carries on.
    """


class NumericalDivergence(RnnTreeLMError):
    """The accumulated log-likelihood is no longer a finite number."""

    def __init__(self, iteration: int, word_counter: int):
        super().__init__(
            f"numerical error: non-finite log-likelihood at iteration {iteration}"
            f" after {word_counter} words"
        )
        self.iteration = iteration
        self.word_counter = word_counter


class UnimplementedFeature(RnnTreeLMError):
    """A requested code path is not supported."""


__all__ = [
    "ConfigurationError",
    "NumericalDivergence",
    "RnnTreeLMError",
    "UnimplementedFeature",
]
