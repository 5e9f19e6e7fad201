from __future__ import annotations

import math

import numpy as np


# Pre-activations are clipped to this range before squashing.
ACTIVATION_CLIP = 50.0


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Logistic squash with the input clipped to +/- ``ACTIVATION_CLIP``."""
    x = np.clip(x, -ACTIVATION_CLIP, ACTIVATION_CLIP)
    return 1.0 / (1.0 + np.exp(-x))


def softmax(logits: np.ndarray) -> np.ndarray:
    logits = np.clip(logits, -ACTIVATION_CLIP, ACTIVATION_CLIP)
    exp = np.exp(logits - np.max(logits))
    return exp / np.sum(exp)


def exp10(x: float) -> float:
    return math.exp(x * math.log(10.0))


def perplexity(log10_probability: float, num_words: int) -> float:
    if num_words <= 0:
        return 0.0
    return exp10(-log10_probability / float(num_words))


def entropy(log10_probability: float, num_words: int) -> float:
    """Bits per word for a base-10 log-probability total."""
    if num_words <= 0:
        return 0.0
    return -log10_probability / math.log10(2.0) / float(num_words)
