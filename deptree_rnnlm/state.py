"""Activation state and back-propagation-through-time history buffers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import numpy as np

from .config import MAX_NGRAM_ORDER


_LAYERS = ("input", "feature", "recurrent", "hidden", "compress", "output")


class ActivationState:
    """Per-step activations, their gradients and the word history ring.

    The output layer holds the in-class word probabilities in ``[0, V)``
    followed by the class probabilities in ``[V, V + K)``.
    """

    def __init__(
        self,
        vocab_size: int,
        hidden_size: int,
        feature_size: int,
        num_classes: int,
        compress_size: int = 0,
        direct_order: int = 0,
    ):
        self.direct_order = direct_order
        sizes = {
            "input": vocab_size,
            "feature": feature_size,
            "recurrent": hidden_size,
            "hidden": hidden_size,
            "compress": compress_size,
            "output": vocab_size + num_classes,
        }
        for name, size in sizes.items():
            setattr(self, f"{name}_layer", np.zeros(size, dtype=np.float64))
            setattr(self, f"{name}_gradient", np.zeros(size, dtype=np.float64))
        self.word_history = np.zeros(MAX_NGRAM_ORDER, dtype=np.int64)

    # Layer sizes are fixed for the lifetime of the state.
    @property
    def input_size(self) -> int:
        return int(self.input_layer.shape[0])

    @property
    def feature_size(self) -> int:
        return int(self.feature_layer.shape[0])

    @property
    def hidden_size(self) -> int:
        return int(self.hidden_layer.shape[0])

    @property
    def compress_size(self) -> int:
        return int(self.compress_layer.shape[0])

    @property
    def output_size(self) -> int:
        return int(self.output_layer.shape[0])

    def reset(self) -> None:
        """Zero every activation and gradient and clear the word history."""
        for name in _LAYERS:
            getattr(self, f"{name}_layer").fill(0.0)
            getattr(self, f"{name}_gradient").fill(0.0)
        self.word_history.fill(0)

    def reset_hidden(self) -> None:
        """Zero the hidden/recurrent layers and the word history only."""
        for name in ("recurrent", "hidden"):
            getattr(self, f"{name}_layer").fill(0.0)
            getattr(self, f"{name}_gradient").fill(0.0)
        self.word_history.fill(0)

    def copy(self) -> "ActivationState":
        clone = ActivationState.__new__(ActivationState)
        clone.direct_order = self.direct_order
        for name in _LAYERS:
            setattr(clone, f"{name}_layer", getattr(self, f"{name}_layer").copy())
            setattr(clone, f"{name}_gradient", getattr(self, f"{name}_gradient").copy())
        clone.word_history = self.word_history.copy()
        return clone

    def assign(self, other: "ActivationState") -> None:
        """Copy ``other`` into this state in place."""
        self.direct_order = other.direct_order
        for name in _LAYERS:
            for kind in ("layer", "gradient"):
                attr = f"{name}_{kind}"
                np.copyto(getattr(self, attr), getattr(other, attr))
        np.copyto(self.word_history, other.word_history)

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"direct_order": self.direct_order}
        for name in _LAYERS:
            data[f"{name}_layer"] = getattr(self, f"{name}_layer").tolist()
            data[f"{name}_gradient"] = getattr(self, f"{name}_gradient").tolist()
        data["word_history"] = self.word_history.tolist()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "ActivationState":
        state = cls.__new__(cls)
        state.direct_order = int(data.get("direct_order", 0))  # type: ignore[arg-type]
        for name in _LAYERS:
            for kind in ("layer", "gradient"):
                attr = f"{name}_{kind}"
                setattr(state, attr, np.array(data[attr], dtype=np.float64))
        state.word_history = np.array(data["word_history"], dtype=np.int64)
        return state


@dataclass
class BpttBuffer:
    """Ring history of the last steps used to unfold the network in time.

    Slot 0 is the newest step. ``shift`` is a plain copy pass over the
    window; the depth never changes after construction.
    """

    vocab_size: int
    hidden_size: int
    feature_size: int
    num_bptt_steps: int
    block_size: int = 1

    def __post_init__(self) -> None:
        depth = self.num_bptt_steps + self.block_size
        self.history = np.full(depth + 1, -1, dtype=np.int64)
        self.hidden_layer = np.zeros((depth + 1, self.hidden_size), dtype=np.float64)
        self.hidden_gradient = np.zeros((depth + 1, self.hidden_size), dtype=np.float64)
        self.feature_layer = np.zeros((depth + 1, self.feature_size), dtype=np.float64)
        # Gradient accumulators, shaped like the matrices they update.
        self.input_to_hidden = np.zeros((self.vocab_size, self.hidden_size), dtype=np.float64)
        self.recurrent_to_hidden = np.zeros((self.hidden_size, self.hidden_size), dtype=np.float64)
        self.feature_to_hidden = np.zeros((self.feature_size, self.hidden_size), dtype=np.float64)

    @property
    def depth(self) -> int:
        return int(self.history.shape[0])

    @property
    def window(self) -> int:
        """Number of time steps an error is propagated through."""
        if self.num_bptt_steps <= 0:
            return 1
        return self.num_bptt_steps + self.block_size - 1

    def shift(self, last_word: int) -> None:
        for a in range(self.depth - 1, 0, -1):
            self.history[a] = self.history[a - 1]
            self.hidden_layer[a] = self.hidden_layer[a - 1]
            self.hidden_gradient[a] = self.hidden_gradient[a - 1]
            self.feature_layer[a] = self.feature_layer[a - 1]
        self.history[0] = last_word

    def reset(self) -> None:
        self.history.fill(-1)
        self.hidden_layer.fill(0.0)
        self.hidden_gradient.fill(0.0)
        self.feature_layer.fill(0.0)
        self.input_to_hidden.fill(0.0)
        self.recurrent_to_hidden.fill(0.0)
        self.feature_to_hidden.fill(0.0)


__all__ = ["ActivationState", "BpttBuffer"]
