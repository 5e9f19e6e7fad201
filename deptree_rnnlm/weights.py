from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Tuple

import numpy as np

from .state import ActivationState


_MATRICES = (
    "input_to_hidden",
    "recurrent_to_hidden",
    "feature_to_hidden",
    "hidden_to_compress",
    "hidden_to_output",
    "direct",
)


@dataclass
class RnnWeights:
    """All trainable parameters of the network.

    ``input_to_hidden`` has one row per vocabulary word (the word
    embedding). ``hidden_to_output`` has one row per output unit, the
    ``V`` word units first and the ``K`` class units last; its columns are
    the compression units when a compression layer is configured.
    """

    input_to_hidden: np.ndarray
    recurrent_to_hidden: np.ndarray
    feature_to_hidden: np.ndarray
    hidden_to_compress: np.ndarray
    hidden_to_output: np.ndarray
    direct: np.ndarray

    @classmethod
    def initialise(
        cls,
        vocab_size: int,
        hidden_size: int,
        feature_size: int,
        num_classes: int,
        compress_size: int = 0,
        direct_size: int = 0,
        seed: int = 1,
    ) -> "RnnWeights":
        rng = np.random.default_rng(seed)

        def rand_mat(rows: int, cols: int) -> np.ndarray:
            # Sum of three uniforms in [-0.1, 0.1].
            total = np.zeros((rows, cols), dtype=np.float64)
            for _ in range(3):
                total += rng.uniform(-0.1, 0.1, size=(rows, cols))
            return total

        top_size = compress_size if compress_size > 0 else hidden_size
        return cls(
            input_to_hidden=rand_mat(vocab_size, hidden_size),
            recurrent_to_hidden=rand_mat(hidden_size, hidden_size),
            feature_to_hidden=rand_mat(feature_size, hidden_size),
            hidden_to_compress=rand_mat(hidden_size, compress_size),
            hidden_to_output=rand_mat(vocab_size + num_classes, top_size),
            direct=np.zeros(direct_size, dtype=np.float64),
        )

    def items(self) -> Iterator[Tuple[str, np.ndarray]]:
        for name in _MATRICES:
            yield name, getattr(self, name)

    def copy(self) -> "RnnWeights":
        return RnnWeights(**{name: value.copy() for name, value in self.items()})

    def assign(self, other: "RnnWeights") -> None:
        for name, value in other.items():
            np.copyto(getattr(self, name), value)

    def to_dict(self) -> Dict[str, object]:
        return {name: value.tolist() for name, value in self.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, object], shapes: Dict[str, Tuple[int, ...]]) -> "RnnWeights":
        arrays = {}
        for name in _MATRICES:
            arr = np.array(data[name], dtype=np.float64)
            # Empty matrices lose their shape in JSON.
            arrays[name] = arr.reshape(shapes[name])
        return cls(**arrays)

    def shapes(self) -> Dict[str, Tuple[int, ...]]:
        return {name: tuple(value.shape) for name, value in self.items()}


@dataclass
class ModelSnapshot:
    """Independent copy of weights and activation state.

    The same object backs the in-memory rollback and the checkpoint file.
    """

    weights: RnnWeights
    state: ActivationState

    @classmethod
    def capture(cls, weights: RnnWeights, state: ActivationState) -> "ModelSnapshot":
        return cls(weights=weights.copy(), state=state.copy())

    def restore(self, weights: RnnWeights, state: ActivationState) -> None:
        """Overwrite ``weights`` and ``state`` in place with the snapshot."""
        weights.assign(self.weights)
        state.assign(self.state)


__all__ = ["ModelSnapshot", "RnnWeights"]
