"""Recurrent propagation engine.

One hidden layer of logistic units fed by the previous word (one-hot), the
previous hidden state and an optional dependency-label feature vector,
followed by an optional compression layer and a class-factored softmax:
``P(w) = P(class(w)) * P(w | class(w))``. Only the words of the target
class are evaluated, so a step costs ``O(V / K + K)`` output units.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

import numpy as np

from .config import FeatureMode, RnnConfig
from .state import ActivationState, BpttBuffer
from .utils import sigmoid, softmax
from .vocabulary import Vocabulary
from .weights import ModelSnapshot, RnnWeights

LOGGER = logging.getLogger(__name__)

# Multiplicative constants for hashing word histories into the direct table.
_HASH_PRIMES = (
    108641969, 116049371, 125925907, 133333333, 143141357, 150000001,
    166666667, 175000009, 183333339, 192307703, 200003419, 216666673,
    233333339, 250000013, 266666671, 283333337, 300000007, 316666679,
    333333347, 350000003, 366666677, 383333351, 400000009,
)


class RecurrentEngine:
    """Forward and backward passes over one token at a time.

    The engine owns the weights, the activation state and the BPTT buffer.
    ``learning_rate`` is mutable; use :meth:`discounted_learning_rate` to
    scale it for a single update.
    """

    def __init__(
        self,
        config: RnnConfig,
        vocabulary: Vocabulary,
        feature_size: int = 0,
        weights: Optional[RnnWeights] = None,
        state: Optional[ActivationState] = None,
    ):
        self.config = config
        self.vocabulary = vocabulary
        if config.feature_mode != FeatureMode.DECAYED_LABELS:
            feature_size = 0
        vocab_size = vocabulary.size
        num_classes = vocabulary.num_classes
        if weights is None:
            weights = RnnWeights.initialise(
                vocab_size,
                config.hidden_size,
                feature_size,
                num_classes,
                compress_size=config.compress_size,
                direct_size=config.direct_size,
                seed=config.seed,
            )
        if state is None:
            state = ActivationState(
                vocab_size,
                config.hidden_size,
                feature_size,
                num_classes,
                compress_size=config.compress_size,
                direct_order=config.direct_order,
            )
        self.weights = weights
        self.state = state
        self._check_shapes()
        self.bptt = BpttBuffer(
            vocab_size,
            config.hidden_size,
            state.feature_size,
            config.num_bptt_steps,
            config.bptt_block_size,
        )
        self.learning_rate = config.learning_rate
        self.update_counter = 0
        self._direct_half = config.direct_size // 2
        self._uses_direct = self._direct_half > 0 and config.direct_order > 0
        self._direct_class_index: Optional[np.ndarray] = None
        self._direct_word_index: Optional[np.ndarray] = None

    def _check_shapes(self) -> None:
        s, w = self.state, self.weights
        top_size = s.compress_size if s.compress_size > 0 else s.hidden_size
        expected = {
            "input_to_hidden": (s.input_size, s.hidden_size),
            "recurrent_to_hidden": (s.hidden_size, s.hidden_size),
            "feature_to_hidden": (s.feature_size, s.hidden_size),
            "hidden_to_compress": (s.hidden_size, s.compress_size),
            "hidden_to_output": (s.output_size, top_size),
            "direct": (self.config.direct_size,),
        }
        for name, value in w.items():
            if tuple(value.shape) != expected[name]:
                raise ValueError(
                    f"weight {name} has shape {tuple(value.shape)}, expected {expected[name]}"
                )
        if s.output_size != self.vocab_size + self.num_classes:
            raise ValueError("output layer must hold one unit per word and per class")

    @property
    def vocab_size(self) -> int:
        return self.vocabulary.size

    @property
    def num_classes(self) -> int:
        return self.vocabulary.num_classes

    @property
    def feature_size(self) -> int:
        return self.state.feature_size

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------
    def reset_all_activations(self) -> None:
        self.state.reset()
        self.bptt.reset()

    def reset_hidden_state_and_word_history(self) -> None:
        self.state.reset_hidden()
        self.bptt.reset()

    def snapshot(self) -> ModelSnapshot:
        return ModelSnapshot.capture(self.weights, self.state)

    def restore(self, snapshot: ModelSnapshot) -> None:
        snapshot.restore(self.weights, self.state)

    @contextmanager
    def discounted_learning_rate(self, discount: float) -> Iterator[float]:
        """Scale the learning rate by ``discount`` for the enclosed update."""
        undiscounted = self.learning_rate
        self.learning_rate = undiscounted * discount
        try:
            yield self.learning_rate
        finally:
            self.learning_rate = undiscounted

    # ------------------------------------------------------------------
    # Feature vector
    # ------------------------------------------------------------------
    def reset_feature_label_vector(self) -> None:
        self.state.feature_layer.fill(0.0)

    def update_feature_label_vector(self, label: int) -> None:
        """Decay every label by gamma, then set ``label`` to 1.

        Labels outside the feature layer are ignored.
        """
        feature = self.state.feature_layer
        feature *= self.config.feature_gamma
        if 0 <= label < feature.shape[0]:
            feature[label] = 1.0

    # ------------------------------------------------------------------
    # Forward pass
    # ------------------------------------------------------------------
    def forward_propagate_one_step(self, last_word: int, word: int) -> None:
        s, w = self.state, self.weights
        vocab_size = self.vocab_size

        s.input_layer.fill(0.0)
        pre = s.recurrent_layer @ w.recurrent_to_hidden
        if last_word >= 0:
            s.input_layer[last_word] = 1.0
            pre += w.input_to_hidden[last_word]
        if s.feature_size > 0:
            pre += s.feature_layer @ w.feature_to_hidden
        s.hidden_layer[:] = sigmoid(pre)

        top = s.hidden_layer
        if s.compress_size > 0:
            s.compress_layer[:] = sigmoid(s.hidden_layer @ w.hidden_to_compress)
            top = s.compress_layer

        class_logits = w.hidden_to_output[vocab_size:] @ top
        if self._uses_direct:
            self._direct_class_index = self._direct_indices(1, self.num_classes, offset=0)
            class_logits += self._direct_sum(self._direct_class_index)
        s.output_layer[vocab_size:] = softmax(class_logits)

        if word < 0:
            self._direct_word_index = None
            return
        members = self.vocabulary.class_words(self.vocabulary.class_of(word))
        word_logits = w.hidden_to_output[members] @ top
        if self._uses_direct:
            self._direct_word_index = self._direct_indices(
                self.vocabulary.class_of(word) + 1, len(members), offset=self._direct_half
            )
            word_logits += self._direct_sum(self._direct_word_index)
        s.output_layer[members] = softmax(word_logits)

    def word_probability(self, word: int) -> float:
        """``P(class(word)) * P(word | class(word))`` from the last forward step."""
        out = self.state.output_layer
        class_unit = self.vocab_size + self.vocabulary.class_of(word)
        return float(out[class_unit] * out[word])

    def word_log10_probability(self, word: int) -> float:
        with np.errstate(divide="ignore"):
            return float(np.log10(self.word_probability(word)))

    def forward_propagate_recurrent_connection_only(self) -> None:
        """Copy the hidden layer into the recurrent layer for the next step."""
        np.copyto(self.state.recurrent_layer, self.state.hidden_layer)

    def forward_propagate_word_history(self, word: int) -> int:
        """Push ``word`` onto the history ring and return it as the new last word."""
        history = self.state.word_history
        history[1:] = history[:-1].copy()
        history[0] = word
        return word

    # ------------------------------------------------------------------
    # Direct n-gram connections
    # ------------------------------------------------------------------
    def _ngram_hashes(self, seed: int) -> List[int]:
        history = self.state.word_history
        hashes: List[int] = []
        for order in range(self.config.direct_order):
            if order > 0 and history[order - 1] < 0:
                break
            value = _HASH_PRIMES[0] * _HASH_PRIMES[1] * seed
            for b in range(1, order + 1):
                prime = _HASH_PRIMES[(order * _HASH_PRIMES[b] + b) % len(_HASH_PRIMES)]
                value += prime * (int(history[b - 1]) + 1)
            hashes.append(value % self._direct_half)
        return hashes

    def _direct_indices(self, seed: int, count: int, offset: int) -> np.ndarray:
        """Table slots, one row per n-gram order, one column per output unit."""
        hashes = self._ngram_hashes(seed)
        units = np.arange(count, dtype=np.int64)
        rows = [offset + (h + units) % self._direct_half for h in hashes]
        if not rows:
            return np.zeros((0, count), dtype=np.int64)
        return np.stack(rows, axis=0)

    def _direct_sum(self, index: np.ndarray) -> np.ndarray:
        return self.weights.direct[index].sum(axis=0)

    def _update_direct(self, index: Optional[np.ndarray], error: np.ndarray, decay: float) -> None:
        if index is None:
            return
        direct = self.weights.direct
        for row in index:
            np.add.at(direct, row, self.learning_rate * error - decay * direct[row])

    # ------------------------------------------------------------------
    # Backward pass
    # ------------------------------------------------------------------
    def shift_bptt_history(self, last_word: int) -> None:
        if self.config.uses_bptt:
            self.bptt.shift(last_word)

    def back_propagate_errors_then_one_step_gradient_descent(self, last_word: int, word: int) -> None:
        s, w, cfg = self.state, self.weights, self.config
        if cfg.uses_bptt:
            self.bptt.hidden_layer[0] = s.hidden_layer
            if s.feature_size > 0:
                self.bptt.feature_layer[0] = s.feature_layer
        if word < 0:
            return

        self.update_counter += 1
        lr = self.learning_rate
        decay = cfg.regularization * lr
        regularize = self.update_counter % 10 == 0
        vocab_size = self.vocab_size
        target_class = self.vocabulary.class_of(word)
        members = self.vocabulary.class_words(target_class)
        class_units = vocab_size + np.arange(self.num_classes, dtype=np.int64)
        units = np.concatenate([members, class_units])

        s.output_gradient.fill(0.0)
        s.output_gradient[units] = -s.output_layer[units]
        s.output_gradient[word] += 1.0
        s.output_gradient[vocab_size + target_class] += 1.0
        error = s.output_gradient[units]

        if self._uses_direct:
            self._update_direct(self._direct_word_index, s.output_gradient[members], decay)
            self._update_direct(self._direct_class_index, s.output_gradient[class_units], decay)

        top = s.compress_layer if s.compress_size > 0 else s.hidden_layer
        rows = w.hidden_to_output[units]
        top_gradient = error @ rows
        updated = rows + lr * np.outer(error, top)
        if regularize:
            updated -= decay * rows
        w.hidden_to_output[units] = updated

        if s.compress_size > 0:
            c = s.compress_layer
            s.compress_gradient[:] = top_gradient * c * (1.0 - c)
            s.hidden_gradient[:] = w.hidden_to_compress @ s.compress_gradient
            self._apply(w.hidden_to_compress, lr * np.outer(s.hidden_layer, s.compress_gradient), decay, regularize)
        else:
            s.hidden_gradient[:] = top_gradient

        if cfg.uses_bptt:
            self.bptt.hidden_gradient[0] = s.hidden_gradient
            if self.update_counter % cfg.bptt_block_size == 0:
                self._back_propagate_through_time(decay, regularize)
        else:
            self._one_step_gradient(last_word, decay, regularize)

    @staticmethod
    def _apply(matrix: np.ndarray, delta: np.ndarray, decay: float, regularize: bool) -> None:
        if regularize:
            matrix *= 1.0 - decay
        matrix += delta

    def _one_step_gradient(self, last_word: int, decay: float, regularize: bool) -> None:
        s, w = self.state, self.weights
        lr = self.learning_rate
        h = s.hidden_layer
        delta = s.hidden_gradient * h * (1.0 - h)
        s.hidden_gradient[:] = delta
        s.recurrent_gradient[:] = w.recurrent_to_hidden @ delta
        if s.feature_size > 0:
            s.feature_gradient[:] = w.feature_to_hidden @ delta
            self._apply(w.feature_to_hidden, lr * np.outer(s.feature_layer, delta), decay, regularize)
        if last_word >= 0:
            self._apply(w.input_to_hidden[last_word], lr * delta, decay, regularize)
        self._apply(w.recurrent_to_hidden, lr * np.outer(s.recurrent_layer, delta), decay, regularize)

    def _back_propagate_through_time(self, decay: float, regularize: bool) -> None:
        """Unfold the network over the buffered window and apply the sum of updates."""
        s, w, b = self.state, self.weights, self.bptt
        lr = self.learning_rate
        cutoff = self.config.gradient_cutoff
        window = b.window
        gradient = s.hidden_gradient.copy()
        for step in range(window):
            h = b.hidden_layer[step]
            delta = gradient * h * (1.0 - h)
            word = int(b.history[step])
            if word >= 0:
                b.input_to_hidden[word] += lr * delta
            if s.feature_size > 0:
                b.feature_to_hidden += lr * np.outer(b.feature_layer[step], delta)
            b.recurrent_to_hidden += lr * np.outer(b.hidden_layer[step + 1], delta)
            if step + 1 < window:
                back = np.clip(w.recurrent_to_hidden @ delta, -cutoff, cutoff)
                gradient = back + b.hidden_gradient[step + 1]
        b.hidden_gradient.fill(0.0)

        self._apply(w.recurrent_to_hidden, b.recurrent_to_hidden, decay, regularize)
        b.recurrent_to_hidden.fill(0.0)
        if s.feature_size > 0:
            self._apply(w.feature_to_hidden, b.feature_to_hidden, decay, regularize)
            b.feature_to_hidden.fill(0.0)
        applied = set()
        for step in range(window):
            word = int(b.history[step])
            if word >= 0 and word not in applied:
                applied.add(word)
                self._apply(w.input_to_hidden[word], b.input_to_hidden[word], decay, regularize)
                b.input_to_hidden[word] = 0.0


__all__ = ["RecurrentEngine"]
