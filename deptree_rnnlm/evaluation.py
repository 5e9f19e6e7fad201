"""Held-out evaluation: log-likelihood, perplexity and sentence ranking."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

import numpy as np

from .config import FeatureMode
from .corpus import BookUnrolls
from .engine import RecurrentEngine
from .utils import entropy, perplexity

LOGGER = logging.getLogger(__name__)


class SentenceLikelihood:
    """Per-position log-probabilities of one sentence.

    Several unrolls visit the same position; only the first visit counts.
    """

    def __init__(self) -> None:
        self.by_position: Dict[int, float] = {}
        self.total = 0.0

    def __contains__(self, position: object) -> bool:
        return position in self.by_position

    def add(self, position: int, log_probability: float) -> bool:
        """Record a first visit; return ``False`` when ``position`` was seen."""
        if position in self.by_position:
            return False
        self.by_position[position] = log_probability
        self.total += log_probability
        return True


@dataclass
class EvaluationResult:
    log_probability: float = 0.0
    num_words: int = 0
    sentence_scores: List[float] = field(default_factory=list)
    num_unknown: int = 0

    @property
    def perplexity(self) -> float:
        return perplexity(self.log_probability, self.num_words)

    @property
    def entropy(self) -> float:
        return entropy(self.log_probability, self.num_words)


def evaluate_corpus(
    engine: RecurrentEngine,
    books: Iterable[BookUnrolls],
    debug: bool = False,
) -> EvaluationResult:
    """Score every sentence of ``books`` with frozen weights.

    Out-of-vocabulary tokens and ``<unk>`` are stepped through the network
    but add no probability mass and are not counted as words.
    """
    engine.reset_all_activations()
    # Hidden state is zero, so this zeroes the recurrent layer too.
    engine.forward_propagate_recurrent_connection_only()
    decayed = engine.config.feature_mode == FeatureMode.DECAYED_LABELS
    unk = engine.vocabulary.unk_index
    result = EvaluationResult()

    for book in books:
        for sentence in book.sentences:
            likelihood = SentenceLikelihood()
            for unroll in sentence.unrolls:
                engine.reset_hidden_state_and_word_history()
                engine.reset_feature_label_vector()
                # Every unroll starts after </s> with the root label.
                last_word = 0
                last_label = 0
                for token in unroll:
                    if decayed:
                        engine.update_feature_label_vector(last_label)
                    engine.forward_propagate_one_step(last_word, token.word)
                    if token.word >= 0 and token.word != unk:
                        log_prob = engine.word_log10_probability(token.word)
                        if likelihood.add(token.position, log_prob):
                            result.log_probability += log_prob
                            result.num_words += 1
                            if debug:
                                LOGGER.debug(
                                    "%d\t%d\t%.6f\t%s",
                                    token.position,
                                    token.word,
                                    log_prob,
                                    engine.vocabulary.word(token.word),
                                )
                        elif likelihood.by_position[token.position] != log_prob:
                            LOGGER.warning(
                                "position %d scored %r, previously %r",
                                token.position,
                                log_prob,
                                likelihood.by_position[token.position],
                            )
                    else:
                        if debug:
                            LOGGER.debug("-1\t0\tOOV")
                        result.num_unknown += 1
                    engine.forward_propagate_recurrent_connection_only()
                    last_word = engine.forward_propagate_word_history(token.word)
                    last_label = token.label
            result.sentence_scores.append(likelihood.total)

    LOGGER.info(
        "Log probability: %s, number of words %d (%d <unk>, %d sentences)",
        result.log_probability,
        result.num_words,
        result.num_unknown,
        len(result.sentence_scores),
    )
    LOGGER.info("PPL net (perplexity without OOV): %s", result.perplexity)
    return result


def accuracy_n_best(sentence_scores: Sequence[float], correct_labels: Sequence[int]) -> float:
    """Fraction of questions whose best-scoring candidate is the correct one.

    Scores are grouped into ``len(scores) // len(labels)`` consecutive
    candidates per question.
    """
    if not correct_labels:
        return 0.0
    group = len(sentence_scores) // len(correct_labels)
    if group == 0:
        return 0.0
    hits = 0
    for question, label in enumerate(correct_labels):
        candidates = np.asarray(sentence_scores[question * group : (question + 1) * group])
        if int(np.argmax(candidates)) == label:
            hits += 1
    return hits / float(len(correct_labels))


def load_correct_sentence_labels(path: str | Path) -> List[int]:
    """Read one answer per line, as an index or a letter ``a``, ``b``, ..."""
    labels: List[int] = []
    with open(path, "r", encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, start=1):
            text = line.strip()
            if not text:
                continue
            if text.lstrip("-").isdigit():
                labels.append(int(text))
            elif len(text) == 1 and text.isalpha():
                labels.append(ord(text.lower()) - ord("a"))
            else:
                raise ValueError(f"{path}:{line_no}: cannot parse sentence label {text!r}")
    LOGGER.info("Loaded %d correct sentence labels from %s", len(labels), path)
    return labels


__all__ = [
    "EvaluationResult",
    "SentenceLikelihood",
    "accuracy_n_best",
    "evaluate_corpus",
    "load_correct_sentence_labels",
]
