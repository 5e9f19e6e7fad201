"""Epoch loop with validation-driven rollback and learning-rate annealing.

After each epoch the model is scored on the validation books. A drop in
validation log-likelihood restores the weights and state of the previous
epoch; a drop beyond ``min_improvement`` starts halving the learning rate,
and a second such drop ends training.
"""

from __future__ import annotations

import logging
import math
import time
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .checkpoint import (
    ModelCheckpoint,
    TrainingProgress,
    load_model,
    save_model,
    save_word_embeddings,
)
from .config import FeatureMode, RnnConfig, TrainingFiles
from .corpus import TreeUnrollCorpus, learn_vocabulary
from .engine import RecurrentEngine
from .errors import ConfigurationError, NumericalDivergence
from .evaluation import (
    EvaluationResult,
    SentenceLikelihood,
    accuracy_n_best,
    evaluate_corpus,
    load_correct_sentence_labels,
)
from .progress import ProgressLogWriter
from .utils import entropy, perplexity
from .vocabulary import LabelTable, Vocabulary
from .weights import ModelSnapshot

LOGGER = logging.getLogger(__name__)


@dataclass
class EpochResult:
    log_probability: float
    num_words: int
    seconds: float

    @property
    def perplexity(self) -> float:
        return perplexity(self.log_probability, self.num_words)

    @property
    def entropy(self) -> float:
        return entropy(self.log_probability, self.num_words)


def feature_size_for(config: RnnConfig, labels: LabelTable) -> int:
    return len(labels) if config.feature_mode == FeatureMode.DECAYED_LABELS else 0


class Trainer:
    """Drives training epochs over a tree-unroll corpus."""

    def __init__(
        self,
        config: RnnConfig,
        files: TrainingFiles,
        vocabulary: Vocabulary,
        labels: LabelTable,
        train_corpus: TreeUnrollCorpus,
        valid_corpus: TreeUnrollCorpus,
        num_train_words: int = 0,
        correct_labels: Sequence[int] = (),
        snapshot: Optional[ModelSnapshot] = None,
        progress: Optional[TrainingProgress] = None,
    ):
        self.config = config
        self.files = files
        self.vocabulary = vocabulary
        self.labels = labels
        self.train_corpus = train_corpus
        self.valid_corpus = valid_corpus
        self.correct_labels = list(correct_labels)
        if config.num_classes > vocabulary.size:
            message = (
                f"number of classes ({config.num_classes}) exceeds vocabulary size"
                f" ({vocabulary.size})"
            )
            LOGGER.warning(message)
            warnings.warn(ConfigurationError(message))
        self.engine = RecurrentEngine(
            config,
            vocabulary,
            feature_size=feature_size_for(config, labels),
            weights=snapshot.weights if snapshot is not None else None,
            state=snapshot.state if snapshot is not None else None,
        )
        if progress is None:
            progress = TrainingProgress(
                learning_rate=config.learning_rate,
                initial_learning_rate=config.learning_rate,
                num_train_words=num_train_words,
            )
        self.progress = progress
        self.engine.learning_rate = progress.learning_rate
        self.backup = self.engine.snapshot()
        self.history: List[Dict[str, object]] = []

    # ------------------------------------------------------------------
    # Construction from files
    # ------------------------------------------------------------------
    @classmethod
    def from_files(cls, config: RnnConfig, files: TrainingFiles) -> "Trainer":
        """Build a trainer, resuming from ``files.model_file`` when it exists."""
        if files.train_list is None or files.valid_list is None:
            raise ValueError("training needs both a train and a valid book list")
        correct = (
            load_correct_sentence_labels(files.sentence_labels)
            if files.sentence_labels is not None
            else []
        )
        if Path(files.model_file).exists():
            model = load_model(files.model_file)
            LOGGER.info(
                "Resuming %s at iteration %d, alpha %s",
                files.model_file,
                model.progress.iteration,
                model.progress.learning_rate,
            )
            config = model.config
            merge = config.feature_mode == FeatureMode.LABELED_WORDS
            return cls(
                config,
                files,
                model.vocabulary,
                model.labels,
                TreeUnrollCorpus.from_list(files.train_list, files.books_dir, merge),
                TreeUnrollCorpus.from_list(files.valid_list, files.books_dir, merge),
                correct_labels=correct,
                snapshot=model.snapshot,
                progress=model.progress,
            )

        merge = config.feature_mode == FeatureMode.LABELED_WORDS
        train_corpus = TreeUnrollCorpus.from_list(files.train_list, files.books_dir, merge)
        valid_corpus = TreeUnrollCorpus.from_list(files.valid_list, files.books_dir, merge)
        vocabulary, labels, num_tokens = learn_vocabulary(
            train_corpus,
            config.min_word_occurrence,
            config.num_classes,
            class_file=files.class_file,
        )
        if files.vocab_file is not None:
            if Path(files.vocab_file).exists():
                vocabulary = Vocabulary.load(files.vocab_file)
                LOGGER.info("Loaded vocabulary of %d words from %s", vocabulary.size, files.vocab_file)
            else:
                vocabulary.save(files.vocab_file)
        return cls(
            config,
            files,
            vocabulary,
            labels,
            train_corpus,
            valid_corpus,
            num_train_words=num_tokens,
            correct_labels=correct,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def checkpoint(self) -> ModelCheckpoint:
        self.progress.learning_rate = self.engine.learning_rate
        return ModelCheckpoint(
            config=self.config,
            vocabulary=self.vocabulary,
            labels=self.labels,
            snapshot=self.engine.snapshot(),
            progress=self.progress,
        )

    def save(self) -> None:
        save_model(self.files.model_file, self.checkpoint())
        save_word_embeddings(self.files.embeddings_file, self.vocabulary, self.engine.weights)

    # ------------------------------------------------------------------
    # Epochs
    # ------------------------------------------------------------------
    def train_epoch(self, writer: ProgressLogWriter) -> EpochResult:
        engine = self.engine
        progress = self.progress
        decayed = self.config.feature_mode == FeatureMode.DECAYED_LABELS
        LOGGER.info("Iter: %d Alpha: %s", progress.iteration, engine.learning_rate)

        engine.reset_all_activations()
        # The regularisation and BPTT block schedule restarts every epoch.
        engine.update_counter = 0
        log_probability = 0.0
        unique_words = 0
        start = time.perf_counter()

        for book_idx, book in enumerate(self.train_corpus.books(self.vocabulary, self.labels)):
            for sent_idx, sentence in enumerate(book.sentences):
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
                        if token.word >= 0:
                            if token.position not in likelihood:
                                log_prob = engine.word_log10_probability(token.word)
                                likelihood.add(token.position, log_prob)
                                log_probability += log_prob
                                unique_words += 1
                            progress.word_counter += 1
                        if math.isnan(log_probability):
                            raise NumericalDivergence(progress.iteration, progress.word_counter)

                        engine.shift_bptt_history(last_word)
                        # Words reached by many tree paths get a smaller step.
                        with engine.discounted_learning_rate(token.discount):
                            engine.back_propagate_errors_then_one_step_gradient_descent(
                                last_word, token.word
                            )
                        engine.forward_propagate_recurrent_connection_only()
                        last_word = engine.forward_propagate_word_history(token.word)
                        last_label = token.label

                if sent_idx % self.config.report_every == 0:
                    writer.write(
                        [
                            ("Iter", progress.iteration),
                            ("Book", book_idx),
                            ("Alpha", engine.learning_rate),
                            ("TRAINentropy", entropy(log_probability, unique_words)),
                            ("TRAINppx", perplexity(log_probability, unique_words)),
                            ("fraction", self._fraction()),
                            ("words/sec", self._words_per_second(start)),
                        ]
                    )

        result = EpochResult(log_probability, unique_words, time.perf_counter() - start)
        writer.write(
            [
                ("Iter", progress.iteration),
                ("Alpha", engine.learning_rate),
                ("Book", "ALL"),
                ("TRAINentropy", result.entropy),
                ("TRAINppx", result.perplexity),
                ("fraction", 100),
                ("words/sec", self._words_per_second(start)),
            ]
        )
        return result

    def _fraction(self) -> float:
        if self.progress.num_train_words <= 0:
            return 0.0
        return 100.0 * self.progress.word_counter / float(self.progress.num_train_words)

    def _words_per_second(self, start: float) -> float:
        elapsed = max(1e-9, time.perf_counter() - start)
        return self.progress.word_counter / elapsed

    def validate(self) -> EvaluationResult:
        books = self.valid_corpus.books(self.vocabulary, self.labels)
        return evaluate_corpus(self.engine, books, debug=self.config.debug)

    def end_epoch(self, valid: EvaluationResult) -> bool:
        """Roll back or keep the epoch, anneal, and decide whether to go on."""
        engine = self.engine
        progress = self.progress
        valid_log_probability = valid.log_probability

        progress.word_counter = 0
        if valid_log_probability < progress.last_valid_log_probability:
            self.backup.restore(engine.weights, engine.state)
            LOGGER.info("Restored the weights from previous iteration")
        else:
            self.backup = engine.snapshot()
            LOGGER.info("Save this model")

        if valid_log_probability * self.config.min_improvement < progress.last_valid_log_probability:
            if not progress.do_start_reducing_learning_rate:
                progress.do_start_reducing_learning_rate = True
            else:
                self.save()
                LOGGER.info("Training converged at iteration %d", progress.iteration)
                return False

        if progress.do_start_reducing_learning_rate:
            engine.learning_rate /= 2.0
        progress.last_valid_log_probability = valid_log_probability
        progress.iteration += 1
        self.save()
        LOGGER.info("Saved the model")
        return True

    def train(self) -> Dict[str, object]:
        with ProgressLogWriter(self.files.log_file) as writer:
            LOGGER.info(
                "Starting training tree-dependent LM using %d books",
                self.train_corpus.num_books,
            )
            keep_going = True
            while keep_going:
                alpha = self.engine.learning_rate
                train = self.train_epoch(writer)
                LOGGER.info(
                    "Iteration %d trained %d words in %.2f s",
                    self.progress.iteration,
                    train.num_words,
                    train.seconds,
                )
                valid = self.validate()
                accuracy = accuracy_n_best(valid.sentence_scores, self.correct_labels)
                LOGGER.info(
                    "Accuracy %.2f%% on %d sentences",
                    accuracy * 100.0,
                    len(valid.sentence_scores),
                )
                writer.write(
                    [
                        ("Iter", self.progress.iteration),
                        ("Alpha", alpha),
                        ("VALIDaccuracy", accuracy),
                        ("VALIDentropy", valid.entropy),
                        ("VALIDppx", valid.perplexity),
                    ]
                )
                self.history.append(
                    {
                        "iteration": self.progress.iteration,
                        "alpha": alpha,
                        "train_log_probability": train.log_probability,
                        "train_ppx": train.perplexity,
                        "train_seconds": train.seconds,
                        "valid_log_probability": valid.log_probability,
                        "valid_ppx": valid.perplexity,
                        "valid_accuracy": accuracy,
                    }
                )
                keep_going = self.end_epoch(valid)

        return {
            "iterations": len(self.history),
            "learning_rate": self.engine.learning_rate,
            "initial_learning_rate": self.progress.initial_learning_rate,
            "history": self.history,
            "model_file": str(self.files.model_file),
        }


def evaluate_model_file(
    model_file: str | Path,
    test_list: str | Path,
    books_dir: Optional[str | Path] = None,
    sentence_labels: Optional[str | Path] = None,
    debug: bool = False,
) -> Dict[str, float]:
    """Score a trained model on held-out books."""
    model = load_model(model_file)
    engine = RecurrentEngine(
        model.config,
        model.vocabulary,
        feature_size=feature_size_for(model.config, model.labels),
        weights=model.snapshot.weights,
        state=model.snapshot.state,
    )
    merge = model.config.feature_mode == FeatureMode.LABELED_WORDS
    corpus = TreeUnrollCorpus.from_list(test_list, books_dir, merge)
    result = evaluate_corpus(engine, corpus.books(model.vocabulary, model.labels), debug=debug)
    summary = {
        "log_probability": result.log_probability,
        "num_words": float(result.num_words),
        "perplexity": result.perplexity,
        "entropy": result.entropy,
    }
    if sentence_labels is not None:
        labels = load_correct_sentence_labels(sentence_labels)
        summary["accuracy"] = accuracy_n_best(result.sentence_scores, labels)
    return summary


__all__ = ["EpochResult", "Trainer", "evaluate_model_file"]
