from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List

from .config import RnnConfig
from .state import ActivationState
from .vocabulary import LabelTable, Vocabulary
from .weights import ModelSnapshot, RnnWeights

LOGGER = logging.getLogger(__name__)

CHECKPOINT_VERSION = 1


@dataclass
class TrainingProgress:
    """Counters that let an interrupted run resume where it stopped."""

    learning_rate: float
    initial_learning_rate: float
    iteration: int = 0
    word_counter: int = 0
    num_train_words: int = 0
    do_start_reducing_learning_rate: bool = False
    last_valid_log_probability: float = -1e37


@dataclass
class ModelCheckpoint:
    config: RnnConfig
    vocabulary: Vocabulary
    labels: LabelTable
    snapshot: ModelSnapshot
    progress: TrainingProgress


def save_checkpoint(path: str | Path, payload: Dict[str, Any]) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    tmp = Path(f"{path}.tmp")
    with open(tmp, "w", encoding="utf-8") as fh:
        json.dump(payload, fh)
    tmp.replace(path)


def load_checkpoint(path: str | Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def save_model(path: str | Path, checkpoint: ModelCheckpoint) -> None:
    """Write weights, state, vocabulary and progress as one JSON document.

    Floats are written with their shortest round-trip representation, so a
    reload is bit-identical.
    """
    snapshot = checkpoint.snapshot
    payload = {
        "version": CHECKPOINT_VERSION,
        "config": checkpoint.config.to_dict(),
        "vocabulary": checkpoint.vocabulary.to_dict(),
        "labels": checkpoint.labels.to_list(),
        "shapes": {name: list(shape) for name, shape in snapshot.weights.shapes().items()},
        "weights": snapshot.weights.to_dict(),
        "state": snapshot.state.to_dict(),
        "progress": asdict(checkpoint.progress),
    }
    save_checkpoint(path, payload)
    LOGGER.debug("Saved model to %s", path)


def load_model(path: str | Path) -> ModelCheckpoint:
    payload = load_checkpoint(path)
    version = payload.get("version")
    if version != CHECKPOINT_VERSION:
        raise ValueError(f"{path}: unsupported checkpoint version {version!r}")
    shapes = {name: tuple(shape) for name, shape in payload["shapes"].items()}
    weights = RnnWeights.from_dict(payload["weights"], shapes)
    state = ActivationState.from_dict(payload["state"])
    return ModelCheckpoint(
        config=RnnConfig.from_dict(payload["config"]),
        vocabulary=Vocabulary.from_dict(payload["vocabulary"]),
        labels=LabelTable(payload["labels"]),
        snapshot=ModelSnapshot(weights=weights, state=state),
        progress=TrainingProgress(**payload["progress"]),
    )


def save_word_embeddings(path: str | Path, vocabulary: Vocabulary, weights: RnnWeights) -> None:
    """One line per word: the word, then its Input->Hidden row."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        for idx, word in enumerate(vocabulary.words):
            row: List[str] = [repr(float(v)) for v in weights.input_to_hidden[idx]]
            fh.write(" ".join([word] + row) + "\n")


__all__ = [
    "CHECKPOINT_VERSION",
    "ModelCheckpoint",
    "TrainingProgress",
    "load_checkpoint",
    "load_model",
    "save_checkpoint",
    "save_model",
    "save_word_embeddings",
]
