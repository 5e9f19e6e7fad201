from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional


# Word history length, also the upper bound of the direct n-gram order.
MAX_NGRAM_ORDER = 20


class FeatureMode(enum.IntEnum):
    """How dependency labels reach the network."""

    NONE = 0
    # Labels are merged into the word tokens ("word:label").
    LABELED_WORDS = 1
    # Labels drive a one-hot feature layer with exponential time decay.
    DECAYED_LABELS = 2


@dataclass(frozen=True)
class RnnConfig:
    """Architecture and optimisation hyper-parameters, fixed for a run."""

    hidden_size: int = 30
    compress_size: int = 0
    num_classes: int = 100
    direct_size: int = 0
    direct_order: int = 3
    num_bptt_steps: int = 0
    bptt_block_size: int = 1
    feature_mode: FeatureMode = FeatureMode.NONE
    feature_gamma: float = 0.9
    learning_rate: float = 0.1
    regularization: float = 1e-7
    gradient_cutoff: float = 15.0
    min_improvement: float = 1.003
    min_word_occurrence: int = 3
    report_every: int = 1000
    seed: int = 1
    debug: bool = False

    def __post_init__(self) -> None:
        if self.hidden_size <= 0:
            raise ValueError("hidden_size must be positive")
        if self.compress_size < 0:
            raise ValueError("compress_size must be non-negative")
        if self.num_classes <= 0:
            raise ValueError("num_classes must be positive")
        if self.direct_size < 0:
            raise ValueError("direct_size must be non-negative")
        if not 0 <= self.direct_order <= MAX_NGRAM_ORDER:
            raise ValueError(f"direct_order must lie in [0, {MAX_NGRAM_ORDER}]")
        if self.num_bptt_steps < 0:
            raise ValueError("num_bptt_steps must be non-negative")
        if self.bptt_block_size < 1:
            raise ValueError("bptt_block_size must be at least 1")
        if not 0.0 <= self.feature_gamma <= 1.0:
            raise ValueError("feature_gamma must lie in [0, 1]")
        if self.learning_rate <= 0.0:
            raise ValueError("learning_rate must be positive")
        if self.report_every <= 0:
            raise ValueError("report_every must be positive")
        # Accept plain integers coming from JSON or argparse.
        object.__setattr__(self, "feature_mode", FeatureMode(self.feature_mode))

    @property
    def uses_bptt(self) -> bool:
        return self.num_bptt_steps > 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["feature_mode"] = int(self.feature_mode)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RnnConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class TrainingFiles:
    """Locations of the corpus, labels, model and log files."""

    model_file: Path
    train_list: Optional[Path] = None
    valid_list: Optional[Path] = None
    books_dir: Optional[Path] = None
    sentence_labels: Optional[Path] = None
    log_file: Optional[Path] = None
    vocab_file: Optional[Path] = None
    class_file: Optional[Path] = None

    @property
    def embeddings_file(self) -> Path:
        return Path(f"{self.model_file}.word_embeddings.txt")


__all__ = [
    "FeatureMode",
    "MAX_NGRAM_ORDER",
    "RnnConfig",
    "TrainingFiles",
]
