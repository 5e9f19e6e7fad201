"""Word vocabulary with frequency-based softmax classes, and label table."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

LOGGER = logging.getLogger(__name__)

END_OF_SENTENCE = "</s>"
UNKNOWN_WORD = "<unk>"


class Vocabulary:
    """Maps words to indices and indices to softmax classes.

    Classes are contiguous ranges of words of roughly equal unigram mass,
    so the words must be sorted by decreasing count for the classes to be
    balanced. Every class holds at least one word.
    """

    def __init__(
        self,
        words: Sequence[str],
        counts: Optional[Sequence[float]] = None,
        num_classes: int = 1,
        classes: Optional[Sequence[int]] = None,
    ):
        if len(words) == 0:
            raise ValueError("vocabulary must contain at least one word")
        self.words: List[str] = list(words)
        self._index: Dict[str, int] = {}
        for idx, word in enumerate(self.words):
            if word in self._index:
                raise ValueError(f"duplicate vocabulary entry {word!r}")
            self._index[word] = idx
        if counts is None:
            counts = [1.0] * len(self.words)
        if len(counts) != len(self.words):
            raise ValueError("counts and words must have the same length")
        self.counts = np.asarray(counts, dtype=np.float64)
        if classes is not None:
            self._set_classes(np.asarray(classes, dtype=np.int64))
        else:
            self.assign_classes(num_classes)

    def __len__(self) -> int:
        return len(self.words)

    def __contains__(self, word: object) -> bool:
        return word in self._index

    @property
    def size(self) -> int:
        return len(self.words)

    @property
    def num_classes(self) -> int:
        return len(self._class_words)

    @property
    def unk_index(self) -> int:
        """Index of ``<unk>``, or -1 when the vocabulary has none."""
        return self._index.get(UNKNOWN_WORD, -1)

    def index(self, word: str) -> int:
        return self._index.get(word, -1)

    def encode(self, word: str) -> int:
        """Index of ``word``, falling back to ``<unk>`` (or -1)."""
        idx = self._index.get(word)
        if idx is None:
            return self.unk_index
        return idx

    def word(self, index: int) -> str:
        return self.words[index]

    def class_of(self, index: int) -> int:
        return int(self.classes[index])

    def class_words(self, class_index: int) -> np.ndarray:
        return self._class_words[class_index]

    def assign_classes(self, num_classes: int) -> None:
        """Split the words into ``num_classes`` bins of cumulative unigram mass."""
        size = len(self.words)
        num_classes = max(1, min(int(num_classes), size))
        total = float(np.sum(self.counts))
        classes = np.zeros(size, dtype=np.int64)
        mass = 0.0
        current = 0
        for idx in range(size):
            mass += float(self.counts[idx]) / total if total > 0 else 1.0 / size
            mass = min(mass, 1.0)
            cls = current
            if mass > (current + 1) / num_classes and current < num_classes - 1:
                current += 1
            # The trailing words must reach the last classes.
            cls = max(cls, num_classes - (size - idx))
            current = max(current, cls)
            classes[idx] = cls
        self._set_classes(classes)

    def _set_classes(self, classes: np.ndarray) -> None:
        if classes.shape[0] != len(self.words):
            raise ValueError("one class index per word is required")
        num_classes = int(classes.max()) + 1
        class_words = [np.flatnonzero(classes == c) for c in range(num_classes)]
        if any(len(members) == 0 for members in class_words):
            raise ValueError("every class must contain at least one word")
        self.classes = classes
        self._class_words = class_words

    def save(self, path: str | Path) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            for word, count, cls in zip(self.words, self.counts, self.classes):
                fh.write(f"{word}\t{float(count)!r}\t{int(cls)}\n")

    @classmethod
    def load(cls, path: str | Path) -> "Vocabulary":
        words: List[str] = []
        counts: List[float] = []
        classes: List[int] = []
        with open(path, "r", encoding="utf-8") as fh:
            for line_no, line in enumerate(fh, start=1):
                line = line.rstrip("\n")
                if not line:
                    continue
                parts = line.split("\t")
                if len(parts) != 3:
                    raise ValueError(f"{path}:{line_no}: expected word, count and class")
                words.append(parts[0])
                counts.append(float(parts[1]))
                classes.append(int(parts[2]))
        return cls(words, counts, classes=classes)

    def to_dict(self) -> Dict[str, object]:
        return {
            "words": list(self.words),
            "counts": self.counts.tolist(),
            "classes": self.classes.tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "Vocabulary":
        return cls(data["words"], data["counts"], classes=data["classes"])  # type: ignore[arg-type]


def build_vocabulary(
    counts: Dict[str, float],
    min_word_occurrence: int = 3,
    num_classes: int = 1,
) -> Vocabulary:
    """Filter and sort word counts into a vocabulary.

    ``</s>`` and ``<unk>`` always occupy indices 0 and 1; the mass of
    filtered words is credited to ``<unk>``.
    """
    eos_count = float(counts.get(END_OF_SENTENCE, 0.0))
    unk_count = float(counts.get(UNKNOWN_WORD, 0.0))
    kept: List[tuple] = []
    for order, (word, count) in enumerate(counts.items()):
        if word in (END_OF_SENTENCE, UNKNOWN_WORD):
            continue
        if count >= min_word_occurrence:
            kept.append((-float(count), order, word))
        else:
            unk_count += float(count)
    kept.sort()
    words = [END_OF_SENTENCE, UNKNOWN_WORD] + [word for _, _, word in kept]
    word_counts = [eos_count, unk_count] + [-neg for neg, _, _ in kept]
    LOGGER.info(
        "Vocab size (before pruning): %d, (after pruning): %d",
        len(counts),
        len(words),
    )
    return Vocabulary(words, word_counts, num_classes=num_classes)


class LabelTable:
    """Dependency labels indexed in first-seen order."""

    def __init__(self, labels: Iterable[str] = ()):
        self.labels: List[str] = []
        self._index: Dict[str, int] = {}
        for label in labels:
            self.add(label)

    def __len__(self) -> int:
        return len(self.labels)

    def add(self, label: str) -> int:
        idx = self._index.get(label)
        if idx is None:
            idx = len(self.labels)
            self._index[label] = idx
            self.labels.append(label)
        return idx

    def index(self, label: str) -> int:
        return self._index.get(label, -1)

    def to_list(self) -> List[str]:
        return list(self.labels)


__all__ = [
    "END_OF_SENTENCE",
    "LabelTable",
    "UNKNOWN_WORD",
    "Vocabulary",
    "build_vocabulary",
]
