"""Tree-unroll corpus reader.

A book is a JSON array of sentences, a sentence an array of unrolls (paths
through its dependency parse tree) and an unroll an array of tokens
``[position, word, discount, label]``. ``position`` identifies the token in
its sentence; the same position appears in every unroll that visits it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .errors import UnimplementedFeature
from .vocabulary import LabelTable, Vocabulary, build_vocabulary

LOGGER = logging.getLogger(__name__)

RawToken = Tuple[int, str, float, str]


@dataclass(frozen=True)
class UnrollToken:
    word: int
    label: int
    discount: float
    position: int


@dataclass
class Sentence:
    unrolls: List[List[UnrollToken]] = field(default_factory=list)

    @property
    def num_unrolls(self) -> int:
        return len(self.unrolls)

    def positions(self) -> set[int]:
        return {tok.position for unroll in self.unrolls for tok in unroll}


@dataclass
class BookUnrolls:
    name: str
    sentences: List[Sentence] = field(default_factory=list)

    @property
    def num_sentences(self) -> int:
        return len(self.sentences)

    @property
    def num_tokens(self) -> int:
        return sum(len(unroll) for sent in self.sentences for unroll in sent.unrolls)


def merged_word(word: str, label: str) -> str:
    return f"{word}:{label}"


def _parse_token(raw: object, where: str) -> RawToken:
    if not isinstance(raw, (list, tuple)) or len(raw) != 4:
        raise ValueError(f"{where}: token must be [position, word, discount, label], got {raw!r}")
    position, word, discount, label = raw
    discount = float(discount)
    if not 0.0 < discount <= 1.0:
        raise ValueError(f"{where}: discount {discount} outside (0, 1]")
    return int(position), str(word), discount, str(label)


def read_book_json(path: str | Path) -> List[List[List[RawToken]]]:
    """Parse one book into sentences of unrolls of raw string tokens."""
    path = Path(path)
    with open(path, "r", encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(data, list):
        raise ValueError(f"{path}: a book must be a list of sentences")
    sentences: List[List[List[RawToken]]] = []
    for s_idx, sentence in enumerate(data):
        if not isinstance(sentence, list):
            raise ValueError(f"{path}: sentence {s_idx} must be a list of unrolls")
        unrolls: List[List[RawToken]] = []
        for u_idx, unroll in enumerate(sentence):
            if not isinstance(unroll, list) or not unroll:
                raise ValueError(f"{path}: sentence {s_idx} unroll {u_idx} must be a non-empty list")
            where = f"{path}: sentence {s_idx} unroll {u_idx}"
            unrolls.append([_parse_token(tok, where) for tok in unroll])
        sentences.append(unrolls)
    return sentences


def read_book_list(list_file: str | Path, books_dir: Optional[str | Path] = None) -> List[Path]:
    """Read one book filename per line, resolved against ``books_dir``.

    Without ``books_dir`` names are resolved next to ``list_file``.
    """
    list_file = Path(list_file)
    base = Path(books_dir) if books_dir is not None else list_file.parent
    books: List[Path] = []
    with open(list_file, "r", encoding="utf-8") as fh:
        for line in fh:
            name = line.strip()
            if name:
                books.append(base / name)
    return books


class TreeUnrollCorpus:
    """Iterates books of tree unrolls, one book in memory at a time."""

    def __init__(self, book_paths: Sequence[str | Path], merge_labels: bool = False):
        self.book_paths = [Path(p) for p in book_paths]
        self.merge_labels = merge_labels

    @classmethod
    def from_list(
        cls,
        list_file: str | Path,
        books_dir: Optional[str | Path] = None,
        merge_labels: bool = False,
    ) -> "TreeUnrollCorpus":
        return cls(read_book_list(list_file, books_dir), merge_labels=merge_labels)

    @property
    def num_books(self) -> int:
        return len(self.book_paths)

    def _token_word(self, word: str, label: str) -> str:
        return merged_word(word, label) if self.merge_labels else word

    def count_words(self) -> Tuple[Dict[str, float], LabelTable, int]:
        """Discounted word counts, the label table and the token total."""
        counts: Dict[str, float] = {}
        labels = LabelTable()
        num_tokens = 0
        for path in self.book_paths:
            for sentence in read_book_json(path):
                for unroll in sentence:
                    for _, word, discount, label in unroll:
                        key = self._token_word(word, label)
                        counts[key] = counts.get(key, 0.0) + discount
                        labels.add(label)
                        num_tokens += 1
        return counts, labels, num_tokens

    def read_book(self, path: Path, vocabulary: Vocabulary, labels: LabelTable) -> BookUnrolls:
        book = BookUnrolls(name=path.name)
        for sentence in read_book_json(path):
            encoded = Sentence()
            for unroll in sentence:
                encoded.unrolls.append(
                    [
                        UnrollToken(
                            word=vocabulary.encode(self._token_word(word, label)),
                            label=labels.index(label),
                            discount=discount,
                            position=position,
                        )
                        for position, word, discount, label in unroll
                    ]
                )
            book.sentences.append(encoded)
        return book

    def books(self, vocabulary: Vocabulary, labels: LabelTable) -> Iterator[BookUnrolls]:
        for path in self.book_paths:
            book = self.read_book(path, vocabulary, labels)
            LOGGER.debug(
                "Read book %s: %d sentences, %d unrolls, %d tokens",
                path,
                book.num_sentences,
                sum(sentence.num_unrolls for sentence in book.sentences),
                book.num_tokens,
            )
            yield book


def learn_vocabulary(
    corpus: TreeUnrollCorpus,
    min_word_occurrence: int = 3,
    num_classes: int = 1,
    class_file: Optional[str | Path] = None,
) -> Tuple[Vocabulary, LabelTable, int]:
    """Learn the word vocabulary, its classes and the label table.

    Classes are derived from word frequencies; precomputed class files are
    not supported.
    """
    if class_file is not None:
        raise UnimplementedFeature(
            f"class files are not supported ({class_file}); classes are frequency based"
        )
    counts, labels, num_tokens = corpus.count_words()
    vocabulary = build_vocabulary(counts, min_word_occurrence, num_classes)
    LOGGER.info("Vocab size: %d", vocabulary.size)
    LOGGER.info("Label vocab size: %d", len(labels))
    LOGGER.info("Words in train file: %d", num_tokens)
    return vocabulary, labels, num_tokens


__all__ = [
    "BookUnrolls",
    "Sentence",
    "TreeUnrollCorpus",
    "UnrollToken",
    "learn_vocabulary",
    "merged_word",
    "read_book_json",
    "read_book_list",
]
