import json
from pathlib import Path
from typing import List, Optional

from deptree_rnnlm.config import TrainingFiles

TRAIN_SENTENCES = [
    [
        [[0, "the", 1.0, "det"], [1, "cat", 1.0, "nsubj"], [2, "sat", 0.5, "root"], [3, "</s>", 1.0, "root"]],
        [[0, "the", 1.0, "det"], [1, "cat", 1.0, "nsubj"], [4, "down", 0.5, "advmod"], [5, "</s>", 1.0, "root"]],
    ],
    [
        [[0, "a", 1.0, "det"], [1, "dog", 1.0, "nsubj"], [2, "ran", 1.0, "root"], [3, "</s>", 1.0, "root"]],
    ],
]

VALID_SENTENCES = [
    [
        [[0, "the", 1.0, "det"], [1, "dog", 1.0, "nsubj"], [2, "sat", 1.0, "root"], [3, "</s>", 1.0, "root"]],
    ],
    [
        [[0, "a", 1.0, "det"], [1, "cat", 1.0, "nsubj"], [2, "ran", 1.0, "root"], [3, "</s>", 1.0, "root"]],
        [[0, "a", 1.0, "det"], [1, "cat", 1.0, "nsubj"], [4, "bird", 1.0, "dobj"], [5, "</s>", 1.0, "root"]],
    ],
]


def write_book(path: Path, sentences: list) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(sentences), encoding="utf-8")
    return path


def write_list(path: Path, names: List[str]) -> Path:
    path.write_text("\n".join(names) + "\n", encoding="utf-8")
    return path


def make_training_files(root: Path, vocab_file: Optional[Path] = None, log_file: Optional[Path] = None) -> TrainingFiles:
    books = root / "books"
    write_book(books / "train.json", TRAIN_SENTENCES)
    write_book(books / "valid.json", VALID_SENTENCES)
    return TrainingFiles(
        model_file=root / "model" / "rnnlm.json",
        train_list=write_list(root / "train.txt", ["train.json"]),
        valid_list=write_list(root / "valid.txt", ["valid.json"]),
        books_dir=books,
        log_file=log_file,
        vocab_file=vocab_file,
    )
