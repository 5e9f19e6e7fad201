"""Command line entry point: ``deptree-rnnlm train`` and ``deptree-rnnlm test``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import FeatureMode, RnnConfig, TrainingFiles
from .errors import RnnTreeLMError
from .trainer import Trainer, evaluate_model_file

LOGGER = logging.getLogger(__name__)


def _str2bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deptree-rnnlm",
        description="Dependency-tree recurrent neural network language model",
    )
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    sub = parser.add_subparsers(dest="command", required=True)

    train = sub.add_parser("train", help="Train a model, resuming if the model file exists")
    train.add_argument("--rnnlm", required=True, type=Path, help="Model checkpoint file")
    train.add_argument("--train", required=True, type=Path, help="List of training books")
    train.add_argument("--valid", required=True, type=Path, help="List of validation books")
    train.add_argument("--books-dir", type=Path, default=None, help="Directory holding the JSON books")
    train.add_argument("--sentence-labels", type=Path, default=None, help="Correct candidate per validation question")
    train.add_argument("--vocab", type=Path, default=None, help="Vocabulary file, read if present else written")
    train.add_argument("--classes-file", type=Path, default=None, help="Precomputed word classes (unsupported)")
    train.add_argument("--log-file", type=Path, default=None, help="Append progress records to this file")
    train.add_argument("--hidden", type=int, default=30)
    train.add_argument("--compression", type=int, default=0)
    train.add_argument("--class", dest="num_classes", type=int, default=100)
    train.add_argument("--direct", type=int, default=0, help="Direct connection table size, in millions")
    train.add_argument("--direct-order", type=int, default=3)
    train.add_argument("--bptt", type=int, default=0)
    train.add_argument("--bptt-block", type=int, default=1)
    train.add_argument(
        "--feature-labels-type",
        type=int,
        default=int(FeatureMode.NONE),
        choices=[int(mode) for mode in FeatureMode],
        help="0: no labels, 1: labels merged into words, 2: decayed label features",
    )
    train.add_argument("--feature-gamma", type=float, default=0.9)
    train.add_argument("--alpha", type=float, default=0.1, help="Initial learning rate")
    train.add_argument("--beta", type=float, default=1e-7, help="L2 regularisation")
    train.add_argument("--min-improvement", type=float, default=1.003)
    train.add_argument("--min-word-occurrence", type=int, default=3)
    train.add_argument("--report-every", type=int, default=1000)
    train.add_argument("--seed", type=int, default=1)
    train.add_argument("--debug", type=_str2bool, default=False)

    test = sub.add_parser("test", help="Score held-out books with a trained model")
    test.add_argument("--rnnlm", required=True, type=Path)
    test.add_argument("--test", required=True, type=Path, help="List of test books")
    test.add_argument("--books-dir", type=Path, default=None)
    test.add_argument("--sentence-labels", type=Path, default=None)
    test.add_argument("--debug", type=_str2bool, default=False)
    return parser


def config_from_args(args: argparse.Namespace) -> RnnConfig:
    return RnnConfig(
        hidden_size=args.hidden,
        compress_size=args.compression,
        num_classes=args.num_classes,
        direct_size=args.direct * 1_000_000,
        direct_order=args.direct_order,
        num_bptt_steps=args.bptt,
        bptt_block_size=args.bptt_block,
        feature_mode=FeatureMode(args.feature_labels_type),
        feature_gamma=args.feature_gamma,
        learning_rate=args.alpha,
        regularization=args.beta,
        min_improvement=args.min_improvement,
        min_word_occurrence=args.min_word_occurrence,
        report_every=args.report_every,
        seed=args.seed,
        debug=args.debug,
    )


def files_from_args(args: argparse.Namespace) -> TrainingFiles:
    return TrainingFiles(
        model_file=args.rnnlm,
        train_list=args.train,
        valid_list=args.valid,
        books_dir=args.books_dir,
        sentence_labels=args.sentence_labels,
        log_file=args.log_file,
        vocab_file=args.vocab,
        class_file=args.classes_file,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.command == "train":
            config = config_from_args(args)
            files = files_from_args(args)
            LOGGER.info("RNN model will be stored in %s", files.model_file)
            summary = Trainer.from_files(config, files).train()
        else:
            summary = evaluate_model_file(
                args.rnnlm,
                args.test,
                books_dir=args.books_dir,
                sentence_labels=args.sentence_labels,
                debug=args.debug,
            )
    except RnnTreeLMError as exc:
        LOGGER.error("%s", exc)
        return 1
    print(json.dumps(summary, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
