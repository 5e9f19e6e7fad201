import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path

from deptree_rnnlm.cli import build_parser, config_from_args, main
from deptree_rnnlm.config import FeatureMode
from support import make_training_files


class ParserTest(unittest.TestCase):
    def test_direct_size_is_given_in_millions(self) -> None:
        args = build_parser().parse_args(
            [
                "train",
                "--rnnlm", "m.json",
                "--train", "t.txt",
                "--valid", "v.txt",
                "--direct", "2",
                "--class", "50",
                "--feature-labels-type", "2",
                "--debug", "yes",
            ]
        )
        config = config_from_args(args)
        self.assertEqual(config.direct_size, 2_000_000)
        self.assertEqual(config.num_classes, 50)
        self.assertEqual(config.feature_mode, FeatureMode.DECAYED_LABELS)
        self.assertTrue(config.debug)

    def test_unknown_feature_mode_is_rejected(self) -> None:
        with redirect_stdout(io.StringIO()), self.assertRaises(SystemExit):
            build_parser().parse_args(
                ["train", "--rnnlm", "m", "--train", "t", "--valid", "v", "--feature-labels-type", "5"]
            )


class MainTest(unittest.TestCase):
    def test_train_then_test(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            files = make_training_files(Path(tmp))
            out = io.StringIO()
            with redirect_stdout(out):
                code = main(
                    [
                        "--log-level", "WARNING",
                        "train",
                        "--rnnlm", str(files.model_file),
                        "--train", str(files.train_list),
                        "--valid", str(files.valid_list),
                        "--books-dir", str(files.books_dir),
                        "--hidden", "4",
                        "--class", "2",
                        "--min-word-occurrence", "1",
                        "--min-improvement", "10",
                    ]
                )
            self.assertEqual(code, 0)
            self.assertEqual(json.loads(out.getvalue())["iterations"], 3)
            self.assertTrue(files.model_file.exists())

            out = io.StringIO()
            with redirect_stdout(out):
                code = main(
                    [
                        "test",
                        "--rnnlm", str(files.model_file),
                        "--test", str(files.valid_list),
                        "--books-dir", str(files.books_dir),
                    ]
                )
            self.assertEqual(code, 0)
            self.assertGreater(json.loads(out.getvalue())["perplexity"], 1.0)

    def test_unsupported_class_file_exits_with_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            files = make_training_files(Path(tmp))
            code = main(
                [
                    "train",
                    "--rnnlm", str(files.model_file),
                    "--train", str(files.train_list),
                    "--valid", str(files.valid_list),
                    "--books-dir", str(files.books_dir),
                    "--classes-file", str(Path(tmp) / "classes.txt"),
                ]
            )
            self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
