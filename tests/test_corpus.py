import tempfile
import unittest
from pathlib import Path

from deptree_rnnlm.corpus import (
    TreeUnrollCorpus,
    learn_vocabulary,
    merged_word,
    read_book_json,
    read_book_list,
)
from deptree_rnnlm.errors import UnimplementedFeature
from support import TRAIN_SENTENCES, write_book, write_list


class ReadBookTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_parses_sentences_unrolls_and_tokens(self) -> None:
        path = write_book(self.root / "book.json", TRAIN_SENTENCES)
        sentences = read_book_json(path)
        self.assertEqual(len(sentences), 2)
        self.assertEqual(len(sentences[0]), 2)
        self.assertEqual(sentences[0][0][2], (2, "sat", 0.5, "root"))

    def test_discount_outside_unit_interval_is_rejected(self) -> None:
        path = write_book(self.root / "bad.json", [[[[0, "a", 0.0, "det"]]]])
        with self.assertRaises(ValueError):
            read_book_json(path)
        path = write_book(self.root / "bad2.json", [[[[0, "a", 1.5, "det"]]]])
        with self.assertRaises(ValueError):
            read_book_json(path)

    def test_short_token_is_rejected(self) -> None:
        path = write_book(self.root / "bad.json", [[[[0, "a", 1.0]]]])
        with self.assertRaises(ValueError):
            read_book_json(path)

    def test_empty_unroll_is_rejected(self) -> None:
        path = write_book(self.root / "bad.json", [[[]]])
        with self.assertRaises(ValueError):
            read_book_json(path)

    def test_invalid_json_is_reported_as_value_error(self) -> None:
        path = self.root / "broken.json"
        path.write_text("[[", encoding="utf-8")
        with self.assertRaises(ValueError):
            read_book_json(path)

    def test_book_list_resolves_against_books_dir(self) -> None:
        listing = write_list(self.root / "list.txt", ["a.json", "", "b.json"])
        self.assertEqual(read_book_list(listing), [self.root / "a.json", self.root / "b.json"])
        books = read_book_list(listing, self.root / "books")
        self.assertEqual(books[0], self.root / "books" / "a.json")


class TreeUnrollCorpusTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = write_book(Path(self._tmp.name) / "train.json", TRAIN_SENTENCES)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_counts_are_discounted(self) -> None:
        counts, labels, num_tokens = TreeUnrollCorpus([self.path]).count_words()
        self.assertEqual(counts["the"], 2.0)
        self.assertEqual(counts["sat"], 0.5)
        self.assertEqual(counts["</s>"], 3.0)
        self.assertEqual(num_tokens, 12)
        self.assertEqual(labels.to_list(), ["det", "nsubj", "root", "advmod"])

    def test_merged_labels_become_part_of_the_word(self) -> None:
        counts, _, _ = TreeUnrollCorpus([self.path], merge_labels=True).count_words()
        self.assertIn(merged_word("cat", "nsubj"), counts)
        self.assertNotIn("cat", counts)

    def test_books_encode_words_and_labels(self) -> None:
        corpus = TreeUnrollCorpus([self.path])
        vocab, labels, _ = learn_vocabulary(corpus, min_word_occurrence=1, num_classes=2)
        book = next(corpus.books(vocab, labels))
        self.assertEqual(book.num_sentences, 2)
        self.assertEqual(book.num_tokens, 12)
        self.assertEqual([s.num_unrolls for s in book.sentences], [2, 1])
        first = book.sentences[0].unrolls[0]
        self.assertEqual(first[0].word, vocab.index("the"))
        self.assertEqual(first[0].label, labels.index("det"))
        # "sat" carries half a count and falls below the threshold.
        self.assertEqual(first[2].word, vocab.unk_index)
        self.assertEqual(first[2].discount, 0.5)
        self.assertEqual(book.sentences[0].positions(), {0, 1, 2, 3, 4, 5})

    def test_class_files_are_not_supported(self) -> None:
        corpus = TreeUnrollCorpus([self.path])
        with self.assertRaises(UnimplementedFeature):
            learn_vocabulary(corpus, class_file="classes.txt")


if __name__ == "__main__":
    unittest.main()
