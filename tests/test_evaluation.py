import tempfile
import unittest
from pathlib import Path

import numpy as np

from deptree_rnnlm.config import RnnConfig
from deptree_rnnlm.corpus import BookUnrolls, Sentence, UnrollToken
from deptree_rnnlm.engine import RecurrentEngine
from deptree_rnnlm.evaluation import (
    EvaluationResult,
    SentenceLikelihood,
    accuracy_n_best,
    evaluate_corpus,
    load_correct_sentence_labels,
)
from deptree_rnnlm.vocabulary import Vocabulary


def token(position: int, word: int) -> UnrollToken:
    return UnrollToken(word=word, label=0, discount=1.0, position=position)


class SentenceLikelihoodTest(unittest.TestCase):
    def test_first_visit_wins(self) -> None:
        likelihood = SentenceLikelihood()
        self.assertTrue(likelihood.add(0, -1.0))
        self.assertTrue(likelihood.add(1, -0.5))
        self.assertFalse(likelihood.add(0, -3.0))
        self.assertIn(0, likelihood)
        self.assertNotIn(2, likelihood)
        self.assertEqual(likelihood.total, -1.5)
        self.assertEqual(likelihood.by_position[0], -1.0)


class EvaluateCorpusTest(unittest.TestCase):
    def setUp(self) -> None:
        self.vocab = Vocabulary(["</s>", "<unk>", "the", "cat", "sat", "ran"], num_classes=2)
        self.engine = RecurrentEngine(RnnConfig(hidden_size=4, num_classes=2), self.vocab)

    def _book(self) -> BookUnrolls:
        shared = Sentence(
            unrolls=[
                [token(0, 2), token(1, 3), token(2, 4), token(3, 0)],
                [token(0, 2), token(1, 3), token(4, 5), token(5, 0)],
            ]
        )
        with_unknown = Sentence(unrolls=[[token(0, 2), token(1, 1), token(2, -1), token(3, 0)]])
        return BookUnrolls(name="book", sentences=[shared, with_unknown])

    def test_shared_positions_are_counted_once(self) -> None:
        result = evaluate_corpus(self.engine, [self._book()])
        # Six distinct positions in the first sentence, two scored words in the second.
        self.assertEqual(result.num_words, 8)
        self.assertEqual(result.num_unknown, 2)
        self.assertEqual(len(result.sentence_scores), 2)
        self.assertAlmostEqual(sum(result.sentence_scores), result.log_probability)
        self.assertLess(result.log_probability, 0.0)
        self.assertGreater(result.perplexity, 1.0)

    def test_revisits_reproduce_the_first_score(self) -> None:
        shared = Sentence(unrolls=[[token(0, 2), token(1, 3)], [token(0, 2), token(1, 3)]])
        single = Sentence(unrolls=[[token(0, 2), token(1, 3)]])
        twice = evaluate_corpus(self.engine, [BookUnrolls("a", [shared])])
        once = evaluate_corpus(self.engine, [BookUnrolls("b", [single])])
        self.assertEqual(twice.log_probability, once.log_probability)
        self.assertEqual(twice.num_words, 2)

    def test_weights_are_frozen(self) -> None:
        before = self.engine.weights.copy()
        evaluate_corpus(self.engine, [self._book()])
        for name, value in before.items():
            self.assertTrue(np.array_equal(value, getattr(self.engine.weights, name)))

    def test_empty_corpus(self) -> None:
        result = evaluate_corpus(self.engine, [])
        self.assertEqual(result.num_words, 0)
        self.assertEqual(result.perplexity, 0.0)


class AccuracyTest(unittest.TestCase):
    def test_best_candidate_per_question(self) -> None:
        scores = [-3.0, -1.0, -2.0, -5.0, -6.0, -4.0]
        self.assertEqual(accuracy_n_best(scores, [1, 0]), 0.5)
        self.assertEqual(accuracy_n_best(scores, [1, 2]), 1.0)

    def test_no_labels(self) -> None:
        self.assertEqual(accuracy_n_best([-1.0], []), 0.0)

    def test_result_defaults(self) -> None:
        result = EvaluationResult()
        self.assertEqual(result.entropy, 0.0)
        self.assertEqual(result.sentence_scores, [])


class LoadSentenceLabelsTest(unittest.TestCase):
    def test_accepts_indices_and_letters(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "labels.txt"
            path.write_text("1\nb\n\n0\nE\n", encoding="utf-8")
            self.assertEqual(load_correct_sentence_labels(path), [1, 1, 0, 4])

    def test_rejects_garbage(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "labels.txt"
            path.write_text("maybe\n", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_correct_sentence_labels(path)


if __name__ == "__main__":
    unittest.main()
